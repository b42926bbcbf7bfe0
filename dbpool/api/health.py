#!/usr/bin/env python3
"""
FastAPI сервер health-проверок пула соединений.

Пул создаётся при старте приложения и закрывается при остановке.
"""

import asyncio
import signal
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from dbpool.config import APIConfig
from dbpool.database.pool import close_db_pool, current_db_pool, init_db_pool
from dbpool.utils.logger import get_logger

logger = get_logger(__name__)

SERVICE_NAME = "dbpool_health"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events для FastAPI."""
    init_db_pool()
    logger.info("Health API server starting")
    yield
    close_db_pool()
    logger.info("Health API server stopped")


app = FastAPI(
    title="dbpool - Health API",
    description="Состояние пула соединений PostgreSQL и доступность БД.",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)


@app.get(
    "/health/live",
    summary="Liveness Probe",
    description="Проверка что сервис жив",
    responses={
        200: {"description": "Сервис жив"}
    }
)
async def liveness_check():
    """Всегда возвращает 200, если сервис запущен."""
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "timestamp": _now()
    }


@app.get(
    "/health/ready",
    summary="Readiness Probe",
    description="Пул инициализирован и не закрыт; соединение не запрашивается",
    responses={
        200: {"description": "Сервис готов"},
        503: {"description": "Сервис не готов"}
    }
)
async def readiness_check():
    """
    Readiness probe.

    Лёгкая проверка: только статистика пула, без получения соединения.
    """
    pool = current_db_pool()
    if pool is None:
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "service": SERVICE_NAME,
                "reason": "Database pool not initialized"
            }
        )

    return {
        "status": "ready",
        "service": SERVICE_NAME,
        "database_pool": pool.stats().model_dump(),
        "timestamp": _now()
    }


@app.get(
    "/health",
    summary="Health Check",
    description="Проверка подключения к БД через SELECT 1",
    responses={
        200: {
            "description": "Статус сервиса",
            "content": {
                "application/json": {
                    "example": {
                        "status": "ok",
                        "database": "ok"
                    }
                }
            }
        }
    }
)
async def health_check():
    """Выполняет SELECT 1 через пул в отдельном потоке."""
    db_ok = False
    pool = current_db_pool()
    if pool is not None:
        db_ok = await asyncio.to_thread(pool.check_connection)

    return {
        "status": "ok" if db_ok else "degraded",
        "database": "ok" if db_ok else "error",
        "service": SERVICE_NAME,
        "timestamp": _now()
    }


def main():
    """Запуск health API через uvicorn."""
    import uvicorn
    from dbpool.utils.logger import setup_uvicorn_logging

    setup_uvicorn_logging(SERVICE_NAME)

    def signal_handler(signum, frame):
        """Обработчик сигналов для graceful shutdown."""
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)

    try:
        uvicorn.run(app, host=APIConfig.HOST, port=APIConfig.HEALTH_PORT, log_level="info", log_config=None)
    except KeyboardInterrupt:
        logger.info("Health API stopped by user")
    except Exception as e:
        logger.error(f"Fatal error in Health API: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
