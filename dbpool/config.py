#!/usr/bin/env python3
"""
Централизованная конфигурация проекта.

Все переменные окружения и настройки в одном месте.
"""

import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

# Корневая директория проекта
PROJECT_ROOT = Path(__file__).parent.parent

_TRUE_VALUES = {'true', '1', 'yes', 'on'}
_FALSE_VALUES = {'false', '0', 'no', 'off'}


def parse_ssl_mode(value: Optional[str]) -> Optional[str]:
    """
    Преобразовать значение DB_SSL в sslmode для libpq.

    Args:
        value: Значение переменной окружения (может быть None)

    Returns:
        'require', 'disable', исходное значение sslmode или None (по умолчанию libpq)
    """
    if value is None or not value.strip():
        return None
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return 'require'
    if normalized in _FALSE_VALUES:
        return 'disable'
    return normalized


class DatabaseConfig:
    """Конфигурация базы данных."""
    URL: Optional[str] = os.getenv('DATABASE_URL') or None
    HOST: str = os.getenv('DB_HOST', 'localhost')
    PORT: int = int(os.getenv('DB_PORT', '5432'))
    NAME: str = os.getenv('DB_NAME', 'postgres')
    USER: str = os.getenv('DB_USER', 'postgres')
    PASSWORD: str = os.getenv('DB_PASSWORD', '')
    SSL_MODE: Optional[str] = parse_ssl_mode(os.getenv('DB_SSL'))
    POOL_MIN_CONNECTIONS: int = int(os.getenv('DB_POOL_MIN_CONNECTIONS', '0'))
    POOL_MAX_CONNECTIONS: int = int(os.getenv('DB_POOL_MAX_CONNECTIONS', '20'))
    # Секунды простоя, после которых соединение закрывается (0 - не закрывать)
    IDLE_TIMEOUT: float = float(os.getenv('DB_IDLE_TIMEOUT', '30'))
    # Секунды на подключение и на ожидание свободного слота (0 - ждать бесконечно)
    CONNECT_TIMEOUT: float = float(os.getenv('DB_CONNECT_TIMEOUT', '2'))


class APIConfig:
    """Конфигурация health API."""
    HOST: str = os.getenv('API_HOST', '0.0.0.0')
    HEALTH_PORT: int = int(os.getenv('HEALTH_CHECK_PORT', '8027'))


class LogConfig:
    """Конфигурация логирования."""
    JSON_FORMAT: bool = os.getenv('LOG_JSON_FORMAT', 'true').lower() == 'true'
    LEVEL: str = os.getenv('LOG_LEVEL', 'INFO').upper()
    TO_FILE: bool = os.getenv('LOG_TO_FILE', 'true').lower() == 'true'
    DIR: Path = Path(os.getenv('LOG_DIR', str(PROJECT_ROOT / 'logs')))
