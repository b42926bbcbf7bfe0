#!/usr/bin/env python3
"""
Thread-safe connection pool для PostgreSQL.

Обёртка над psycopg_pool.ConnectionPool: ожидание свободного соединения,
закрытие простаивающих и учёт выданных выполняет библиотека. Синхронные
операции безопасно вызывать через asyncio.to_thread.
"""

import asyncio
import math
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional, Sequence, Tuple, TypeVar

import psycopg
from psycopg import pq
from psycopg_pool import ConnectionPool, PoolClosed, PoolTimeout

from dbpool.config import DatabaseConfig
from dbpool.database.exceptions import DatabaseError, PoolClosedError, PoolTimeoutError
from dbpool.database.models import PoolStats, QueryResult
from dbpool.database.executor import Transaction, run_statement
from dbpool.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar('T')

# "0 - без ограничения" для таймаутов psycopg_pool
UNLIMITED_SECONDS = 365 * 24 * 3600.0


def build_connect_kwargs(config: type = DatabaseConfig) -> Tuple[Optional[str], Dict[str, Any]]:
    """
    Собрать параметры подключения из конфигурации.

    DATABASE_URL имеет приоритет над DB_HOST/DB_PORT/... .

    Args:
        config: Класс конфигурации (по умолчанию DatabaseConfig)

    Returns:
        (dsn или None, kwargs для psycopg.connect)
    """
    kwargs: Dict[str, Any] = {}
    if config.SSL_MODE:
        kwargs['sslmode'] = config.SSL_MODE

    if config.URL:
        return config.URL, kwargs

    kwargs.update(
        host=config.HOST,
        port=config.PORT,
        dbname=config.NAME,
        user=config.USER,
        password=config.PASSWORD,
    )
    return None, kwargs


def _statement_preview(statement: str, limit: int = 200) -> str:
    collapsed = " ".join(statement.split())
    return collapsed if len(collapsed) <= limit else collapsed[:limit] + "..."


def _seconds_or_unlimited(seconds: float) -> float:
    return seconds if seconds > 0 else UNLIMITED_SECONDS


class DatabasePool:
    """
    Thread-safe connection pool для PostgreSQL.

    Использует psycopg_pool.ConnectionPool: getconn() блокируется, пока
    соединение не освободится, но не дольше connect_timeout; соединения
    сверх minconn, простаивающие дольше idle_timeout, закрываются пулом.
    """

    def __init__(
        self,
        minconn: Optional[int] = None,
        maxconn: Optional[int] = None,
        dsn: Optional[str] = None,
        idle_timeout: Optional[float] = None,
        connect_timeout: Optional[float] = None,
        **connect_kwargs: Any
    ):
        """
        Инициализация connection pool.

        Args:
            minconn: Сколько соединений держать открытыми (0 - полностью лениво)
            maxconn: Максимальное количество одновременно выданных соединений
            dsn: DSN строка подключения (по умолчанию из DatabaseConfig)
            idle_timeout: Секунды простоя до закрытия соединения (0 - не закрывать)
            connect_timeout: Секунды на подключение и ожидание соединения (0 - без ограничения)
            **connect_kwargs: Дополнительные параметры psycopg.connect
        """
        self.minconn = DatabaseConfig.POOL_MIN_CONNECTIONS if minconn is None else minconn
        self.maxconn = DatabaseConfig.POOL_MAX_CONNECTIONS if maxconn is None else maxconn
        self.idle_timeout = DatabaseConfig.IDLE_TIMEOUT if idle_timeout is None else idle_timeout
        self.connect_timeout = DatabaseConfig.CONNECT_TIMEOUT if connect_timeout is None else connect_timeout

        if self.maxconn < 1:
            raise ValueError(f"maxconn must be >= 1, got {self.maxconn}")
        if not 0 <= self.minconn <= self.maxconn:
            raise ValueError(f"minconn must be between 0 and maxconn ({self.maxconn}), got {self.minconn}")

        if dsn is None and not connect_kwargs:
            dsn, connect_kwargs = build_connect_kwargs()
        self.dsn = dsn
        self._connect_kwargs = dict(connect_kwargs)
        if self.connect_timeout > 0:
            # libpq принимает только целые секунды
            self._connect_kwargs.setdefault('connect_timeout', max(1, math.ceil(self.connect_timeout)))

        self._pool: ConnectionPool = self._init_pool()

    def _init_pool(self) -> ConnectionPool:
        """Создать пул и дождаться minconn соединений."""
        pool = ConnectionPool(
            conninfo=self.dsn or "",
            kwargs=self._connect_kwargs,
            min_size=self.minconn,
            max_size=self.maxconn,
            timeout=_seconds_or_unlimited(self.connect_timeout),
            max_idle=_seconds_or_unlimited(self.idle_timeout),
            name="dbpool",
            open=True,
        )

        if self.minconn == 0:
            logger.info(f"Database connection pool initialized (min={self.minconn}, max={self.maxconn}, lazy)")
            return pool

        try:
            pool.wait(timeout=_seconds_or_unlimited(self.connect_timeout))
        except PoolTimeout as e:
            logger.error(f"Failed to initialize database pool: {e}")
            pool.close()
            raise DatabaseError(f"Failed to connect to database: {e}") from e

        logger.info(f"Database connection pool initialized (min={self.minconn}, max={self.maxconn})")
        return pool

    @property
    def closed(self) -> bool:
        return self._pool.closed

    def get_connection(self, timeout: Optional[float] = None) -> psycopg.Connection:
        """
        Получить соединение с БД из pool.

        Блокируется, пока соединение не освободится.

        Args:
            timeout: Таймаут ожидания в секундах (по умолчанию connect_timeout, 0 - без ограничения)

        Returns:
            Соединение с БД

        Raises:
            PoolTimeoutError: Если соединение не освободилось (или не открылось) за timeout
            PoolClosedError: Если пул закрыт, в том числе во время ожидания
        """
        wait = self.connect_timeout if timeout is None else timeout

        try:
            return self._pool.getconn(timeout=_seconds_or_unlimited(wait))
        except PoolClosed as e:
            raise PoolClosedError("Database pool is closed") from e
        except PoolTimeout as e:
            logger.warning(f"Database pool exhausted (max={self.maxconn}), waited {wait}s")
            raise PoolTimeoutError(f"Database pool exhausted, could not get connection within {wait}s") from e

    def return_connection(self, conn: Optional[psycopg.Connection], discard: bool = False):
        """
        Вернуть соединение в pool.

        Пул сам откатывает незавершённую транзакцию и заменяет закрытые
        и сломанные соединения. После close_all() возвращённое соединение
        закрывается.

        Args:
            conn: Соединение для возврата
            discard: Закрыть соединение вместо повторного использования
        """
        if conn is None:
            return

        if discard:
            self._close_quietly(conn)

        try:
            self._pool.putconn(conn)
        except ValueError as e:
            logger.warning(f"Attempted to return connection not owned by pool, skipping: {e}")

    @staticmethod
    def _close_quietly(conn: psycopg.Connection):
        try:
            if not conn.closed:
                conn.close()
        except Exception as e:
            logger.warning(f"Error closing database connection: {e}")

    @contextmanager
    def connection(self, timeout: Optional[float] = None) -> Iterator[psycopg.Connection]:
        """Context manager: соединение возвращается в пул на любом выходе."""
        conn = self.get_connection(timeout=timeout)
        try:
            yield conn
        finally:
            self.return_connection(conn)

    def query(self, statement: str, parameters: Optional[Sequence[Any]] = None) -> QueryResult:
        """
        Выполнить одно выражение на соединении из пула.

        Соединение возвращается в пул и при успехе, и при ошибке.

        Args:
            statement: SQL с плейсхолдерами %s
            parameters: Позиционные параметры

        Returns:
            QueryResult со строками результата

        Raises:
            DatabaseError: При любой ошибке выполнения
        """
        conn = self.get_connection()
        try:
            result = run_statement(conn, statement, parameters)
            conn.commit()
            return result
        except Exception as e:
            logger.error(
                f"Query failed: {e}",
                exc_info=True,
                extra={"statement": _statement_preview(statement)}
            )
            raise DatabaseError(f"Database operation failed: {e}", statement=statement) from e
        finally:
            self.return_connection(conn)

    @staticmethod
    def _rollback(conn: psycopg.Connection) -> bool:
        try:
            conn.rollback()
            return True
        except Exception as e:
            logger.error(f"Rollback failed, discarding connection: {e}")
            return False

    def transaction(self, unit_of_work: Callable[[Transaction], T]) -> T:
        """
        Выполнить unit of work в одной транзакции.

        BEGIN выполняется драйвером неявно перед первым выражением
        (autocommit выключен). На каждый вызов выполняется ровно одно из
        COMMIT/ROLLBACK. Если выражение упало, а unit of work перехватил
        ошибку и завершился нормально, транзакция всё равно откатывается:
        сервер её уже прервал.

        Args:
            unit_of_work: Функция, принимающая Transaction

        Returns:
            Результат unit_of_work

        Raises:
            DatabaseError: Ошибка выражения, прерванная транзакция или ошибка COMMIT
            Exception: Исключения самого unit_of_work пробрасываются без изменений
        """
        conn = self.get_connection()
        tx = Transaction(conn)
        discard = False
        try:
            try:
                result = unit_of_work(tx)
            except BaseException as e:
                tx.close()
                discard = not self._rollback(conn)
                logger.warning(f"Transaction rolled back: {e!r}")
                raise

            tx.close()
            if tx.failed or conn.info.transaction_status == pq.TransactionStatus.INERROR:
                discard = not self._rollback(conn)
                logger.error(
                    "Transaction aborted by a failed statement, rolled back",
                    extra={"statement": _statement_preview(tx.failed_statement or "")}
                )
                raise DatabaseError(
                    "Transaction aborted by a failed statement and was rolled back",
                    statement=tx.failed_statement
                )

            try:
                conn.commit()
            except Exception as e:
                discard = True
                logger.error(f"Transaction commit failed: {e}", exc_info=True)
                raise DatabaseError(f"Transaction commit failed: {e}") from e

            logger.debug(f"Transaction committed ({tx.statements_executed} statement(s))")
            return result
        finally:
            tx.close()
            self.return_connection(conn, discard=discard)

    async def query_async(self, statement: str, parameters: Optional[Sequence[Any]] = None) -> QueryResult:
        """Асинхронная версия query() через asyncio.to_thread."""
        return await asyncio.to_thread(self.query, statement, parameters)

    async def transaction_async(self, unit_of_work: Callable[[Transaction], T]) -> T:
        """
        Асинхронная версия transaction() через asyncio.to_thread.

        unit_of_work синхронный и выполняется в рабочем потоке.
        """
        return await asyncio.to_thread(self.transaction, unit_of_work)

    def check_connection(self) -> bool:
        """Проверить доступность БД через SELECT 1."""
        try:
            return bool(self.query("SELECT 1 AS ok").rows)
        except DatabaseError as e:
            logger.warning(f"Database connection check failed: {e}")
            return False

    def stats(self) -> PoolStats:
        """Получить снимок состояния пула."""
        measures = self._pool.get_stats()
        total = measures.get("pool_size", 0)
        idle = measures.get("pool_available", 0)
        return PoolStats(
            max_size=self.maxconn,
            min_size=self.minconn,
            total=total,
            in_use=max(total - idle, 0),
            idle=idle,
            waiting=measures.get("requests_waiting", 0),
            closed=self._pool.closed,
        )

    def close_all(self):
        """
        Закрыть все соединения в пуле.

        Ожидающие получают PoolClosedError, выданные соединения
        закрываются при возврате.
        """
        if self._pool.closed:
            return

        in_use = self.stats().in_use
        try:
            self._pool.close()
        except Exception as e:
            logger.error(f"Error closing database pool: {e}")
            raise DatabaseError(f"Error closing database pool: {e}") from e
        logger.info("All database connections closed", extra={"in_use": in_use})

    def __enter__(self) -> 'DatabasePool':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close_all()
        return False


# Глобальный экземпляр пула
_db_pool: Optional[DatabasePool] = None
_db_pool_lock = threading.Lock()


def init_db_pool(
    minconn: Optional[int] = None,
    maxconn: Optional[int] = None,
    dsn: Optional[str] = None,
    idle_timeout: Optional[float] = None,
    connect_timeout: Optional[float] = None
) -> DatabasePool:
    """
    Инициализация глобального connection pool.

    Повторный вызов возвращает уже созданный пул (если он не закрыт).

    Returns:
        DatabasePool экземпляр
    """
    global _db_pool
    with _db_pool_lock:
        if _db_pool is None or _db_pool.closed:
            _db_pool = DatabasePool(
                minconn=minconn,
                maxconn=maxconn,
                dsn=dsn,
                idle_timeout=idle_timeout,
                connect_timeout=connect_timeout
            )
        return _db_pool


def get_db_pool() -> DatabasePool:
    """Получить глобальный пул, создав его при первом обращении."""
    pool = _db_pool
    if pool is None or pool.closed:
        return init_db_pool()
    return pool


def current_db_pool() -> Optional[DatabasePool]:
    """Глобальный пул, если он открыт; новый не создаётся."""
    pool = _db_pool
    if pool is None or pool.closed:
        return None
    return pool


def is_db_pool_initialized() -> bool:
    return current_db_pool() is not None


def get_db_connection(timeout: Optional[float] = None) -> psycopg.Connection:
    """
    Получить соединение с БД из глобального pool.

    Args:
        timeout: Таймаут ожидания в секундах

    Returns:
        Соединение с БД
    """
    return get_db_pool().get_connection(timeout=timeout)


def return_db_connection(conn: Optional[psycopg.Connection]):
    """Вернуть соединение в глобальный pool."""
    pool = _db_pool
    if pool:
        pool.return_connection(conn)


def close_db_pool():
    """Закрыть глобальный пул (вызывается при завершении процесса)."""
    global _db_pool
    with _db_pool_lock:
        if _db_pool is not None:
            try:
                _db_pool.close_all()
            finally:
                _db_pool = None


def query(statement: str, parameters: Optional[Sequence[Any]] = None) -> QueryResult:
    """Выполнить выражение через глобальный пул."""
    return get_db_pool().query(statement, parameters)


def transaction(unit_of_work: Callable[[Transaction], T]) -> T:
    """Выполнить unit of work в транзакции через глобальный пул."""
    return get_db_pool().transaction(unit_of_work)


async def query_async(statement: str, parameters: Optional[Sequence[Any]] = None) -> QueryResult:
    return await get_db_pool().query_async(statement, parameters)


async def transaction_async(unit_of_work: Callable[[Transaction], T]) -> T:
    return await get_db_pool().transaction_async(unit_of_work)
