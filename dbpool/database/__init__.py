"""
Модуль для работы с базой данных PostgreSQL.

Предоставляет thread-safe connection pool, query() и transaction().
"""

from .exceptions import DatabaseError, PoolClosedError, PoolTimeoutError
from .models import PoolStats, QueryResult
from .executor import Transaction
from .pool import (
    DatabasePool,
    init_db_pool,
    get_db_pool,
    current_db_pool,
    is_db_pool_initialized,
    get_db_connection,
    return_db_connection,
    close_db_pool,
    query,
    transaction,
    query_async,
    transaction_async
)

__all__ = [
    'DatabaseError',
    'PoolClosedError',
    'PoolTimeoutError',
    'PoolStats',
    'QueryResult',
    'Transaction',
    'DatabasePool',
    'init_db_pool',
    'get_db_pool',
    'current_db_pool',
    'is_db_pool_initialized',
    'get_db_connection',
    'return_db_connection',
    'close_db_pool',
    'query',
    'transaction',
    'query_async',
    'transaction_async'
]
