#!/usr/bin/env python3
"""
Выполнение SQL выражений на выделенном соединении.

Transaction - handle, который получает unit of work внутри
DatabasePool.transaction(). Все выражения идут через одно соединение
и фиксируются (или откатываются) пулом целиком.
"""

from typing import Any, Optional, Sequence

import psycopg

from dbpool.database.exceptions import DatabaseError
from dbpool.database.models import QueryResult
from dbpool.utils.logger import get_logger

logger = get_logger(__name__)


def run_statement(
    conn: psycopg.Connection,
    statement: str,
    parameters: Optional[Sequence[Any]] = None
) -> QueryResult:
    """
    Выполнить выражение и собрать результат.

    Строки читаются обычным курсором: values хранит их позиционно,
    rows - как словари по именам колонок. При повторяющихся именах
    (SELECT a.id, b.id) в словаре остаётся последнее значение, полный
    набор доступен через values.

    Args:
        conn: Соединение с БД
        statement: SQL с плейсхолдерами %s
        parameters: Позиционные параметры

    Returns:
        QueryResult (rows пустой для выражений без результата)

    Raises:
        psycopg.Error: Ошибка драйвера пробрасывается как есть
    """
    cursor = conn.cursor()
    try:
        cursor.execute(statement, parameters)
        if cursor.description is None:
            return QueryResult(rows=[], columns=[], row_count=cursor.rowcount)
        columns = [column.name for column in cursor.description]
        values = [tuple(row) for row in cursor.fetchall()]
        rows = [dict(zip(columns, row)) for row in values]
        return QueryResult(rows=rows, columns=columns, values=values, row_count=cursor.rowcount)
    finally:
        cursor.close()


class Transaction:
    """
    Handle транзакции для unit of work.

    Не фиксирует и не откатывает сам - это делает пул. После завершения
    transaction() handle закрывается, и execute() выбрасывает DatabaseError.
    """

    def __init__(self, conn: psycopg.Connection):
        self._conn = conn
        self._closed = False
        self.statements_executed = 0
        self.failed_statement: Optional[str] = None

    @property
    def connection(self) -> psycopg.Connection:
        """Соединение транзакции (для драйверных операций вроде COPY)."""
        return self._conn

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def failed(self) -> bool:
        """Хотя бы одно выражение упало - сервер прервал транзакцию."""
        return self.failed_statement is not None

    def execute(self, statement: str, parameters: Optional[Sequence[Any]] = None) -> QueryResult:
        """
        Выполнить выражение в рамках транзакции.

        Args:
            statement: SQL с плейсхолдерами %s
            parameters: Позиционные параметры

        Returns:
            QueryResult

        Raises:
            DatabaseError: При ошибке выражения или если транзакция уже завершена
        """
        if self._closed:
            raise DatabaseError("Transaction is already finished", statement=statement)

        try:
            result = run_statement(self._conn, statement, parameters)
        except Exception as e:
            if self.failed_statement is None:
                self.failed_statement = statement
            logger.error(f"Statement failed inside transaction: {e}", exc_info=True)
            raise DatabaseError(f"Database operation failed: {e}", statement=statement) from e

        self.statements_executed += 1
        return result

    def close(self):
        self._closed = True
