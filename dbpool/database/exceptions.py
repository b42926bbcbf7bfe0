#!/usr/bin/env python3
"""
Исключения слоя работы с БД.

Единая таксономия: любая ошибка операции с БД - DatabaseError.
Исходное исключение драйвера доступно через __cause__.
"""

from typing import Optional


class DatabaseError(Exception):
    """Операция с базой данных завершилась ошибкой."""

    def __init__(self, message: str, statement: Optional[str] = None):
        super().__init__(message)
        self.statement = statement


class PoolTimeoutError(DatabaseError):
    """Не удалось получить соединение из пула за отведённое время."""
    pass


class PoolClosedError(DatabaseError):
    """Пул закрыт, соединения больше не выдаются."""
    pass
