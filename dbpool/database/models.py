#!/usr/bin/env python3
"""
Pydantic модели результатов запросов и состояния пула.
"""

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


class QueryResult(BaseModel):
    """
    Результат выполнения SQL выражения.

    rows - строки как словари {колонка: значение}; values - те же строки
    позиционно, в порядке columns (сохраняют повторяющиеся имена колонок).
    """
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    columns: List[str] = Field(default_factory=list)
    values: List[Tuple[Any, ...]] = Field(default_factory=list)
    row_count: int = -1

    def first(self) -> Optional[Dict[str, Any]]:
        """Первая строка результата или None."""
        return self.rows[0] if self.rows else None


class PoolStats(BaseModel):
    """Снимок состояния connection pool."""
    max_size: int
    min_size: int
    total: int = Field(ge=0)
    in_use: int = Field(ge=0)
    idle: int = Field(ge=0)
    waiting: int = Field(ge=0)
    closed: bool = False
