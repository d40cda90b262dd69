from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, Sequence

Row = dict[str, Any]
Filters = Mapping[str, Any]


class TableBackend(Protocol):
    """Generic relational store: equality filters, ``-column`` for descending order."""

    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order_by: Sequence[str] = (),
        limit: Optional[int] = None,
    ) -> list[Row]: ...

    def insert(self, table: str, rows: Sequence[Row]) -> list[Row]: ...

    def update(self, table: str, values: Row, filters: Filters) -> int: ...

    def delete(self, table: str, filters: Filters) -> int: ...
