from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import requests

from atenea.domain.errors import BackendError
from atenea.repositories.contracts import Filters, Row

log = logging.getLogger(__name__)


class RestBackend:
    """Hosted tables exposed through a PostgREST endpoint (``/rest/v1/<table>``)."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: Optional[str] = None,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": api_key,
                "Authorization": f"Bearer {access_token or api_key}",
                "Content-Type": "application/json",
            }
        )

    def _url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    @staticmethod
    def _filter_params(filters: Optional[Filters]) -> dict[str, str]:
        params: dict[str, str] = {}
        for col, value in (filters or {}).items():
            if value is None:
                params[col] = "is.null"
            elif isinstance(value, bool):
                params[col] = f"eq.{str(value).lower()}"
            else:
                params[col] = f"eq.{value}"
        return params

    def _request(self, method: str, table: str, **kwargs: Any) -> Any:
        try:
            r = self.session.request(method, self._url(table), timeout=self.timeout, **kwargs)
            r.raise_for_status()
        except requests.RequestException as e:
            log.warning("backend_request_failed method=%s table=%s error=%s", method, table, e)
            raise BackendError(f"{method} {table} failed: {e}") from e
        if not r.content:
            return []
        return r.json()

    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order_by: Sequence[str] = (),
        limit: Optional[int] = None,
    ) -> list[Row]:
        params = {"select": "*", **self._filter_params(filters)}
        if order_by:
            params["order"] = ",".join(
                f"{c[1:]}.desc" if c.startswith("-") else f"{c}.asc" for c in order_by
            )
        if limit is not None:
            params["limit"] = str(int(limit))
        return list(self._request("GET", table, params=params))

    def insert(self, table: str, rows: Sequence[Row]) -> list[Row]:
        rows = [dict(r) for r in rows]
        if not rows:
            return []
        return list(
            self._request("POST", table, json=rows, headers={"Prefer": "return=representation"})
        )

    def update(self, table: str, values: Row, filters: Filters) -> int:
        if not filters:
            raise ValueError("update requires filters")
        changed = self._request(
            "PATCH",
            table,
            params=self._filter_params(filters),
            json=dict(values),
            headers={"Prefer": "return=representation"},
        )
        return len(changed)

    def delete(self, table: str, filters: Filters) -> int:
        if not filters:
            raise ValueError("delete requires filters")
        removed = self._request(
            "DELETE",
            table,
            params=self._filter_params(filters),
            headers={"Prefer": "return=representation"},
        )
        return len(removed)
