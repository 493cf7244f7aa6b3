"""
Read-only access to the legacy catalogue database.

The legacy store is reached through a plain SQLAlchemy engine (PyMySQL for
MySQL deployments) and queried with ``text()`` statements; the engine never
writes to it. One connection is held for the whole run.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, Mapping, Sequence

from sqlalchemy import bindparam, create_engine, inspect, text
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class SourceUnavailableError(RuntimeError):
    """Raised when the legacy database cannot be opened."""


def _connect_args(url: str, connect_timeout: int) -> dict[str, Any]:
    backend = make_url(url).get_backend_name()
    if backend == "mysql":
        return {"connect_timeout": connect_timeout, "charset": "utf8mb4"}
    if backend == "sqlite":
        return {"timeout": connect_timeout}
    if backend == "postgresql":
        return {"connect_timeout": connect_timeout}
    return {}


class LegacySource:
    """Context-managed, page-oriented reader over the legacy schema."""

    def __init__(
        self,
        url: str | None = None,
        *,
        connect_timeout: int = 60,
        engine: Engine | None = None,
    ) -> None:
        if url is None and engine is None:
            raise ValueError("LegacySource requires a database URL or an engine.")
        self.url = url
        self.connect_timeout = connect_timeout
        self._engine = engine
        self._owns_engine = engine is None
        self._connection: Connection | None = None

    def __enter__(self) -> "LegacySource":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def connection(self) -> Connection:
        if self._connection is None:
            raise RuntimeError("LegacySource is not open.")
        return self._connection

    def open(self) -> None:
        if self._connection is not None:
            return
        try:
            if self._engine is None:
                self._engine = create_engine(
                    self.url,
                    connect_args=_connect_args(self.url, self.connect_timeout),
                    pool_pre_ping=True,
                )
            self._connection = self._engine.connect()
        except SQLAlchemyError as exc:
            self._dispose_engine()
            raise SourceUnavailableError(f"Could not connect to legacy database: {exc}") from exc
        logger.info("Connected to legacy database %s", self._engine.url.render_as_string(hide_password=True))

    def close(self) -> None:
        if self._connection is not None:
            try:
                self._connection.close()
            finally:
                self._connection = None
        self._dispose_engine()

    def _dispose_engine(self) -> None:
        if self._engine is not None and self._owns_engine:
            self._engine.dispose()
            self._engine = None

    def reset(self) -> None:
        """Discard any failed transaction state on the held connection."""
        if self._connection is not None and self._connection.in_transaction():
            self._connection.rollback()

    def has_table(self, table: str) -> bool:
        return inspect(self.connection).has_table(table)

    def fetch_all(self, sql: str, params: Mapping[str, Any] | None = None) -> list[Mapping[str, Any]]:
        statement = text(sql)
        params = dict(params or {})
        for name, value in params.items():
            if isinstance(value, (list, tuple, set, frozenset)):
                statement = statement.bindparams(bindparam(name, expanding=True))
                params[name] = list(value)
        result = self.connection.execute(statement, params)
        return [dict(row) for row in result.mappings()]

    def fetch_one(self, sql: str, params: Mapping[str, Any] | None = None) -> Mapping[str, Any] | None:
        rows = self.fetch_all(sql, params)
        return rows[0] if rows else None

    def scalar(self, sql: str, params: Mapping[str, Any] | None = None) -> Any:
        row = self.fetch_one(sql, params)
        if row is None:
            return None
        return next(iter(row.values()))

    def count(self, table: str, where: str | None = None, params: Mapping[str, Any] | None = None) -> int:
        sql = f"SELECT COUNT(*) AS total FROM {table}"
        if where:
            sql += f" WHERE {where}"
        return int(self.scalar(sql, params) or 0)

    def iter_pages(
        self,
        table: str,
        columns: Sequence[str],
        order_by: Sequence[str],
        page_size: int,
        *,
        where: str | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> Iterator[list[Mapping[str, Any]]]:
        """
        Yield pages of ``table`` ordered by ``order_by``.

        Pages are fetched with ``LIMIT``/``OFFSET`` where the offset is the
        running total of rows already yielded; a short page ends the scan.
        """

        if page_size < 1:
            raise ValueError("page_size must be positive")
        sql = f"SELECT {', '.join(columns)} FROM {table}"
        if where:
            sql += f" WHERE {where}"
        sql += f" ORDER BY {', '.join(order_by)} LIMIT :_limit OFFSET :_offset"

        offset = 0
        while True:
            page = self.fetch_all(sql, {**(params or {}), "_limit": page_size, "_offset": offset})
            if page:
                yield page
            if len(page) < page_size:
                return
            offset += len(page)
