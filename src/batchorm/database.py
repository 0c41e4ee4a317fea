"""Entry point wiring configuration, connection, executor and units of work."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from batchorm.config import Settings
from batchorm.core.connection import DatabaseConnection
from batchorm.core.executor import StatementExecutor
from batchorm.manager import Manager
from batchorm.mapping.mapper import SchemaMapper

if TYPE_CHECKING:
    from batchorm.mapping.metadata import MetadataReader

logger = logging.getLogger(__name__)


class Database:
    """A database plus the settings every unit of work against it shares.

    Example:
        db = Database("sqlite:///:memory:")
        db.mapper().reconcile_schema(Widget)

        uow = db.unit_of_work()
        uow.persist(Widget(name="bolt", price=0.25))
        uow.flush()
    """

    def __init__(
        self,
        url: str | None = None,
        echo: bool | None = None,
        table_prefix: str | None = None,
        reader: MetadataReader | None = None,
    ) -> None:
        """Initialize the database.

        Args:
            url: Connection URL (falls back to BATCHORM_URL, then a local SQLite file)
            echo: Echo SQL statements (falls back to BATCHORM_ECHO)
            table_prefix: Prefix for every mapped table (falls back to BATCHORM_TABLE_PREFIX)
            reader: Custom source of declarative metadata
        """
        self._settings = Settings.from_env(url=url, table_prefix=table_prefix, echo=echo)
        self._connection = DatabaseConnection(self._settings.database_url, echo=self._settings.echo)
        self._executor = StatementExecutor(self._connection)
        self._reader = reader

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def connection(self) -> DatabaseConnection:
        return self._connection

    @property
    def executor(self) -> StatementExecutor:
        return self._executor

    def mapper(self) -> SchemaMapper:
        """A fresh schema mapper."""
        return SchemaMapper(self._executor, self._settings.table_prefix, self._reader)

    def unit_of_work(self) -> Manager:
        """A fresh unit of work with its own registry and mapper."""
        return Manager(self.mapper())

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()
