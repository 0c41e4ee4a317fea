"""Statement execution for batchorm.

Every statement runs in its own transaction, so a multi-row statement is
applied entirely or not at all. Nothing spans statements.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError

from batchorm.exceptions import StatementExecutionError

if TYPE_CHECKING:
    from sqlalchemy import Engine, Inspector
    from sqlalchemy.sql import Executable

    from batchorm.core.connection import DatabaseConnection

logger = logging.getLogger(__name__)


@dataclass
class StatementResult:
    """What a statement did: affected rows, returned rows, last row id."""

    rowcount: int
    rows: list[Any] = field(default_factory=list)
    lastrowid: int | None = None


class StatementExecutor:
    """Executes parameterized statements against the connection's engine.

    Keeps the last statement and last error for diagnostics.
    """

    def __init__(self, connection: DatabaseConnection) -> None:
        self._connection = connection
        self.last_statement: str | None = None
        self.last_error: str | None = None
        self.statement_count = 0

    @property
    def engine(self) -> Engine:
        return self._connection.engine

    @property
    def dialect(self) -> str:
        return self._connection.dialect

    def quote(self, identifier: str) -> str:
        """Quote an identifier for the connected dialect."""
        return self.engine.dialect.identifier_preparer.quote(identifier)

    def inspector(self) -> Inspector:
        """Fresh schema inspector (inspectors cache what they reflect)."""
        return inspect(self.engine)

    def execute(
        self, statement: str | Executable, params: dict[str, Any] | None = None
    ) -> StatementResult:
        """Execute one statement and return its result.

        Args:
            statement: SQL text with named placeholders, or a SQLAlchemy construct
            params: Values for the placeholders

        Raises:
            StatementExecutionError: If the driver reports a failure
        """
        if isinstance(statement, str):
            statement = text(statement)

        self.last_statement = str(statement.compile(dialect=self.engine.dialect))
        self.last_error = None
        self.statement_count += 1
        logger.debug(f"Executing: {self.last_statement} {params or ''}")

        try:
            with self.engine.begin() as conn:
                result = conn.execute(statement, params) if params else conn.execute(statement)
                if result.returns_rows:
                    rows = list(result.fetchall())
                    return StatementResult(rowcount=len(rows), rows=rows)
                lastrowid = getattr(result, "lastrowid", None)
                return StatementResult(rowcount=result.rowcount, lastrowid=lastrowid)
        except SQLAlchemyError as e:
            self.last_error = str(getattr(e, "orig", None) or e)
            logger.debug(f"Statement failed: {self.last_error}")
            raise StatementExecutionError(
                f"Statement failed: {self.last_error}",
                statement=self.last_statement,
                last_error=self.last_error,
            ) from e
