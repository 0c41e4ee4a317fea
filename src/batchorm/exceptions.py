"""Custom exceptions for batchorm.

Metadata and validation errors are programmer errors: they are raised
synchronously and abort the operation that triggered them. Statement
failures during a flush abort only the affected table's batch and are
collected into a FlushError once every pass has run.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from batchorm.core.types import FlushReport


class BatchORMError(Exception):
    """Base exception for all batchorm errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as JSON-serializable dict."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class ConnectionError(BatchORMError):
    """Failed to connect to the database."""

    pass


class MissingRequiredMetadataError(BatchORMError):
    """A model is missing an entity-level attribute in its __orm__ mapping."""

    def __init__(self, attribute: str, model_name: str) -> None:
        message = (
            f"The attribute '{attribute}' does not exist on the model {model_name}. "
            f"Declare it in the model's __orm__ mapping."
        )
        super().__init__(message, {"attribute": attribute, "model": model_name})
        self.attribute = attribute
        self.model_name = model_name


class UnknownColumnTypeError(BatchORMError):
    """A field declares a column type outside the supported set."""

    def __init__(self, column_type: str, model_name: str, valid_types: list[str]) -> None:
        message = (
            f"Unknown column type '{column_type}' on model {model_name}. "
            f"Valid types: {', '.join(valid_types)}"
        )
        super().__init__(
            message,
            {"column_type": column_type, "model": model_name, "valid_types": valid_types},
        )
        self.column_type = column_type
        self.model_name = model_name


class UnknownIndexTypeError(BatchORMError):
    """A field declares an index type outside the supported set."""

    def __init__(self, index_type: str, model_name: str, valid_types: list[str]) -> None:
        message = (
            f"Unknown index type '{index_type}' on model {model_name}. "
            f"Valid types: {', '.join(valid_types)}"
        )
        super().__init__(
            message,
            {"index_type": index_type, "model": model_name, "valid_types": valid_types},
        )
        self.index_type = index_type
        self.model_name = model_name


class RepositoryTypeNotFoundError(BatchORMError):
    """The repository declared on a model cannot be resolved."""

    def __init__(self, repository: str, model_name: str, reason: str | None = None) -> None:
        message = f"Repository class {repository} does not exist on model {model_name}."
        if reason:
            message = f"{message} {reason}"
        super().__init__(message, {"repository": repository, "model": model_name})
        self.repository = repository
        self.model_name = model_name


class SchemaUpdateNotPermittedError(BatchORMError):
    """A schema operation was attempted on a model with allow_schema_update off."""

    def __init__(self, operation: str, model_name: str) -> None:
        message = (
            f"Refused to {operation} for model {model_name}. "
            f"allow_schema_update is set to False in its __orm__ mapping."
        )
        super().__init__(message, {"operation": operation, "model": model_name})
        self.operation = operation
        self.model_name = model_name


class PropertyNotFoundError(BatchORMError):
    """Property is not declared on the model."""

    def __init__(
        self, property_name: str, model_name: str, available: list[str] | None = None
    ) -> None:
        available = available or []
        if available:
            message = (
                f"The property '{property_name}' does not exist on the model {model_name}. "
                f"Available properties: {', '.join(available)}"
            )
        else:
            message = (
                f"The property '{property_name}' does not exist on the model {model_name}. "
                "No properties declared."
            )
        super().__init__(
            message,
            {"property": property_name, "model": model_name, "available_properties": available},
        )
        self.property_name = property_name
        self.model_name = model_name
        self.available = available


class StatementExecutionError(BatchORMError):
    """The executor reported a failure or an unexpected affected-row count."""

    def __init__(
        self,
        message: str,
        statement: str | None = None,
        last_error: str | None = None,
    ) -> None:
        super().__init__(message, {"statement": statement, "last_error": last_error})
        self.statement = statement
        self.last_error = last_error


class FlushError(BatchORMError):
    """One or more table batches failed during flush()."""

    def __init__(self, report: FlushReport) -> None:
        failed = report.failures
        tables = ", ".join(f"{o.operation} {o.table}" for o in failed)
        message = (
            f"{len(failed)} batch(es) failed during flush: {tables}. "
            f"Successful batches were applied; call flush() again to retry the rest."
        )
        super().__init__(
            message,
            {
                "failures": [
                    {"operation": o.operation, "table": o.table, "error": o.error} for o in failed
                ]
            },
        )
        self.report = report
