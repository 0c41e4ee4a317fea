"""Declarative field definitions for batchorm models.

A Field carries the per-property mapping metadata (column type, length,
nullability, comment, relation and index settings) and doubles as the
attribute descriptor that routes reads and writes through Model.get/set.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from batchorm.model import Model


class Field:
    """Mapping metadata for one model property.

    Example:
        class PostMeta(Model):
            __orm__ = {"type": "Entity", "table": "postmeta", "allow_schema_update": False}

            post_id = Field("bigint", length=20, null="NOT NULL",
                            many_to_one="myapp.models:Post", join_property="id")
            meta_key = Field("varchar", length=255, index="index")
            meta_value = Field("longtext")

    A field without a type is a declared property that is not stored; it can
    still carry index settings.
    """

    def __init__(
        self,
        type: str | None = None,
        *,
        length: int | str | None = None,
        null: str | None = None,
        comment: str | None = None,
        many_to_one: type | str | None = None,
        join_property: str | None = None,
        index: str | None = None,
        index_columns: str | list[str] | None = None,
        index_name: str | None = None,
    ) -> None:
        self.type = type
        self.length = length
        self.null = null
        self.comment = comment
        self.many_to_one = many_to_one
        self.join_property = join_property
        self.index = index
        self.index_columns = index_columns
        self.index_name = index_name
        self.name: str | None = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Model | None, owner: type) -> Any:
        if instance is None:
            return self
        return instance.get(self.name)

    def __set__(self, instance: Model, value: Any) -> None:
        instance.set(self.name, value)

    def annotations(self) -> dict[str, Any]:
        """Key/value view of the declared settings (unset keys omitted)."""
        values = {
            "column_type": self.type,
            "column_length": self.length,
            "column_null": self.null,
            "comment": self.comment,
            "many_to_one": self.many_to_one,
            "join_property": self.join_property,
            "index_type": self.index,
            "index_columns": self.index_columns,
            "index_name": self.index_name,
        }
        return {key: value for key, value in values.items() if value is not None}

    def __repr__(self) -> str:
        return f"Field({self.type!r}, name={self.name!r})"
