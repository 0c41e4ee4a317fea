"""Model metadata and schema management for batchorm."""

from batchorm.mapping.mapper import SchemaMapper
from batchorm.mapping.metadata import MetadataReader, clear_metadata_cache, derive_metadata
from batchorm.mapping.reconcile import SchemaReconciler

__all__ = [
    "SchemaMapper",
    "SchemaReconciler",
    "MetadataReader",
    "derive_metadata",
    "clear_metadata_cache",
]
