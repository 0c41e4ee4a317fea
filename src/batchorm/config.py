"""Configuration resolution for batchorm.

Values come from explicit arguments first, then environment variables,
then defaults.
"""

from __future__ import annotations

import os

from pydantic import BaseModel, Field

DEFAULT_DATABASE_URL = "sqlite:///./batchorm.db"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def get_database_url(url: str | None = None) -> str:
    """Resolve database URL from argument, environment variable, or default.

    Priority:
    1. Explicit URL argument
    2. BATCHORM_URL environment variable
    3. Default: sqlite:///./batchorm.db
    """
    if url:
        return url
    if env_url := os.getenv("BATCHORM_URL"):
        return env_url
    return DEFAULT_DATABASE_URL


def get_table_prefix(prefix: str | None = None) -> str:
    """Resolve the prefix prepended to every mapped table name."""
    if prefix is not None:
        return prefix
    return os.getenv("BATCHORM_TABLE_PREFIX", "")


class Settings(BaseModel):
    """Resolved runtime settings."""

    database_url: str = Field(default=DEFAULT_DATABASE_URL)
    table_prefix: str = Field(default="", pattern=r"^[A-Za-z0-9_]*$")
    echo: bool = False

    @classmethod
    def from_env(
        cls,
        url: str | None = None,
        table_prefix: str | None = None,
        echo: bool | None = None,
    ) -> Settings:
        """Build settings, letting explicit arguments override the environment."""
        if echo is None:
            echo = os.getenv("BATCHORM_ECHO", "").strip().lower() in _TRUE_VALUES
        return cls(
            database_url=get_database_url(url),
            table_prefix=get_table_prefix(table_prefix),
            echo=echo,
        )
