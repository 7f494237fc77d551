"""Configuration objects for data contexts and adapters."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class NullOrdering(Enum):
    """Where NULL values sort relative to non-null values."""

    HIGH = "high"  # NULL is the largest value: last ascending, first descending
    LOW = "low"  # NULL is the smallest value: first ascending, last descending
    FIRST = "first"
    LAST = "last"


@dataclass
class ExecutorConfig:
    """Settings for the in-memory query executor."""

    null_ordering: NullOrdering = NullOrdering.HIGH
    # Pass max_rows down to adapters for plain single-table scans
    pushdown_max_rows: bool = True


@dataclass
class SqlConfig:
    """Settings for the SQL adapter.

    Attributes:
        inline_values: Render literal values into statements instead of binding
            parameters. Each statement is closed right after it runs.
        batch_updates: Batch consecutive executions of the same prepared
            statement with ``executemany``.
        fetch_size: Number of rows fetched per round trip while iterating.
        dialect: Dialect name overriding the one reported by the engine.
        default_schema: Schema name overriding the engine's default schema.
        refresh_after_ddl: Re-read the schema after an update script that
            created or dropped tables.
    """

    inline_values: bool = False
    batch_updates: bool = True
    fetch_size: int = 500
    dialect: str | None = None
    default_schema: str | None = None
    refresh_after_ddl: bool = True
