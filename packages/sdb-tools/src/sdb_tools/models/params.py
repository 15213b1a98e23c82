"""Parameter types for selections and transfers.

Params define how an operation runs (projection, ordering, batch sizes),
while the continuation token carries where a running operation is.
"""

from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field, field_validator

MAX_BATCH_LIMIT = 250
"""Largest page size the store accepts."""

DEFAULT_RESULT_LIMIT = 100
"""Page size the store uses when a query has no LIMIT clause."""


class Order(StrEnum):
    """Sort direction of an ordered selection."""

    ASCENDING = "ascending"
    DESCENDING = "descending"


class SelectionParams(BaseModel, frozen=True, extra="forbid"):
    """Parameters of a logical selection over one domain."""

    attributes: Literal["all"] | list[str] = "all"
    """Projected attribute names, or "all" for every attribute."""

    conditions: str = ""
    """Predicate text of the WHERE clause. Empty means no filter."""

    order_by: str | None = None
    """Attribute to sort on. None leaves the store's natural order."""

    order: Order = Order.ASCENDING

    limit: int | None = Field(default=None, ge=0, strict=True)
    """Total number of rows to return. None is unbounded."""

    batch_limit: int = Field(default=DEFAULT_RESULT_LIMIT, ge=1, le=MAX_BATCH_LIMIT)
    """Rows fetched per remote call."""

    offset: int = Field(default=0, ge=0)
    """Rows to skip before the first returned row."""

    @field_validator("attributes")
    @classmethod
    def _require_attributes(cls, value: Literal["all"] | list[str]) -> Literal["all"] | list[str]:
        if isinstance(value, list) and not value:
            msg = "attributes must be 'all' or a non-empty list of names"
            raise ValueError(msg)
        return value


class TransferParams(BaseModel, frozen=True):
    """Parameters of a dump or load run."""

    chunk_size: int = Field(default=100, ge=1)
    """Items reserved from the checkpoint ledger at a time."""
