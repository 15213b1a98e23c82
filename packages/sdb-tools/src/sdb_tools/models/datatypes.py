"""Data types returned by the remote store.

These types represent the data that flows back from store calls:
- `Item` for a named record and its attribute map
- `SelectResult`, `ItemNameList`, `DomainList` for paginated result pages
- `AttributeResult` for a single item's attributes
- `Acknowledgement` for calls that return nothing but their cost
"""

from typing import TypeAlias

from pydantic import BaseModel, Field

# Attribute name to its values. Multi-valued attributes are lists even when singleton.
Attributes: TypeAlias = dict[str, list[str]]


class Item(BaseModel, frozen=True):
    """A uniquely named record in a domain."""

    name: str
    """Item name, unique within its domain."""

    attributes: Attributes = Field(default_factory=dict)
    """Attribute values keyed by attribute name."""


class StoreResponse(BaseModel, frozen=True):
    """Common fields of every store response."""

    box_usage: float = 0.0
    """Billed capacity consumed by the call."""


class Page(StoreResponse, frozen=True):
    """A response that may be truncated and continued with a token."""

    next_token: str | None = None
    """Continuation token, absent on the last page."""


class DomainList(Page, frozen=True):
    """One page of domain names."""

    domains: list[str] = Field(default_factory=list)


class ItemNameList(Page, frozen=True):
    """One page of item names."""

    items: list[str] = Field(default_factory=list)


class SelectResult(Page, frozen=True):
    """One page of a SELECT expression."""

    items: list[Item] = Field(default_factory=list)

    @property
    def count(self) -> int:
        """Value of a `count(*)` page, which the store returns as a single `Domain` item."""
        if not self.items:
            return 0
        values = self.items[0].attributes.get("Count", [])
        return int(values[0]) if values else 0


class AttributeResult(StoreResponse, frozen=True):
    """Attributes of a single item."""

    attributes: Attributes = Field(default_factory=dict)


class Acknowledgement(StoreResponse, frozen=True):
    """Response of a mutation, carrying only its cost."""
