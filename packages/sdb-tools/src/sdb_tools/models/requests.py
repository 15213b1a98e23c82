"""Typed store calls.

Every call the toolkit makes against the remote store is one of the
request models below. Each carries its own arguments and a `kind` tag,
and the closed `StoreRequest` union is what a `Store` accepts.

Paginated requests (`ListDomains`, `QueryItemNames`, `Select`) carry the
continuation token in `next_token`; nothing else changes between pages.
"""

from typing import Literal, TypeAlias

from pydantic import BaseModel

from sdb_tools.models.datatypes import Attributes


class ListDomains(BaseModel, frozen=True):
    """List the domains of the account."""

    kind: Literal["list_domains"] = "list_domains"
    next_token: str | None = None


class CreateDomain(BaseModel, frozen=True):
    """Create a domain (idempotent on the store side)."""

    kind: Literal["create_domain"] = "create_domain"
    name: str


class DeleteDomain(BaseModel, frozen=True):
    """Delete a domain and all of its items."""

    kind: Literal["delete_domain"] = "delete_domain"
    name: str


class QueryItemNames(BaseModel, frozen=True):
    """List the item names of a domain, optionally filtered."""

    kind: Literal["query"] = "query"
    domain: str
    query_filter: str | None = None
    """Predicate text, None to list every item."""

    next_token: str | None = None


class Select(BaseModel, frozen=True):
    """Run a SELECT expression."""

    kind: Literal["select"] = "select"
    expression: str
    next_token: str | None = None
    consistent_read: bool = False


class GetAttributes(BaseModel, frozen=True):
    """Fetch one item's attributes, or a single attribute of it."""

    kind: Literal["get"] = "get"
    domain: str
    item_name: str
    attribute_name: str | None = None


class PutAttributes(BaseModel, frozen=True):
    """Write attributes of one item."""

    kind: Literal["put"] = "put"
    domain: str
    item_name: str
    attributes: Attributes
    replace: bool = False
    """Replace existing values instead of adding to them."""


class DeleteAttributes(BaseModel, frozen=True):
    """Delete attributes of one item, or the whole item when none are given."""

    kind: Literal["delete"] = "delete"
    domain: str
    item_name: str
    attributes: Attributes | None = None


PaginatedRequest: TypeAlias = ListDomains | QueryItemNames | Select

StoreRequest: TypeAlias = (
    ListDomains
    | CreateDomain
    | DeleteDomain
    | QueryItemNames
    | Select
    | GetAttributes
    | PutAttributes
    | DeleteAttributes
)
