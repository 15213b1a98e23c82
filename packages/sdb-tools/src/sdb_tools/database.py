"""Database and domain handles over a store."""

from __future__ import annotations

from contextlib import aclosing
from pathlib import Path
from typing import Any, cast

from sdb_tools.metrics import Transaction, open_transaction
from sdb_tools.models.datatypes import (
    AttributeResult,
    Attributes,
    DomainList,
    ItemNameList,
    SelectResult,
    StoreResponse,
)
from sdb_tools.models.requests import (
    CreateDomain,
    DeleteAttributes,
    DeleteDomain,
    GetAttributes,
    ListDomains,
    PutAttributes,
    QueryItemNames,
    Select,
    StoreRequest,
)
from sdb_tools.operation import PaginatedOperation
from sdb_tools.protocols import Store
from sdb_tools.query import items_in_expression
from sdb_tools.selection import Selection
from sdb_tools.transfer import DumpEngine, LoadEngine


async def _send(
    store: Store, description: str, request: StoreRequest, parent: Transaction | None
) -> StoreResponse:
    with open_transaction(description, parent=parent) as transaction:
        return await transaction.measure(store.send(request))


class Domain:
    """A named collection of items."""

    __slots__ = ("_count", "_item_names", "_parent", "_store", "name")

    def __init__(self, store: Store, name: str, parent: Transaction | None = None) -> None:
        self._store = store
        self._parent = parent
        self._item_names: list[str] | None = None
        self._count: int | None = None
        self.name = name

    def __repr__(self) -> str:
        return f"Domain({self.name!r})"

    @property
    def store(self) -> Store:
        return self._store

    def bind(self, parent: Transaction | None) -> Domain:
        """Same domain, measuring its calls under `parent`."""
        return Domain(self._store, self.name, parent=parent)

    async def item_names(self) -> list[str]:
        """Every item name in the domain. Cached."""
        if self._item_names is None:
            operation = PaginatedOperation(
                self._store, QueryItemNames(domain=self.name), parent=self._parent
            )
            names: list[str] = []
            async with aclosing(operation.pages()) as pages:
                async for page, _ in pages:
                    names.extend(cast("ItemNameList", page).items)
            self._item_names = names
        return self._item_names

    async def count(self) -> int:
        if self._count is None:
            self._count = await self.selection().count()
        return self._count

    async def items(self, item_names: list[str]) -> dict[str, Attributes]:
        """Fetch full attributes of the named items in one batched selection."""
        if not item_names:
            return {}
        operation = PaginatedOperation(
            self._store,
            Select(expression=items_in_expression(self.name, item_names)),
            parent=self._parent,
        )
        items: dict[str, Attributes] = {}
        async with aclosing(operation.pages()) as pages:
            async for page, _ in pages:
                for item in cast("SelectResult", page).items:
                    items[item.name] = item.attributes
        return items

    async def get(self, item_name: str, attribute_name: str | None = None) -> Attributes:
        request = GetAttributes(domain=self.name, item_name=item_name, attribute_name=attribute_name)
        response = await _send(self._store, "get_attributes", request, self._parent)
        return cast("AttributeResult", response).attributes

    async def put(self, item_name: str, attributes: Attributes, *, replace: bool = False) -> None:
        request = PutAttributes(
            domain=self.name, item_name=item_name, attributes=attributes, replace=replace
        )
        _ = await _send(self._store, "put_attributes", request, self._parent)

    async def delete(self, item_name: str, attributes: Attributes | None = None) -> None:
        request = DeleteAttributes(domain=self.name, item_name=item_name, attributes=attributes)
        _ = await _send(self._store, "delete_attributes", request, self._parent)

    def selection(self, **options: Any) -> Selection:
        return Selection(self._store, self.name, parent=self._parent, **options)


class Database:
    """Entry point to the domains of one store."""

    __slots__ = ("_parent", "_store")

    def __init__(self, store: Store, parent: Transaction | None = None) -> None:
        self._store = store
        self._parent = parent

    @property
    def store(self) -> Store:
        return self._store

    async def domains(self) -> list[str]:
        operation = PaginatedOperation(self._store, ListDomains(), parent=self._parent)
        domains: list[str] = []
        async with aclosing(operation.pages()) as pages:
            async for page, _ in pages:
                domains.extend(cast("DomainList", page).domains)
        return domains

    def domain(self, name: str) -> Domain:
        return Domain(self._store, name, parent=self._parent)

    async def domain_exists(self, name: str) -> bool:
        return name in await self.domains()

    async def create_domain(self, name: str) -> Domain:
        _ = await _send(self._store, "create_domain", CreateDomain(name=name), self._parent)
        return self.domain(name)

    async def delete_domain(self, name: str) -> None:
        _ = await _send(self._store, "delete_domain", DeleteDomain(name=name), self._parent)

    def make_dump(self, domain: Domain | str, path: str | Path, **options: Any) -> DumpEngine:
        return DumpEngine(self._as_domain(domain), path, **options)

    def make_load(self, domain: Domain | str, path: str | Path, **options: Any) -> LoadEngine:
        return LoadEngine(self._as_domain(domain), path, **options)

    def _as_domain(self, domain: Domain | str) -> Domain:
        return domain if isinstance(domain, Domain) else self.domain(domain)
