"""Logical selections over a domain.

A `Selection` turns attributes, conditions, ordering, limit and offset
into as many paginated SELECT calls as the result needs, and yields the
rows lazily::

    selection = Selection(store, "users", conditions="age > '30'", limit=500)
    async for name, attributes in selection:
        ...

The store has no OFFSET. An offset is emulated by first counting
`offset` rows with an otherwise identical query and starting the real
query from the continuation token that count ends on.
"""

from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any, Literal

import structlog
from pydantic import ValidationError

from sdb_tools.errors import ErrorKind, SdbError
from sdb_tools.metrics import Transaction
from sdb_tools.models.datatypes import Attributes, SelectResult
from sdb_tools.models.params import Order, SelectionParams
from sdb_tools.models.requests import Select
from sdb_tools.operation import PaginatedOperation
from sdb_tools.protocols import Store
from sdb_tools.query import QueryExpression

logger = structlog.get_logger(__name__)


def _validate(options: dict[str, Any]) -> SelectionParams:
    try:
        return SelectionParams.model_validate(options)
    except ValidationError as e:
        msg = f"Invalid selection options: {e}"
        raise SdbError(msg, kind=ErrorKind.INVALID_INPUT, source=e) from e


class Selection:
    """A lazily evaluated, possibly offset and limited result set."""

    def __init__(
        self,
        store: Store,
        domain: str,
        *,
        parent: Transaction | None = None,
        **options: Any,
    ) -> None:
        self._store = store
        self._domain = str(domain)
        self._parent = parent
        self._params = _validate(options)
        self._count: int | None = None
        self._results: dict[str, Attributes] | None = None
        self._starting_token: str | None = None
        self._token_resolved = False
        self._token_injected = False
        self._offset_exhausted = False
        self._started = False

    def __str__(self) -> str:
        return self.to_query()

    def __repr__(self) -> str:
        return f"Selection({self._domain!r}, {self._params!r})"

    # -------------------------
    # Options
    # -------------------------
    @property
    def domain(self) -> str:
        return self._domain

    @property
    def params(self) -> SelectionParams:
        return self._params

    @property
    def attributes(self) -> Literal["all"] | list[str]:
        return self._params.attributes

    @attributes.setter
    def attributes(self, value: Literal["all"] | list[str]) -> None:
        self._update(attributes=value)

    @property
    def conditions(self) -> str:
        return self._params.conditions

    @conditions.setter
    def conditions(self, value: str) -> None:
        self._update(conditions=value)

    @property
    def order_by(self) -> str | None:
        return self._params.order_by

    @order_by.setter
    def order_by(self, value: str | None) -> None:
        self._update(order_by=value)

    @property
    def order(self) -> Order:
        return self._params.order

    @order.setter
    def order(self, value: Order) -> None:
        self._update(order=value)

    @property
    def limit(self) -> int | None:
        return self._params.limit

    @limit.setter
    def limit(self, value: int | None) -> None:
        self._update(limit=value)

    @property
    def batch_limit(self) -> int:
        return self._params.batch_limit

    @batch_limit.setter
    def batch_limit(self, value: int) -> None:
        self._update(batch_limit=value)

    @property
    def offset(self) -> int:
        return self._params.offset

    @offset.setter
    def offset(self, value: int) -> None:
        self._update(offset=value)

    @property
    def starting_token(self) -> str | None:
        """Token the page query starts from, once resolved."""
        return self._starting_token

    @starting_token.setter
    def starting_token(self, value: str | None) -> None:
        # Injection skips offset resolution entirely.
        self._starting_token = value
        self._token_resolved = True
        self._token_injected = True
        self._offset_exhausted = False

    def _update(self, **changes: Any) -> None:
        if self._started:
            msg = "Selection options cannot change once iteration has started"
            raise SdbError(msg, kind=ErrorKind.INVALID_INPUT)
        self._params = _validate({**self._params.model_dump(), **changes})
        self._count = None
        self._results = None
        if not self._token_injected:
            self._starting_token = None
            self._token_resolved = False
            self._offset_exhausted = False

    # -------------------------
    # Expressions
    # -------------------------
    def _expression(self) -> QueryExpression:
        return QueryExpression(self._domain, self._params)

    def to_query(self, query_limit: int | None = None, offset: int = 0) -> str:
        """Page query for `query_limit` rows (the logical limit by default).

        `offset` is how many rows were already read, which shrinks the
        LIMIT of the final page.
        """
        if query_limit is None:
            query_limit = self.limit
        return self._expression().render(query_limit, offset)

    def count_expression(self) -> str:
        return self._expression().count()

    def offset_count_expression(self) -> str:
        return self._expression().offset_count()

    # -------------------------
    # Execution
    # -------------------------
    async def count(self) -> int:
        """Number of matching rows, bounded by the logical limit.

        Pages of a paginated count are added together. The result is cached.
        """
        if self._count is None:
            starting_token = await self.resolve_starting_token()
            if self._offset_exhausted:
                self._count = 0
                return self._count
            expression = self.count_expression()
            operation = PaginatedOperation(
                self._store,
                Select(expression=expression),
                starting_token=starting_token,
                parent=self._parent,
                description=expression,
            )
            total = 0
            async with aclosing(operation.pages()) as pages:
                async for page, _ in pages:
                    total += _as_select(page).count
            self._count = total
        return self._count

    async def resolve_starting_token(self) -> str | None:
        """Token at which `offset` rows have been skipped (None for no offset)."""
        if not self._token_resolved:
            token = None if self.offset == 0 else await self._find_offset_token()
            self._starting_token = token
            self._token_resolved = True
        return self._starting_token

    async def _find_offset_token(self) -> str | None:
        expression = self.offset_count_expression()
        operation = PaginatedOperation(
            self._store,
            Select(expression=expression),
            parent=self._parent,
            description=expression,
        )
        counted = 0
        async with aclosing(operation.pages()) as pages:
            async for page, _ in pages:
                counted += _as_select(page).count
                if counted == self.offset:
                    # No token here means the offset skipped every matching row.
                    self._offset_exhausted = page.next_token is None
                    logger.debug("Resolved offset", offset=self.offset, token=page.next_token)
                    return page.next_token
                if page.next_token is None:
                    break
        msg = f"Failed to find offset {self.offset}: only {counted} rows match"
        raise SdbError(msg, kind=ErrorKind.OFFSET)

    async def __aiter__(self) -> AsyncIterator[tuple[str, Attributes]]:
        """Yield `(item_name, attributes)` rows in result order."""
        limit = self.limit
        if limit == 0:
            return
        self._started = True
        starting_token = await self.resolve_starting_token()
        if self._offset_exhausted:
            return
        num_items = 0
        operation = PaginatedOperation(
            self._store,
            Select(expression=self.to_query(limit, num_items)),
            starting_token=starting_token,
            parent=self._parent,
            description=self.to_query(),
        )
        async with aclosing(operation.pages()) as pages:
            async for page, current in pages:
                for item in _as_select(page).items:
                    yield item.name, item.attributes
                    num_items += 1
                    if limit is not None and num_items >= limit:
                        return
                current.request = current.request.model_copy(
                    update={"expression": self.to_query(limit, num_items)}
                )

    async def results(self) -> dict[str, Attributes]:
        """Every row keyed by item name, in result order. Cached."""
        if self._results is None:
            self._results = {name: attributes async for name, attributes in self}
        return self._results


def _as_select(page: object) -> SelectResult:
    if not isinstance(page, SelectResult):
        msg = f"Expected a select result, got {type(page).__name__}"
        raise SdbError(msg, kind=ErrorKind.PROVIDER)
    return page
