"""Continuation-token pagination over store calls."""

from collections.abc import AsyncIterator
from typing import Generic, TypeVar, cast

import structlog

from sdb_tools.metrics import Transaction, open_transaction
from sdb_tools.models.datatypes import Page
from sdb_tools.models.requests import ListDomains, QueryItemNames, Select
from sdb_tools.protocols import Store

logger = structlog.get_logger(__name__)

R = TypeVar("R", ListDomains, QueryItemNames, Select)


class PaginatedOperation(Generic[R]):
    """One logical store operation, re-requested until no token is returned.

    The token each page returns is threaded into the `next_token` field of
    the next request; no other field changes unless the consumer replaces
    `request` between pages. The starting token is captured at
    construction, so a finished operation is restarted by building a new
    one.

    Iterating yields `(page, operation)` pairs. A full iteration runs
    inside one metrics scope, and every page fetch is measured into it.
    """

    __slots__ = ("_description", "_parent", "_store", "request", "starting_token")

    request: R
    starting_token: str | None

    def __init__(
        self,
        store: Store,
        request: R,
        *,
        starting_token: str | None = None,
        parent: Transaction | None = None,
        description: str | None = None,
    ) -> None:
        self._store = store
        self._parent = parent
        self._description = description or f":{request.kind} operation"
        self.request = request
        self.starting_token = starting_token

    def __aiter__(self) -> AsyncIterator[tuple[Page, "PaginatedOperation[R]"]]:
        return self.pages()

    async def pages(self) -> AsyncIterator[tuple[Page, "PaginatedOperation[R]"]]:
        """Yield each result page until the store stops returning a token."""
        with open_transaction(self._description, parent=self._parent) as transaction:
            next_token = self.starting_token
            while True:
                request = self.request.model_copy(update={"next_token": next_token})
                page = cast("Page", await transaction.measure(self._store.send(request)))
                logger.debug(
                    "Fetched page",
                    kind=request.kind,
                    has_next_token=page.next_token is not None,
                )
                yield page, self
                next_token = page.next_token
                if not next_token:
                    break
