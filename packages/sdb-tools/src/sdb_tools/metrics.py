"""Measurement scopes for groups of store calls.

The remote store is not transactional. A `Transaction` here only groups
a series of calls for accounting: it sums the calls made, the box usage
they were billed, the items they returned and the time they took.

Scopes are explicit objects. A scope opened with a parent nests under
it; a scope opened without one is a root, whose totals go to the
process-wide `global_stats()` sink when it closes::

    with open_transaction("dump users") as root:
        with root.open("select page") as page:
            result = await page.measure(store.send(request))
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeAlias, TypeVar

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

T = TypeVar("T")

OnClose: TypeAlias = "Callable[[Transaction], None]"


@dataclass
class TransactionStats:
    """Totals accumulated by a scope."""

    box_usage: float = 0.0
    request_count: int = 0
    item_count: int = 0
    cpu_time: float = 0.0
    clock_time: float = 0.0

    def merge(self, other: TransactionStats) -> None:
        self.box_usage += other.box_usage
        self.request_count += other.request_count
        self.item_count += other.item_count
        self.cpu_time += other.cpu_time
        self.clock_time += other.clock_time


def _ignore(_transaction: Transaction) -> None:
    pass


_default_on_close: OnClose = _ignore
_global_stats = TransactionStats()


def set_default_on_close(action: OnClose | None) -> None:
    """Set the action run when a root scope without its own action closes.

    Usage::

        set_default_on_close(log_transaction_close(logger))
    """
    global _default_on_close  # noqa: PLW0603
    _default_on_close = action or _ignore


def default_on_close() -> OnClose:
    return _default_on_close


def global_stats() -> TransactionStats:
    """Totals of every root scope closed in this process."""
    return _global_stats


def reset_global_stats() -> None:
    global _global_stats  # noqa: PLW0603
    _global_stats = TransactionStats()


def response_item_count(response: object) -> int:
    """Count the items a store response carries.

    Returned items and domains count one each; a response holding a
    single item's attributes counts as one item.
    """
    count = len(getattr(response, "items", None) or ())
    count += len(getattr(response, "domains", None) or ())
    if hasattr(response, "attributes"):
        count += 1
    return count


class Transaction:
    """A measurement scope over a group of store calls."""

    __slots__ = ("_closed", "description", "nesting_level", "on_close", "parent", "stats")

    description: str
    parent: Transaction | None
    nesting_level: int
    on_close: OnClose
    stats: TransactionStats

    def __init__(
        self,
        description: str,
        parent: Transaction | None = None,
        on_close: OnClose | None = None,
    ) -> None:
        self.description = description
        self.parent = parent
        self.nesting_level = 0 if parent is None else parent.nesting_level + 1
        if on_close is None:
            on_close = parent.on_close if parent is not None else default_on_close()
        self.on_close = on_close
        self.stats = TransactionStats()
        self._closed = False

    def __repr__(self) -> str:
        return f"Transaction({self.description!r}, nesting_level={self.nesting_level})"

    @property
    def box_usage(self) -> float:
        return self.stats.box_usage

    @property
    def request_count(self) -> int:
        return self.stats.request_count

    @property
    def item_count(self) -> int:
        return self.stats.item_count

    @property
    def closed(self) -> bool:
        return self._closed

    def open(
        self, description: str, on_close: OnClose | None = None
    ) -> AbstractContextManager[Transaction]:
        """Open a scope nested under this one."""
        return open_transaction(description, parent=self, on_close=on_close)

    def add_stats(
        self,
        box_usage: float = 0.0,
        request_count: int = 0,
        item_count: int = 0,
        cpu_time: float = 0.0,
        clock_time: float = 0.0,
    ) -> None:
        self.stats.merge(
            TransactionStats(
                box_usage=float(box_usage),
                request_count=int(request_count),
                item_count=int(item_count),
                cpu_time=cpu_time,
                clock_time=clock_time,
            )
        )

    def add_stats_from_response(self, response: T) -> T:
        """Record one call and what its response carried."""
        box_usage = getattr(response, "box_usage", 0.0) or 0.0
        self.add_stats(box_usage, 1, response_item_count(response))
        return response

    async def measure(self, call: Awaitable[T]) -> T:
        """Await a store call and record it in this scope.

        Time is recorded even when the call fails; the failure itself
        propagates unchanged.
        """
        cpu_start = time.process_time()
        clock_start = time.perf_counter()
        try:
            response = await call
        finally:
            self.add_stats(
                cpu_time=time.process_time() - cpu_start,
                clock_time=time.perf_counter() - clock_start,
            )
        return self.add_stats_from_response(response)

    def close(self) -> None:
        """Roll totals into the parent (or the global sink) and run `on_close`.

        Closing twice is a no-op.
        """
        if self._closed:
            return
        self._closed = True
        target = self.parent.stats if self.parent is not None else global_stats()
        target.merge(self.stats)
        self.on_close(self)


@contextmanager
def open_transaction(
    description: str,
    parent: Transaction | None = None,
    on_close: OnClose | None = None,
) -> Iterator[Transaction]:
    """Open a scope, closing it on every exit path."""
    transaction = Transaction(description, parent=parent, on_close=on_close)
    try:
        yield transaction
    finally:
        transaction.close()


def log_transaction_close(
    logger: FilteringBoundLogger | Any,
    cutoff_level: int | None = None,
) -> OnClose:
    """Build an on-close action that logs each closed scope.

    `cutoff_level` is a maximum depth, unlike a minimum-depth filter: scopes
    nested deeper than it are skipped, so 0 logs only root scopes and their
    roll-up totals. None logs every scope.
    """

    def action(transaction: Transaction) -> None:
        if cutoff_level is not None and transaction.nesting_level > cutoff_level:
            return
        stats = transaction.stats
        logger.info(
            "Transaction closed",
            scope="*" * (transaction.nesting_level + 1),
            description=transaction.description,
            cpu=round(stats.cpu_time, 6),
            clock=round(stats.clock_time, 6),
            box_usage=round(stats.box_usage, 6),
            requests=stats.request_count,
            items=stats.item_count,
        )

    return action
