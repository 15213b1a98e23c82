"""Core protocols for stores and record streams."""

from collections.abc import Iterable, Iterator
from typing import Protocol, Self, TypeVar, runtime_checkable

from sdb_tools.models.datatypes import Attributes, StoreResponse
from sdb_tools.models.requests import StoreRequest

Cred_contra = TypeVar("Cred_contra", contravariant=True)
Params_contra = TypeVar("Params_contra", contravariant=True)


@runtime_checkable
class Store(Protocol):
    """Capability interface of the remote key/attribute store."""

    async def send(self, request: StoreRequest) -> StoreResponse:
        """Execute one store call and return its typed response.

        Paginated requests return a `Page` whose `next_token` continues
        the result set.
        """
        ...


@runtime_checkable
class RecordInput(Protocol):
    """Protocol for reading dumped records in their stored order."""

    def __iter__(self) -> Iterator[tuple[str, Attributes]]:
        """Yield (item name, attributes) pairs lazily."""
        ...


@runtime_checkable
class RecordOutput(Protocol):
    """Protocol for appending records to a dump."""

    def append(self, items: Iterable[tuple[str, Attributes]]) -> int:
        """Append a batch of records, returning how many were written."""
        ...


@runtime_checkable
class Provider(Protocol[Cred_contra, Params_contra]):
    """Protocol for provider lifecycle management."""

    @classmethod
    async def connect(cls, credentials: Cred_contra, params: Params_contra) -> Self:
        """Establish connection to the external service."""
        ...

    async def disconnect(self) -> None:
        """Release resources and close connections."""
        ...
