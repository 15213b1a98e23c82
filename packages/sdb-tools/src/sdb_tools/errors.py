"""Error types for store, selection and transfer operations."""

from enum import StrEnum
from typing import final


class ErrorKind(StrEnum):
    """Classification of errors."""

    CONNECTION = "connection"
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    PROVIDER = "provider"
    OFFSET = "offset"
    CHECKPOINT = "checkpoint"


@final
class SdbError(Exception):
    """Base error for all sdb-tools operations."""

    __slots__ = ("kind", "message", "source")

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.PROVIDER,
        source: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.source = source

    def __repr__(self) -> str:
        return f"SdbError({self.message!r}, kind={self.kind!r})"
