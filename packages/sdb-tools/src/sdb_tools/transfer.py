"""Resumable dump and load of whole domains.

Both engines walk their work in chunks reserved from a `CheckpointStore`,
so a run can be killed and started again, and several worker processes
can share one checkpoint file. A chunk is reserved, processed, and
finished; finishing records an attempt, not a success. Per-item load
failures are kept in the ledger's failure map for later retry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, TypeAlias

import structlog
from pydantic import ValidationError

from sdb_tools.checkpoint import CheckpointReport, CheckpointStore
from sdb_tools.dumpfile import DumpFile
from sdb_tools.errors import ErrorKind, SdbError
from sdb_tools.metrics import Transaction, open_transaction
from sdb_tools.models.params import TransferParams

if TYPE_CHECKING:
    from sdb_tools.database import Domain

logger = structlog.get_logger(__name__)

STATUS_SUFFIX = ".simpledb_op_status"

ItemCallback: TypeAlias = Callable[[str], None]


def _noop(_item_name: str) -> None:
    pass


class TransferTask(ABC):
    """Checkpointed, chunked walk over a set of item names.

    Subclasses provide the seed item names and the `start()` loop.
    """

    def __init__(
        self,
        domain: Domain,
        path: str | Path,
        status_path: str | Path,
        *,
        chunk_size: int = 100,
        callback: ItemCallback | None = None,
        worker_id: str | None = None,
        parent: Transaction | None = None,
    ) -> None:
        try:
            self.params = TransferParams(chunk_size=chunk_size)
        except ValidationError as e:
            msg = f"Invalid transfer options: {e}"
            raise SdbError(msg, kind=ErrorKind.INVALID_INPUT, source=e) from e
        self.domain = domain
        self.dump_file = DumpFile(path)
        self.callback = callback or _noop
        self.checkpoint = CheckpointStore(status_path, worker_id)
        self._parent = parent
        self._logger = logger.bind(
            domain=domain.name, path=str(path), worker=self.checkpoint.worker_id
        )

    @property
    def chunk_size(self) -> int:
        return self.params.chunk_size

    @property
    def status_path(self) -> Path:
        return self.checkpoint.path

    @abstractmethod
    async def seed_items(self, domain: Domain) -> list[str]:
        """Item names a fresh checkpoint starts with."""

    async def attach(self, domain: Domain | None = None) -> None:
        """Seed the checkpoint on first use and attach this worker."""
        if self.checkpoint.exists():
            self.checkpoint.initialize(list)
            return
        items = await self.seed_items(domain or self.domain)
        self.checkpoint.initialize(lambda: items)

    @contextmanager
    def session(self) -> Iterator[None]:
        """Hand unfinished work back to the ledger however the session ends."""
        try:
            yield
        finally:
            self.checkpoint.release_working_items()

    def report(self) -> CheckpointReport:
        return self.checkpoint.report()

    @abstractmethod
    async def start(self) -> None:
        """Run until the ledger has no incomplete items left."""


class DumpEngine(TransferTask):
    """Dumps every item of a domain to a dump file."""

    def __init__(self, domain: Domain, path: str | Path, **options: object) -> None:
        path = Path(path)
        status_path = path.with_name(f"{path.stem}{STATUS_SUFFIX}")
        super().__init__(domain, path, status_path, **options)  # type: ignore[arg-type]

    async def seed_items(self, domain: Domain) -> list[str]:
        return await domain.item_names()

    async def start(self) -> None:
        with open_transaction(f"dump {self.domain.name}", parent=self._parent) as transaction:
            domain = self.domain.bind(transaction)
            await self.attach(domain)
            self._logger.info("Starting dump")
            with self.session():
                while chunk := self.checkpoint.reserve_chunk(self.chunk_size):
                    items = await domain.items(chunk)
                    _ = self.dump_file.append(items.items())
                    self.checkpoint.finish_chunk(chunk)
                    for item_name in items:
                        self.callback(item_name)
            self._logger.info("Dump finished")


class LoadEngine(TransferTask):
    """Loads the items of a dump file into a domain."""

    def __init__(self, domain: Domain, path: str | Path, **options: object) -> None:
        path = Path(path)
        status_path = path.with_name(f"{path.stem}-load-{domain.name}{STATUS_SUFFIX}")
        super().__init__(domain, path, status_path, **options)  # type: ignore[arg-type]

    async def seed_items(self, domain: Domain) -> list[str]:
        return self.dump_file.item_names()

    async def start(self) -> None:
        with open_transaction(f"load {self.domain.name}", parent=self._parent) as transaction:
            domain = self.domain.bind(transaction)
            await self.attach(domain)
            self._logger.info("Starting load")
            with self.session():
                chunk: list[str] = []
                reserved: set[str] = set()
                for item_name, attributes in self.dump_file:
                    if not reserved:
                        self.checkpoint.finish_chunk(chunk)
                        chunk = self.checkpoint.reserve_chunk(self.chunk_size)
                        reserved = set(chunk)
                        if not chunk:
                            break
                    if item_name not in reserved:
                        continue
                    self._logger.debug("Loading item", item=item_name)
                    try:
                        await domain.put(item_name, attributes)
                    except Exception as e:  # noqa: BLE001
                        self.checkpoint.record_failure(item_name, f"{type(e).__name__}: {e}")
                    reserved.discard(item_name)
                    self.callback(item_name)
                if reserved:
                    # Finished below without ever being written.
                    self._logger.warning(
                        "Reserved items missing from dump",
                        count=len(reserved),
                        items=sorted(reserved),
                    )
                self.checkpoint.finish_chunk(chunk)
            self._logger.info("Load finished")
