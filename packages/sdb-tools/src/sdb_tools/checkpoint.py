"""Crash-safe work ledger shared by cooperating worker processes.

The ledger is a single SQLite file of JSON values keyed by:

- ``:incomplete_items``: item names nobody has reserved yet, in order
- ``:complete_items``: item names whose processing was attempted
- ``:failed_items``: item name to failure description
- ``worker:<id>``: ``{"working_items": [...]}`` for each attached worker

Every mutation runs in one ``BEGIN IMMEDIATE`` transaction, so workers
in separate processes serialize on the file and a crash loses at most
the transaction in flight. At rest every item is in exactly one of the
incomplete list, a worker's working list, or the complete list. A
failure is an annotation on a complete item, never a fourth place.

Attaching a worker always starts it with an empty working list. Items a
crashed worker still held stay in its entry and are not handed out
again; a clean session end releases them back to the incomplete list.
"""

import json
import sqlite3
import uuid
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from sdb_tools.errors import ErrorKind, SdbError

logger = structlog.get_logger(__name__)

INCOMPLETE_ITEMS = ":incomplete_items"
COMPLETE_ITEMS = ":complete_items"
FAILED_ITEMS = ":failed_items"
WORKER_PREFIX = "worker:"

_ITEM_LIST = TypeAdapter(list[str])
_FAILURES = TypeAdapter(dict[str, str])


def new_worker_id() -> str:
    """Generate a fresh worker identity."""
    return uuid.uuid4().hex


class WorkerState(BaseModel):
    """Ledger entry of one attached worker."""

    working_items: list[str] = Field(default_factory=list)


class WorkerReport(BaseModel, frozen=True):
    worker_id: str
    working: int


class CheckpointReport(BaseModel, frozen=True):
    """Summary counts of a ledger."""

    incomplete: int
    complete: int
    failed: int
    workers: list[WorkerReport] = Field(default_factory=list)

    def summary(self) -> str:
        lines = [f"Items (not done/done/failed): {self.incomplete}/{self.complete}/{self.failed}"]
        lines.extend(f"Worker {w.worker_id} working on {w.working} items" for w in self.workers)
        return "\n".join(lines)


class CheckpointStore:
    """Reserve, finish and release chunks of work for one worker."""

    __slots__ = ("_logger", "_path", "_timeout", "worker_id")

    def __init__(self, path: str | Path, worker_id: str | None = None, timeout: float = 30.0) -> None:
        self._path = Path(path)
        self._timeout = timeout
        self.worker_id = worker_id or new_worker_id()
        self._logger = logger.bind(status_file=str(self._path), worker=self.worker_id)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def _worker_key(self) -> str:
        return f"{WORKER_PREFIX}{self.worker_id}"

    # -------------------------
    # Transactions
    # -------------------------
    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self._path, timeout=self._timeout, isolation_level=None)
            _ = conn.execute(
                "CREATE TABLE IF NOT EXISTS status (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
            )
        except sqlite3.Error as e:
            msg = f"Failed to open checkpoint file {self._path}: {e}"
            raise SdbError(msg, kind=ErrorKind.CHECKPOINT, source=e) from e
        return conn

    @contextmanager
    def _transaction(self, *, readonly: bool = False) -> Iterator[dict[str, Any]]:
        """Load the whole ledger, yield it, and write back what changed."""
        conn = self._connect()
        try:
            _ = conn.execute("BEGIN" if readonly else "BEGIN IMMEDIATE")
            raw = dict(conn.execute("SELECT key, value FROM status").fetchall())
            state = {key: self._decode(key, value) for key, value in raw.items()}
            yield state
            if not readonly:
                self._write(conn, raw, state)
            _ = conn.execute("COMMIT")
        except sqlite3.Error as e:
            if conn.in_transaction:
                _ = conn.execute("ROLLBACK")
            msg = f"Checkpoint transaction failed on {self._path}: {e}"
            raise SdbError(msg, kind=ErrorKind.CHECKPOINT, source=e) from e
        except BaseException:
            if conn.in_transaction:
                _ = conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def _decode(self, key: str, value: str) -> Any:
        try:
            data = json.loads(value)
            if key in (INCOMPLETE_ITEMS, COMPLETE_ITEMS):
                return _ITEM_LIST.validate_python(data)
            if key == FAILED_ITEMS:
                return _FAILURES.validate_python(data)
            if key.startswith(WORKER_PREFIX):
                return WorkerState.model_validate(data)
        except (ValueError, ValidationError) as e:
            msg = f"Corrupt checkpoint entry {key!r} in {self._path}: {e}"
            raise SdbError(msg, kind=ErrorKind.CHECKPOINT, source=e) from e
        msg = f"Unknown checkpoint entry {key!r} in {self._path}"
        raise SdbError(msg, kind=ErrorKind.CHECKPOINT)

    @staticmethod
    def _write(conn: sqlite3.Connection, raw: dict[str, str], state: dict[str, Any]) -> None:
        for key in raw.keys() - state.keys():
            _ = conn.execute("DELETE FROM status WHERE key = ?", (key,))
        for key, value in state.items():
            data = value.model_dump() if isinstance(value, BaseModel) else value
            encoded = json.dumps(data, ensure_ascii=False)
            if raw.get(key) != encoded:
                _ = conn.execute(
                    "INSERT OR REPLACE INTO status (key, value) VALUES (?, ?)", (key, encoded)
                )

    def _working(self, state: dict[str, Any]) -> list[str]:
        try:
            worker: WorkerState = state[self._worker_key]
        except KeyError as e:
            msg = f"Worker {self.worker_id} is not attached to {self._path}"
            raise SdbError(msg, kind=ErrorKind.CHECKPOINT, source=e) from e
        return worker.working_items

    # -------------------------
    # Lifecycle
    # -------------------------
    def exists(self) -> bool:
        """Whether the ledger has been seeded."""
        if not self._path.exists():
            return False
        with self._transaction(readonly=True) as state:
            return INCOMPLETE_ITEMS in state

    def initialize(self, seed_items: Callable[[], Iterable[str]]) -> None:
        """Seed the ledger on first use, then attach this worker with no working items."""
        if not self.exists():
            items = list(seed_items())
            with self._transaction() as state:
                # Another worker may have seeded it while `seed_items` ran.
                if INCOMPLETE_ITEMS not in state:
                    state[INCOMPLETE_ITEMS] = items
                    state[FAILED_ITEMS] = {}
                    state[COMPLETE_ITEMS] = []
                    self._logger.info("Seeded checkpoint", items=len(items))
        with self._transaction() as state:
            self._logger.info("Attaching worker")
            state[self._worker_key] = WorkerState()

    def detach(self) -> None:
        """Release this worker's items and drop its entry."""
        with self._transaction() as state:
            state[INCOMPLETE_ITEMS].extend(self._working(state))
            del state[self._worker_key]
        self._logger.info("Detached worker")

    # -------------------------
    # Work
    # -------------------------
    def reserve_chunk(self, size: int) -> list[str]:
        """Move up to `size` items from the head of the incomplete list to this worker.

        An empty result means there is no work left.
        """
        with self._transaction() as state:
            working = self._working(state)
            incomplete: list[str] = state[INCOMPLETE_ITEMS]
            chunk = incomplete[:size]
            del incomplete[:size]
            working.extend(chunk)
        self._logger.info("Reserved items", count=len(chunk))
        return chunk

    def finish_chunk(self, items: Iterable[str]) -> None:
        """Mark items as attempted, whether or not their processing succeeded."""
        items = list(items)
        if not items:
            return
        with self._transaction() as state:
            working = self._working(state)
            complete: list[str] = state[COMPLETE_ITEMS]
            for item_name in items:
                if item_name not in working:
                    self._logger.warning("Item is not reserved by this worker", item=item_name)
                    continue
                working.remove(item_name)
                complete.append(item_name)
        self._logger.info("Marked items complete", count=len(items))

    def record_failure(self, item_name: str, info: str) -> None:
        """Annotate an item with a failure description."""
        self._logger.info("Problem with item", item=item_name, info=info)
        with self._transaction() as state:
            state.setdefault(FAILED_ITEMS, {})[item_name] = info

    def release_working_items(self) -> None:
        """Return every item this worker still holds to the tail of the incomplete list."""
        self._logger.info("Releasing working items")
        with self._transaction() as state:
            working = self._working(state)
            state[INCOMPLETE_ITEMS].extend(working)
            working.clear()

    # -------------------------
    # Reading
    # -------------------------
    def incomplete_items(self) -> list[str]:
        with self._transaction(readonly=True) as state:
            return list(state.get(INCOMPLETE_ITEMS, []))

    def incomplete_count(self) -> int:
        return len(self.incomplete_items())

    def complete_items(self) -> list[str]:
        with self._transaction(readonly=True) as state:
            return list(state.get(COMPLETE_ITEMS, []))

    def failed_items(self) -> dict[str, str]:
        with self._transaction(readonly=True) as state:
            return dict(state.get(FAILED_ITEMS, {}))

    def working_items(self, worker_id: str | None = None) -> list[str]:
        """Items held by a worker (this one by default)."""
        key = f"{WORKER_PREFIX}{worker_id or self.worker_id}"
        with self._transaction(readonly=True) as state:
            worker: WorkerState | None = state.get(key)
            return list(worker.working_items) if worker else []

    def report(self) -> CheckpointReport:
        with self._transaction(readonly=True) as state:
            workers = [
                WorkerReport(worker_id=key.removeprefix(WORKER_PREFIX), working=len(value.working_items))
                for key, value in state.items()
                if key.startswith(WORKER_PREFIX)
            ]
            return CheckpointReport(
                incomplete=len(state.get(INCOMPLETE_ITEMS, [])),
                complete=len(state.get(COMPLETE_ITEMS, [])),
                failed=len(state.get(FAILED_ITEMS, {})),
                workers=workers,
            )
