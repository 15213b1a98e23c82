"""Dump file of YAML documents, one item per document.

Each document is a single-entry mapping from item name to its attribute
map, so the file can be streamed document by document and appended to by
several dump workers at once::

    ---
    user-1:
      email:
      - ada@example.com
      role:
      - admin
      - owner
"""

import fcntl
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

import structlog
import yaml

from sdb_tools.errors import ErrorKind, SdbError
from sdb_tools.models.datatypes import Attributes

logger = structlog.get_logger(__name__)


def _normalize(attributes: Any) -> Attributes:
    if not isinstance(attributes, dict):
        msg = f"Expected an attribute mapping, got {type(attributes).__name__}"
        raise SdbError(msg, kind=ErrorKind.INVALID_INPUT)
    return {
        str(name): [str(v) for v in values] if isinstance(values, list) else [str(values)]
        for name, values in attributes.items()
    }


class DumpFile:
    """Reads and appends the records of a dump."""

    __slots__ = ("_path",)

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def __iter__(self) -> Iterator[tuple[str, Attributes]]:
        """Yield `(item_name, attributes)` in file order. A missing file is empty."""
        if not self._path.exists():
            return
        with self._path.open("r", encoding="utf-8") as f:
            try:
                for document in yaml.safe_load_all(f):
                    if not document:
                        continue
                    if not isinstance(document, dict) or len(document) != 1:
                        msg = f"Malformed record in {self._path}: {document!r}"
                        raise SdbError(msg, kind=ErrorKind.INVALID_INPUT)
                    ((item_name, attributes),) = document.items()
                    yield str(item_name), _normalize(attributes)
            except yaml.YAMLError as e:
                msg = f"Failed to parse {self._path}: {e}"
                raise SdbError(msg, kind=ErrorKind.INVALID_INPUT, source=e) from e

    def item_names(self) -> list[str]:
        return [item_name for item_name, _ in self]

    def size(self) -> int:
        return sum(1 for _ in self)

    def append(self, items: Iterable[tuple[str, Attributes]]) -> int:
        """Append records while holding an exclusive lock on the file."""
        documents = [{item_name: attributes} for item_name, attributes in items]
        if not documents:
            return 0
        logger.info("Dumping items", count=len(documents), path=str(self._path))
        with self._path.open("a", encoding="utf-8") as f:
            fcntl.flock(f, fcntl.LOCK_EX)
            try:
                yaml.safe_dump_all(
                    documents,
                    f,
                    explicit_start=True,
                    default_flow_style=False,
                    allow_unicode=True,
                )
                f.flush()
            finally:
                fcntl.flock(f, fcntl.LOCK_UN)
        return len(documents)
