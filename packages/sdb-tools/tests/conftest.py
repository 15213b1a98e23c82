"""Shared fixtures: scripted and in-memory stores."""

import re

import pytest
import structlog

from sdb_tools.errors import ErrorKind, SdbError
from sdb_tools.metrics import reset_global_stats, set_default_on_close
from sdb_tools.models import (
    Acknowledgement,
    AttributeResult,
    Attributes,
    CreateDomain,
    DeleteAttributes,
    DeleteDomain,
    DomainList,
    GetAttributes,
    Item,
    ItemNameList,
    ListDomains,
    PutAttributes,
    QueryItemNames,
    Select,
    SelectResult,
    StoreRequest,
    StoreResponse,
)

_ITEMS_IN = re.compile(r"FROM (\S+) WHERE itemName\(\) IN \((.*)\)$")
_QUOTED = re.compile(r'"((?:[^"]|"")*)"')


class FakeStore:
    """Records every request and replays canned responses in order."""

    def __init__(self, responses: list[StoreResponse | Exception] | None = None) -> None:
        self.requests: list[StoreRequest] = []
        self._responses = list(responses or [])

    async def send(self, request: StoreRequest) -> StoreResponse:
        self.requests.append(request)
        if not self._responses:
            msg = f"Unexpected request: {request!r}"
            raise AssertionError(msg)
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class MemoryStore:
    """A tiny in-memory store understanding the calls the toolkit makes."""

    def __init__(
        self,
        domains: dict[str, dict[str, Attributes]] | None = None,
        *,
        page_size: int = 100,
        fail_puts: set[str] | None = None,
    ) -> None:
        self.domains = domains if domains is not None else {}
        self.requests: list[StoreRequest] = []
        self._page_size = page_size
        self._fail_puts = fail_puts or set()

    def _page(self, values: list, next_token: str | None) -> tuple[list, str | None]:
        start = int(next_token or 0)
        end = start + self._page_size
        return values[start:end], (str(end) if end < len(values) else None)

    async def send(self, request: StoreRequest) -> StoreResponse:
        self.requests.append(request)
        match request:
            case ListDomains(next_token=token):
                domains, next_token = self._page(sorted(self.domains), token)
                return DomainList(domains=domains, next_token=next_token, box_usage=0.001)
            case CreateDomain(name=name):
                self.domains.setdefault(name, {})
                return Acknowledgement(box_usage=0.002)
            case DeleteDomain(name=name):
                self.domains.pop(name, None)
                return Acknowledgement(box_usage=0.002)
            case QueryItemNames(domain=domain, next_token=token):
                names, next_token = self._page(list(self._domain(domain)), token)
                return ItemNameList(items=names, next_token=next_token, box_usage=0.001)
            case Select(expression=expression):
                found = _ITEMS_IN.search(expression)
                if found is None:
                    msg = f"Unsupported expression: {expression}"
                    raise AssertionError(msg)
                items = self._domain(found.group(1))
                names = [n.replace('""', '"') for n in _QUOTED.findall(found.group(2))]
                return SelectResult(
                    items=[Item(name=n, attributes=items[n]) for n in names if n in items],
                    box_usage=0.003,
                )
            case GetAttributes(domain=domain, item_name=item_name):
                return AttributeResult(attributes=self._domain(domain).get(item_name, {}))
            case PutAttributes(domain=domain, item_name=item_name, attributes=attrs, replace=replace):
                if item_name in self._fail_puts:
                    msg = f"Put rejected for {item_name}"
                    raise SdbError(msg, kind=ErrorKind.PROVIDER)
                existing = self._domain(domain).setdefault(item_name, {})
                for name, values in attrs.items():
                    if replace:
                        existing[name] = list(values)
                    else:
                        existing.setdefault(name, []).extend(values)
                return Acknowledgement()
            case DeleteAttributes(domain=domain, item_name=item_name, attributes=attrs):
                items = self._domain(domain)
                if attrs is None:
                    items.pop(item_name, None)
                else:
                    for name in attrs:
                        items.get(item_name, {}).pop(name, None)
                return Acknowledgement()

    def _domain(self, name: str) -> dict[str, Attributes]:
        if name not in self.domains:
            msg = f"No such domain: {name}"
            raise SdbError(msg, kind=ErrorKind.NOT_FOUND)
        return self.domains[name]


def select_page(items: dict[str, Attributes], next_token: str | None = None) -> SelectResult:
    return SelectResult(
        items=[Item(name=name, attributes=attrs) for name, attrs in items.items()],
        next_token=next_token,
    )


def count_page(count: int, next_token: str | None = None) -> SelectResult:
    return SelectResult(
        items=[Item(name="Domain", attributes={"Count": [str(count)]})],
        next_token=next_token,
    )


def make_items(count: int, prefix: str = "item") -> dict[str, Attributes]:
    return {f"{prefix}-{i:03d}": {"index": [str(i)], "tag": ["a", "b"]} for i in range(count)}


@pytest.fixture(autouse=True)
def isolate_globals():
    """Isolate process-wide metrics and logging configuration."""
    reset_global_stats()
    set_default_on_close(None)
    yield
    reset_global_stats()
    set_default_on_close(None)
    structlog.reset_defaults()
