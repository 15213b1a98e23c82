"""SELECT expression rendering.

Names are left bare when they are plain identifiers and backtick-quoted
otherwise; values are always double-quoted. The LIMIT clause is left out
whenever the page size equals the store's default, which keeps requests
short without changing their meaning.
"""

import re
from collections.abc import Iterable

from sdb_tools.models.params import DEFAULT_RESULT_LIMIT, Order, SelectionParams

_BARE_NAME = re.compile(r"[A-Za-z$_][A-Za-z0-9$_]*")


def quote_name(name: object) -> str:
    """Quote a domain or attribute name."""
    text = str(name)
    if _BARE_NAME.fullmatch(text):
        return text
    return "`" + text.replace("`", "``") + "`"


def quote_value(value: object) -> str:
    """Quote a literal value."""
    return '"' + str(value).replace('"', '""') + '"'


def items_in_expression(domain: str, item_names: Iterable[str]) -> str:
    """Select every attribute of the named items."""
    names = ", ".join(quote_value(name) for name in item_names)
    return f"SELECT * FROM {quote_name(domain)} WHERE itemName() IN ({names})"


def item_names_expression(domain: str, query_filter: str | None = None) -> str:
    """Select only the item names of a domain."""
    where = f" WHERE {query_filter}" if query_filter else ""
    return f"SELECT itemName() FROM {quote_name(domain)}{where}"


class QueryExpression:
    """Renders the expressions of one logical selection.

    Three shapes share the same FROM, WHERE and ORDER BY parts:

    - `render()` is the page query, whose LIMIT is the page size.
    - `count()` projects `count(*)`; its LIMIT bounds the rows counted
      and comes from the logical limit, not the page size.
    - `offset_count()` counts exactly `offset` rows, so the token it ends
      on is where a page query skipping `offset` rows starts.
    """

    __slots__ = ("_domain", "_params")

    def __init__(self, domain: str, params: SelectionParams) -> None:
        self._domain = domain
        self._params = params

    def render(self, query_limit: int | None = None, offset: int = 0) -> str:
        """Page query for a logical limit, `offset` rows of which were already read."""
        return (
            f"SELECT {self._output_list()}"
            f" FROM {quote_name(self._domain)}"
            f"{self._match_expression()}"
            f"{self._sort_instructions()}"
            f"{self.limit_clause(query_limit, offset)}"
        )

    def count(self) -> str:
        limit = self._params.limit
        limit_clause = "" if limit is None else f" LIMIT {limit}"
        return (
            f"SELECT count(*) FROM {quote_name(self._domain)}"
            f"{self._match_expression()}{self._sort_instructions()}{limit_clause}"
        )

    def offset_count(self) -> str:
        return (
            f"SELECT count(*) FROM {quote_name(self._domain)}"
            f"{self._match_expression()}{self._sort_instructions()}"
            f" LIMIT {self._params.offset}"
        )

    def page_limit(self, query_limit: int | None = None, offset: int = 0) -> int:
        """Rows to request in the next page."""
        batch_limit = self._params.batch_limit
        if query_limit is None:
            return batch_limit
        return min(batch_limit, query_limit - offset)

    def limit_clause(self, query_limit: int | None = None, offset: int = 0) -> str:
        page_limit = self.page_limit(query_limit, offset)
        if page_limit == DEFAULT_RESULT_LIMIT:
            return ""
        return f" LIMIT {page_limit}"

    def _output_list(self) -> str:
        attributes = self._params.attributes
        if attributes == "all":
            return "*"
        return ", ".join(quote_name(a) for a in attributes)

    def _match_expression(self) -> str:
        if not self._params.conditions:
            return ""
        return f" WHERE {self._params.conditions}"

    def _sort_instructions(self) -> str:
        if self._params.order_by is None:
            return ""
        direction = "ASC" if self._params.order == Order.ASCENDING else "DESC"
        return f" ORDER BY {quote_name(self._params.order_by)} {direction}"
