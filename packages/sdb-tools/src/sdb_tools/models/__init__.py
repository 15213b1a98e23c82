"""Request, response and parameter models."""

from sdb_tools.models.datatypes import (
    Acknowledgement,
    AttributeResult,
    Attributes,
    DomainList,
    Item,
    ItemNameList,
    Page,
    SelectResult,
    StoreResponse,
)
from sdb_tools.models.params import (
    DEFAULT_RESULT_LIMIT,
    MAX_BATCH_LIMIT,
    Order,
    SelectionParams,
    TransferParams,
)
from sdb_tools.models.requests import (
    CreateDomain,
    DeleteAttributes,
    DeleteDomain,
    GetAttributes,
    ListDomains,
    PaginatedRequest,
    PutAttributes,
    QueryItemNames,
    Select,
    StoreRequest,
)

__all__ = [
    # Requests
    "CreateDomain",
    "DeleteAttributes",
    "DeleteDomain",
    "GetAttributes",
    "ListDomains",
    "PaginatedRequest",
    "PutAttributes",
    "QueryItemNames",
    "Select",
    "StoreRequest",
    # Params (configuration)
    "DEFAULT_RESULT_LIMIT",
    "MAX_BATCH_LIMIT",
    "Order",
    "SelectionParams",
    "TransferParams",
    # Data types
    "Acknowledgement",
    "AttributeResult",
    "Attributes",
    "DomainList",
    "Item",
    "ItemNameList",
    "Page",
    "SelectResult",
    "StoreResponse",
]
