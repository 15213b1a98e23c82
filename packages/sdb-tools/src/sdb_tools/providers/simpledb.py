"""SimpleDB provider using boto3."""

from typing import TYPE_CHECKING, Any, ClassVar, Self

import structlog
from pydantic import BaseModel

from sdb_tools.errors import ErrorKind, SdbError
from sdb_tools.models.datatypes import (
    Acknowledgement,
    AttributeResult,
    Attributes,
    DomainList,
    Item,
    ItemNameList,
    SelectResult,
    StoreResponse,
)
from sdb_tools.models.requests import (
    CreateDomain,
    DeleteAttributes,
    DeleteDomain,
    GetAttributes,
    ListDomains,
    PutAttributes,
    QueryItemNames,
    Select,
    StoreRequest,
)
from sdb_tools.query import item_names_expression

if TYPE_CHECKING:
    from mypy_boto3_sdb import SimpleDBClient

try:
    import boto3
    from botocore.exceptions import BotoCoreError, ClientError
except ImportError as e:
    _msg = "boto3 is required for SimpleDB support. Install with: pip install boto3"
    raise ImportError(_msg) from e

logger = structlog.get_logger(__name__)


class SimpleDBCredentials(BaseModel, frozen=True):
    """Credentials for SimpleDB connection.

    Leave the keys unset to fall back to the standard AWS credential chain.
    """

    access_key_id: str | None = None
    secret_access_key: str | None = None
    region: str = "us-east-1"
    endpoint_url: str | None = None


class SimpleDBParams(BaseModel, frozen=True):
    """Parameters for SimpleDB operations."""

    consistent_read: bool = False
    """Request consistent reads for every SELECT and GET."""


def _attributes(pairs: list[dict[str, Any]]) -> Attributes:
    attributes: Attributes = {}
    for pair in pairs:
        attributes.setdefault(pair["Name"], []).append(pair["Value"])
    return attributes


def _pairs(attributes: Attributes, *, replace: bool | None = None) -> list[dict[str, Any]]:
    pairs: list[dict[str, Any]] = []
    for name, values in attributes.items():
        for value in values:
            pair: dict[str, Any] = {"Name": name, "Value": value}
            if replace is not None:
                pair["Replace"] = replace
            pairs.append(pair)
    return pairs


def _box_usage(response: dict[str, Any]) -> float:
    box_usage = response.get("BoxUsage")
    if box_usage is None:
        box_usage = response.get("ResponseMetadata", {}).get("BoxUsage", 0.0)
    return float(box_usage or 0.0)


def _token(next_token: str | None) -> dict[str, str]:
    return {"NextToken": next_token} if next_token else {}


class SimpleDBProvider:
    """SimpleDB provider implementing the `Store` capability."""

    __slots__: ClassVar[tuple[str, str]] = ("_client", "_params")

    _client: "SimpleDBClient"
    _params: SimpleDBParams

    def __init__(self, client: "SimpleDBClient", params: SimpleDBParams) -> None:
        self._client = client
        self._params = params

    @classmethod
    async def connect(cls, credentials: SimpleDBCredentials, params: SimpleDBParams) -> Self:
        """Create SimpleDB client."""
        try:
            client: SimpleDBClient = boto3.client(  # pyright: ignore[reportUnknownMemberType]
                "sdb",
                aws_access_key_id=credentials.access_key_id,
                aws_secret_access_key=credentials.secret_access_key,
                region_name=credentials.region,
                endpoint_url=credentials.endpoint_url,
            )
            # Verify credentials with the cheapest call available
            _ = client.list_domains(MaxNumberOfDomains=1)
        except Exception as e:
            msg = f"Failed to connect to SimpleDB: {e}"
            raise SdbError(msg, kind=ErrorKind.CONNECTION, source=e) from e

        logger.info("Connected to SimpleDB", region=credentials.region)
        return cls(client, params)

    async def disconnect(self) -> None:
        """Close the SimpleDB client (no-op for boto3)."""

    async def send(self, request: StoreRequest) -> StoreResponse:
        """Execute one typed call against SimpleDB."""
        try:
            return self._dispatch(request)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code == "NoSuchDomain":
                msg = f"Domain not found: {e}"
                raise SdbError(msg, kind=ErrorKind.NOT_FOUND, source=e) from e
            msg = f"SimpleDB {request.kind} failed: {e}"
            raise SdbError(msg, source=e) from e
        except BotoCoreError as e:
            msg = f"SimpleDB {request.kind} failed: {e}"
            raise SdbError(msg, kind=ErrorKind.CONNECTION, source=e) from e

    def _dispatch(self, request: StoreRequest) -> StoreResponse:
        match request:
            case ListDomains(next_token=next_token):
                response = self._client.list_domains(**_token(next_token))
                return DomainList(
                    domains=list(response.get("DomainNames", [])),
                    next_token=response.get("NextToken"),
                    box_usage=_box_usage(response),
                )
            case CreateDomain(name=name):
                return Acknowledgement(box_usage=_box_usage(self._client.create_domain(DomainName=name)))
            case DeleteDomain(name=name):
                return Acknowledgement(box_usage=_box_usage(self._client.delete_domain(DomainName=name)))
            case QueryItemNames(domain=domain, query_filter=query_filter, next_token=next_token):
                response = self._select(item_names_expression(domain, query_filter), next_token)
                return ItemNameList(
                    items=[item["Name"] for item in response.get("Items", [])],
                    next_token=response.get("NextToken"),
                    box_usage=_box_usage(response),
                )
            case Select(expression=expression, next_token=next_token, consistent_read=consistent):
                response = self._select(expression, next_token, consistent_read=consistent)
                return SelectResult(
                    items=[
                        Item(name=item["Name"], attributes=_attributes(item.get("Attributes", [])))
                        for item in response.get("Items", [])
                    ],
                    next_token=response.get("NextToken"),
                    box_usage=_box_usage(response),
                )
            case GetAttributes(domain=domain, item_name=item_name, attribute_name=attribute_name):
                kwargs: dict[str, Any] = {"ConsistentRead": self._params.consistent_read}
                if attribute_name is not None:
                    kwargs["AttributeNames"] = [attribute_name]
                response = self._client.get_attributes(
                    DomainName=domain, ItemName=item_name, **kwargs
                )
                return AttributeResult(
                    attributes=_attributes(response.get("Attributes", [])),
                    box_usage=_box_usage(response),
                )
            case PutAttributes(domain=domain, item_name=item_name, attributes=attributes, replace=replace):
                response = self._client.put_attributes(
                    DomainName=domain,
                    ItemName=item_name,
                    Attributes=_pairs(attributes, replace=replace),
                )
                return Acknowledgement(box_usage=_box_usage(response))
            case DeleteAttributes(domain=domain, item_name=item_name, attributes=attributes):
                kwargs = {}
                if attributes is not None:
                    kwargs["Attributes"] = _pairs(attributes)
                response = self._client.delete_attributes(
                    DomainName=domain, ItemName=item_name, **kwargs
                )
                return Acknowledgement(box_usage=_box_usage(response))
            case _:
                msg = f"Unsupported request: {request!r}"
                raise SdbError(msg, kind=ErrorKind.INVALID_INPUT)

    def _select(
        self, expression: str, next_token: str | None, *, consistent_read: bool = False
    ) -> dict[str, Any]:
        logger.debug("Running select", expression=expression)
        return self._client.select(  # pyright: ignore[reportReturnType]
            SelectExpression=expression,
            ConsistentRead=consistent_read or self._params.consistent_read,
            **_token(next_token),
        )


Provider = SimpleDBProvider
