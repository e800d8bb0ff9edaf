"""Data model for the streams protocol."""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar

from eth_utils import to_bytes

from somnia_streams.core.errors import InvalidHexValue, StreamsError

T = TypeVar("T")

ZERO_BYTES32 = "0x" + "00" * 32

_HEX = re.compile(r"0x(?:[0-9a-fA-F]{2})*")


def _hex_bytes(field_name: str, value: Any) -> bytes:
    if not isinstance(value, str) or _HEX.fullmatch(value) is None:
        raise InvalidHexValue(field_name, value)
    return to_bytes(hexstr=value)


@dataclass
class SchemaItem:
    """Typed value written to or read from a schema position."""

    name: str
    type: str
    value: Any

    @classmethod
    def coerce(cls, item: "SchemaItem | Mapping[str, Any]") -> "SchemaItem":
        """Accept either a SchemaItem or a ``{name, type, value}`` mapping."""
        if isinstance(item, SchemaItem):
            return item
        if isinstance(item, Mapping):
            return cls(
                name=item.get("name", ""),
                type=item.get("type", ""),
                value=item.get("value"),
            )
        raise TypeError(f"Expected SchemaItem or mapping, got {type(item).__name__}")


@dataclass
class DecodedItem(SchemaItem):
    """Decoded schema position.

    Tuple values are lists of DecodedItem, arrays of tuples are lists of
    those lists, arrays of primitives are plain lists.
    """

    signature: str = ""


@dataclass(frozen=True)
class SchemaLookup:
    """Result of resolving a schema reference."""

    base_schema: str
    final_schema: str
    schema_id: str


@dataclass
class DataSchemaRegistration:
    """Data schema to register.

    A missing ``parent_schema_id`` registers the schema without a parent.
    """

    schema_name: str
    schema: str
    parent_schema_id: str | None = None

    def as_abi_tuple(self) -> tuple[str, str, bytes]:
        parent = self.parent_schema_id or ZERO_BYTES32
        return (self.schema_name, self.schema, _hex_bytes("parent_schema_id", parent))


@dataclass
class DataStream:
    """Bytes written under a schema and keyed by ``id`` (bytes32)."""

    id: str
    schema_id: str
    data: str

    def as_abi_tuple(self) -> tuple[bytes, bytes, bytes]:
        return (
            _hex_bytes("id", self.id),
            _hex_bytes("schema_id", self.schema_id),
            _hex_bytes("data", self.data),
        )


@dataclass
class EventStream:
    """Emission of a registered event schema."""

    id: str
    argument_topics: list[str]
    data: str

    def as_abi_tuple(self) -> tuple[str, list[bytes], bytes]:
        return (
            self.id,
            [_hex_bytes("argument_topics", topic) for topic in self.argument_topics],
            _hex_bytes("data", self.data),
        )


@dataclass
class EventParameter:
    name: str
    param_type: str
    is_indexed: bool


@dataclass
class EventSchema:
    """Registered event layout.

    ``event_topic`` may be given as an event signature when registering; it
    is converted to its selector before dispatch.
    """

    params: list[EventParameter]
    event_topic: str


@dataclass
class EventSchemaRegistration:
    id: str
    schema: EventSchema


@dataclass(frozen=True)
class ProtocolInfo:
    """Streams deployment on the connected chain."""

    address: str
    abi: list[dict]
    chain_id: int


@dataclass
class EthCall:
    """Call simulated by the node before a reactive notification is pushed."""

    to: str
    data: str | None = None
    from_: str | None = None
    gas: str | None = None
    gas_price: str | None = None
    value: str | None = None

    def to_rpc(self) -> dict[str, str]:
        params = {
            "from": self.from_,
            "to": self.to,
            "gas": self.gas,
            "gasPrice": self.gas_price,
            "value": self.value,
            "data": self.data,
        }
        return {key: value for key, value in params.items() if value is not None}


@dataclass
class SubscriptionNotification:
    """Payload delivered to a subscriber's ``on_data`` callback."""

    subscription_id: str
    topics: list[str]
    data: str
    simulation_results: list[str] = field(default_factory=list)


@dataclass
class SubscriptionInitParams:
    """Reactive subscription request.

    Args:
        eth_calls: Calls executed by the node before ``on_data`` fires
        on_data: Callback for each notification
        only_push_changes: Only push when eth_call results changed
        somnia_streams_event_id: Registered event schema used as the source
        context: Event selectors spliced into eth_call data
        on_error: Callback for subscription errors
        event_contract_sources: Alternative emitting contracts
        topic_overrides: Topic filter, required without a streams event id
    """

    eth_calls: list[EthCall]
    on_data: Callable[[SubscriptionNotification], Any]
    only_push_changes: bool = False
    somnia_streams_event_id: str | None = None
    context: str | None = None
    on_error: Callable[[Exception], Any] | None = None
    event_contract_sources: list[str] | None = None
    topic_overrides: list[str] | None = None


@dataclass
class StreamsResult(Generic[T]):
    """Outcome of a facade operation: a value or the error that prevented it."""

    value: T | None = None
    error: StreamsError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise the captured error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
