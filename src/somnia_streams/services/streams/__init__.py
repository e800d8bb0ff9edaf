"""Streams protocol service module."""

from somnia_streams.services.streams.encoder import SchemaEncoder
from somnia_streams.services.streams.facade import Streams, assert_address_is_valid
from somnia_streams.services.streams.parser import (
    ParamDescriptor,
    ValueKind,
    event_signature,
    parse_schema,
)
from somnia_streams.services.streams.resolver import SchemaResolver, compute_schema_id
from somnia_streams.services.streams.types import (
    ZERO_BYTES32,
    DataSchemaRegistration,
    DataStream,
    DecodedItem,
    EthCall,
    EventParameter,
    EventSchema,
    EventSchemaRegistration,
    EventStream,
    ProtocolInfo,
    SchemaItem,
    SchemaLookup,
    StreamsResult,
    SubscriptionInitParams,
    SubscriptionNotification,
)

__all__ = [
    # Codec
    "ParamDescriptor",
    "ValueKind",
    "SchemaEncoder",
    "parse_schema",
    "event_signature",
    # Resolution
    "SchemaResolver",
    "compute_schema_id",
    # Facade
    "Streams",
    "assert_address_is_valid",
    # Data model
    "ZERO_BYTES32",
    "SchemaItem",
    "DecodedItem",
    "SchemaLookup",
    "DataSchemaRegistration",
    "DataStream",
    "EventStream",
    "EventParameter",
    "EventSchema",
    "EventSchemaRegistration",
    "ProtocolInfo",
    "EthCall",
    "SubscriptionInitParams",
    "SubscriptionNotification",
    "StreamsResult",
]
