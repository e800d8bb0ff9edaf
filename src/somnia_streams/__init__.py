"""Python SDK for the Somnia data streams protocol."""

from somnia_streams.sdk import SDK, create_sdk
from somnia_streams.services.streams import (
    DataSchemaRegistration,
    DataStream,
    EthCall,
    EventParameter,
    EventSchema,
    EventSchemaRegistration,
    EventStream,
    SchemaEncoder,
    SchemaItem,
    Streams,
    StreamsResult,
    SubscriptionInitParams,
)

__version__ = "0.3.0"

__all__ = [
    "SDK",
    "create_sdk",
    "Streams",
    "StreamsResult",
    "SchemaEncoder",
    "SchemaItem",
    "DataSchemaRegistration",
    "DataStream",
    "EventStream",
    "EventParameter",
    "EventSchema",
    "EventSchemaRegistration",
    "EthCall",
    "SubscriptionInitParams",
]
