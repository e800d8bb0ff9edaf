"""Streams facade: every protocol operation behind one object.

Operations never raise. Each returns a :class:`StreamsResult` carrying
either the value or the typed error that stopped it; reverts are decoded
against the contract's error ABI before being returned.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

from eth_utils import to_bytes
from web3 import Web3

from somnia_streams.core.errors import (
    DataNotFound,
    InvalidAddress,
    InvalidSchemaReference,
    InvalidSubscription,
    MissingSigner,
    NothingToRegister,
    SchemaNotRegistered,
    StreamsError,
    TransportFailure,
    find_revert_cause,
)
from somnia_streams.infrastructure.blockchain.contracts import (
    ContractBinding,
    ContractCaller,
    ContractRegistry,
    KnownContracts,
    decode_contract_error,
)
from somnia_streams.infrastructure.blockchain.subscriptions import (
    Subscription,
    SubscriptionTransport,
)
from somnia_streams.infrastructure.blockchain.transaction import TransactionResult
from somnia_streams.services.streams.encoder import SchemaEncoder
from somnia_streams.services.streams.parser import event_signature
from somnia_streams.services.streams.resolver import (
    SchemaResolver,
    compute_schema_id,
    is_schema_id,
)
from somnia_streams.services.streams.types import (
    ZERO_BYTES32,
    DataSchemaRegistration,
    DataStream,
    DecodedItem,
    EventParameter,
    EventSchema,
    EventSchemaRegistration,
    EventStream,
    ProtocolInfo,
    SchemaLookup,
    StreamsResult,
    SubscriptionInitParams,
    SubscriptionNotification,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DecodedRows = list[str] | list[list[DecodedItem]]


def assert_address_is_valid(address: Any, allow_zero: bool = False) -> None:
    """Validate an address argument.

    Raises:
        InvalidAddress: Not a 20 byte hex address, or the zero address
    """
    if not isinstance(address, str) or not Web3.is_address(address.lower()):
        raise InvalidAddress(address)
    if not allow_zero and int(address, 16) == 0:
        raise InvalidAddress(address, "Zero address supplied")


def _hex(value: bytes | str) -> str:
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(bytes(value))
    return value


class Streams:
    """Client for the Streams protocol contract."""

    def __init__(
        self,
        caller: ContractCaller,
        registry: ContractRegistry | None = None,
        transport: SubscriptionTransport | None = None,
    ):
        """Initialize the facade.

        Args:
            caller: Contract read/write capability shared by all operations
            registry: Contract address book (uses the built-in one if None)
            transport: Duplex transport for subscriptions
        """
        self.caller = caller
        self.registry = registry or ContractRegistry()
        self.transport = transport
        self.resolver = SchemaResolver(caller)
        self._chain_id: int | None = None
        self._encoders: dict[str, SchemaEncoder] = {}

    # =========================================================================
    # Schema registry writes
    # =========================================================================

    async def register_data_schemas(
        self,
        registrations: Sequence[DataSchemaRegistration],
        ignore_registered_schemas: bool = False,
    ) -> StreamsResult[str]:
        """Register data schemas.

        Args:
            registrations: Schemas to register
            ignore_registered_schemas: Skip schemas already registered
                instead of letting the transaction revert

        Returns:
            Result with the transaction hash
        """

        async def operation(binding: ContractBinding) -> str:
            for registration in registrations:
                parent = registration.parent_schema_id
                if parent is not None and not is_schema_id(parent):
                    raise InvalidSchemaReference(f"Invalid parent schema id: {parent}")

            pending = list(registrations)
            if ignore_registered_schemas:
                statuses = await asyncio.gather(
                    *(
                        self._read(
                            binding, "isSchemaRegistered", [compute_schema_id(r.schema)]
                        )
                        for r in pending
                    )
                )
                pending = [r for r, registered in zip(pending, statuses) if not registered]
            if not pending:
                raise NothingToRegister()

            return await self._send(
                binding, "registerSchemas", [[r.as_abi_tuple() for r in pending]]
            )

        return await self._run("registerDataSchemas", operation)

    async def register_event_schemas(
        self, registrations: Sequence[EventSchemaRegistration]
    ) -> StreamsResult[str]:
        """Register event schemas.

        An ``event_topic`` given as an event signature is replaced by its
        selector.
        """

        async def operation(binding: ContractBinding) -> str:
            entries = []
            for registration in registrations:
                schema = registration.schema
                topic = schema.event_topic
                if not topic.startswith("0x"):
                    topic = Web3.to_hex(Web3.keccak(text=event_signature(topic)))
                params = [(p.name, p.param_type, p.is_indexed) for p in schema.params]
                entries.append((registration.id, (params, to_bytes(hexstr=topic))))
            return await self._send(binding, "registerEventSchemas", [entries])

        return await self._run("registerEventSchemas", operation)

    async def manage_event_emitters_for_registered_streams_event(
        self, streams_event_id: str, emitter: str, is_emitter: bool
    ) -> StreamsResult[str]:
        """Grant or revoke an address's right to emit a registered event."""
        invalid = self._check_address(emitter)
        if invalid:
            return invalid

        async def operation(binding: ContractBinding) -> str:
            return await self._send(
                binding,
                "manageEventEmitter",
                [streams_event_id, Web3.to_checksum_address(emitter), is_emitter],
            )

        return await self._run("manageEventEmittersForRegisteredStreamsEvent", operation)

    async def set_is_event_emission_open(
        self, streams_event_id: str, is_open: bool
    ) -> StreamsResult[str]:
        async def operation(binding: ContractBinding) -> str:
            return await self._send(
                binding, "setIsEventEmissionOpen", [streams_event_id, is_open]
            )

        return await self._run("setIsEventEmissionOpen", operation)

    # =========================================================================
    # Data writes
    # =========================================================================

    async def set(self, data_streams: Sequence[DataStream]) -> StreamsResult[str]:
        """Publish data under registered schemas."""

        async def operation(binding: ContractBinding) -> str:
            return await self._send(
                binding, "esstores", [[d.as_abi_tuple() for d in data_streams]]
            )

        return await self._run("set", operation)

    async def emit_events(self, events: Sequence[EventStream]) -> StreamsResult[str]:
        """Emit registered events."""

        async def operation(binding: ContractBinding) -> str:
            return await self._send(
                binding, "emitEvents", [[e.as_abi_tuple() for e in events]]
            )

        return await self._run("emitEvents", operation)

    async def set_and_emit_events(
        self, data_streams: Sequence[DataStream], events: Sequence[EventStream]
    ) -> StreamsResult[str]:
        """Publish data and emit events in a single transaction."""

        async def operation(binding: ContractBinding) -> str:
            return await self._send(
                binding,
                "publishDataAndEmitEvents",
                [
                    [d.as_abi_tuple() for d in data_streams],
                    [e.as_abi_tuple() for e in events],
                ],
            )

        return await self._run("setAndEmitEvents", operation)

    # =========================================================================
    # Schema registry reads
    # =========================================================================

    async def compute_schema_id(self, schema: str) -> StreamsResult[str]:
        """Compute a schema identifier locally, without a network call."""
        if not isinstance(schema, str):
            return StreamsResult(error=InvalidSchemaReference("Schema must be a string"))
        return StreamsResult(value=compute_schema_id(schema))

    async def is_data_schema_registered(self, schema_id: str) -> StreamsResult[bool]:
        async def operation(binding: ContractBinding) -> bool:
            return await self._read(binding, "isSchemaRegistered", [schema_id])

        return await self._run("isDataSchemaRegistered", operation)

    async def total_publisher_data_for_schema(
        self, schema_id: str, publisher: str
    ) -> StreamsResult[int]:
        """Number of data entries ``publisher`` has written under ``schema_id``."""
        invalid = self._check_address(publisher)
        if invalid:
            return invalid

        async def operation(binding: ContractBinding) -> int:
            return await self._read(
                binding,
                "totalPublisherDataForSchema",
                [schema_id, Web3.to_checksum_address(publisher)],
            )

        return await self._run("totalPublisherDataForSchema", operation)

    async def parent_schema_id(self, schema_id: str) -> StreamsResult[str]:
        """Parent identifier of a schema (the zero identifier if it has none)."""

        async def operation(binding: ContractBinding) -> str:
            return await self.resolver.parent_schema_id(schema_id, binding)

        return await self._run("parentSchemaId", operation)

    async def schema_id_to_schema_name(self, schema_id: str) -> StreamsResult[str]:
        async def operation(binding: ContractBinding) -> str:
            return await self._read(binding, "schemaIdToName", [schema_id])

        return await self._run("schemaIdToSchemaName", operation)

    async def schema_name_to_schema_id(self, schema_name: str) -> StreamsResult[str]:
        async def operation(binding: ContractBinding) -> str:
            return _hex(await self._read(binding, "nameToSchemaId", [schema_name]))

        return await self._run("schemaNameToSchemaId", operation)

    async def get_all_schemas(self) -> StreamsResult[list[str]]:
        """Text of every registered data schema."""

        async def operation(binding: ContractBinding) -> list[str]:
            return list(await self._read(binding, "getAllSchemas"))

        return await self._run("getAllSchemas", operation)

    async def get_event_schemas_by_id(
        self, ids: Sequence[str]
    ) -> StreamsResult[list[EventSchema]]:
        async def operation(binding: ContractBinding) -> list[EventSchema]:
            schemas = await self._read(binding, "getEventSchemasById", [list(ids)])
            return [
                EventSchema(
                    params=[
                        EventParameter(name=name, param_type=param_type, is_indexed=indexed)
                        for name, param_type, indexed in params
                    ],
                    event_topic=_hex(topic),
                )
                for params, topic in schemas
            ]

        return await self._run("getEventSchemasById", operation)

    async def get_schema_from_schema_id(self, schema_id: str) -> StreamsResult[SchemaLookup]:
        """Resolve a schema identifier to its text, including parent fields.

        An unregistered identifier is returned as SchemaNotRegistered.
        """

        async def operation(binding: ContractBinding) -> SchemaLookup:
            return await self.resolver.resolve(schema_id, binding)

        return await self._run("getSchemaFromSchemaId", operation)

    # =========================================================================
    # Protocol
    # =========================================================================

    async def get_chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = await self.caller.get_chain_id()
        return self._chain_id

    async def get_protocol_info(self) -> StreamsResult[ProtocolInfo]:
        """Address, ABI and chain of the Streams deployment in use."""

        async def operation(binding: ContractBinding) -> ProtocolInfo:
            return ProtocolInfo(
                address=binding.address,
                abi=binding.abi,
                chain_id=await self.get_chain_id(),
            )

        return await self._run("getProtocolInfo", operation)

    async def wait_for_transaction(self, tx_hash: str) -> StreamsResult[TransactionResult]:
        """Wait for a submitted transaction and parse its Streams events."""
        try:
            return StreamsResult(value=await self.caller.wait_for_transaction(tx_hash))
        except Exception as e:
            return StreamsResult(error=self._to_error(e, "waitForTransaction"))

    # =========================================================================
    # Data reads
    # =========================================================================

    async def get_by_key(
        self, schema_id: str, publisher: str, key: str
    ) -> StreamsResult[DecodedRows]:
        """Data ``publisher`` wrote under ``key``, decoded where possible.

        Returns DataNotFound when nothing was written under the key.
        """
        invalid = self._check_address(publisher)
        if invalid:
            return invalid

        async def operation(binding: ContractBinding) -> DecodedRows:
            checksum = Web3.to_checksum_address(publisher)
            # The contract stores index + 1 so that 0 means absent
            index_plus_one = await self._read(
                binding, "publisherDataIndex", [schema_id, checksum, key]
            )
            if index_plus_one == 0:
                raise DataNotFound(schema_id, publisher, key)
            raw = await self._read(
                binding,
                "getPublisherDataForSchemaAtIndex",
                [schema_id, checksum, index_plus_one - 1],
            )
            return await self._deserialise([raw], schema_id, binding)

        return await self._run("getByKey", operation)

    async def get_at_index(
        self, schema_id: str, publisher: str, idx: int
    ) -> StreamsResult[DecodedRows]:
        invalid = self._check_address(publisher)
        if invalid:
            return invalid

        async def operation(binding: ContractBinding) -> DecodedRows:
            raw = await self._read(
                binding,
                "getPublisherDataForSchemaAtIndex",
                [schema_id, Web3.to_checksum_address(publisher), idx],
            )
            return await self._deserialise([raw], schema_id, binding)

        return await self._run("getAtIndex", operation)

    async def get_between_range(
        self, schema_id: str, publisher: str, start_index: int, end_index: int
    ) -> StreamsResult[DecodedRows]:
        """Entries ``start_index`` (inclusive) to ``end_index`` (exclusive)."""
        invalid = self._check_address(publisher)
        if invalid:
            return invalid

        async def operation(binding: ContractBinding) -> DecodedRows:
            raw = await self._read(
                binding,
                "getPublisherDataForSchemaInRange",
                [schema_id, Web3.to_checksum_address(publisher), start_index, end_index],
            )
            return await self._deserialise(list(raw), schema_id, binding)

        return await self._run("getBetweenRange", operation)

    async def get_all_publisher_data_for_schema(
        self, schema_ref: str, publisher: str
    ) -> StreamsResult[DecodedRows]:
        """Every entry ``publisher`` wrote under a schema text or identifier."""
        invalid = self._check_address(publisher)
        if invalid:
            return invalid

        async def operation(binding: ContractBinding) -> DecodedRows:
            if not isinstance(schema_ref, str) or not schema_ref.strip():
                raise InvalidSchemaReference(f"Invalid schema reference: {schema_ref!r}")
            reference = schema_ref.strip()
            if reference.startswith("0x"):
                if not is_schema_id(reference):
                    raise InvalidSchemaReference(f"Invalid schema id: {reference}")
                schema_id = reference.lower()
            else:
                schema_id = compute_schema_id(schema_ref)
            raw = await self._read(
                binding,
                "getAllPublisherDataForSchema",
                [schema_id, Web3.to_checksum_address(publisher)],
            )
            return await self._deserialise(list(raw), schema_ref, binding)

        return await self._run("getAllPublisherDataForSchema", operation)

    async def get_last_published_data_for_schema(
        self, schema_id: str, publisher: str
    ) -> StreamsResult[DecodedRows]:
        invalid = self._check_address(publisher)
        if invalid:
            return invalid

        async def operation(binding: ContractBinding) -> DecodedRows:
            raw = await self._read(
                binding,
                "getLastPublishedDataForSchema",
                [schema_id, Web3.to_checksum_address(publisher)],
            )
            return await self._deserialise([raw], schema_id, binding)

        return await self._run("getLastPublishedDataForSchema", operation)

    async def get_last_n_published_data_for_schema(
        self, schema_id: str, publisher: str, count: int
    ) -> StreamsResult[DecodedRows]:
        invalid = self._check_address(publisher)
        if invalid:
            return invalid

        async def operation(binding: ContractBinding) -> DecodedRows:
            raw = await self._read(
                binding,
                "getLastNPublishedDataForSchema",
                [schema_id, Web3.to_checksum_address(publisher), count],
            )
            return await self._deserialise(list(raw), schema_id, binding)

        return await self._run("getLastNPublishedDataForSchema", operation)

    async def deserialise_raw_data(
        self, raw_data: Sequence[str | bytes], schema_ref: str
    ) -> StreamsResult[DecodedRows]:
        """Decode payloads against a schema text or identifier.

        Payloads come back as hex when the schema is not registered.
        """

        async def operation(binding: ContractBinding) -> DecodedRows:
            return await self._deserialise(list(raw_data), schema_ref, binding)

        return await self._run("deserialiseRawData", operation)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def subscribe(
        self, params: SubscriptionInitParams
    ) -> StreamsResult[Subscription]:
        """Subscribe to a registered streams event or to arbitrary contract logs.

        Without ``somnia_streams_event_id`` both ``event_contract_sources``
        and ``topic_overrides`` must be given.
        """
        if self.transport is None or not self.transport.is_duplex:
            return StreamsResult(
                error=TransportFailure("Subscriptions require a WebSocket transport")
            )

        sources = list(params.event_contract_sources or [])
        for source in sources:
            invalid = self._check_address(source)
            if invalid:
                return invalid

        if not params.somnia_streams_event_id and not (sources and params.topic_overrides):
            return StreamsResult(
                error=InvalidSubscription(
                    "Event contract sources and topic overrides are required "
                    "without a streams event id"
                )
            )

        async def operation(binding: ContractBinding) -> Subscription:
            addresses = [Web3.to_checksum_address(s) for s in sources]
            topics = list(params.topic_overrides or [])

            if params.somnia_streams_event_id:
                schemas = await self._read(
                    binding, "getEventSchemasById", [[params.somnia_streams_event_id]]
                )
                event_topic = _hex(schemas[0][1]) if schemas else ZERO_BYTES32
                if event_topic.lower() == ZERO_BYTES32:
                    raise InvalidSubscription(
                        f"Event schema not registered: {params.somnia_streams_event_id}"
                    )
                topics = topics or [event_topic]
                addresses = [binding.address, *addresses]

            watch_filter = {
                "address": addresses[0] if len(addresses) == 1 else addresses,
                "topics": topics,
                "eth_calls": [call.to_rpc() for call in params.eth_calls],
                "context": params.context or "",
                "push_changes_only": params.only_push_changes,
            }

            def on_data(message: dict[str, Any]) -> Any:
                result = message.get("result") or {}
                return params.on_data(
                    SubscriptionNotification(
                        subscription_id=message.get("subscription", ""),
                        topics=list(result.get("topics", [])),
                        data=result.get("data", "0x"),
                        simulation_results=list(result.get("simulationResults", [])),
                    )
                )

            return await self.transport.subscribe(watch_filter, on_data, params.on_error)

        return await self._run("subscribe", operation)

    # =========================================================================
    # Internals
    # =========================================================================

    async def _binding(self) -> ContractBinding:
        chain_id = await self.get_chain_id()
        return await self.registry.resolve_binding(KnownContracts.STREAMS, chain_id)

    async def _run(
        self,
        context: str,
        operation: Callable[[ContractBinding], Awaitable[T]],
    ) -> StreamsResult[T]:
        binding: ContractBinding | None = None
        try:
            binding = await self._binding()
            return StreamsResult(value=await operation(binding))
        except Exception as e:
            return StreamsResult(error=self._to_error(e, context, binding))

    async def _read(
        self, binding: ContractBinding, function_name: str, args: list[Any] | None = None
    ) -> Any:
        return await self.caller.read(binding.address, binding.abi, function_name, args)

    async def _send(
        self, binding: ContractBinding, function_name: str, args: list[Any]
    ) -> str:
        tx_hash = await self.caller.write(binding.address, binding.abi, function_name, args)
        if tx_hash is None:
            raise MissingSigner()
        return tx_hash

    async def _deserialise(
        self, raw_data: list[str | bytes], schema_ref: str, binding: ContractBinding
    ) -> DecodedRows:
        payloads = [_hex(raw) for raw in raw_data]
        try:
            lookup = await self.resolver.resolve(schema_ref, binding)
        except SchemaNotRegistered as e:
            logger.info(f"{e.message}, returning raw data")
            return payloads

        encoder = self._encoders.get(lookup.final_schema)
        if encoder is None:
            encoder = self._encoders[lookup.final_schema] = SchemaEncoder(
                lookup.final_schema
            )
        return [encoder.decode_data(payload) for payload in payloads]

    @staticmethod
    def _check_address(address: Any) -> StreamsResult | None:
        try:
            assert_address_is_valid(address)
        except InvalidAddress as e:
            return StreamsResult(error=e)
        return None

    @staticmethod
    def _to_error(
        exc: Exception, context: str, binding: ContractBinding | None = None
    ) -> StreamsError:
        if isinstance(exc, StreamsError):
            logger.warning(f"{context} failed at {exc.step}: {exc.message}")
            return exc

        revert = find_revert_cause(exc)
        if revert is not None:
            error = decode_contract_error(binding.abi if binding else [], revert)
            error.context = context
            logger.warning(
                f"{context} reverted: {error.error_name} {error.error_args or ''}"
            )
            error.__cause__ = exc
            return error

        logger.error(f"{context} failed: {exc}")
        failure = TransportFailure(str(exc), context=context)
        failure.__cause__ = exc
        return failure
