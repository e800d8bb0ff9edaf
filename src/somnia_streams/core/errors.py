"""Error taxonomy for the streams SDK.

Every error carries the ``step`` that failed so callers can tell a schema
resolution problem from a decode problem or a failed dispatch.
"""

from typing import Any

from web3.exceptions import ContractLogicError


class StreamsError(Exception):
    """Base class for all SDK errors."""

    step = "dispatch"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# =============================================================================
# Parser / codec
# =============================================================================


class SchemaParseError(StreamsError):
    """Schema definition text could not be parsed."""

    step = "parse"

    def __init__(self, fragment: str, reason: str):
        super().__init__(f"Invalid schema fragment {fragment!r}: {reason}")
        self.fragment = fragment
        self.reason = reason


class ArityMismatch(StreamsError):
    """Number of supplied items differs from the schema."""

    step = "encode"

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Invalid number of parameters: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class TypeMismatch(StreamsError):
    """An item's declared type does not match the schema position."""

    step = "encode"

    def __init__(self, index: int, expected: str, actual: str):
        super().__init__(
            f"Type mismatch at index {index}: expected {expected!r}, got {actual!r}"
        )
        self.index = index
        self.expected = expected
        self.actual = actual


class NameMismatch(StreamsError):
    """An item's name does not match the schema position."""

    step = "encode"

    def __init__(self, index: int, expected: str, actual: str):
        super().__init__(
            f"Name mismatch at index {index}: expected {expected!r}, got {actual!r}"
        )
        self.index = index
        self.expected = expected
        self.actual = actual


class InvalidValue(StreamsError):
    """A value cannot be represented by its descriptor's type."""

    step = "encode"

    def __init__(self, type_tag: str, value: Any, reason: str):
        super().__init__(f"Invalid value {value!r} for type {type_tag}: {reason}")
        self.type_tag = type_tag
        self.value = value


class DecodeError(StreamsError):
    """Binary payload could not be decoded against the schema."""

    step = "decode"


# =============================================================================
# Resolution
# =============================================================================


class InvalidSchemaReference(StreamsError):
    """Schema reference is empty or malformed."""

    step = "resolution"


class SchemaNotRegistered(StreamsError):
    """Schema identifier has no registered definition on-chain."""

    step = "resolution"

    def __init__(self, schema_id: str):
        super().__init__(f"Schema is not registered on-chain: {schema_id}")
        self.schema_id = schema_id


class InvalidParentSchema(StreamsError):
    """Parent schema identifier resolved to empty schema text."""

    step = "resolution"

    def __init__(self, schema_id: str, parent_schema_id: str):
        super().__init__(
            f"Invalid parent schema {parent_schema_id} returned for {schema_id}: zero data"
        )
        self.schema_id = schema_id
        self.parent_schema_id = parent_schema_id


# =============================================================================
# Input validation
# =============================================================================


class InvalidAddress(StreamsError):
    """Address argument is malformed or the zero address."""

    step = "validation"

    def __init__(self, address: Any, reason: str = "Invalid address"):
        super().__init__(f"{reason}: {address!r}")
        self.address = address


class InvalidHexValue(StreamsError):
    """Identifier or payload argument is not a 0x-prefixed hex string."""

    step = "validation"

    def __init__(self, field: str, value: Any):
        super().__init__(f"Invalid hex value for {field}: {value!r}")
        self.field = field
        self.value = value


class NothingToRegister(StreamsError):
    """Every supplied registration was filtered out."""

    step = "validation"

    def __init__(self) -> None:
        super().__init__("Nothing to register")


class InvalidSubscription(StreamsError):
    """Subscription parameters do not describe an event source."""

    step = "validation"


# =============================================================================
# Collaborators
# =============================================================================


class UnresolvedBinding(StreamsError):
    """No contract is deployed for the requested name on the connected chain."""

    step = "resolution"

    def __init__(self, contract_name: str, chain_id: int, reason: str):
        super().__init__(f"{reason} for {chain_id}:{contract_name}")
        self.contract_name = contract_name
        self.chain_id = chain_id


class MissingSigner(StreamsError):
    """A write was requested without a configured signer."""

    def __init__(self) -> None:
        super().__init__("Failed to send transaction - check wallet client")


class DataNotFound(StreamsError):
    """Key-addressed data does not exist for the publisher."""

    def __init__(self, schema_id: str, publisher: str, key: str):
        super().__init__(f"No data for key {key} published by {publisher} under {schema_id}")
        self.schema_id = schema_id
        self.publisher = publisher
        self.key = key


class TransportFailure(StreamsError):
    """Underlying RPC, registry or transport failure."""

    def __init__(self, message: str, context: str | None = None):
        super().__init__(f"{context}: {message}" if context else message)
        self.context = context


class ContractReverted(StreamsError):
    """Contract call reverted on-chain."""

    def __init__(
        self,
        error_name: str,
        args: dict[str, Any] | None = None,
        reason: str | None = None,
        context: str | None = None,
    ):
        super().__init__(error_name)
        self.error_name = error_name
        self.error_args = args or {}
        self.reason = reason
        self.context = context


def find_revert_cause(exc: BaseException) -> ContractLogicError | None:
    """Walk an exception chain and return the deepest contract revert."""
    found: ContractLogicError | None = None
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ContractLogicError):
            found = current
        current = current.__cause__ or current.__context__
    return found
