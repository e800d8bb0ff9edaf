"""Schema encoder: ABI encoding and decoding of schema-typed data."""

import re
from collections.abc import Mapping, Sequence
from typing import Any

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import to_bytes, to_hex
from web3 import Web3

from somnia_streams.core.errors import (
    ArityMismatch,
    DecodeError,
    InvalidValue,
    NameMismatch,
    SchemaParseError,
    TypeMismatch,
)
from somnia_streams.services.streams.parser import (
    ParamDescriptor,
    ValueKind,
    normalize_type,
    parse_schema,
)
from somnia_streams.services.streams.types import DecodedItem, SchemaItem


_HEX = re.compile(r"0x[0-9a-fA-F]*")
_IDENTIFIER_SIZE = 32


def is_hex(value: Any) -> bool:
    """Check for a 0x-prefixed hex string."""
    return isinstance(value, str) and _HEX.fullmatch(value) is not None


class SchemaEncoder:
    """Encodes and decodes data for a single schema definition.

    Items are matched to the schema by position. Each item's declared type
    must equal the parameter's type or full signature, and its name must
    equal the parameter's name.
    """

    def __init__(self, schema: str):
        """Parse the schema definition.

        Args:
            schema: Comma separated Solidity style declarations

        Raises:
            SchemaParseError: If the definition is malformed
        """
        self.schema_text = schema
        self.params: list[ParamDescriptor] = parse_schema(schema)
        self._abi_types = [p.type_tag for p in self.params]

        # Placeholder items seeded with type defaults
        self.schema: list[DecodedItem] = [
            DecodedItem(
                name=p.name,
                type=p.type_tag,
                value=p.default,
                signature=p.signature,
            )
            for p in self.params
        ]

    def encode_data(self, items: Sequence[SchemaItem | Mapping[str, Any]]) -> str:
        """Encode items into a hex ABI payload.

        Raises:
            ArityMismatch: Item count differs from the schema
            TypeMismatch: An item's type does not match its position
            NameMismatch: An item's name does not match its position
            InvalidValue: A value cannot be encoded as its type
        """
        coerced = [SchemaItem.coerce(item) for item in items]
        if len(coerced) != len(self.params):
            raise ArityMismatch(len(self.params), len(coerced))

        values = []
        for index, (param, item) in enumerate(zip(self.params, coerced)):
            self._check_item(index, param, item)
            values.append(self._prepare(param, item.value))

        try:
            encoded = encode(self._abi_types, values)
        except (EncodingError, OverflowError, TypeError, ValueError) as e:
            raise InvalidValue(
                "(" + ",".join(self._abi_types) + ")", values, str(e)
            ) from e
        return to_hex(encoded)

    def decode_data(self, data: str | bytes) -> list[DecodedItem]:
        """Decode an ABI payload into named, typed items.

        Raises:
            DecodeError: If the payload is malformed for this schema
        """
        payload = self._payload_bytes(data)
        try:
            values = decode(self._abi_types, payload)
        except (DecodingError, OverflowError, TypeError, ValueError) as e:
            raise DecodeError(f"Unable to decode payload for schema: {e}") from e

        return [
            DecodedItem(
                name=param.name,
                type=param.type_tag,
                value=self._format(param, value),
                signature=param.signature,
            )
            for param, value in zip(self.params, values)
        ]

    @staticmethod
    def is_schema_valid(schema: str) -> bool:
        try:
            SchemaEncoder(schema)
        except SchemaParseError:
            return False
        return True

    def is_encoded_data_valid(self, data: str | bytes) -> bool:
        try:
            self.decode_data(data)
        except DecodeError:
            return False
        return True

    # =========================================================================
    # Encoding helpers
    # =========================================================================

    @staticmethod
    def _check_item(index: int, param: ParamDescriptor, item: SchemaItem) -> None:
        if not isinstance(item.type, str):
            raise TypeMismatch(index, param.type_tag, repr(item.type))
        declared = normalize_type(item.type)
        accepted = {
            normalize_type(param.type_tag),
            normalize_type(param.signature),
            normalize_type(param.without_name().signature),
        }
        if declared not in accepted:
            raise TypeMismatch(index, param.type_tag, item.type)
        if item.name != param.name:
            raise NameMismatch(index, param.name, item.name)

    def _prepare(self, param: ParamDescriptor, value: Any) -> Any:
        """Convert a caller value into what eth_abi expects for ``param``."""
        kind = param.kind

        if kind is ValueKind.ARRAY:
            if isinstance(value, (str, bytes, bytearray, Mapping)) or not isinstance(
                value, Sequence
            ):
                raise InvalidValue(param.type_tag, value, "expected a list")
            if param.size is not None and len(value) != param.size:
                raise InvalidValue(
                    param.type_tag, value, f"expected {param.size} elements"
                )
            return [self._prepare(param.element, v) for v in value]

        if kind is ValueKind.TUPLE:
            return self._prepare_tuple(param, value)

        if kind is ValueKind.BOOL:
            if not isinstance(value, bool):
                raise InvalidValue(param.type_tag, value, "expected a bool")
            return value

        if kind in (ValueKind.UINT, ValueKind.INT):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidValue(param.type_tag, value, "expected an int")
            bits = param.size or 256
            if kind is ValueKind.UINT:
                low, high = 0, 2**bits - 1
            else:
                low, high = -(2 ** (bits - 1)), 2 ** (bits - 1) - 1
            if not low <= value <= high:
                raise InvalidValue(param.type_tag, value, "out of range")
            return value

        if kind is ValueKind.ADDRESS:
            if isinstance(value, (bytes, bytearray)) and len(value) == 20:
                return Web3.to_checksum_address(bytes(value))
            if isinstance(value, str) and Web3.is_address(value):
                return Web3.to_checksum_address(value)
            raise InvalidValue(param.type_tag, value, "expected an address")

        if kind is ValueKind.FIXED_BYTES:
            return self._prepare_fixed_bytes(param, value)

        if kind is ValueKind.BYTES:
            if isinstance(value, (bytes, bytearray)):
                return bytes(value)
            if is_hex(value):
                return to_bytes(hexstr=value)
            raise InvalidValue(param.type_tag, value, "expected bytes or a hex string")

        if kind is ValueKind.STRING:
            if not isinstance(value, str):
                raise InvalidValue(param.type_tag, value, "expected a str")
            return value

        raise InvalidValue(param.type_tag, value, f"unsupported kind {kind}")

    def _prepare_tuple(self, param: ParamDescriptor, value: Any) -> tuple:
        components = param.components

        if isinstance(value, Mapping):
            missing = [c.name for c in components if c.name not in value]
            if missing:
                raise InvalidValue(param.type_tag, value, f"missing fields {missing}")
            return tuple(self._prepare(c, value[c.name]) for c in components)

        if isinstance(value, (str, bytes, bytearray)) or not isinstance(value, Sequence):
            raise InvalidValue(param.type_tag, value, "expected a sequence or mapping")
        if len(value) != len(components):
            raise InvalidValue(
                param.type_tag, value, f"expected {len(components)} fields"
            )

        # Re-encoding decoded output: unwrap SchemaItem children
        raw = [v.value if isinstance(v, SchemaItem) else v for v in value]
        return tuple(self._prepare(c, v) for c, v in zip(components, raw))

    @staticmethod
    def _prepare_fixed_bytes(param: ParamDescriptor, value: Any) -> bytes:
        size = param.size or _IDENTIFIER_SIZE

        if isinstance(value, (bytes, bytearray)):
            packed = bytes(value)
        elif is_hex(value):
            packed = to_bytes(hexstr=value)
        elif isinstance(value, str) and size == _IDENTIFIER_SIZE:
            # Human readable identifiers (e.g. IPFS CIDs) are packed as UTF-8
            return value.encode("utf-8")[:_IDENTIFIER_SIZE].ljust(size, b"\x00")
        else:
            raise InvalidValue(param.type_tag, value, "expected bytes or a hex string")

        if len(packed) != size:
            raise InvalidValue(
                param.type_tag, value, f"expected {size} bytes, got {len(packed)}"
            )
        return packed

    # =========================================================================
    # Decoding helpers
    # =========================================================================

    @staticmethod
    def _payload_bytes(data: str | bytes) -> bytes:
        if isinstance(data, (bytes, bytearray)):
            return bytes(data)
        if is_hex(data):
            return to_bytes(hexstr=data)
        raise DecodeError(f"Payload is not bytes or a hex string: {data!r}")

    def _format(self, param: ParamDescriptor, value: Any) -> Any:
        kind = param.kind

        if kind is ValueKind.TUPLE:
            return [
                DecodedItem(
                    name=c.name,
                    type=c.type_tag,
                    value=self._format(c, v),
                    signature=c.signature,
                )
                for c, v in zip(param.components, value)
            ]

        if kind is ValueKind.ARRAY:
            return [self._format(param.element, v) for v in value]

        if kind is ValueKind.ADDRESS:
            return Web3.to_checksum_address(value)

        if kind in (ValueKind.FIXED_BYTES, ValueKind.BYTES):
            return to_hex(value)

        return value
