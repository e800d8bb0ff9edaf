"""Schema resolution.

A schema reference is either the schema text itself or its 32 byte
identifier. Resolution yields the identifier, the schema's own text and the
final text used for decoding: the schema followed by its parent's fields.
"""

import asyncio
import logging
import re

from web3 import Web3

from somnia_streams.core.errors import (
    InvalidParentSchema,
    InvalidSchemaReference,
    SchemaNotRegistered,
)
from somnia_streams.infrastructure.blockchain.contracts import (
    ContractBinding,
    ContractCaller,
)
from somnia_streams.services.streams.types import ZERO_BYTES32, SchemaLookup

logger = logging.getLogger(__name__)

_SCHEMA_ID = re.compile(r"0x[0-9a-fA-F]{64}")


def compute_schema_id(schema: str) -> str:
    """Identifier of a schema: keccak256 of its UTF-8 text."""
    return Web3.to_hex(Web3.keccak(text=schema))


def is_schema_id(value: str) -> bool:
    return isinstance(value, str) and _SCHEMA_ID.fullmatch(value) is not None


def _as_hex(value: bytes | str) -> str:
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(bytes(value))
    return value


class SchemaResolver:
    """Resolves schema references against the Streams contract.

    Registered schema text never changes, so definitions are cached by
    identifier for the life of the resolver.
    """

    def __init__(self, caller: ContractCaller):
        self.caller = caller
        self._schemas: dict[str, str] = {}

    async def resolve(self, schema_ref: str, binding: ContractBinding) -> SchemaLookup:
        """Resolve a schema reference.

        Args:
            schema_ref: Schema text or 0x-prefixed schema identifier
            binding: Streams deployment to query

        Returns:
            SchemaLookup with the identifier, base and final schema text

        Raises:
            InvalidSchemaReference: Empty reference or malformed identifier
            SchemaNotRegistered: Identifier has no registered text
            InvalidParentSchema: Parent identifier has no registered text
        """
        if not isinstance(schema_ref, str) or not schema_ref.strip():
            raise InvalidSchemaReference("Invalid empty schema reference")

        if schema_ref.strip().startswith("0x"):
            schema_id = schema_ref.strip().lower()
            if not is_schema_id(schema_id):
                raise InvalidSchemaReference(f"Invalid schema id: {schema_ref}")
            base_schema, parent_id = await asyncio.gather(
                self.schema_text(schema_id, binding),
                self.parent_schema_id(schema_id, binding),
            )
            if not base_schema.strip():
                raise SchemaNotRegistered(schema_id)
        else:
            base_schema = schema_ref
            schema_id = compute_schema_id(schema_ref)
            parent_id = await self.parent_schema_id(schema_id, binding)

        if parent_id == ZERO_BYTES32:
            return SchemaLookup(base_schema, base_schema, schema_id)

        parent_schema = await self.schema_text(parent_id, binding)
        if not parent_schema.strip():
            raise InvalidParentSchema(schema_id, parent_id)

        logger.debug(f"Schema {schema_id} extends {parent_id}")
        return SchemaLookup(base_schema, f"{base_schema}, {parent_schema}", schema_id)

    async def schema_text(self, schema_id: str, binding: ContractBinding) -> str:
        """Registered text for ``schema_id`` ("" when unregistered)."""
        cached = self._schemas.get(schema_id)
        if cached is not None:
            return cached

        text = await self.caller.read(
            binding.address, binding.abi, "schemaReverseLookup", [schema_id]
        )
        if text:
            self._schemas[schema_id] = text
        return text or ""

    async def parent_schema_id(self, schema_id: str, binding: ContractBinding) -> str:
        parent = await self.caller.read(
            binding.address, binding.abi, "parentSchemaId", [schema_id]
        )
        return _as_hex(parent).lower()
