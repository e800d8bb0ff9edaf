"""Event parsing for Streams contract logs."""

import logging
from dataclasses import dataclass
from typing import Any

from eth_abi import decode
from eth_utils import event_abi_to_log_topic, to_bytes
from web3 import Web3

logger = logging.getLogger(__name__)

# Indexed dynamic parameters are stored as their keccak hash
_HASHED_WHEN_INDEXED = ("string", "bytes")


@dataclass
class ParsedEvent:
    """Parsed blockchain event."""

    event_name: str
    tx_hash: str
    block_number: int
    log_index: int
    contract_address: str
    args: dict[str, Any]


def abi_type(param: dict[str, Any]) -> str:
    """Render an ABI input/output entry as an eth_abi type string."""
    type_ = param["type"]
    if type_.startswith("tuple"):
        inner = ",".join(abi_type(c) for c in param.get("components", []))
        return f"({inner}){type_[len('tuple'):]}"
    return type_


def _hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(bytes(value))
    return value


class EventParser:
    """Parses event logs using the ``event`` entries of a contract ABI."""

    def __init__(self, abi: list[dict]):
        """Initialize event parser.

        Args:
            abi: Contract ABI whose events should be recognised
        """
        self._build_topic_map(abi)

    def _build_topic_map(self, abi: list[dict]) -> None:
        """Build mapping from topic hash to event ABI entry."""
        self.topic_to_event: dict[str, dict] = {}
        for item in abi:
            if item.get("type") == "event" and not item.get("anonymous"):
                topic = Web3.to_hex(event_abi_to_log_topic(item))
                self.topic_to_event[topic] = item

    def parse_log(self, log: dict[str, Any]) -> ParsedEvent | None:
        """Parse a single log entry.

        Args:
            log: Raw log entry from a receipt or eth_getLogs

        Returns:
            ParsedEvent or None if not recognized
        """
        topics = [_hex(t) for t in log.get("topics", [])]
        if not topics:
            return None

        event_abi = self.topic_to_event.get(topics[0].lower())
        if not event_abi:
            logger.debug(f"Unknown event topic: {topics[0]}")
            return None

        try:
            args = self._decode_event_args(event_abi, topics[1:], log.get("data", b""))
        except Exception as e:
            logger.error(f"Failed to decode event {event_abi['name']}: {e}")
            return None

        address = log.get("address", "")
        if hasattr(address, "lower"):
            address = address.lower()

        return ParsedEvent(
            event_name=event_abi["name"],
            tx_hash=_hex(log.get("transactionHash", "")),
            block_number=log.get("blockNumber", 0),
            log_index=log.get("logIndex", 0),
            contract_address=address,
            args=args,
        )

    def parse_logs(self, logs: list[dict[str, Any]]) -> list[ParsedEvent]:
        """Parse the recognised entries of a list of logs."""
        parsed = (self.parse_log(log) for log in logs)
        return [event for event in parsed if event is not None]

    @staticmethod
    def _decode_event_args(
        event_abi: dict, topics: list[str], data: bytes | str
    ) -> dict[str, Any]:
        """Decode indexed arguments from topics and the rest from data."""
        if isinstance(data, str):
            data = to_bytes(hexstr=data) if data else b""

        inputs = event_abi.get("inputs", [])
        indexed = [i for i in inputs if i.get("indexed")]
        unindexed = [i for i in inputs if not i.get("indexed")]

        args: dict[str, Any] = {}
        for param, topic in zip(indexed, topics):
            type_ = abi_type(param)
            if type_ in _HASHED_WHEN_INDEXED or type_.endswith("]") or type_.startswith("("):
                args[param["name"]] = topic
                continue
            (value,) = decode([type_], to_bytes(hexstr=topic))
            args[param["name"]] = _hex(value)

        if unindexed:
            values = decode([abi_type(p) for p in unindexed], data)
            for param, value in zip(unindexed, values):
                args[param["name"]] = _hex(value)

        return args
