"""Contract management and ABI handling.

Loads the bundled ABIs from the package ``abi/`` directory, resolves the
Streams deployment for a chain and provides contract interaction methods.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import to_bytes
from web3 import Web3
from web3.exceptions import ContractLogicError
from web3.types import TxParams

from somnia_streams.core.config import Settings, get_settings
from somnia_streams.core.errors import ContractReverted, UnresolvedBinding
from somnia_streams.infrastructure.blockchain.client import ChainClient
from somnia_streams.infrastructure.blockchain.events import EventParser, abi_type
from somnia_streams.infrastructure.blockchain.transaction import (
    TransactionResult,
    TransactionService,
    TransactionStatus,
)

logger = logging.getLogger(__name__)

# ABI directory path (bundled as package data)
ABI_DIR = Path(__file__).parent.parent.parent / "abi"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Error(string) selector used by require() reverts
_ERROR_STRING_SELECTOR = "0x08c379a0"


class KnownContracts(str, Enum):
    """Contracts the SDK knows how to bind to."""

    STREAMS = "Streams"


# Deployments per chain id. The zero address marks a chain without a deployment.
CONTRACT_ADDRESSES: dict[KnownContracts, dict[int, str]] = {
    KnownContracts.STREAMS: {
        5031: ZERO_ADDRESS,
        50312: "0x6AB397FF662e42312c003175DCD76EfF69D048Fc",
    },
}


class ABILoader:
    """Loads and caches contract ABIs from JSON files."""

    _instance = None
    _abis: dict[str, list[dict]] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._load_all_abis()
        return cls._instance

    def _load_all_abis(self) -> None:
        """Load all ABIs from the abi directory."""
        if not ABI_DIR.exists():
            logger.warning(f"ABI directory not found: {ABI_DIR}")
            return

        for abi_file in ABI_DIR.glob("*.json"):
            try:
                with open(abi_file, "r") as f:
                    data = json.load(f)
                    abi = data.get("abi", [])
                    if abi:
                        name = abi_file.stem
                        self._abis[name] = abi
                        logger.debug(f"Loaded ABI: {name} ({len(abi)} entries)")
            except Exception as e:
                logger.error(f"Failed to load ABI {abi_file}: {e}")

        logger.info(f"Loaded {len(self._abis)} ABIs: {list(self._abis.keys())}")

    def get_abi(self, contract_name: str) -> list[dict]:
        """Get ABI by contract name.

        Args:
            contract_name: Contract name (e.g., "Streams")

        Returns:
            Contract ABI as list of dicts
        """
        if contract_name not in self._abis:
            raise ValueError(f"ABI not found for contract: {contract_name}")
        return self._abis[contract_name]

    @property
    def streams_abi(self) -> list[dict]:
        """Get Streams contract ABI."""
        return self.get_abi(KnownContracts.STREAMS.value)


@lru_cache(maxsize=1)
def get_abi_loader() -> ABILoader:
    """Get the singleton ABI loader instance."""
    return ABILoader()


# =============================================================================
# Contract resolution
# =============================================================================


@dataclass(frozen=True)
class ContractBinding:
    """Deployed contract address paired with its ABI."""

    address: str
    abi: list[dict]


class ContractRegistry:
    """Resolves known contract names to deployments on a chain."""

    def __init__(
        self,
        abi_loader: ABILoader | None = None,
        overrides: dict[KnownContracts, str] | None = None,
        settings: Settings | None = None,
    ):
        """Initialize registry.

        Args:
            abi_loader: ABI source (uses the bundled ABIs if not provided)
            overrides: Contract addresses that take precedence over the
                address book. The Streams address falls back to the
                streams_contract_address setting.
            settings: Settings supplying the Streams address override
                (uses the environment if not provided)
        """
        self.abi_loader = abi_loader or get_abi_loader()
        self.overrides = dict(overrides or {})
        configured = (settings or get_settings()).streams_contract_address
        if configured and KnownContracts.STREAMS not in self.overrides:
            self.overrides[KnownContracts.STREAMS] = configured

    async def resolve_binding(
        self, contract: KnownContracts, chain_id: int
    ) -> ContractBinding:
        """Resolve the address and ABI of ``contract`` on ``chain_id``.

        Raises:
            UnresolvedBinding: If no usable deployment exists
        """
        try:
            abi = self.abi_loader.get_abi(contract.value)
        except ValueError as e:
            raise UnresolvedBinding(contract.value, chain_id, "Unable to resolve ABI") from e

        address = self.overrides.get(contract) or CONTRACT_ADDRESSES.get(
            contract, {}
        ).get(chain_id)
        if not address:
            raise UnresolvedBinding(
                contract.value, chain_id, "Unable to resolve contract address"
            )
        if not Web3.is_address(address.lower()):
            raise UnresolvedBinding(contract.value, chain_id, "Invalid contract address")
        if int(address, 16) == 0:
            raise UnresolvedBinding(contract.value, chain_id, "No contract connected")

        return ContractBinding(address=Web3.to_checksum_address(address), abi=abi)


# =============================================================================
# Revert decoding
# =============================================================================


def decode_contract_error(abi: list[dict], error: ContractLogicError) -> ContractReverted:
    """Decode a revert into a named contract error using the ABI's error entries.

    Args:
        abi: Contract ABI containing ``error`` entries
        error: Revert raised by web3

    Returns:
        ContractReverted with the error name and decoded arguments
    """
    reason = getattr(error, "message", None) or str(error)
    data = getattr(error, "data", None)
    if isinstance(data, (bytes, bytearray)):
        data = Web3.to_hex(data)
    if not isinstance(data, str) or len(data) < 10:
        return ContractReverted("UnknownContractError", reason=reason)

    selector = data[:10].lower()
    try:
        payload = to_bytes(hexstr="0x" + data[10:])
    except ValueError:
        return ContractReverted("UnknownContractError", reason=reason)

    for item in abi:
        if item.get("type") != "error":
            continue
        inputs = item.get("inputs", [])
        types = [abi_type(i) for i in inputs]
        signature = f"{item['name']}({','.join(types)})"
        if Web3.to_hex(Web3.keccak(text=signature))[:10] != selector:
            continue
        try:
            values = decode(types, payload) if types else ()
        except (DecodingError, ValueError, TypeError) as e:
            logger.warning(f"Malformed {item['name']} revert data: {e}")
            return ContractReverted(item["name"], reason=reason)
        args = {
            (i.get("name") or f"arg{n}"): value
            for n, (i, value) in enumerate(zip(inputs, values))
        }
        return ContractReverted(item["name"], args=args, reason=reason)

    if selector == _ERROR_STRING_SELECTOR:
        try:
            (message,) = decode(["string"], payload)
        except (DecodingError, ValueError, TypeError):
            return ContractReverted("UnknownContractError", reason=reason)
        return ContractReverted("Error", args={"message": message}, reason=message)

    return ContractReverted("UnknownContractError", reason=reason)


# =============================================================================
# Contract caller
# =============================================================================


class ContractCaller(ABC):
    """Read and write access to deployed contracts."""

    @abstractmethod
    async def get_chain_id(self) -> int:
        """Get the connected chain ID."""
        ...

    @abstractmethod
    async def read(
        self,
        address: str,
        abi: list[dict],
        function_name: str,
        args: list[Any] | None = None,
    ) -> Any:
        """Call a view function and return its decoded result."""
        ...

    @abstractmethod
    async def write(
        self,
        address: str,
        abi: list[dict],
        function_name: str,
        args: list[Any] | None = None,
        value: int = 0,
    ) -> str | None:
        """Send a transaction.

        Returns:
            Transaction hash, or None when no signer is configured
        """
        ...

    @abstractmethod
    async def wait_for_transaction(self, tx_hash: str) -> TransactionResult:
        """Wait for a transaction to be mined."""
        ...


class Web3ContractCaller(ContractCaller):
    """Contract caller backed by a chain client and an optional signer."""

    def __init__(
        self,
        client: ChainClient,
        transaction_service: TransactionService | None = None,
        event_parser: EventParser | None = None,
        receipt_timeout: int | None = None,
        receipt_poll_interval: float | None = None,
    ):
        """Initialize contract caller.

        Args:
            client: Blockchain client for RPC calls
            transaction_service: Signer for writes. Without one, writes
                return None.
            event_parser: Parser for receipt logs
            receipt_timeout: Receipt wait timeout in seconds
            receipt_poll_interval: Receipt polling interval in seconds
        """
        settings = get_settings()
        self.client = client
        self.transaction_service = transaction_service
        self.receipt_timeout = receipt_timeout or settings.receipt_timeout
        self.receipt_poll_interval = (
            receipt_poll_interval or settings.receipt_poll_interval
        )
        self.w3 = Web3()  # For encoding/decoding only
        self.event_parser = event_parser or EventParser(get_abi_loader().streams_abi)

    async def get_chain_id(self) -> int:
        return await self.client.get_chain_id()

    def encode_function_call(
        self, abi: list[dict], function_name: str, args: list[Any] | None = None
    ) -> bytes:
        """Encode function call data.

        Args:
            abi: Contract ABI
            function_name: Name of the function to call
            args: Function arguments

        Returns:
            Encoded function call data
        """
        contract = self.w3.eth.contract(address=ZERO_ADDRESS, abi=abi)
        func = contract.get_function_by_name(function_name)
        return func(*args if args else [])._encode_transaction_data()

    def decode_function_result(
        self, abi: list[dict], function_name: str, data: bytes
    ) -> Any:
        """Decode function result.

        Args:
            abi: Contract ABI
            function_name: Name of the function
            data: Raw result data

        Returns:
            Decoded result, unwrapped when the function has a single output
        """
        func_abi = None
        for item in abi:
            if item.get("type") == "function" and item.get("name") == function_name:
                func_abi = item
                break

        if not func_abi:
            raise ValueError(f"Function {function_name} not found in ABI")

        output_types = [abi_type(o) for o in func_abi.get("outputs", [])]
        if not output_types:
            return None

        decoded = decode(output_types, data)
        return decoded[0] if len(decoded) == 1 else decoded

    async def read(
        self,
        address: str,
        abi: list[dict],
        function_name: str,
        args: list[Any] | None = None,
    ) -> Any:
        """Call contract function (read-only).

        Args:
            address: Contract address
            abi: Contract ABI
            function_name: Function name
            args: Function arguments

        Returns:
            Decoded function result
        """
        checksum_address = Web3.to_checksum_address(address)
        data = self.encode_function_call(abi, function_name, args)
        tx_params: TxParams = {"to": checksum_address, "data": data}
        result = await self.client.eth_call(tx_params)
        return self.decode_function_result(abi, function_name, result)

    async def write(
        self,
        address: str,
        abi: list[dict],
        function_name: str,
        args: list[Any] | None = None,
        value: int = 0,
    ) -> str | None:
        if self.transaction_service is None:
            logger.warning(f"No signer configured, not sending {function_name}")
            return None
        return await self.transaction_service.send_transaction(
            contract_address=address,
            abi=abi,
            function_name=function_name,
            args=args or [],
            value=value,
        )

    async def wait_for_transaction(self, tx_hash: str) -> TransactionResult:
        """Wait for confirmation and parse the Streams events in the receipt.

        Args:
            tx_hash: Transaction hash

        Returns:
            TransactionResult with confirmation details
        """
        try:
            receipt = await self.client.wait_for_transaction_receipt(
                tx_hash,
                timeout=self.receipt_timeout,
                poll_latency=self.receipt_poll_interval,
            )
        except TimeoutError:
            return TransactionResult(
                tx_hash=tx_hash,
                status=TransactionStatus.TIMEOUT,
                error=f"Transaction not confirmed within {self.receipt_timeout}s",
            )

        success = receipt.get("status") == 1
        return TransactionResult(
            tx_hash=tx_hash,
            status=TransactionStatus.SUCCESS if success else TransactionStatus.FAILED,
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
            error=None if success else "Transaction reverted",
            events=self.event_parser.parse_logs(receipt.get("logs", [])),
        )
