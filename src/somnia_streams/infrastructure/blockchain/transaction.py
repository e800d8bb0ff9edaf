"""Transaction service for sending on-chain transactions.

Provides functionality to sign and send transactions with:
- Automatic gas estimation
- Nonce management
- Chain id taken from the connected node
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from somnia_streams.core.config import get_settings
from somnia_streams.infrastructure.blockchain.client import ChainClient, SomniaClient
from somnia_streams.infrastructure.blockchain.events import ParsedEvent

logger = logging.getLogger(__name__)


class TransactionStatus(str, Enum):
    """Transaction execution status."""

    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


@dataclass
class TransactionResult:
    """Result of waiting for a transaction."""

    tx_hash: str
    status: TransactionStatus
    block_number: int | None = None
    gas_used: int | None = None
    error: str | None = None
    events: list[ParsedEvent] = field(default_factory=list)


class TransactionService:
    """Service for sending on-chain transactions.

    Handles transaction signing, gas estimation, and sending with
    automatic nonce management. Failures propagate to the caller so
    contract reverts can be decoded upstream.
    """

    def __init__(
        self,
        client: ChainClient,
        private_key: str,
        gas_limit_multiplier: float = 1.2,
        gas_price_multiplier: float = 1.1,
    ):
        """Initialize transaction service.

        Args:
            client: Blockchain client for sending transactions
            private_key: Private key for signing (hex string with or without 0x)
            gas_limit_multiplier: Multiplier for estimated gas limit
            gas_price_multiplier: Multiplier for gas price
        """
        self.client = client
        self.gas_limit_multiplier = gas_limit_multiplier
        self.gas_price_multiplier = gas_price_multiplier

        key = private_key if private_key.startswith("0x") else f"0x{private_key}"
        self.account: LocalAccount = Account.from_key(key)
        self.w3 = Web3()

        logger.info(f"TransactionService initialized for address: {self.account.address}")

    @property
    def address(self) -> str:
        """Get the signer address."""
        return self.account.address

    async def send_transaction(
        self,
        contract_address: str,
        abi: list[dict[str, Any]],
        function_name: str,
        args: list[Any],
        gas_limit: int | None = None,
        value: int = 0,
    ) -> str:
        """Send a contract function call transaction.

        Args:
            contract_address: Target contract address
            abi: Contract ABI
            function_name: Name of function to call
            args: Function arguments
            gas_limit: Optional gas limit (will estimate if not provided)
            value: Amount of native token to send (in wei)

        Returns:
            Transaction hash

        Raises:
            ContractLogicError: If gas estimation hits a revert
            Web3RPCError: If the transaction cannot be sent
        """
        checksum_address = Web3.to_checksum_address(contract_address)

        # 1. Encode function call
        contract = self.w3.eth.contract(address=checksum_address, abi=abi)
        func = contract.get_function_by_name(function_name)
        data = func(*args)._encode_transaction_data()

        # 2. Get nonce
        nonce = await self.client.get_transaction_count(self.account.address)
        logger.debug(f"Current nonce: {nonce}")

        # 3. Get gas price with multiplier
        base_gas_price = await self.client.get_gas_price()
        gas_price = int(base_gas_price * self.gas_price_multiplier)

        # 4. Estimate or use provided gas limit
        if gas_limit is None:
            tx_for_estimate = {
                "from": self.account.address,
                "to": checksum_address,
                "data": data,
                "value": value,
            }
            estimated_gas = await self.client.estimate_gas(tx_for_estimate)
            gas_limit = int(estimated_gas * self.gas_limit_multiplier)
            logger.debug(f"Estimated gas: {estimated_gas}, using: {gas_limit}")

        # 5. Build transaction
        tx = {
            "to": checksum_address,
            "data": data,
            "gas": gas_limit,
            "gasPrice": gas_price,
            "nonce": nonce,
            "chainId": await self.client.get_chain_id(),
            "value": value,
        }

        # 6. Sign transaction
        signed_tx = self.account.sign_transaction(tx)
        logger.debug(f"Transaction signed, hash: {signed_tx.hash.hex()}")

        # 7. Send transaction
        tx_hash = await self.client.send_raw_transaction(signed_tx.raw_transaction)
        logger.info(
            f"Transaction sent: {tx_hash}, "
            f"function: {function_name}, "
            f"contract: {contract_address}"
        )
        return tx_hash


def get_transaction_service(
    client: ChainClient | None = None,
    private_key: str | None = None,
) -> TransactionService:
    """Create TransactionService instance.

    Args:
        client: Blockchain client (uses default SomniaClient if not provided)
        private_key: Private key (uses STREAMS_PRIVATE_KEY if not provided)

    Returns:
        Configured TransactionService instance

    Raises:
        ValueError: If no private key available
    """
    settings = get_settings()

    if client is None:
        client = SomniaClient()

    if private_key is None:
        private_key = settings.private_key
        if not private_key:
            raise ValueError("No private key configured. Set STREAMS_PRIVATE_KEY")

    return TransactionService(
        client=client,
        private_key=private_key,
        gas_limit_multiplier=settings.gas_limit_multiplier,
        gas_price_multiplier=settings.gas_price_multiplier,
    )
