"""Somnia chain client with multi-RPC failover support."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, Web3RPCError
from web3.types import BlockIdentifier, TxParams, Wei

from somnia_streams.core.config import get_settings

logger = logging.getLogger(__name__)


class ChainClient(ABC):
    """Abstract base class for chain RPC clients."""

    @abstractmethod
    async def get_chain_id(self) -> int:
        """Get the connected chain ID."""
        ...

    @abstractmethod
    async def get_block_number(self) -> int:
        """Get current block number."""
        ...

    @abstractmethod
    async def eth_call(
        self, transaction: TxParams, block_identifier: BlockIdentifier = "latest"
    ) -> bytes:
        """Execute eth_call (read-only contract call)."""
        ...

    @abstractmethod
    async def estimate_gas(self, transaction: TxParams) -> int:
        """Estimate gas for transaction."""
        ...

    @abstractmethod
    async def get_transaction_count(self, address: str) -> int:
        """Get transaction count (nonce) for address."""
        ...

    @abstractmethod
    async def get_gas_price(self) -> Wei:
        """Get current gas price."""
        ...

    @abstractmethod
    async def send_raw_transaction(self, signed_tx: bytes) -> str:
        """Send signed raw transaction and return its hash."""
        ...

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        """Get transaction receipt."""
        ...

    async def wait_for_transaction_receipt(
        self, tx_hash: str, timeout: int = 120, poll_latency: float = 2.0
    ) -> dict[str, Any]:
        """Wait for transaction receipt with timeout.

        Args:
            tx_hash: Transaction hash
            timeout: Maximum wait time in seconds
            poll_latency: Polling interval in seconds

        Returns:
            Transaction receipt

        Raises:
            TimeoutError: If transaction not confirmed within timeout
        """
        elapsed = 0.0
        while elapsed < timeout:
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt and receipt.get("blockNumber") is not None:
                return receipt
            await asyncio.sleep(poll_latency)
            elapsed += poll_latency

        raise TimeoutError(f"Transaction {tx_hash} not confirmed within {timeout}s")


class SomniaClient(ChainClient):
    """Somnia HTTP JSON-RPC client with multi-RPC failover."""

    def __init__(
        self,
        rpc_urls: list[str] | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ):
        """Initialize Somnia client.

        Args:
            rpc_urls: List of RPC endpoints (primary + backups).
                     If None, uses config based on the network setting.
            max_retries: Maximum retry attempts per RPC
            retry_delay: Delay between retries in seconds
        """
        settings = get_settings()
        self.rpc_urls = rpc_urls or [
            settings.active_rpc_url,
            *settings.active_backup_rpc_urls,
        ]
        self.max_retries = max_retries if max_retries is not None else settings.rpc_max_retries
        self.retry_delay = retry_delay if retry_delay is not None else settings.rpc_retry_delay
        self._current_rpc_index = 0
        self._web3: AsyncWeb3 | None = None

    @property
    def web3(self) -> AsyncWeb3:
        """Get or create Web3 instance."""
        if self._web3 is None:
            self._web3 = self._create_web3()
        return self._web3

    def _create_web3(self, rpc_index: int | None = None) -> AsyncWeb3:
        """Create Web3 instance for specified RPC."""
        index = rpc_index if rpc_index is not None else self._current_rpc_index
        return AsyncWeb3(AsyncHTTPProvider(self.rpc_urls[index]))

    async def _execute_with_failover(
        self, method: str, *args: Any, **kwargs: Any
    ) -> Any:
        """Execute method with automatic RPC failover.

        Contract reverts are raised immediately: they are answers from the
        chain, not transport failures, and another RPC returns the same.

        Args:
            method: web3.eth method or awaitable property name
            *args: Positional arguments for the method
            **kwargs: Keyword arguments for the method

        Returns:
            Result from the Web3 method

        Raises:
            ContractLogicError: If the call reverted
            Web3RPCError: If all RPCs fail
        """
        last_error: Exception | None = None

        for rpc_offset in range(len(self.rpc_urls)):
            rpc_index = (self._current_rpc_index + rpc_offset) % len(self.rpc_urls)
            web3 = self._create_web3(rpc_index)

            for attempt in range(self.max_retries):
                try:
                    attribute = getattr(web3.eth, method)
                    if callable(attribute):
                        result = await attribute(*args, **kwargs)
                    else:
                        result = await attribute

                    # Success - update current RPC index
                    self._current_rpc_index = rpc_index
                    self._web3 = web3

                    return result

                except ContractLogicError:
                    raise

                except Exception as e:
                    last_error = e
                    logger.warning(
                        f"RPC {self.rpc_urls[rpc_index]} {method} failed "
                        f"(attempt {attempt + 1}): {e}"
                    )
                    if attempt < self.max_retries - 1:
                        await asyncio.sleep(self.retry_delay * (attempt + 1))

            logger.warning(
                f"Switching from RPC {self.rpc_urls[rpc_index]} to next backup"
            )

        raise Web3RPCError(f"All RPCs failed. Last error: {last_error}")

    async def get_chain_id(self) -> int:
        """Get the connected chain ID."""
        return await self._execute_with_failover("chain_id")

    async def get_block_number(self) -> int:
        """Get current block number."""
        return await self._execute_with_failover("get_block_number")

    async def eth_call(
        self, transaction: TxParams, block_identifier: BlockIdentifier = "latest"
    ) -> bytes:
        """Execute eth_call (read-only contract call)."""
        return await self._execute_with_failover("call", transaction, block_identifier)

    async def estimate_gas(self, transaction: TxParams) -> int:
        """Estimate gas for transaction."""
        return await self._execute_with_failover("estimate_gas", transaction)

    async def get_transaction_count(self, address: str) -> int:
        """Get transaction count (nonce) for address."""
        return await self._execute_with_failover("get_transaction_count", address)

    async def get_gas_price(self) -> Wei:
        """Get current gas price."""
        return await self._execute_with_failover("gas_price")

    async def send_raw_transaction(self, signed_tx: bytes) -> str:
        """Send signed raw transaction.

        Args:
            signed_tx: Signed transaction bytes

        Returns:
            Transaction hash as 0x-prefixed hex string
        """
        tx_hash = await self._execute_with_failover("send_raw_transaction", signed_tx)
        return AsyncWeb3.to_hex(tx_hash)

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        """Get transaction receipt, or None while it is pending."""
        try:
            receipt = await self._execute_with_failover("get_transaction_receipt", tx_hash)
        except Web3RPCError as e:
            if "not found" in str(e).lower():
                return None
            raise
        return dict(receipt) if receipt else None

    async def health_check(self) -> bool:
        """Check if client is connected and RPC is healthy."""
        try:
            block_number = await self.get_block_number()
            return block_number > 0
        except Exception:
            return False
