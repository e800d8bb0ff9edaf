"""Pytest configuration and fixtures."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from somnia_streams.infrastructure.blockchain.contracts import (
    ContractBinding,
    ContractRegistry,
    get_abi_loader,
)

TESTNET_CHAIN_ID = 50312
STREAMS_ADDRESS = "0x6AB397FF662e42312c003175DCD76EfF69D048Fc"
PUBLISHER = "0x1234567890123456789012345678901234567890"


@pytest.fixture(scope="function")
def settings():
    """Create settings instance for testing."""
    from somnia_streams.core.config import Settings

    return Settings(network="testnet", private_key="")


@pytest.fixture
def streams_binding():
    """Streams deployment on testnet."""
    return ContractBinding(
        address=STREAMS_ADDRESS, abi=get_abi_loader().streams_abi
    )


@pytest.fixture
def mock_caller():
    """Contract caller connected to testnet with no canned responses."""
    caller = MagicMock()
    caller.get_chain_id = AsyncMock(return_value=TESTNET_CHAIN_ID)
    caller.read = AsyncMock()
    caller.write = AsyncMock()
    caller.wait_for_transaction = AsyncMock()
    return caller


@pytest.fixture
def registry():
    """Registry using only the built-in address book."""
    return ContractRegistry(overrides={})


def _route_reads(responses):
    """Build a ``read`` side effect answering by function name.

    ``responses`` maps a function name to either a value or a callable
    receiving the call arguments.
    """

    async def read(address, abi, function_name, args=None):
        response = responses[function_name]
        if callable(response):
            return response(*(args or []))
        return response

    return read


@pytest.fixture
def route_reads():
    """Factory for ``read`` side effects answering by function name."""
    return _route_reads
