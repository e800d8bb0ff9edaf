"""Tests for SDK construction."""

import pytest
from web3 import Web3

from somnia_streams import SDK, Streams, create_sdk
from somnia_streams.core.config import Settings
from somnia_streams.infrastructure.blockchain.contracts import KnownContracts
from somnia_streams.infrastructure.blockchain.subscriptions import (
    WebSocketSubscriptionTransport,
)


class TestCreateSdk:
    """Tests for create_sdk."""

    def test_read_only_sdk(self, settings):
        """Test an SDK without a key has no signer."""
        sdk = create_sdk(settings=settings, subscriptions=False)

        assert isinstance(sdk, SDK)
        assert isinstance(sdk.streams, Streams)
        assert sdk.streams.caller.transaction_service is None
        assert sdk.streams.transport is None

    def test_signing_sdk(self, settings):
        """Test a private key enables writes."""
        sdk = create_sdk(settings=settings, private_key="0x" + "11" * 32)

        service = sdk.streams.caller.transaction_service
        assert service is not None
        assert service.gas_limit_multiplier == settings.gas_limit_multiplier

    def test_default_transport_uses_active_ws_url(self, settings):
        """Test subscriptions use the active network's WebSocket endpoint."""
        sdk = create_sdk(settings=settings)

        assert isinstance(sdk.streams.transport, WebSocketSubscriptionTransport)
        assert sdk.streams.transport.ws_url == settings.active_ws_url

    @pytest.mark.asyncio
    async def test_close_without_connection(self, settings):
        """Test closing an unused SDK is a no-op."""
        sdk = create_sdk(settings=settings)

        await sdk.close()

    def test_settings_contract_address_is_used(self):
        """Test the Streams address override comes from the given settings."""
        address = "0x" + "ab" * 20
        settings = Settings(network="testnet", streams_contract_address=address)

        sdk = create_sdk(settings=settings, subscriptions=False)

        assert sdk.streams.registry.overrides == {KnownContracts.STREAMS: address}

    @pytest.mark.asyncio
    async def test_settings_contract_address_is_bound(self):
        """Test operations resolve the overridden Streams deployment."""
        address = "0x" + "ab" * 20
        settings = Settings(network="testnet", streams_contract_address=address)
        sdk = create_sdk(settings=settings, subscriptions=False)

        binding = await sdk.streams.registry.resolve_binding(KnownContracts.STREAMS, 50312)

        assert binding.address == Web3.to_checksum_address(address)

    def test_receipt_settings_reach_caller(self):
        """Test receipt waiting uses the given settings."""
        settings = Settings(receipt_timeout=7, receipt_poll_interval=0.5)

        sdk = create_sdk(settings=settings, subscriptions=False)

        assert sdk.streams.caller.receipt_timeout == 7
        assert sdk.streams.caller.receipt_poll_interval == 0.5
