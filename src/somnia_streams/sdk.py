"""SDK entry point wiring the chain client, signer and transports together."""

import logging

from somnia_streams.core.config import Settings, get_settings
from somnia_streams.infrastructure.blockchain.client import SomniaClient
from somnia_streams.infrastructure.blockchain.contracts import (
    ContractRegistry,
    Web3ContractCaller,
)
from somnia_streams.infrastructure.blockchain.subscriptions import (
    SubscriptionTransport,
    WebSocketSubscriptionTransport,
)
from somnia_streams.infrastructure.blockchain.transaction import TransactionService
from somnia_streams.services.streams.facade import Streams

logger = logging.getLogger(__name__)


class SDK:
    """Top level handle holding the protocol facades."""

    def __init__(self, streams: Streams):
        self.streams = streams

    async def close(self) -> None:
        """Close the subscription transport, if any."""
        if self.streams.transport is not None:
            await self.streams.transport.close()


def create_sdk(
    settings: Settings | None = None,
    private_key: str | None = None,
    transport: SubscriptionTransport | None = None,
    subscriptions: bool = True,
) -> SDK:
    """Build an SDK for the configured network.

    Args:
        settings: Settings to use (defaults to the environment)
        private_key: Signer key, overrides STREAMS_PRIVATE_KEY. Without a
            key the SDK is read-only and writes return MissingSigner.
        transport: Subscription transport (a WebSocket transport on the
            active network's endpoint if None)
        subscriptions: Set False to build without a subscription transport

    Returns:
        Configured SDK
    """
    settings = settings or get_settings()
    client = SomniaClient(
        rpc_urls=[settings.active_rpc_url, *settings.active_backup_rpc_urls],
        max_retries=settings.rpc_max_retries,
        retry_delay=settings.rpc_retry_delay,
    )

    key = private_key or settings.private_key
    transaction_service = None
    if key:
        transaction_service = TransactionService(
            client=client,
            private_key=key,
            gas_limit_multiplier=settings.gas_limit_multiplier,
            gas_price_multiplier=settings.gas_price_multiplier,
        )
    else:
        logger.info("No private key configured, SDK is read-only")

    if transport is None and subscriptions:
        transport = WebSocketSubscriptionTransport(settings.active_ws_url)

    streams = Streams(
        caller=Web3ContractCaller(
            client,
            transaction_service,
            receipt_timeout=settings.receipt_timeout,
            receipt_poll_interval=settings.receipt_poll_interval,
        ),
        registry=ContractRegistry(settings=settings),
        transport=transport,
    )
    return SDK(streams)
