"""Reactive subscriptions over a persistent WebSocket connection.

Somnia nodes expose ``eth_subscribe("somnia_watch", filter)``: for every
matching log the node runs the filter's eth_calls and pushes the log topics,
data and call results in one notification.
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from web3 import AsyncWeb3, WebSocketProvider
from web3.exceptions import Web3RPCError
from web3.types import RPCEndpoint

from somnia_streams.core.config import get_settings

logger = logging.getLogger(__name__)

WATCH_SUBSCRIPTION = "somnia_watch"

DataHandler = Callable[[dict[str, Any]], Any]
ErrorHandler = Callable[[Exception], Any]


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


@dataclass
class Subscription:
    """Handle for an active subscription."""

    subscription_id: str
    _unsubscribe: Callable[[], Awaitable[bool]]

    async def unsubscribe(self) -> bool:
        """Cancel the subscription on the node."""
        return await self._unsubscribe()


class SubscriptionTransport(ABC):
    """Transport capable of server-pushed notifications."""

    # Only duplex transports can deliver pushed notifications
    is_duplex: bool = False

    @abstractmethod
    async def subscribe(
        self,
        params: dict[str, Any],
        on_data: DataHandler,
        on_error: ErrorHandler | None = None,
    ) -> Subscription:
        """Open a ``somnia_watch`` subscription.

        Args:
            params: Watch filter (address, topics, eth_calls, context,
                push_changes_only)
            on_data: Called with each ``{"subscription", "result"}`` message
            on_error: Called with errors raised while listening

        Returns:
            Subscription handle
        """
        ...

    async def close(self) -> None:
        """Release the underlying connection."""


class WebSocketSubscriptionTransport(SubscriptionTransport):
    """Subscription transport backed by web3's persistent WebSocket provider."""

    is_duplex = True

    def __init__(self, ws_url: str | None = None):
        """Initialize transport.

        Args:
            ws_url: WebSocket RPC endpoint (uses the active network's if None)
        """
        self.ws_url = ws_url or get_settings().active_ws_url
        self._web3: AsyncWeb3 | None = None
        self._listener: asyncio.Task | None = None
        self._handlers: dict[str, tuple[DataHandler, ErrorHandler | None]] = {}
        self._lock = asyncio.Lock()

    async def connect(self) -> AsyncWeb3:
        """Open the connection and start dispatching notifications."""
        async with self._lock:
            if self._web3 is None:
                self._web3 = await AsyncWeb3(WebSocketProvider(self.ws_url))
                self._listener = asyncio.create_task(self._listen(self._web3))
                logger.info(f"WebSocket connected: {self.ws_url}")
        return self._web3

    async def subscribe(
        self,
        params: dict[str, Any],
        on_data: DataHandler,
        on_error: ErrorHandler | None = None,
    ) -> Subscription:
        w3 = await self.connect()
        response = await w3.provider.make_request(
            RPCEndpoint("eth_subscribe"), [WATCH_SUBSCRIPTION, params]
        )
        if response.get("error"):
            raise Web3RPCError(f"eth_subscribe failed: {response['error']}")

        subscription_id = response["result"]
        self._handlers[subscription_id] = (on_data, on_error)
        logger.info(f"Subscribed {subscription_id} to {params.get('address')}")

        async def unsubscribe() -> bool:
            self._handlers.pop(subscription_id, None)
            result = await w3.provider.make_request(
                RPCEndpoint("eth_unsubscribe"), [subscription_id]
            )
            logger.info(f"Unsubscribed {subscription_id}")
            return bool(result.get("result"))

        return Subscription(subscription_id=subscription_id, _unsubscribe=unsubscribe)

    async def dispatch(self, message: dict[str, Any]) -> None:
        """Route a subscription message to its handlers."""
        # Providers deliver either the bare params or the full notification
        params = message.get("params", message)
        subscription_id = params.get("subscription")
        handlers = self._handlers.get(subscription_id)
        if handlers is None:
            logger.debug(f"Notification for unknown subscription: {subscription_id}")
            return

        on_data, on_error = handlers
        try:
            await _maybe_await(on_data(dict(params)))
        except Exception as e:
            logger.error(f"Subscription {subscription_id} handler failed: {e}")
            if on_error is not None:
                await _maybe_await(on_error(e))

    async def _listen(self, w3: AsyncWeb3) -> None:
        try:
            async for message in w3.socket.process_subscriptions():
                await self.dispatch(dict(message))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"WebSocket listener stopped: {e}")
            for _, on_error in list(self._handlers.values()):
                if on_error is not None:
                    await _maybe_await(on_error(e))

    async def close(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            self._listener = None
        if self._web3 is not None:
            await self._web3.provider.disconnect()
            self._web3 = None
        self._handlers.clear()
