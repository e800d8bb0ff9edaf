"""Blockchain infrastructure module."""

from somnia_streams.infrastructure.blockchain.client import ChainClient, SomniaClient
from somnia_streams.infrastructure.blockchain.contracts import (
    ContractBinding,
    ContractCaller,
    ContractRegistry,
    KnownContracts,
    Web3ContractCaller,
    decode_contract_error,
    get_abi_loader,
)
from somnia_streams.infrastructure.blockchain.events import EventParser, ParsedEvent
from somnia_streams.infrastructure.blockchain.subscriptions import (
    Subscription,
    SubscriptionTransport,
    WebSocketSubscriptionTransport,
)
from somnia_streams.infrastructure.blockchain.transaction import (
    TransactionResult,
    TransactionService,
    TransactionStatus,
    get_transaction_service,
)

__all__ = [
    # Client
    "ChainClient",
    "SomniaClient",
    # Contracts
    "ContractBinding",
    "ContractCaller",
    "ContractRegistry",
    "KnownContracts",
    "Web3ContractCaller",
    "decode_contract_error",
    "get_abi_loader",
    # Events
    "EventParser",
    "ParsedEvent",
    # Subscriptions
    "Subscription",
    "SubscriptionTransport",
    "WebSocketSubscriptionTransport",
    # Transactions
    "TransactionService",
    "TransactionResult",
    "TransactionStatus",
    "get_transaction_service",
]
