"""SDK configuration management using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """SDK settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="STREAMS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Network selection
    network: Literal["testnet", "mainnet"] = Field(
        default="testnet", description="Somnia network selection"
    )

    # Somnia Mainnet (Chain ID: 5031)
    mainnet_rpc_url: str = Field(
        default="https://api.infra.mainnet.somnia.network/",
        description="Somnia mainnet HTTP RPC endpoint",
    )
    mainnet_backup_rpc_urls: list[str] = Field(
        default=[], description="Backup Somnia mainnet HTTP RPC endpoints"
    )
    mainnet_ws_url: str = Field(
        default="wss://api.infra.mainnet.somnia.network/ws",
        description="Somnia mainnet WebSocket RPC endpoint",
    )

    # Somnia Testnet (Chain ID: 50312)
    testnet_rpc_url: str = Field(
        default="https://dream-rpc.somnia.network/",
        description="Somnia testnet HTTP RPC endpoint",
    )
    testnet_backup_rpc_urls: list[str] = Field(
        default=[], description="Backup Somnia testnet HTTP RPC endpoints"
    )
    testnet_ws_url: str = Field(
        default="wss://dream-rpc.somnia.network/ws",
        description="Somnia testnet WebSocket RPC endpoint",
    )

    # Contract override (takes precedence over the built-in address book)
    streams_contract_address: str | None = Field(
        default=None, description="Streams protocol contract address override"
    )

    # Signer
    private_key: str = Field(
        default="", description="Private key used to sign write transactions"
    )

    # RPC behaviour
    rpc_max_retries: int = Field(default=3, description="Retries per RPC endpoint")
    rpc_retry_delay: float = Field(
        default=1.0, description="Base delay between retries in seconds"
    )

    # Transactions
    gas_limit_multiplier: float = Field(
        default=1.2, description="Multiplier applied to estimated gas"
    )
    gas_price_multiplier: float = Field(
        default=1.1, description="Multiplier applied to the node gas price"
    )
    receipt_timeout: int = Field(
        default=120, description="Receipt wait timeout in seconds"
    )
    receipt_poll_interval: float = Field(
        default=2.0, description="Receipt polling interval in seconds"
    )

    @computed_field
    @property
    def active_rpc_url(self) -> str:
        """Get HTTP RPC URL based on current network selection."""
        if self.network == "testnet":
            return self.testnet_rpc_url
        return self.mainnet_rpc_url

    @computed_field
    @property
    def active_backup_rpc_urls(self) -> list[str]:
        """Get backup HTTP RPC URLs based on current network selection."""
        if self.network == "testnet":
            return self.testnet_backup_rpc_urls
        return self.mainnet_backup_rpc_urls

    @computed_field
    @property
    def active_ws_url(self) -> str:
        """Get WebSocket RPC URL based on current network selection."""
        if self.network == "testnet":
            return self.testnet_ws_url
        return self.mainnet_ws_url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
