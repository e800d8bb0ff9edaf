"""Test cases for configuration management."""

import os
from unittest.mock import patch

from somnia_streams.core.config import Settings, get_settings


class TestSettings:
    """Test Settings class configuration loading."""

    def test_settings_loads_defaults(self):
        """Test that settings loads with default values."""
        settings = Settings()

        assert settings.network == "testnet"
        assert settings.rpc_max_retries == 3
        assert settings.gas_limit_multiplier == 1.2
        assert settings.streams_contract_address is None

    def test_testnet_active_endpoints(self):
        """Test testnet endpoints are selected."""
        settings = Settings(network="testnet")

        assert settings.active_rpc_url == settings.testnet_rpc_url
        assert settings.active_ws_url.startswith("wss://")

    def test_mainnet_active_endpoints(self):
        """Test mainnet endpoints are selected."""
        settings = Settings(network="mainnet", mainnet_backup_rpc_urls=["https://b"])

        assert settings.active_rpc_url == settings.mainnet_rpc_url
        assert settings.active_backup_rpc_urls == ["https://b"]
        assert settings.active_ws_url == settings.mainnet_ws_url

    def test_settings_environment_override(self):
        """Test that prefixed environment variables override defaults."""
        with patch.dict(
            os.environ,
            {"STREAMS_NETWORK": "mainnet", "STREAMS_RPC_MAX_RETRIES": "5"},
        ):
            settings = Settings()

            assert settings.network == "mainnet"
            assert settings.rpc_max_retries == 5

    def test_get_settings_is_cached(self):
        """Test get_settings returns the same instance."""
        assert get_settings() is get_settings()
