"""
Configuration Test Suite

Supported chain lookup and environment-driven MigrationConfig construction.
"""

import pytest

from asset_migrator.adapters.evm.constants import (
    DEFAULT_BASE_URL,
    DEFAULT_MAX_NONCE_ATTEMPTS,
    DEFAULT_RELAYER_ADDRESS,
    MigrationConfig,
    get_chain_config,
)
from asset_migrator.engine.exceptions import ConfigurationError, ValidationError

ENV_VARS = [
    "MIGRATOR_API_KEY",
    "MIGRATOR_RPC_URL",
    "MIGRATOR_BASE_URL",
    "MIGRATOR_RELAYER_ADDRESS",
    "MIGRATOR_TREASURY_ADDRESS",
    "MIGRATOR_REQUEST_TIMEOUT",
    "MIGRATOR_MAX_NONCE_ATTEMPTS",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestChains:

    def test_known_chain(self):
        assert get_chain_config(1).name == "Ethereum Mainnet"
        assert get_chain_config(137).native_token_address == "0x0000000000000000000000000000000000001010"

    def test_unsupported_chain(self):
        with pytest.raises(ValidationError, match="Unsupported chain_id: 999"):
            get_chain_config(999)


class TestMigrationConfig:

    def test_from_env(self, clean_env):
        clean_env.setenv("MIGRATOR_API_KEY", "key-from-env")
        clean_env.setenv("MIGRATOR_RPC_URL", "http://rpc.local")
        clean_env.setenv("MIGRATOR_TREASURY_ADDRESS", "0x1234567890123456789012345678901234567890")
        clean_env.setenv("MIGRATOR_REQUEST_TIMEOUT", "12.5")

        config = MigrationConfig.from_env(chain_id=137)

        assert config.chain_id == 137
        assert config.api_key == "key-from-env"
        assert config.rpc_url == "http://rpc.local"
        assert config.base_url == DEFAULT_BASE_URL
        assert config.relayer_address == DEFAULT_RELAYER_ADDRESS
        assert config.treasury_address == "0x1234567890123456789012345678901234567890"
        assert config.request_timeout == 12.5
        assert config.max_nonce_attempts == DEFAULT_MAX_NONCE_ATTEMPTS

    def test_overrides_win(self, clean_env):
        clean_env.setenv("MIGRATOR_API_KEY", "key-from-env")
        clean_env.setenv("MIGRATOR_RPC_URL", "http://rpc.local")

        config = MigrationConfig.from_env(chain_id=1, api_key="explicit", max_nonce_attempts=8)

        assert config.api_key == "explicit"
        assert config.max_nonce_attempts == 8

    def test_missing_api_key(self, clean_env):
        clean_env.setenv("MIGRATOR_RPC_URL", "http://rpc.local")
        with pytest.raises(ConfigurationError, match="MIGRATOR_API_KEY"):
            MigrationConfig.from_env(chain_id=1)

    def test_missing_rpc_url(self, clean_env):
        clean_env.setenv("MIGRATOR_API_KEY", "key")
        with pytest.raises(ConfigurationError, match="MIGRATOR_RPC_URL"):
            MigrationConfig.from_env(chain_id=1)

    def test_unparsable_number(self, clean_env):
        clean_env.setenv("MIGRATOR_API_KEY", "key")
        clean_env.setenv("MIGRATOR_RPC_URL", "http://rpc.local")
        clean_env.setenv("MIGRATOR_MAX_NONCE_ATTEMPTS", "many")
        with pytest.raises(ConfigurationError, match="MIGRATOR_MAX_NONCE_ATTEMPTS"):
            MigrationConfig.from_env(chain_id=1)
