"""
EVM Chain Configuration Management

Provides the supported chain table, protocol constants (Permit2 singleton,
gas unit table, uint256 bounds) and environment-aware configuration for the
migration engine.

Configuration is read from environment variables, with a ``.env`` file loaded
through python-dotenv when present.
"""

import os
from typing import Dict, Optional

from pydantic import BaseModel, Field
import dotenv

from ...engine.exceptions import ConfigurationError, ValidationError

dotenv.load_dotenv()


# ---------------------------------------------------------------------------
# Protocol constants
# ---------------------------------------------------------------------------

#: Canonical Uniswap Permit2 singleton address (same on all EVM networks).
PERMIT2_ADDRESS: str = "0x000000000022D473030F116dDEE9F6B43aC78BA3"

#: Maximum uint256, used as the "infinite" ERC-2612 permit value.
MAX_UINT256: int = 2 ** 256 - 1

#: Fixed gas units for transfers whose cost is not simulated.
GAS_UNITS: Dict[str, int] = {
    "nft": 100000,
    "cryptocurrency": 65000,
}

#: Gas limit buffer applied to eth_estimateGas results (numerator / 100).
GAS_LIMIT_BUFFER_PERCENT: int = 130

#: Share of the native balance transferred when no explicit amount is given.
NATIVE_TRANSFER_PERCENT: int = 80

#: ERC-2612 permit validity window in seconds.
PERMIT_DEADLINE_SECONDS: int = 3600

#: Permit2 signature validity window in seconds.
PERMIT2_DEADLINE_SECONDS: int = 86400

#: Range used to pick the first Permit2 nonce candidate.
PERMIT2_NONCE_START_MIN: int = 1000
PERMIT2_NONCE_START_MAX: int = 9999

#: Default bound on the Permit2 nonce bitmap search.
DEFAULT_MAX_NONCE_ATTEMPTS: int = 256

#: Default request timeout (seconds) for HTTP API calls and RPC calls.
DEFAULT_REQUEST_TIMEOUT: float = 30.0

#: Default migration backend (local development server).
DEFAULT_BASE_URL: str = "http://localhost:4000"

#: Relay service executor address; spender of gasless Permit2 signatures.
DEFAULT_RELAYER_ADDRESS: str = "0xaBcC9b596420A9E9172FD5938620E265a0f9Df92"

BALANCES_ENDPOINT: str = "/migrator/covalent"
GAS_PRICE_ENDPOINT: str = "/migrator/gas-price"
PRICE_ENDPOINT: str = "/migrator/price"
RELAY_ENDPOINT: str = "/migrator/relay"


# ---------------------------------------------------------------------------
# Supported chains
# ---------------------------------------------------------------------------

_DEFAULT_NATIVE_ADDRESS = "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee"
_POLYGON_NATIVE_ADDRESS = "0x0000000000000000000000000000000000001010"


class EvmChainConfig(BaseModel):
    """EVM network entry supported by the migrator."""
    chain_id: int
    name: str
    native_token_address: str = Field(
        _DEFAULT_NATIVE_ADDRESS, description="Pseudo-address the balances API uses for the native currency"
    )


EVM_CHAINS: Dict[int, EvmChainConfig] = {
    1: EvmChainConfig(chain_id=1, name="Ethereum Mainnet"),
    5: EvmChainConfig(chain_id=5, name="Goerli"),
    11155111: EvmChainConfig(chain_id=11155111, name="Sepolia"),
    137: EvmChainConfig(chain_id=137, name="Polygon Mainnet", native_token_address=_POLYGON_NATIVE_ADDRESS),
    80001: EvmChainConfig(chain_id=80001, name="Polygon Mumbai", native_token_address=_POLYGON_NATIVE_ADDRESS),
    42161: EvmChainConfig(chain_id=42161, name="Arbitrum One"),
    421613: EvmChainConfig(chain_id=421613, name="Arbitrum Goerli"),
    8453: EvmChainConfig(chain_id=8453, name="Base"),
    84531: EvmChainConfig(chain_id=84531, name="Base Goerli"),
    10: EvmChainConfig(chain_id=10, name="Optimism"),
    1101: EvmChainConfig(chain_id=1101, name="Polygon zkEVM"),
}


def get_chain_config(chain_id: int) -> EvmChainConfig:
    """
    Look up a supported chain.

    Args:
        chain_id: EVM chain id.

    Returns:
        EvmChainConfig: The chain entry.

    Raises:
        ValidationError: If the chain is not supported.
    """
    config = EVM_CHAINS.get(chain_id)
    if config is None:
        raise ValidationError(
            f"Unsupported chain_id: {chain_id}. "
            f"Supported chains: {sorted(EVM_CHAINS)}"
        )
    return config


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------

def get_private_key_from_env() -> Optional[str]:
    """
    Load the source account private key from the environment.

    Only used by scripts that build a signer; the engine itself always
    receives an already constructed signer.

    Environment Variable:
        - EVM_PRIVATE_KEY: 0x-prefixed hex private key
    """
    return os.getenv("EVM_PRIVATE_KEY")


def get_api_key_from_env() -> Optional[str]:
    """Load the migration API key (``MIGRATOR_API_KEY``)."""
    return os.getenv("MIGRATOR_API_KEY")


def get_rpc_url_from_env() -> Optional[str]:
    """Load the JSON-RPC endpoint (``MIGRATOR_RPC_URL``)."""
    return os.getenv("MIGRATOR_RPC_URL")


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}") from e


class MigrationConfig(BaseModel):
    """
    Runtime configuration for a MigrationExecutor.

    Attributes:
        chain_id: Chain the migration runs on.
        api_key: Migration backend API key.
        rpc_url: JSON-RPC endpoint for the chain.
        base_url: Migration backend base URL.
        relayer_address: Spender of gasless Permit2 signatures.
        treasury_address: Fee collection address for the forwarding variant.
        request_timeout: Timeout (seconds) for HTTP and RPC calls.
        max_nonce_attempts: Bound on the Permit2 nonce bitmap search.
    """
    chain_id: int = Field(..., ge=1)
    api_key: str = Field(..., min_length=1)
    rpc_url: str = Field(..., min_length=1)
    base_url: str = Field(DEFAULT_BASE_URL)
    relayer_address: str = Field(DEFAULT_RELAYER_ADDRESS)
    treasury_address: Optional[str] = Field(None, description="Required by the forwarding variant")
    request_timeout: float = Field(DEFAULT_REQUEST_TIMEOUT, gt=0)
    max_nonce_attempts: int = Field(DEFAULT_MAX_NONCE_ATTEMPTS, ge=1)

    @classmethod
    def from_env(cls, chain_id: int, **overrides) -> "MigrationConfig":
        """
        Build a configuration from environment variables.

        Explicit keyword overrides take precedence over the environment.

        Raises:
            ConfigurationError: If the API key or RPC URL is missing, or a
                numeric variable cannot be parsed.
        """
        values = {
            "chain_id": chain_id,
            "api_key": get_api_key_from_env(),
            "rpc_url": get_rpc_url_from_env(),
            "base_url": os.getenv("MIGRATOR_BASE_URL") or DEFAULT_BASE_URL,
            "relayer_address": os.getenv("MIGRATOR_RELAYER_ADDRESS") or DEFAULT_RELAYER_ADDRESS,
            "treasury_address": os.getenv("MIGRATOR_TREASURY_ADDRESS"),
            "request_timeout": _env_number("MIGRATOR_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT, float),
            "max_nonce_attempts": _env_number("MIGRATOR_MAX_NONCE_ATTEMPTS", DEFAULT_MAX_NONCE_ATTEMPTS, int),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})

        if not values["api_key"]:
            raise ConfigurationError(
                "API key not provided. Either pass 'api_key' or set the "
                "'MIGRATOR_API_KEY' environment variable."
            )
        if not values["rpc_url"]:
            raise ConfigurationError(
                "RPC URL not provided. Either pass 'rpc_url' or set the "
                "'MIGRATOR_RPC_URL' environment variable."
            )
        return cls(**values)
