"""
Exception and Error Definitions Module

Defines the exception hierarchy for asset migration: input validation,
configuration, off-chain signing, on-chain execution and remote API access.
All exceptions inherit from MigratorError for unified exception handling.

Only ValidationError, ConfigurationError and NetworkError ever reach the
caller of a migration. Signing and execution errors are recovered per token
or per transaction by the engine and surfaced as MigrationOutcome records.

Exception Hierarchy:
    MigratorError (root)
    ├── ValidationError
    ├── ConfigurationError
    ├── SigningError
    │   └── NonceExhaustedError
    ├── ExecutionError
    │   ├── GasEstimationError
    │   └── TransactionExecutionError
    └── NetworkError
"""

from typing import Optional


class MigratorError(Exception):
    """
    Root exception class for all project-specific exceptions.

    All custom exceptions should inherit from this class to enable
    unified exception handling and centralized error processing.
    """
    pass


class ValidationError(MigratorError):
    """
    Raised when a migration call is rejected before any work starts.

    This includes scenarios such as:
    - Unsupported chain id
    - Missing sender signer
    - Malformed receiver address
    - Unsupported migration route (e.g. NFT or native assets in the
      fee-forwarding variant)
    """
    pass


class ConfigurationError(MigratorError):
    """
    Raised when configuration is missing or invalid.

    This includes scenarios such as:
    - Missing API key
    - Missing RPC URL
    - Invalid numeric environment values
    """
    pass


class SigningError(MigratorError):
    """
    Raised when an ERC-2612 permit or Permit2 signature cannot be produced.

    This includes scenarios such as:
    - Token name or nonce read failure
    - Typed-data encoding failure
    - Signer rejection
    """
    pass


class NonceExhaustedError(SigningError):
    """
    Raised when no unused Permit2 nonce was found within the search bound.

    Attributes:
        owner: Account whose nonce bitmap was searched
        attempts: Number of candidate nonces checked
    """

    def __init__(self, owner: str, attempts: int):
        self.owner = owner
        self.attempts = attempts
        super().__init__(
            f"No unused Permit2 nonce for {owner} after {attempts} attempts"
        )


class ExecutionError(MigratorError):
    """
    Base exception for on-chain interaction failures.

    Parent class for gas estimation and transaction submission errors.
    """
    pass


class GasEstimationError(ExecutionError):
    """
    Raised when a simulated call (eth_estimateGas) fails.

    Typically means the transaction would revert against current chain state.
    """
    pass


class TransactionExecutionError(ExecutionError):
    """
    Raised when building, signing or broadcasting a transaction fails.

    This includes scenarios such as:
    - RPC call timeout
    - Transaction rejected by the node
    - Nonce conflicts
    """
    pass


class NetworkError(MigratorError):
    """
    Raised when a remote API call (balances, prices, relay) fails.

    Fatal to the in-flight migration: there is no retry and no rollback of
    transfers that were already submitted.

    Attributes:
        status_code: HTTP status code when a response was received
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)
