"""
Base Schema Models for the Asset Migrator

This module defines the fundamental base classes and domain records that all
other schema models build on. It provides the foundation for type safety,
validation, and consistent serialization across the migration engine.

Core Classes:
    - CanonicalModel: Pydantic base model with deterministic JSON serialization
    - AssetKind: Classification of a held asset (dust, stablecoin, ...)
    - NftHolding: One owned ERC-721 token id
    - TokenSnapshot: Immutable balance/allowance snapshot of one held asset
    - TransferRequest: Caller intent for one asset
    - MigrationOutcome: Terminal result record for one unit of work

Dependencies:
    - pydantic: For data validation and serialization
"""

import json
from typing import Optional, Dict, Any, List
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


#: Sentinel used by the balances API for an unlimited Permit2 allowance.
UNLIMITED_ALLOWANCE: int = -1


def to_int(value: Any) -> int:
    """
    Coerce an API-supplied big-number into a Python ``int``.

    The balances API is not consistent about how it encodes arbitrary
    precision integers. Accepted shapes:

    * ``int`` (returned unchanged, ``bool`` rejected)
    * decimal string, e.g. ``"10000000"``
    * hex string, optionally signed, e.g. ``"0x989680"`` or ``"-0x01"``
    * BigNumber object, e.g. ``{"type": "BigNumber", "hex": "0x989680"}``

    Args:
        value: Raw value from a JSON payload.

    Returns:
        int: The decoded integer.

    Raises:
        ValueError: If the value cannot be interpreted as an integer.
    """
    if isinstance(value, bool):
        raise ValueError(f"Boolean is not a valid integer amount: {value}")
    if isinstance(value, int):
        return value
    if isinstance(value, dict) and "hex" in value:
        return to_int(value["hex"])
    if isinstance(value, str):
        text = value.strip()
        negative = text.startswith("-")
        digits = text[1:] if negative else text
        if digits.lower().startswith("0x"):
            number = int(digits, 16)
        else:
            number = int(digits, 10)
        return -number if negative else number
    raise ValueError(f"Unsupported integer encoding: {value!r}")


class CanonicalModel(BaseModel):
    """
    Pydantic base model with canonical JSON serialization.

    Ensures consistent, deterministic JSON representation, which keeps log
    lines and relay payloads stable across runs.

    Features:
        - Field population by python name or by camelCase wire alias
        - Deterministic key sorting in JSON output
        - No extra whitespace

    Example:
        class MyModel(CanonicalModel):
            name: str
            value: int

        model = MyModel(name="test", value=123)
        canonical_json = model.to_canonical_json()
    """

    model_config = ConfigDict(populate_by_name=True)

    def to_canonical_json(self) -> str:
        """
        Convert model to a canonical JSON string.

        Returns:
            str: JSON string with sorted keys and no extra whitespace.
        """
        data = self.model_dump(mode="json", by_alias=True)
        return json.dumps(
            data,
            separators=(",", ":"),
            sort_keys=True,
            ensure_ascii=False
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert model to dictionary representation using wire aliases.

        Returns:
            Dict[str, Any]: Dictionary with all model fields.
        """
        return self.model_dump(by_alias=True)


class AssetKind(str, Enum):
    """Asset classification reported by the balances API."""
    DUST = "dust"
    STABLECOIN = "stablecoin"
    CRYPTOCURRENCY = "cryptocurrency"
    NFT = "nft"


class NftHolding(CanonicalModel):
    """A single ERC-721 token id owned by the source account."""

    token_id: str = Field(..., alias="tokenId", description="ERC-721 token id (decimal string)")
    image: Optional[str] = Field(None, description="Optional artwork URL")

    @field_validator("token_id", mode="before")
    @classmethod
    def _stringify_token_id(cls, value: Any) -> str:
        return str(value)


class TokenSnapshot(CanonicalModel):
    """
    Immutable snapshot of one asset held by the source account.

    Taken once per migration call from the balances API and never refreshed
    mid-call.

    Attributes:
        token_address: Lower-cased token contract address.
        decimals: Token decimals, None when the API does not report them.
        name: Token display name, when the API provides it.
        symbol: Token symbol, when the API provides it.
        balance: Raw balance in the token's smallest unit.
        kind: Asset classification.
        native_token: True for the chain's native (fee) currency.
        permit2_allowance: Allowance granted to Permit2; -1 means unlimited.
        permit_exists: Whether the token implements ERC-2612 ``permit``.
        quote_rate: USD price of one whole token, when known.
        nft_data: Owned token ids (NFTs only).
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    token_address: str = Field(..., description="Token contract address")
    decimals: Optional[int] = Field(18, ge=0, description="Token decimals")
    name: Optional[str] = Field(None, description="Token name")
    symbol: Optional[str] = Field(None, description="Token symbol")
    balance: int = Field(..., description="Raw balance in smallest units")
    kind: AssetKind = Field(..., alias="type", description="Asset classification")
    native_token: bool = Field(False, description="Native fee currency flag")
    permit2_allowance: int = Field(0, alias="permit2Allowance", description="Permit2 allowance (-1 = unlimited)")
    permit_exists: bool = Field(False, alias="permitExist", description="ERC-2612 permit support")
    quote_rate: Optional[float] = Field(None, description="USD price per whole token")
    nft_data: List[NftHolding] = Field(default_factory=list, description="Owned NFT token ids")

    @field_validator("token_address", mode="before")
    @classmethod
    def _canonical_address(cls, value: str) -> str:
        return value.lower()

    @field_validator("balance", "permit2_allowance", mode="before")
    @classmethod
    def _decode_big_number(cls, value: Any) -> int:
        if value is None:
            return 0
        return to_int(value)

    @field_validator("nft_data", mode="before")
    @classmethod
    def _default_nft_data(cls, value: Any) -> Any:
        return value or []

    @property
    def is_native(self) -> bool:
        """True for the asset that funds the gas budget."""
        return self.native_token or self.kind == AssetKind.DUST

    @property
    def is_nft(self) -> bool:
        return self.kind == AssetKind.NFT

    @property
    def owned_token_ids(self) -> List[str]:
        return [holding.token_id for holding in self.nft_data]


class TransferRequest(CanonicalModel):
    """
    Caller intent for one asset.

    Attributes:
        token_address: Token contract address (lower-cased on validation).
        amount: Amount in smallest units; None or 0 means full balance.
        token_ids: Requested ERC-721 ids (NFTs only).
    """

    token_address: str = Field(..., alias="tokenAddress", description="Token contract address")
    amount: Optional[int] = Field(None, ge=0, description="Requested amount, None = full balance")
    token_ids: Optional[List[str]] = Field(None, alias="tokenIds", description="Requested NFT token ids")

    @field_validator("token_address", mode="before")
    @classmethod
    def _canonical_address(cls, value: str) -> str:
        return value.lower()

    @field_validator("amount", mode="before")
    @classmethod
    def _decode_amount(cls, value: Any) -> Optional[int]:
        if value is None:
            return None
        return to_int(value)

    @field_validator("token_ids", mode="before")
    @classmethod
    def _stringify_token_ids(cls, value: Any) -> Optional[List[str]]:
        if value is None:
            return None
        return [str(token_id) for token_id in value]


class MigrationOutcome(CanonicalModel):
    """
    Terminal result for one (token, token-id) unit of work.

    Callers inspect ``message`` to decide per-asset success; ``tx_hash`` is
    set for directly submitted transactions and ``task_id``/``status`` for
    relayed ones.
    """

    token_address: str = Field(..., alias="tokenAddress", description="Token contract address")
    amount: Optional[int] = Field(None, description="Amount echoed back to the caller")
    token_id: Optional[str] = Field(None, alias="tokenId", description="NFT token id")
    task_id: Optional[str] = Field(None, alias="taskId", description="Relay task id")
    status: Optional[str] = Field(None, description="Relay status string")
    tx_hash: Optional[str] = Field(None, alias="txHash", description="On-chain transaction hash")
    message: str = Field(..., description="Human-readable outcome")
