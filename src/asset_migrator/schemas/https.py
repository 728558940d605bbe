"""
HTTP Request/Response Schema Models for the Migration API

This module defines the Pydantic models used for HTTP communication with the
migration backend: balance discovery, gas and native price lookups, and the
relay service that submits gasless authorizations.

The flow consists of:
1. Client fetches a balance snapshot for the source account
2. Client fetches the current gas price (and, for fee forwarding, the native
   token USD price)
3. Client posts signed authorizations to the relay

All envelopes carry a numeric ``code``; anything other than 200 is treated
as a failed call by the client.
"""

import logging
from typing import Optional, List, Literal

from pydantic import Field, field_serializer, field_validator

from .bases import AssetKind, CanonicalModel, TokenSnapshot, to_int

logger = logging.getLogger(__name__)


#: Relay authorization kinds understood by the relay service.
RelayTxType = Literal["PERMIT", "PERMIT2_SINGLE", "PERMIT2_BATCH"]


# ============================================================================
# Balances
# ============================================================================

class BalancesRequest(CanonicalModel):
    """Body of the balances POST request.

    Attributes:
        chain_id: Chain id, sent as a string.
        address: Source account address.
        only_balances: Skip allowance/permit discovery when True.
        token_addresses: Optional filter of token addresses.
    """
    chain_id: str = Field(..., alias="chainId")
    address: str = Field(...)
    only_balances: bool = Field(True, alias="onlyBalances")
    token_addresses: Optional[List[str]] = Field(None, alias="tokenAddresses")


class BalancesResponse(CanonicalModel):
    """
    Balances API envelope.

    Entries whose ``type`` is not a known AssetKind are dropped, so one
    unsupported asset does not invalidate the whole snapshot.
    """
    code: int = Field(..., description="Status code (200 = success)")
    message: Optional[str] = Field(None, description="Status message")
    data: List[TokenSnapshot] = Field(default_factory=list, description="Snapshot of held assets")

    @field_validator("data", mode="before")
    @classmethod
    def _drop_unknown_kinds(cls, value):
        if not isinstance(value, list):
            return value
        known = {kind.value for kind in AssetKind}
        kept = []
        for entry in value:
            if isinstance(entry, dict):
                kind = entry.get("type", entry.get("kind"))
                if isinstance(kind, AssetKind):
                    kind = kind.value
                if kind not in known:
                    logger.warning("Skipping %s with unsupported asset type %r",
                                   entry.get("token_address"), kind)
                    continue
            kept.append(entry)
        return kept


# ============================================================================
# Prices
# ============================================================================

class GasPriceData(CanonicalModel):
    gas_price: int = Field(..., alias="gasPrice", description="Gas price in wei")

    @field_validator("gas_price", mode="before")
    @classmethod
    def _decode_gas_price(cls, value):
        return to_int(value)


class GasPriceResponse(CanonicalModel):
    """Gas price API envelope."""
    code: int
    message: Optional[str] = None
    data: GasPriceData


class PriceData(CanonicalModel):
    price: float = Field(..., ge=0, description="USD price of one native token")


class PriceResponse(CanonicalModel):
    """Native-to-USD price API envelope."""
    code: int
    message: Optional[str] = None
    data: PriceData


# ============================================================================
# Relay
# ============================================================================

class TokenInfo(CanonicalModel):
    """One token moved by a relayed authorization."""
    token_address: str = Field(..., alias="tokenAddress")
    amount: int = Field(...)

    @field_validator("amount", mode="before")
    @classmethod
    def _decode_amount(cls, value):
        return to_int(value)

    @field_serializer("amount", when_used="json")
    def _encode_amount(self, value: int) -> str:
        # uint256 does not fit a JSON number
        return str(value)


class RelayedAuthorization(CanonicalModel):
    """
    A signed authorization handed to the relay for gasless submission.

    Attributes:
        type: PERMIT, PERMIT2_SINGLE or PERMIT2_BATCH.
        token_info: Tokens (and amounts) moved by this authorization.
        target: Contract the relay calls (token for PERMIT, Permit2 otherwise).
        data: ABI-encoded call data.
    """
    type: RelayTxType = Field(..., description="Authorization kind")
    token_info: List[TokenInfo] = Field(..., alias="tokenInfo")
    target: str = Field(..., description="Contract address the relay calls")
    data: str = Field(..., description="0x-prefixed call data")


class RelayRequest(CanonicalModel):
    """Body of the relay POST request."""
    chain_id: int = Field(..., alias="chainId")
    authorizations: List[RelayedAuthorization]
    api_key: str = Field(..., alias="apiKey")


class RelayResult(CanonicalModel):
    """Relay response entry for one authorization."""
    type: RelayTxType
    token_info: List[TokenInfo] = Field(default_factory=list, alias="tokenInfo")
    task_id: Optional[str] = Field(None, alias="taskId")
    status: Optional[str] = None
