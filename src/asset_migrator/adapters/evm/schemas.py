"""
EVM Adapter Schema Models

Pydantic models for the transactions and authorizations the migration
engine plans, signs and submits. Every planned transaction variant carries a
``type`` literal so the variants can be combined into a discriminated union
(see ``adapters.unions``).

Signature classes:
    - EVMECDSASignature: v/r/s signature for ERC-2612 permits and Permit2
      (use ``signature_type`` to distinguish).

Planned transaction classes:
    - NativeTransfer: Direct native-value send.
    - Erc20Transfer: Direct ERC-20 ``transfer``.
    - NftTransfer: ERC-721 ``safeTransferFrom`` of one token id.
    - PermitAuthorization: Signed ERC-2612 ``permit`` granting Permit2 an allowance.
    - Permit2SingleTransfer: Signed Permit2 single-token ``permitTransferFrom``.
    - Permit2BatchTransfer: Signed Permit2 batch ``permitTransferFrom``.

Supporting classes:
    - PermittedToken: ``TokenPermissions`` entry (token + amount).
    - TransferDetail: ``SignatureTransferDetails`` entry (to + requestedAmount).
"""

from typing import Optional, List, Literal

from pydantic import Field

from ...schemas.bases import CanonicalModel, AssetKind


class EVMECDSASignature(CanonicalModel):
    """
    EVM ECDSA signature (v, r, s).

    Attributes:
        signature_type: ``"EIP2612"`` for permits, ``"Permit2"`` for Permit2.
        v: ECDSA recovery ID (27 or 28).
        r: r component, 0x-prefixed 64-char hex string.
        s: s component, 0x-prefixed 64-char hex string.
    """

    signature_type: Literal["EIP2612", "Permit2"] = Field(
        ..., description="Signing standard: 'EIP2612' or 'Permit2'"
    )
    v: int = Field(..., ge=27, le=28, description="ECDSA recovery ID (27 or 28)")
    r: str = Field(..., description="Signature r component (32 bytes, 64-char hex)")
    s: str = Field(..., description="Signature s component (32 bytes, 64-char hex)")

    @classmethod
    def from_signed(cls, signature_type: str, signed) -> "EVMECDSASignature":
        """Build from an ``eth_account`` ``SignedMessage``."""
        return cls(
            signature_type=signature_type,
            v=signed.v,
            r="0x" + signed.r.to_bytes(32, "big").hex(),
            s="0x" + signed.s.to_bytes(32, "big").hex(),
        )

    def validate_format(self) -> bool:
        """
        Validate v/r/s components.

        Returns:
            True when all components pass.

        Raises:
            ValueError: Descriptive message on the first failed check.
        """
        if self.v not in (27, 28):
            raise ValueError(f"Invalid recovery ID: {self.v}. Must be 27 or 28")

        for name, val in [("r", self.r), ("s", self.s)]:
            hex_str = val[2:] if val.lower().startswith("0x") else val
            if len(hex_str) != 64:
                raise ValueError(f"Invalid {name}: expected 64 hex chars, got {len(hex_str)}")
            try:
                int(hex_str, 16)
            except ValueError:
                raise ValueError(f"Invalid {name}: not valid hexadecimal")

        return True

    def to_packed_hex(self) -> str:
        """
        Encode v/r/s into a packed 65-byte hex string (``r || s || v``).

        This is the ``bytes signature`` argument Permit2's
        ``permitTransferFrom`` expects.

        Returns:
            0x-prefixed 132-character hex string.
        """
        self.validate_format()
        r = self.r[2:] if self.r.lower().startswith("0x") else self.r
        s = self.s[2:] if self.s.lower().startswith("0x") else self.s
        return "0x" + r + s + format(self.v, "02x")


class PermittedToken(CanonicalModel):
    """``TokenPermissions`` entry."""
    token: str = Field(..., description="Token contract address")
    amount: int = Field(..., ge=0, description="Amount in smallest units")


class TransferDetail(CanonicalModel):
    """``SignatureTransferDetails`` entry."""
    to: str = Field(..., description="Recipient address")
    requested_amount: int = Field(..., ge=0, alias="requestedAmount")


# ---------------------------------------------------------------------------
# Planned transactions
# ---------------------------------------------------------------------------

class PlannedTransactionBase(CanonicalModel):
    """Fields shared by every planned transaction variant."""
    gas_cost: Optional[int] = Field(None, ge=0, description="Estimated fee in wei, set by the sequencer")

    def token_addresses(self) -> List[str]:
        """Tokens moved by this transaction, in payload order."""
        return [self.token_address]


class NativeTransfer(PlannedTransactionBase):
    type: Literal["native"] = "native"
    from_address: str = Field(..., alias="from")
    to_address: str = Field(..., alias="to")
    token_address: str
    amount: int = Field(..., ge=0)
    kind: AssetKind = AssetKind.DUST


class Erc20Transfer(PlannedTransactionBase):
    type: Literal["erc20"] = "erc20"
    from_address: str = Field(..., alias="from")
    to_address: str = Field(..., alias="to")
    token_address: str
    amount: int = Field(..., ge=0)
    kind: AssetKind = AssetKind.CRYPTOCURRENCY


class NftTransfer(PlannedTransactionBase):
    type: Literal["nft"] = "nft"
    from_address: str = Field(..., alias="from")
    to_address: str = Field(..., alias="to")
    token_address: str
    token_id: str = Field(..., alias="tokenId")
    amount: int = 1


class PermitAuthorization(PlannedTransactionBase):
    """
    Signed ERC-2612 permit granting the Permit2 contract an allowance.

    Only ever relayed; the owner never submits it directly.
    """
    type: Literal["permit"] = "permit"
    owner: str
    spender: str
    token_address: str
    value: int = Field(..., ge=0)
    nonce: int = Field(..., ge=0)
    deadline: int = Field(..., ge=0)
    signature: EVMECDSASignature
    call_data: Optional[str] = Field(None, description="ABI-encoded permit(...) call")


class Permit2SingleTransfer(PlannedTransactionBase):
    """Signed Permit2 single-token transfer from ``owner`` to ``recipient``."""
    type: Literal["permit2_single"] = "permit2_single"
    owner: str
    spender: str
    recipient: str
    permitted: PermittedToken
    nonce: int = Field(..., ge=0)
    deadline: int = Field(..., ge=0)
    signature: str = Field(..., description="Packed r || s || v signature")
    call_data: Optional[str] = Field(None, description="ABI-encoded permitTransferFrom call")

    @property
    def token_address(self) -> str:
        return self.permitted.token

    @property
    def amount(self) -> int:
        return self.permitted.amount


class Permit2BatchTransfer(PlannedTransactionBase):
    """
    Signed Permit2 batch transfer.

    ``transfer_details[i]`` routes ``permitted[i]``; entries normally go to
    the receiver but the forwarding variant points some at the treasury.
    """
    type: Literal["permit2_batch"] = "permit2_batch"
    owner: str
    spender: str
    permitted: List[PermittedToken]
    transfer_details: List[TransferDetail] = Field(..., alias="transferDetails")
    nonce: int = Field(..., ge=0)
    deadline: int = Field(..., ge=0)
    signature: str = Field(..., description="Packed r || s || v signature")
    call_data: Optional[str] = Field(None, description="ABI-encoded permitTransferFrom call")

    def token_addresses(self) -> List[str]:
        return [entry.token for entry in self.permitted]
