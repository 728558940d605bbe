from dataclasses import dataclass, field
from typing import Dict, Any, List


# -----------------------------
# EIP-712 Domain
# -----------------------------

@dataclass
class EIP712Domain:
    """
    EIP-712 domain separator.
    Used to prevent signature replay across domains.
    """
    name: str
    version: str
    chainId: int
    verifyingContract: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chainId,
            "verifyingContract": self.verifyingContract,
        }


# -----------------------------
# ERC-2612: Permit
# -----------------------------

@dataclass
class PermitMessage:
    """
    Message payload for an ERC-2612 ``Permit``.

    Attributes:
        owner: Token holder granting the allowance.
        spender: Address receiving the allowance (Permit2 for migrations).
        value: Allowance amount (uint256).
        nonce: Current ``nonces(owner)`` value of the token.
        deadline: Unix timestamp after which the permit is invalid.
    """
    owner: str
    spender: str
    value: int
    nonce: int
    deadline: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "spender": self.spender,
            "value": self.value,
            "nonce": self.nonce,
            "deadline": self.deadline,
        }


@dataclass
class ERC2612TypedData:
    """
    Container for ERC-2612 typed data usable with EIP-712 signing routines.

    ``to_dict()`` produces { types, primaryType, domain, message }, which is
    what ``eth_account`` ``sign_typed_data(full_message=...)`` consumes.
    """
    domain: EIP712Domain
    message: PermitMessage

    primary_type: str = "Permit"

    types: Dict[str, List[Dict[str, str]]] = field(
        default_factory=lambda: {
            "EIP712Domain": [
                {"name": "name", "type": "string"},
                {"name": "version", "type": "string"},
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            "Permit": [
                {"name": "owner", "type": "address"},
                {"name": "spender", "type": "address"},
                {"name": "value", "type": "uint256"},
                {"name": "nonce", "type": "uint256"},
                {"name": "deadline", "type": "uint256"},
            ],
        }
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "types": self.types,
            "primaryType": self.primary_type,
            "domain": self.domain.to_dict(),
            "message": self.message.to_dict(),
        }


# -----------------------------
# Permit2: shared pieces
# -----------------------------

_PERMIT2_DOMAIN_TYPE = [
    {"name": "name",              "type": "string"},
    {"name": "chainId",           "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

_TOKEN_PERMISSIONS_TYPE = [
    {"name": "token",  "type": "address"},
    {"name": "amount", "type": "uint256"},
]


@dataclass
class TokenPermission:
    """One ``TokenPermissions`` entry: a token and the amount it may move."""
    token: str
    amount: int

    def to_dict(self) -> Dict[str, Any]:
        return {"token": self.token, "amount": self.amount}


def _permit2_domain(chain_id: int, verifying_contract: str) -> Dict[str, Any]:
    # Permit2 domain has no version field.
    return {
        "name": "Permit2",
        "chainId": chain_id,
        "verifyingContract": verifying_contract,
    }


# -----------------------------
# Permit2: PermitTransferFrom typed data
# -----------------------------

@dataclass
class Permit2TypedData:
    """
    EIP-712 typed-data container for a Permit2 single-token
    ``permitTransferFrom`` authorization.

    The domain follows the canonical Permit2 convention: ``name="Permit2"`` with
    no ``version`` field. Types embed both ``PermitTransferFrom`` and its nested
    ``TokenPermissions`` sub-struct.

    Attributes:
        chain_id:            EVM network ID.
        verifying_contract:  Permit2 singleton contract address.
        spender:             Address authorised to call ``permitTransferFrom``.
        permitted:           Token and amount being authorised.
        nonce:               Unordered Permit2 nonce; consumed on first use.
        deadline:            Unix timestamp after which the permit is invalid.
    """

    chain_id: int
    verifying_contract: str
    spender: str
    permitted: TokenPermission
    nonce: int
    deadline: int

    types: Dict[str, List[Dict[str, str]]] = field(
        default_factory=lambda: {
            "EIP712Domain": list(_PERMIT2_DOMAIN_TYPE),
            "PermitTransferFrom": [
                {"name": "permitted", "type": "TokenPermissions"},
                {"name": "spender",   "type": "address"},
                {"name": "nonce",     "type": "uint256"},
                {"name": "deadline",  "type": "uint256"},
            ],
            "TokenPermissions": list(_TOKEN_PERMISSIONS_TYPE),
        }
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "types": self.types,
            "primaryType": "PermitTransferFrom",
            "domain": _permit2_domain(self.chain_id, self.verifying_contract),
            "message": {
                "permitted": self.permitted.to_dict(),
                "spender": self.spender,
                "nonce": self.nonce,
                "deadline": self.deadline,
            },
        }


# -----------------------------
# Permit2: PermitBatchTransferFrom typed data
# -----------------------------

@dataclass
class Permit2BatchTypedData:
    """
    EIP-712 typed-data container for a Permit2 ``PermitBatchTransferFrom``.

    One signature covers every entry in ``permitted``; the on-chain call then
    carries one ``SignatureTransferDetails`` per entry, in the same order.
    """

    chain_id: int
    verifying_contract: str
    spender: str
    permitted: List[TokenPermission]
    nonce: int
    deadline: int

    types: Dict[str, List[Dict[str, str]]] = field(
        default_factory=lambda: {
            "EIP712Domain": list(_PERMIT2_DOMAIN_TYPE),
            "PermitBatchTransferFrom": [
                {"name": "permitted", "type": "TokenPermissions[]"},
                {"name": "spender",   "type": "address"},
                {"name": "nonce",     "type": "uint256"},
                {"name": "deadline",  "type": "uint256"},
            ],
            "TokenPermissions": list(_TOKEN_PERMISSIONS_TYPE),
        }
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "types": self.types,
            "primaryType": "PermitBatchTransferFrom",
            "domain": _permit2_domain(self.chain_id, self.verifying_contract),
            "message": {
                "permitted": [entry.to_dict() for entry in self.permitted],
                "spender": self.spender,
                "nonce": self.nonce,
                "deadline": self.deadline,
            },
        }
