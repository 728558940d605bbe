"""
EVM Off-Chain Signing Utilities

Local EIP-712 signing helpers for ERC-2612 ``permit`` and Permit2
``permitTransferFrom`` (single and batch). All cryptographic operations are
performed in-process through the supplied ``eth_account`` signer; the only
chain access is the Permit2 nonce bitmap lookup done by
``find_unused_permit2_nonce``.

Exported helpers
----------------
sign_erc2612_permit
    Build the ERC-2612 payload, sign it and return a ``PermitAuthorization``.

sign_permit2_single / sign_permit2_batch
    Build the Permit2 payload, sign it and return a ``Permit2SingleTransfer``
    or ``Permit2BatchTransfer`` carrying the packed signature.

find_unused_permit2_nonce
    Bounded search of the Permit2 unordered-nonce bitmap.
"""

import os
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3

from .standards import (
    EIP712Domain,
    PermitMessage,
    ERC2612TypedData,
    TokenPermission,
    Permit2TypedData,
    Permit2BatchTypedData,
)
from .schemas import (
    EVMECDSASignature,
    PermitAuthorization,
    PermittedToken,
    TransferDetail,
    Permit2SingleTransfer,
    Permit2BatchTransfer,
)
from .constants import (
    PERMIT2_ADDRESS,
    PERMIT2_NONCE_START_MIN,
    PERMIT2_NONCE_START_MAX,
    DEFAULT_MAX_NONCE_ATTEMPTS,
)
from ...engine.exceptions import SigningError, NonceExhaustedError

logger = logging.getLogger(__name__)


def _sign(signer: LocalAccount, typed_data: Dict) -> object:
    try:
        return signer.sign_typed_data(full_message=typed_data)
    except Exception as e:
        raise SigningError(f"EIP-712 signing failed for {typed_data.get('primaryType')}: {e}") from e


# ---------------------------------------------------------------------------
# ERC-2612 permit
# ---------------------------------------------------------------------------

def build_erc2612_typed_data(
    *,
    token: str,
    token_name: str,
    chain_id: int,
    owner: str,
    spender: str,
    value: int,
    nonce: int,
    deadline: int,
) -> ERC2612TypedData:
    """
    Wrap permit fields in an EIP-712 ``ERC2612TypedData`` envelope without
    signing.

    The domain version is always ``"1"``; the domain name is the token's
    on-chain ``name()``.
    """
    domain = EIP712Domain(
        name=token_name,
        version="1",
        chainId=chain_id,
        verifyingContract=AsyncWeb3.to_checksum_address(token),
    )
    message = PermitMessage(
        owner=AsyncWeb3.to_checksum_address(owner),
        spender=AsyncWeb3.to_checksum_address(spender),
        value=value,
        nonce=nonce,
        deadline=deadline,
    )
    return ERC2612TypedData(domain=domain, message=message)


def sign_erc2612_permit(
    *,
    signer: LocalAccount,
    token: str,
    token_name: str,
    chain_id: int,
    spender: str,
    value: int,
    nonce: int,
    deadline: int,
) -> PermitAuthorization:
    """
    Sign an ERC-2612 ``permit`` and return a ``PermitAuthorization``.

    Args:
        signer:     Owner's ``eth_account`` ``LocalAccount``.
        token:      ERC-20 token address; also the EIP-712 verifyingContract.
        token_name: Token ``name()`` as stored on-chain.
        chain_id:   EVM network ID.
        spender:    Address granted the allowance (the Permit2 contract).
        value:      Allowance amount.
        nonce:      Token ``nonces(owner)``.
        deadline:   Unix timestamp after which the permit is invalid.

    Returns:
        ``PermitAuthorization`` with ``signature`` populated and
        ``call_data`` left empty (encoding needs the chain gateway).

    Raises:
        SigningError: If the signer fails.
    """
    typed_data = build_erc2612_typed_data(
        token=token,
        token_name=token_name,
        chain_id=chain_id,
        owner=signer.address,
        spender=spender,
        value=value,
        nonce=nonce,
        deadline=deadline,
    )
    signed = _sign(signer, typed_data.to_dict())

    return PermitAuthorization(
        owner=signer.address,
        spender=spender,
        token_address=token,
        value=value,
        nonce=nonce,
        deadline=deadline,
        signature=EVMECDSASignature.from_signed("EIP2612", signed),
    )


# ---------------------------------------------------------------------------
# Permit2 signers
# ---------------------------------------------------------------------------

def sign_permit2_single(
    *,
    signer: LocalAccount,
    chain_id: int,
    spender: str,
    recipient: str,
    token: str,
    amount: int,
    nonce: int,
    deadline: int,
    permit2_address: str = PERMIT2_ADDRESS,
) -> Permit2SingleTransfer:
    """
    Sign a Permit2 single-token ``permitTransferFrom`` authorization.

    The domain follows the canonical Permit2 convention (``name="Permit2"``,
    no ``version``).

    Args:
        signer:          Token owner's ``LocalAccount``.
        chain_id:        EVM network ID.
        spender:         Address allowed to call ``permitTransferFrom``
                         (the owner itself for direct submission, the relay
                         executor for gasless submission).
        recipient:       Destination of the transfer.
        token:           ERC-20 token address.
        amount:          Transfer amount in the token's smallest unit.
        nonce:           Unused Permit2 nonce.
        deadline:        Unix timestamp after which the permit is invalid.
        permit2_address: Permit2 singleton contract address.

    Returns:
        ``Permit2SingleTransfer`` with the packed signature attached.

    Raises:
        SigningError: If the signer fails.
    """
    typed_data = Permit2TypedData(
        chain_id=chain_id,
        verifying_contract=AsyncWeb3.to_checksum_address(permit2_address),
        spender=AsyncWeb3.to_checksum_address(spender),
        permitted=TokenPermission(token=AsyncWeb3.to_checksum_address(token), amount=amount),
        nonce=nonce,
        deadline=deadline,
    )
    signed = _sign(signer, typed_data.to_dict())

    return Permit2SingleTransfer(
        owner=signer.address,
        spender=spender,
        recipient=recipient,
        permitted=PermittedToken(token=token, amount=amount),
        nonce=nonce,
        deadline=deadline,
        signature=EVMECDSASignature.from_signed("Permit2", signed).to_packed_hex(),
    )


def sign_permit2_batch(
    *,
    signer: LocalAccount,
    chain_id: int,
    spender: str,
    recipient: str,
    tokens: List[PermittedToken],
    nonce: int,
    deadline: int,
    permit2_address: str = PERMIT2_ADDRESS,
) -> Permit2BatchTransfer:
    """
    Sign one Permit2 ``PermitBatchTransferFrom`` covering every token.

    Transfer details default to ``recipient`` for every entry, in the same
    order as ``tokens``.

    Raises:
        SigningError: If ``tokens`` is empty or the signer fails.
    """
    if not tokens:
        raise SigningError("Permit2 batch requires at least one token")

    typed_data = Permit2BatchTypedData(
        chain_id=chain_id,
        verifying_contract=AsyncWeb3.to_checksum_address(permit2_address),
        spender=AsyncWeb3.to_checksum_address(spender),
        permitted=[
            TokenPermission(token=AsyncWeb3.to_checksum_address(entry.token), amount=entry.amount)
            for entry in tokens
        ],
        nonce=nonce,
        deadline=deadline,
    )
    signed = _sign(signer, typed_data.to_dict())

    return Permit2BatchTransfer(
        owner=signer.address,
        spender=spender,
        permitted=list(tokens),
        transfer_details=[
            TransferDetail(to=recipient, requested_amount=entry.amount) for entry in tokens
        ],
        nonce=nonce,
        deadline=deadline,
        signature=EVMECDSASignature.from_signed("Permit2", signed).to_packed_hex(),
    )


# ---------------------------------------------------------------------------
# Permit2 nonce search
# ---------------------------------------------------------------------------

def random_nonce_start() -> int:
    """Pick a first Permit2 nonce candidate in the configured range."""
    span = PERMIT2_NONCE_START_MAX - PERMIT2_NONCE_START_MIN + 1
    return PERMIT2_NONCE_START_MIN + int.from_bytes(os.urandom(4), "big") % span


async def find_unused_permit2_nonce(
    read_bitmap: Callable[[str, int], Awaitable[int]],
    owner: str,
    *,
    start: Optional[int] = None,
    max_attempts: int = DEFAULT_MAX_NONCE_ATTEMPTS,
) -> int:
    """
    Find a Permit2 unordered nonce that has not been consumed yet.

    Permit2 tracks nonces in a bitmap: nonce ``n`` lives in word ``n >> 8``
    at bit ``n & 0xff``. Candidates are tried in increasing order from
    ``start``; each bitmap word is read at most once.

    Args:
        read_bitmap:  Coroutine ``(owner, word_pos) -> bitmap`` reading
                      ``nonceBitmap`` from the Permit2 contract.
        owner:        Account whose nonces are searched.
        start:        First candidate; random in [1000, 9999] when omitted.
        max_attempts: Number of candidates checked before giving up.

    Returns:
        int: An unused nonce.

    Raises:
        NonceExhaustedError: If every candidate within the bound is used.
    """
    nonce = random_nonce_start() if start is None else start
    words: Dict[int, int] = {}

    for _ in range(max_attempts):
        word_pos, bit_pos = nonce >> 8, nonce & 0xFF
        if word_pos not in words:
            words[word_pos] = await read_bitmap(owner, word_pos)
        if not (words[word_pos] >> bit_pos) & 1:
            return nonce
        logger.debug("Permit2 nonce %s already used for %s", nonce, owner)
        nonce += 1

    raise NonceExhaustedError(owner, max_attempts)
