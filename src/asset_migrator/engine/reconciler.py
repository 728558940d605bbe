"""
Token Classifier / Reconciler

Matches caller transfer requests against the balance snapshot and rejects
the ones that cannot be planned. Rejections never raise; each becomes a
terminal MigrationOutcome.

Rules, applied to requests in order:
    - address already requested earlier  -> "Duplicate token address"
    - no snapshot for the address         -> "Supplied token does not exist"
    - fungible amount above balance       -> "Supplied amount is greater than balance"
    - NFT id not owned                    -> "Supplied NFT does not exist"
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from ..schemas.bases import MigrationOutcome, TokenSnapshot, TransferRequest

logger = logging.getLogger(__name__)

UNKNOWN_TOKEN = "Supplied token does not exist"
DUPLICATE_TOKEN = "Duplicate token address"
AMOUNT_EXCEEDS_BALANCE = "Supplied amount is greater than balance"
UNKNOWN_NFT = "Supplied NFT does not exist"


@dataclass
class AcceptedTransfer:
    """
    A request that survived reconciliation, paired with its snapshot.

    Attributes:
        snapshot: Matching balance snapshot.
        amount: Requested amount, or None for "full balance" (fungible only).
        token_ids: NFT ids to transfer (NFTs only).
    """
    snapshot: TokenSnapshot
    amount: Optional[int] = None
    token_ids: List[str] = field(default_factory=list)

    @property
    def token_address(self) -> str:
        return self.snapshot.token_address

    @property
    def resolved_amount(self) -> int:
        """Explicit amount, else the full snapshot balance."""
        return self.amount if self.amount else self.snapshot.balance


def _index_snapshots(snapshots: List[TokenSnapshot]) -> Dict[str, TokenSnapshot]:
    index: Dict[str, TokenSnapshot] = {}
    for snapshot in snapshots:
        index.setdefault(snapshot.token_address, snapshot)
    return index


def _duplicate_outcomes(request: TransferRequest) -> List[MigrationOutcome]:
    if request.token_ids:
        return [
            MigrationOutcome(token_address=request.token_address, token_id=token_id,
                             amount=1, message=DUPLICATE_TOKEN)
            for token_id in request.token_ids
        ]
    return [MigrationOutcome(token_address=request.token_address, amount=request.amount,
                             message=DUPLICATE_TOKEN)]


def _reconcile_nft(
    request: TransferRequest, snapshot: TokenSnapshot
) -> Tuple[Optional[AcceptedTransfer], List[MigrationOutcome]]:
    owned = snapshot.owned_token_ids
    # an explicit empty id list selects nothing
    if request.token_ids is None:
        if not owned:
            return None, []
        return AcceptedTransfer(snapshot=snapshot, token_ids=list(owned)), []

    outcomes: List[MigrationOutcome] = []
    accepted_ids: List[str] = []
    seen: Set[str] = set()
    for token_id in request.token_ids:
        if token_id in seen:
            message = DUPLICATE_TOKEN
        elif token_id not in owned:
            message = UNKNOWN_NFT
        else:
            seen.add(token_id)
            accepted_ids.append(token_id)
            continue
        outcomes.append(MigrationOutcome(
            token_address=request.token_address, token_id=token_id, amount=1, message=message
        ))

    if not accepted_ids:
        return None, outcomes
    return AcceptedTransfer(snapshot=snapshot, token_ids=accepted_ids), outcomes


def reconcile(
    requests: Optional[List[TransferRequest]],
    snapshots: List[TokenSnapshot],
) -> Tuple[List[AcceptedTransfer], List[MigrationOutcome]]:
    """
    Validate requests against the snapshot.

    When ``requests`` is None every held asset is accepted for its full
    balance (all owned ids for NFTs); zero balances are skipped.

    Args:
        requests: Caller transfer requests, or None for "migrate everything".
        snapshots: Balance snapshot of the source account.

    Returns:
        Tuple of (accepted transfers in request order, immediate outcomes in
        request order).
    """
    if requests is None:
        accepted = []
        for snapshot in snapshots:
            if snapshot.is_nft and snapshot.owned_token_ids:
                accepted.append(AcceptedTransfer(snapshot=snapshot, token_ids=snapshot.owned_token_ids))
            elif not snapshot.is_nft and snapshot.balance > 0:
                accepted.append(AcceptedTransfer(snapshot=snapshot))
        return accepted, []

    index = _index_snapshots(snapshots)
    seen: Set[str] = set()
    accepted: List[AcceptedTransfer] = []
    outcomes: List[MigrationOutcome] = []

    for request in requests:
        address = request.token_address

        if address in seen:
            logger.warning("Duplicate request for token %s", address)
            outcomes.extend(_duplicate_outcomes(request))
            continue
        seen.add(address)

        snapshot = index.get(address)
        if snapshot is None:
            logger.warning("Requested token %s not found in balances", address)
            outcomes.append(MigrationOutcome(
                token_address=address, amount=request.amount, message=UNKNOWN_TOKEN
            ))
            continue

        if snapshot.is_nft:
            transfer, nft_outcomes = _reconcile_nft(request, snapshot)
            outcomes.extend(nft_outcomes)
            if transfer is not None:
                accepted.append(transfer)
            continue

        if request.amount is not None and request.amount > snapshot.balance:
            logger.warning("Requested %s of %s exceeds balance %s",
                           request.amount, address, snapshot.balance)
            outcomes.append(MigrationOutcome(
                token_address=address, amount=request.amount, message=AMOUNT_EXCEEDS_BALANCE
            ))
            continue

        accepted.append(AcceptedTransfer(snapshot=snapshot, amount=request.amount))

    return accepted, outcomes
