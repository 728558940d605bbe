"""
Transaction Planner

Turns reconciled transfers into concrete planned transactions and into the
two signature tracks handled by the signing subsystem:

    - native / dust      -> one NativeTransfer (80% of balance by default)
    - NFT                -> one NftTransfer per token id
    - ERC-20, Permit2 allowance covers the amount -> Permit2 track
    - ERC-20, ERC-2612 capable, no allowance (relayed modes only) -> permit track
    - any other ERC-20   -> Erc20Transfer

The Permit2 strategy (single vs. batch) is chosen later by
``select_permit2_strategy`` because permit signing can enlarge the set.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .reconciler import AcceptedTransfer
from ..adapters.evm.constants import NATIVE_TRANSFER_PERCENT
from ..adapters.evm.schemas import NativeTransfer, Erc20Transfer, NftTransfer
from ..schemas.bases import TokenSnapshot, UNLIMITED_ALLOWANCE

logger = logging.getLogger(__name__)


class MigrationMode(str, Enum):
    """How signed work reaches the chain."""
    DIRECT = "direct"
    GASLESS = "gasless"
    FORWARD = "forward"

    @property
    def is_relayed(self) -> bool:
        return self is not MigrationMode.DIRECT


class Permit2Strategy(str, Enum):
    NONE = "none"
    SINGLE = "single"
    BATCH = "batch"


@dataclass
class MigrationPlan:
    """
    Output of the planner for one migration call.

    Attributes:
        native: Native transfer, when the native asset was requested.
        erc20_transfers: Direct ERC-20 transfers.
        nft_transfers: One entry per NFT token id.
        permit_candidates: Tokens needing an ERC-2612 permit before Permit2.
        permit2_candidates: Tokens already transferable through Permit2.
        fee_budget: Native balance left for fees after the native transfer.
    """
    native: Optional[NativeTransfer] = None
    erc20_transfers: List[Erc20Transfer] = field(default_factory=list)
    nft_transfers: List[NftTransfer] = field(default_factory=list)
    permit_candidates: List[AcceptedTransfer] = field(default_factory=list)
    permit2_candidates: List[AcceptedTransfer] = field(default_factory=list)
    fee_budget: int = 0

    def direct_transactions(self) -> list:
        """Native, ERC-20 and NFT transfers, in plan order."""
        head = [self.native] if self.native is not None else []
        return [*head, *self.erc20_transfers, *self.nft_transfers]


def effective_permit2_allowance(transfer: AcceptedTransfer) -> int:
    """
    Permit2 allowance usable for this transfer.

    A finite allowance that cannot cover the amount counts as no allowance.
    """
    allowance = transfer.snapshot.permit2_allowance
    if allowance == UNLIMITED_ALLOWANCE:
        return allowance
    if 0 <= allowance < transfer.resolved_amount:
        return 0
    return allowance


def is_permit2_eligible(transfer: AcceptedTransfer) -> bool:
    allowance = effective_permit2_allowance(transfer)
    return allowance == UNLIMITED_ALLOWANCE or allowance > 0


def is_permit_eligible(transfer: AcceptedTransfer) -> bool:
    return transfer.snapshot.permit_exists and effective_permit2_allowance(transfer) == 0


def select_permit2_strategy(tokens: List[AcceptedTransfer]) -> Permit2Strategy:
    """Zero tokens: none; one: single transfer; two or more: one batch."""
    if not tokens:
        return Permit2Strategy.NONE
    if len(tokens) == 1:
        return Permit2Strategy.SINGLE
    return Permit2Strategy.BATCH


def native_transfer_amount(transfer: AcceptedTransfer) -> int:
    """Explicit amount, else NATIVE_TRANSFER_PERCENT of the balance (floored)."""
    if transfer.amount:
        return transfer.amount
    return transfer.snapshot.balance * NATIVE_TRANSFER_PERCENT // 100


def _native_snapshot(snapshots: List[TokenSnapshot]) -> Optional[TokenSnapshot]:
    for snapshot in snapshots:
        if snapshot.is_native:
            return snapshot
    return None


def plan(
    accepted: List[AcceptedTransfer],
    snapshots: List[TokenSnapshot],
    owner: str,
    receiver: str,
    mode: MigrationMode = MigrationMode.DIRECT,
) -> MigrationPlan:
    """
    Build the migration plan.

    Args:
        accepted: Reconciled transfers, in request order.
        snapshots: Full balance snapshot (the native entry funds the budget).
        owner: Source account address.
        receiver: Destination address.
        mode: Direct submission or relayed (gasless / forward).

    Returns:
        MigrationPlan: Planned transactions, signature tracks and fee budget.
    """
    result = MigrationPlan()

    native_snapshot = _native_snapshot(snapshots)
    native_amount = 0

    for transfer in accepted:
        snapshot = transfer.snapshot

        if snapshot.is_native:
            if result.native is not None:
                logger.warning("Ignoring second native asset %s", snapshot.token_address)
                continue
            native_amount = native_transfer_amount(transfer)
            native_snapshot = snapshot
            result.native = NativeTransfer(
                from_address=owner,
                to_address=receiver,
                token_address=snapshot.token_address,
                amount=native_amount,
                kind=snapshot.kind,
            )
        elif snapshot.is_nft:
            result.nft_transfers.extend(
                NftTransfer(
                    from_address=owner,
                    to_address=receiver,
                    token_address=snapshot.token_address,
                    token_id=token_id,
                )
                for token_id in transfer.token_ids
            )
        elif is_permit2_eligible(transfer):
            result.permit2_candidates.append(transfer)
        elif mode.is_relayed and is_permit_eligible(transfer):
            result.permit_candidates.append(transfer)
        else:
            result.erc20_transfers.append(Erc20Transfer(
                from_address=owner,
                to_address=receiver,
                token_address=snapshot.token_address,
                amount=transfer.resolved_amount,
                kind=snapshot.kind,
            ))

    if native_snapshot is not None:
        result.fee_budget = max(native_snapshot.balance - native_amount, 0)

    logger.info(
        "Planned %d native, %d ERC-20, %d NFT, %d permit, %d Permit2 transfers",
        1 if result.native else 0,
        len(result.erc20_transfers),
        len(result.nft_transfers),
        len(result.permit_candidates),
        len(result.permit2_candidates),
    )
    return result
