"""
Gas Budget Sequencer

Phase 2 of a migration: admits on-chain submissions one at a time against a
shared, depleting fee budget (the native balance left after the native
transfer).

Algorithm:
    1. Cost every transaction: NFT and dust transfers use GAS_UNITS["nft"],
       stablecoin / cryptocurrency transfers use GAS_UNITS["cryptocurrency"],
       Permit2 calls are simulated. Cost = units * gas price.
    2. A Permit2 batch goes first, outside the sort order.
    3. Everything else runs cheapest first (stable on ties).
    4. cost > budget -> "Insufficient balance for transaction", no debit.
       Otherwise submit, report sent/failed, and debit the cost either way.

The budget is passed in and returned; nothing else mutates it.
"""

import logging
from typing import List, Optional, Tuple

from .exceptions import ExecutionError, GasEstimationError
from ..adapters.evm.adapter import EVMChainGateway, SubmittableTransaction
from ..adapters.evm.constants import GAS_UNITS
from ..adapters.evm.schemas import (
    NativeTransfer,
    Erc20Transfer,
    NftTransfer,
    Permit2BatchTransfer,
)
from ..schemas.bases import AssetKind, MigrationOutcome

logger = logging.getLogger(__name__)

INSUFFICIENT_BALANCE = "Insufficient balance for transaction"
ESTIMATION_FAILED = "Unable to estimate gas"
TOKEN_SENT = "Token transfer tx sent"
TOKEN_FAILED = "Token transfer failed"

_MESSAGES = {
    "native": ("Native transfer tx sent", "Native transfer failed"),
    "erc20": (TOKEN_SENT, TOKEN_FAILED),
    "nft": ("Nft transfer tx sent", "Nft transfer failed"),
    "permit2_single": (TOKEN_SENT, TOKEN_FAILED),
    "permit2_batch": (TOKEN_SENT, TOKEN_FAILED),
}


def fixed_gas_units(tx: SubmittableTransaction) -> Optional[int]:
    """Gas units for transfers that are not simulated, else None."""
    if isinstance(tx, (NativeTransfer, Erc20Transfer, NftTransfer)):
        kind = AssetKind.NFT if isinstance(tx, NftTransfer) else tx.kind
        if kind in (AssetKind.NFT, AssetKind.DUST):
            return GAS_UNITS["nft"]
        if kind in (AssetKind.STABLECOIN, AssetKind.CRYPTOCURRENCY):
            return GAS_UNITS["cryptocurrency"]
    return None


def _outcomes_for(
    tx: SubmittableTransaction, message: str, tx_hash: Optional[str] = None
) -> List[MigrationOutcome]:
    """One outcome per unit of work: per inner token for a batch."""
    if isinstance(tx, Permit2BatchTransfer):
        return [
            MigrationOutcome(token_address=entry.token, amount=entry.amount,
                             tx_hash=tx_hash, message=message)
            for entry in tx.permitted
        ]
    return [MigrationOutcome(
        token_address=tx.token_address,
        amount=tx.amount,
        token_id=tx.token_id if isinstance(tx, NftTransfer) else None,
        tx_hash=tx_hash,
        message=message,
    )]


class GasBudgetSequencer:
    """
    Sequential, budget-constrained submitter.

    Args:
        gateway: Chain gateway used for simulation and submission.
        gas_price: Gas price in wei for the whole call.
    """

    def __init__(self, gateway: EVMChainGateway, gas_price: int):
        self._gateway = gateway
        self._gas_price = gas_price

    async def estimate(self, tx: SubmittableTransaction) -> SubmittableTransaction:
        """
        Return a copy of ``tx`` with ``gas_cost`` (wei) filled in.

        Raises:
            GasEstimationError: If simulation fails.
        """
        units = fixed_gas_units(tx)
        if units is None:
            units = await self._gateway.estimate_gas(tx)
        return tx.model_copy(update={"gas_cost": units * self._gas_price})

    async def _execute(self, tx: SubmittableTransaction) -> List[MigrationOutcome]:
        sent, failed = _MESSAGES[tx.type]
        try:
            tx_hash = await self._gateway.submit(tx)
        except ExecutionError as e:
            logger.warning("%s transfer of %s failed: %s", tx.type, tx.token_addresses(), e)
            return _outcomes_for(tx, failed)
        return _outcomes_for(tx, sent, tx_hash)

    async def sequence(
        self,
        transactions: List[SubmittableTransaction],
        remaining_balance: int,
    ) -> Tuple[List[MigrationOutcome], int]:
        """
        Execute ``transactions`` against ``remaining_balance``.

        Args:
            transactions: Planned transactions the owner submits directly.
            remaining_balance: Fee budget in wei.

        Returns:
            Tuple of (outcomes in execution order, final budget).
        """
        outcomes: List[MigrationOutcome] = []
        batches = [tx for tx in transactions if isinstance(tx, Permit2BatchTransfer)]
        others = [tx for tx in transactions if not isinstance(tx, Permit2BatchTransfer)]

        for batch in batches:
            try:
                batch = await self.estimate(batch)
            except GasEstimationError as e:
                logger.warning("Permit2 batch estimation failed: %s", e)
                outcomes.extend(_outcomes_for(batch, ESTIMATION_FAILED))
                continue
            if batch.gas_cost > remaining_balance:
                logger.warning("Permit2 batch cost %s exceeds budget %s", batch.gas_cost, remaining_balance)
                outcomes.extend(_outcomes_for(batch, TOKEN_FAILED))
                continue
            outcomes.extend(await self._execute(batch))
            remaining_balance -= batch.gas_cost

        estimated: List[SubmittableTransaction] = []
        for tx in others:
            try:
                estimated.append(await self.estimate(tx))
            except GasEstimationError as e:
                logger.warning("Dropping %s transfer of %s: %s", tx.type, tx.token_addresses(), e)
                outcomes.extend(_outcomes_for(tx, ESTIMATION_FAILED))

        for tx in sorted(estimated, key=lambda t: t.gas_cost):
            if tx.gas_cost > remaining_balance:
                logger.info("Skipping %s transfer of %s: cost %s > budget %s",
                            tx.type, tx.token_addresses(), tx.gas_cost, remaining_balance)
                outcomes.extend(_outcomes_for(tx, INSUFFICIENT_BALANCE))
                continue
            outcomes.extend(await self._execute(tx))
            remaining_balance -= tx.gas_cost

        return outcomes, remaining_balance
