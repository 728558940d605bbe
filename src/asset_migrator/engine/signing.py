"""
Permit / Permit2 Signing Subsystem

Phase 1 of a migration: every off-chain signature is produced here before
anything is submitted.

    - ERC-2612 permits are signed concurrently, one task per token. A failed
      token gets "Permit token failed" and does not affect its siblings.
    - Once the Permit2 set is final, one Permit2 signature is produced:
      single-token for one entry, batch for two or more. A failure abandons
      the attempt and marks each affected token "Token transfer failed".

No signing error escapes this module.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple, Union

from .exceptions import SigningError
from .planner import Permit2Strategy, select_permit2_strategy
from .reconciler import AcceptedTransfer
from ..adapters.evm.adapter import EVMChainGateway
from ..adapters.evm.constants import (
    PERMIT2_ADDRESS,
    MAX_UINT256,
    PERMIT_DEADLINE_SECONDS,
    PERMIT2_DEADLINE_SECONDS,
    DEFAULT_MAX_NONCE_ATTEMPTS,
)
from ..adapters.evm.schemas import (
    PermitAuthorization,
    PermittedToken,
    Permit2SingleTransfer,
    Permit2BatchTransfer,
)
from ..adapters.evm.signatures import (
    sign_erc2612_permit,
    sign_permit2_single,
    sign_permit2_batch,
    find_unused_permit2_nonce,
)
from ..schemas.bases import MigrationOutcome

logger = logging.getLogger(__name__)

PERMIT_FAILED = "Permit token failed"
PERMIT2_FAILED = "Token transfer failed"

Permit2Transfer = Union[Permit2SingleTransfer, Permit2BatchTransfer]


@dataclass
class PermitSigningResult:
    """
    Result of the concurrent permit phase.

    Attributes:
        permits: Signed permits, in input order.
        authorized: Tokens whose permit was signed (now Permit2-eligible).
        outcomes: "Permit token failed" outcomes, in input order.
    """
    permits: List[PermitAuthorization] = field(default_factory=list)
    authorized: List[AcceptedTransfer] = field(default_factory=list)
    outcomes: List[MigrationOutcome] = field(default_factory=list)


class PermitSigner:
    """
    Produces every signature a migration call needs.

    Args:
        gateway: Chain gateway of the source account (signer + reads).
        chain_id: EVM chain id used in every EIP-712 domain.
        max_nonce_attempts: Bound on the Permit2 nonce bitmap search.
        clock: Returns the current unix time; deadlines are relative to it.
    """

    def __init__(
        self,
        gateway: EVMChainGateway,
        chain_id: int,
        max_nonce_attempts: int = DEFAULT_MAX_NONCE_ATTEMPTS,
        clock: Callable[[], float] = time.time,
    ):
        self._gateway = gateway
        self._chain_id = chain_id
        self._max_nonce_attempts = max_nonce_attempts
        self._clock = clock

    # ------------------------------------------------------------------
    # ERC-2612
    # ------------------------------------------------------------------

    async def _sign_permit(self, transfer: AcceptedTransfer) -> PermitAuthorization:
        token = transfer.token_address
        try:
            name, nonce = await asyncio.gather(
                self._gateway.get_token_name(token),
                self._gateway.get_permit_nonce(token),
            )
            permit = sign_erc2612_permit(
                signer=self._gateway.signer,
                token=token,
                token_name=name,
                chain_id=self._chain_id,
                spender=PERMIT2_ADDRESS,
                value=MAX_UINT256,
                nonce=nonce,
                deadline=int(self._clock()) + PERMIT_DEADLINE_SECONDS,
            )
            return permit.model_copy(update={"call_data": self._gateway.encode_permit_call(permit)})
        except SigningError:
            raise
        except Exception as e:
            raise SigningError(f"Permit signing failed for {token}: {e}") from e

    async def sign_permits(self, tokens: List[AcceptedTransfer]) -> PermitSigningResult:
        """
        Sign ERC-2612 permits for ``tokens`` concurrently.

        Results are collected in input order regardless of completion order.
        """
        result = PermitSigningResult()
        if not tokens:
            return result

        settled = await asyncio.gather(
            *(self._sign_permit(transfer) for transfer in tokens),
            return_exceptions=True,
        )

        for transfer, outcome in zip(tokens, settled):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, Exception):
                logger.warning("Permit failed for %s: %s", transfer.token_address, outcome)
                result.outcomes.append(MigrationOutcome(
                    token_address=transfer.token_address,
                    amount=transfer.resolved_amount,
                    message=PERMIT_FAILED,
                ))
                continue
            result.permits.append(outcome)
            result.authorized.append(transfer)

        logger.info("Signed %d of %d permits", len(result.permits), len(tokens))
        return result

    # ------------------------------------------------------------------
    # Permit2
    # ------------------------------------------------------------------

    async def _sign_permit2(
        self,
        tokens: List[AcceptedTransfer],
        strategy: Permit2Strategy,
        spender: str,
        recipient: str,
    ) -> Permit2Transfer:
        try:
            nonce = await find_unused_permit2_nonce(
                self._gateway.get_permit2_nonce_bitmap,
                self._gateway.owner,
                max_attempts=self._max_nonce_attempts,
            )
            deadline = int(self._clock()) + PERMIT2_DEADLINE_SECONDS

            if strategy is Permit2Strategy.SINGLE:
                transfer = sign_permit2_single(
                    signer=self._gateway.signer,
                    chain_id=self._chain_id,
                    spender=spender,
                    recipient=recipient,
                    token=tokens[0].token_address,
                    amount=tokens[0].resolved_amount,
                    nonce=nonce,
                    deadline=deadline,
                )
                call_data = self._gateway.encode_permit2_single_call(transfer)
            else:
                transfer = sign_permit2_batch(
                    signer=self._gateway.signer,
                    chain_id=self._chain_id,
                    spender=spender,
                    recipient=recipient,
                    tokens=[
                        PermittedToken(token=t.token_address, amount=t.resolved_amount)
                        for t in tokens
                    ],
                    nonce=nonce,
                    deadline=deadline,
                )
                call_data = self._gateway.encode_permit2_batch_call(transfer)

            return transfer.model_copy(update={"call_data": call_data})
        except SigningError:
            raise
        except Exception as e:
            raise SigningError(f"Permit2 signing failed: {e}") from e

    async def sign_permit2(
        self,
        tokens: List[AcceptedTransfer],
        spender: str,
        recipient: str,
        batch_only: bool = False,
    ) -> Tuple[Optional[Permit2Transfer], List[MigrationOutcome]]:
        """
        Produce the Permit2 signature for the final eligible set.

        Args:
            tokens: Permit2-eligible transfers, in request order.
            spender: Address that will call ``permitTransferFrom``.
            recipient: Destination of every entry.
            batch_only: Sign a batch even for a single token, so entries
                can later be re-routed.

        Returns:
            Tuple of (signed transfer or None, failure outcomes). The transfer
            is None when ``tokens`` is empty or signing failed.
        """
        strategy = select_permit2_strategy(tokens)
        if strategy is Permit2Strategy.NONE:
            return None, []
        if batch_only:
            strategy = Permit2Strategy.BATCH

        try:
            transfer = await self._sign_permit2(tokens, strategy, spender, recipient)
        except SigningError as e:
            logger.warning(
                "Abandoning Permit2 %s transfer of %s: %s",
                strategy.value, [t.token_address for t in tokens], e,
            )
            return None, [
                MigrationOutcome(
                    token_address=t.token_address,
                    amount=t.resolved_amount,
                    message=PERMIT2_FAILED,
                )
                for t in tokens
            ]

        logger.info("Signed Permit2 %s transfer for %d token(s)", strategy.value, len(tokens))
        return transfer, []
