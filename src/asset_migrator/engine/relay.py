"""
Relay Dispatch

Hands every signed authorization of a gasless migration to the relay service
in one call and turns the per-authorization results into per-token outcomes.

The forwarding variant also pays the relay fee: before dispatch, whole
entries of the Permit2 batch are re-pointed at the treasury address until
their USD value covers the fee. Permit2 does not sign ``transferDetails``, so
re-routing only re-encodes the call data; the signature stays valid.
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..adapters.evm.constants import PERMIT2_ADDRESS
from ..adapters.evm.schemas import (
    PermitAuthorization,
    Permit2SingleTransfer,
    Permit2BatchTransfer,
    TransferDetail,
)
from ..clients.http_client import MigrationApiClient
from ..schemas.bases import AssetKind, MigrationOutcome, TokenSnapshot
from ..schemas.https import RelayedAuthorization, RelayResult, TokenInfo

logger = logging.getLogger(__name__)

PERMIT_SENT = "Token permit tx sent"
RELAY_SENT = "Transaction sent"
RELAY_FAILED = "Transaction failed"
INSUFFICIENT_FEE_BALANCE = "Token does not have enough balance to pay for fee"

WEI_PER_NATIVE = 10 ** 18


def permit_authorization(permit: PermitAuthorization) -> RelayedAuthorization:
    """Relay entry for an ERC-2612 permit (called on the token itself)."""
    return RelayedAuthorization(
        type="PERMIT",
        token_info=[TokenInfo(token_address=permit.token_address, amount=permit.value)],
        target=permit.token_address,
        data=permit.call_data,
    )


def permit2_authorization(transfer) -> RelayedAuthorization:
    """Relay entry for a signed Permit2 single or batch transfer."""
    if isinstance(transfer, Permit2BatchTransfer):
        return RelayedAuthorization(
            type="PERMIT2_BATCH",
            token_info=[
                TokenInfo(token_address=entry.token, amount=entry.amount)
                for entry in transfer.permitted
            ],
            target=PERMIT2_ADDRESS,
            data=transfer.call_data,
        )
    if isinstance(transfer, Permit2SingleTransfer):
        return RelayedAuthorization(
            type="PERMIT2_SINGLE",
            token_info=[TokenInfo(token_address=transfer.token_address, amount=transfer.amount)],
            target=PERMIT2_ADDRESS,
            data=transfer.call_data,
        )
    raise TypeError(f"Not a Permit2 transfer: {type(transfer).__name__}")


# ============================================================================
# Fee routing (forwarding variant)
# ============================================================================

def relay_fee_usd(gas_units: int, gas_price: int, native_usd_price: float) -> float:
    """USD cost of ``gas_units`` at ``gas_price`` wei."""
    return gas_units * gas_price / WEI_PER_NATIVE * native_usd_price


def token_usd_value(amount: int, snapshot: Optional[TokenSnapshot]) -> float:
    """
    USD value of ``amount`` smallest units.

    Stablecoins without a quote count at 1 USD; other tokens without a quote
    are worth nothing for fee purposes.
    """
    if snapshot is None or snapshot.decimals is None:
        return 0.0
    if snapshot.quote_rate is not None:
        rate = snapshot.quote_rate
    elif snapshot.kind is AssetKind.STABLECOIN:
        rate = 1.0
    else:
        rate = 0.0
    return amount / 10 ** snapshot.decimals * rate


def select_fee_entries(values: Sequence[float], fee_usd: float) -> Optional[List[int]]:
    """
    Pick batch indexes whose combined value covers ``fee_usd``.

    The cheapest single entry that covers the fee wins. Otherwise entries are
    taken largest first until the fee is covered.

    Returns:
        Selected indexes in ascending order, ``[]`` for a zero fee, or None
        when the whole batch cannot cover the fee.
    """
    if fee_usd <= 0:
        return []

    covering = [i for i, value in enumerate(values) if value >= fee_usd]
    if covering:
        return [min(covering, key=lambda i: values[i])]

    selected: List[int] = []
    total = 0.0
    for i in sorted(range(len(values)), key=lambda i: values[i], reverse=True):
        if values[i] <= 0:
            break
        selected.append(i)
        total += values[i]
        if total >= fee_usd:
            return sorted(selected)
    return None


def route_fee_entries(
    batch: Permit2BatchTransfer,
    snapshots: List[TokenSnapshot],
    fee_usd: float,
    treasury: str,
    encode: Callable[[Permit2BatchTransfer], str],
) -> Tuple[Optional[Permit2BatchTransfer], List[MigrationOutcome]]:
    """
    Re-route enough batch entries to ``treasury`` to pay ``fee_usd``.

    Args:
        batch: Signed Permit2 batch, every entry pointed at the receiver.
        snapshots: Balance snapshot (decimals, kind and quote per token).
        fee_usd: Relay fee in USD.
        treasury: Fee collection address.
        encode: Re-encodes the batch call data after re-routing.

    Returns:
        Tuple of (routed batch or None when the fee cannot be covered,
        fee outcomes). Entries left on the receiver that are worth less
        than the fee are reported but still transferred.
    """
    index: Dict[str, TokenSnapshot] = {s.token_address: s for s in snapshots}
    values = [token_usd_value(entry.amount, index.get(entry.token.lower())) for entry in batch.permitted]

    selected = select_fee_entries(values, fee_usd)
    if selected is None:
        logger.warning("Batch worth %.6f USD cannot cover relay fee %.6f USD", sum(values), fee_usd)
        return None, [
            MigrationOutcome(token_address=entry.token, amount=entry.amount,
                             message=INSUFFICIENT_FEE_BALANCE)
            for entry in batch.permitted
        ]

    outcomes = [
        MigrationOutcome(token_address=entry.token, amount=entry.amount,
                         message=INSUFFICIENT_FEE_BALANCE)
        for i, entry in enumerate(batch.permitted)
        if i not in selected and values[i] < fee_usd
    ]

    details = [
        TransferDetail(to=treasury, requested_amount=detail.requested_amount) if i in selected else detail
        for i, detail in enumerate(batch.transfer_details)
    ]
    routed = batch.model_copy(update={"transfer_details": details})
    routed = routed.model_copy(update={"call_data": encode(routed)})

    logger.info(
        "Routing %s to treasury %s for a %.6f USD relay fee",
        [batch.permitted[i].token for i in selected], treasury, fee_usd,
    )
    return routed, outcomes


# ============================================================================
# Dispatch
# ============================================================================

def _result_message(result: RelayResult, status_as_message: bool) -> str:
    if not result.task_id:
        return RELAY_FAILED
    if status_as_message and result.status:
        return result.status
    return PERMIT_SENT if result.type == "PERMIT" else RELAY_SENT


class RelayDispatcher:
    """
    Sends relayed authorizations and maps the relay's answer to outcomes.

    Args:
        client: Migration backend client.
        chain_id: Chain the authorizations are for.
        status_as_message: Report the relay status string as the outcome
            message (forwarding variant) instead of the fixed texts.
    """

    def __init__(self, client: MigrationApiClient, chain_id: int, status_as_message: bool = False):
        self._client = client
        self._chain_id = chain_id
        self._status_as_message = status_as_message

    async def dispatch(self, authorizations: List[RelayedAuthorization]) -> List[MigrationOutcome]:
        """
        Submit ``authorizations`` in one relay call.

        Every token of every result becomes one outcome carrying the result's
        task id and status, in relay response order. An authorization the
        relay did not answer is reported as failed.

        Raises:
            NetworkError: If the relay call fails.
        """
        if not authorizations:
            return []

        results = await self._client.dispatch_relay(self._chain_id, authorizations)

        outcomes: List[MigrationOutcome] = []
        for position, result in enumerate(results):
            token_info = result.token_info
            if not token_info and position < len(authorizations):
                token_info = authorizations[position].token_info
            message = _result_message(result, self._status_as_message)
            if message == RELAY_FAILED:
                logger.warning("Relay rejected %s authorization for %s",
                               result.type, [t.token_address for t in token_info])
            outcomes.extend(
                MigrationOutcome(
                    token_address=info.token_address,
                    amount=info.amount,
                    task_id=result.task_id,
                    status=result.status,
                    message=message,
                )
                for info in token_info
            )

        for authorization in authorizations[len(results):]:
            logger.warning("Relay returned no result for %s authorization", authorization.type)
            outcomes.extend(
                MigrationOutcome(token_address=info.token_address, amount=info.amount, message=RELAY_FAILED)
                for info in authorization.token_info
            )
        return outcomes
