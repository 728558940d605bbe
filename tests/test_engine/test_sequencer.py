"""
Gas Budget Sequencer Test Suite

Cheapest-first ordering, batch-first priority, unconditional debits and
budget monotonicity.
"""

from unittest.mock import AsyncMock

import pytest

from migration_mocks import (
    MOCK_OWNER_ADDRESS,
    MOCK_RECEIVER_ADDRESS,
    MOCK_TX_HASH,
    NATIVE_ADDRESS,
    NFT_ADDRESS,
    USDA1_ADDRESS,
    USDB_ADDRESS,
    FakeGateway,
)

from asset_migrator.adapters.evm.schemas import (
    Erc20Transfer,
    NativeTransfer,
    NftTransfer,
    Permit2BatchTransfer,
    Permit2SingleTransfer,
    PermittedToken,
    TransferDetail,
)
from asset_migrator.engine.exceptions import GasEstimationError, TransactionExecutionError
from asset_migrator.engine.sequencer import (
    ESTIMATION_FAILED,
    INSUFFICIENT_BALANCE,
    GasBudgetSequencer,
    fixed_gas_units,
)
from asset_migrator.schemas.bases import AssetKind


def native(amount=8) -> NativeTransfer:
    return NativeTransfer(from_address=MOCK_OWNER_ADDRESS, to_address=MOCK_RECEIVER_ADDRESS,
                          token_address=NATIVE_ADDRESS, amount=amount)


def erc20(address=USDA1_ADDRESS, amount=5, kind=AssetKind.CRYPTOCURRENCY) -> Erc20Transfer:
    return Erc20Transfer(from_address=MOCK_OWNER_ADDRESS, to_address=MOCK_RECEIVER_ADDRESS,
                         token_address=address, amount=amount, kind=kind)


def nft(token_id="1") -> NftTransfer:
    return NftTransfer(from_address=MOCK_OWNER_ADDRESS, to_address=MOCK_RECEIVER_ADDRESS,
                       token_address=NFT_ADDRESS, token_id=token_id)


def batch(amounts=(1, 2)) -> Permit2BatchTransfer:
    tokens = [USDA1_ADDRESS, USDB_ADDRESS]
    return Permit2BatchTransfer(
        owner=MOCK_OWNER_ADDRESS,
        spender=MOCK_OWNER_ADDRESS,
        permitted=[PermittedToken(token=t, amount=a) for t, a in zip(tokens, amounts)],
        transfer_details=[TransferDetail(to=MOCK_RECEIVER_ADDRESS, requested_amount=a) for a in amounts],
        nonce=1001,
        deadline=1_900_000_000,
        signature="0x" + "00" * 65,
    )


@pytest.fixture
def gateway():
    return FakeGateway(permit2_gas=300000)


class TestGasUnits:

    def test_fixed_units_by_kind(self):
        assert fixed_gas_units(native()) == 100000
        assert fixed_gas_units(nft()) == 100000
        assert fixed_gas_units(erc20()) == 65000
        assert fixed_gas_units(erc20(kind=AssetKind.STABLECOIN)) == 65000
        assert fixed_gas_units(batch()) is None

    @pytest.mark.asyncio
    async def test_estimate_fills_gas_cost_on_a_copy(self, gateway):
        sequencer = GasBudgetSequencer(gateway, gas_price=3)
        tx = erc20()

        estimated = await sequencer.estimate(tx)

        assert estimated.gas_cost == 65000 * 3
        assert tx.gas_cost is None


class TestSequencing:

    @pytest.mark.asyncio
    async def test_cheapest_first_and_stable_on_ties(self, gateway):
        sequencer = GasBudgetSequencer(gateway, gas_price=1)

        outcomes, remaining = await sequencer.sequence([native(), nft("1"), erc20()], 10_000_000)

        assert [o.message for o in outcomes] == [
            "Token transfer tx sent",
            "Native transfer tx sent",
            "Nft transfer tx sent",
        ]
        assert all(o.tx_hash == MOCK_TX_HASH for o in outcomes)
        assert outcomes[2].token_id == "1"
        assert outcomes[2].amount == 1
        assert remaining == 10_000_000 - 265000

    @pytest.mark.asyncio
    async def test_over_budget_is_skipped_without_debit(self, gateway):
        sequencer = GasBudgetSequencer(gateway, gas_price=1)

        outcomes, remaining = await sequencer.sequence([erc20(), native(), nft()], 170000)

        assert [o.message for o in outcomes] == [
            "Token transfer tx sent",
            "Native transfer tx sent",
            INSUFFICIENT_BALANCE,
        ]
        assert remaining == 5000
        assert gateway.submit.await_count == 2

    @pytest.mark.asyncio
    async def test_failed_submission_still_debits(self, gateway):
        gateway.submit = AsyncMock(side_effect=[TransactionExecutionError("reverted"), MOCK_TX_HASH])
        sequencer = GasBudgetSequencer(gateway, gas_price=1)

        outcomes, remaining = await sequencer.sequence([erc20(), native()], 165000)

        assert [o.message for o in outcomes] == ["Token transfer failed", "Native transfer tx sent"]
        assert outcomes[0].tx_hash is None
        assert remaining == 0

    @pytest.mark.asyncio
    async def test_budget_never_increases(self, gateway):
        sequencer = GasBudgetSequencer(gateway, gas_price=2)
        transactions = [erc20(amount=i) for i in range(1, 6)] + [nft(str(i)) for i in range(3)]

        budgets = []
        budget = 600000
        for tx in transactions:
            _, budget = await sequencer.sequence([tx], budget)
            budgets.append(budget)

        assert all(b >= 0 for b in budgets)
        assert budgets == sorted(budgets, reverse=True)


class TestPermit2Submission:

    @pytest.mark.asyncio
    async def test_batch_runs_before_cheaper_transfers(self, gateway):
        sequencer = GasBudgetSequencer(gateway, gas_price=1)

        outcomes, remaining = await sequencer.sequence([erc20(USDB_ADDRESS), native(), batch()], 400000)

        assert [(o.token_address, o.message) for o in outcomes] == [
            (USDA1_ADDRESS, "Token transfer tx sent"),
            (USDB_ADDRESS, "Token transfer tx sent"),
            (USDB_ADDRESS, "Token transfer tx sent"),
            (NATIVE_ADDRESS, INSUFFICIENT_BALANCE),
        ]
        assert remaining == 400000 - 300000 - 65000

    @pytest.mark.asyncio
    async def test_batch_over_budget_fails_every_token(self, gateway):
        sequencer = GasBudgetSequencer(gateway, gas_price=1)

        outcomes, remaining = await sequencer.sequence([batch((7, 8))], 1000)

        assert [(o.amount, o.message) for o in outcomes] == [
            (7, "Token transfer failed"),
            (8, "Token transfer failed"),
        ]
        assert remaining == 1000
        gateway.submit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_single_transfer_is_simulated(self, gateway):
        single = Permit2SingleTransfer(
            owner=MOCK_OWNER_ADDRESS,
            spender=MOCK_OWNER_ADDRESS,
            recipient=MOCK_RECEIVER_ADDRESS,
            permitted=PermittedToken(token=USDB_ADDRESS, amount=4),
            nonce=1002,
            deadline=1_900_000_000,
            signature="0x" + "00" * 65,
        )
        gateway.estimate_gas = AsyncMock(return_value=50000)
        sequencer = GasBudgetSequencer(gateway, gas_price=1)

        outcomes, remaining = await sequencer.sequence([erc20(), single], 1_000_000)

        assert [o.token_address for o in outcomes] == [USDB_ADDRESS, USDA1_ADDRESS]
        assert remaining == 1_000_000 - 50000 - 65000

    @pytest.mark.asyncio
    async def test_estimation_failure_is_reported(self, gateway):
        gateway.estimate_gas = AsyncMock(side_effect=GasEstimationError("execution reverted"))
        sequencer = GasBudgetSequencer(gateway, gas_price=1)

        outcomes, remaining = await sequencer.sequence([batch()], 1_000_000)

        assert [o.message for o in outcomes] == [ESTIMATION_FAILED, ESTIMATION_FAILED]
        assert remaining == 1_000_000
