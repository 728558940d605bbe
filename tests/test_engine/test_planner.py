"""
Planner Test Suite

Tests the per-asset mechanism choice, native amount and fee budget, and the
Permit2 single vs. batch selection.
"""

import pytest

from migration_mocks import (
    MOCK_OWNER_ADDRESS,
    MOCK_RECEIVER_ADDRESS,
    NATIVE_ADDRESS,
    USDA1_ADDRESS,
    USDA2_ADDRESS,
    USDB_ADDRESS,
    NFT_ADDRESS,
    make_native_snapshot,
    make_token_snapshot,
    make_nft_snapshot,
)

from asset_migrator.engine.planner import (
    MigrationMode,
    Permit2Strategy,
    effective_permit2_allowance,
    plan,
    select_permit2_strategy,
)
from asset_migrator.engine.reconciler import AcceptedTransfer
from asset_migrator.schemas.bases import AssetKind


def accept(snapshot, amount=None, token_ids=None) -> AcceptedTransfer:
    return AcceptedTransfer(snapshot=snapshot, amount=amount, token_ids=token_ids or [])


class TestNativeTransfer:

    def test_default_amount_is_eighty_percent_floored(self):
        native = make_native_snapshot(balance=0x989680)
        result = plan([accept(native)], [native], MOCK_OWNER_ADDRESS, MOCK_RECEIVER_ADDRESS)

        assert result.native.amount == 0x7A1200
        assert result.native.to_address == MOCK_RECEIVER_ADDRESS
        assert result.fee_budget == 0x989680 - 0x7A1200

    def test_odd_balance_rounds_down(self):
        native = make_native_snapshot(balance=101)
        result = plan([accept(native)], [native], MOCK_OWNER_ADDRESS, MOCK_RECEIVER_ADDRESS)
        assert result.native.amount == 80

    def test_explicit_amount(self):
        native = make_native_snapshot(balance=1000)
        result = plan([accept(native, amount=900)], [native], MOCK_OWNER_ADDRESS, MOCK_RECEIVER_ADDRESS)

        assert result.native.amount == 900
        assert result.fee_budget == 100

    def test_budget_is_full_native_balance_when_native_not_requested(self):
        native = make_native_snapshot(balance=5000)
        token = make_token_snapshot(USDA1_ADDRESS, balance=10)
        result = plan([accept(token)], [native, token], MOCK_OWNER_ADDRESS, MOCK_RECEIVER_ADDRESS)

        assert result.native is None
        assert result.fee_budget == 5000

    def test_no_native_snapshot_means_no_budget(self):
        token = make_token_snapshot(USDA1_ADDRESS, balance=10)
        result = plan([accept(token)], [token], MOCK_OWNER_ADDRESS, MOCK_RECEIVER_ADDRESS)
        assert result.fee_budget == 0


class TestErc20Tracks:

    def test_unlimited_allowance_goes_to_permit2(self):
        token = make_token_snapshot(USDB_ADDRESS, balance=10, permit2_allowance=-1)
        result = plan([accept(token)], [token], MOCK_OWNER_ADDRESS, MOCK_RECEIVER_ADDRESS)

        assert [t.token_address for t in result.permit2_candidates] == [USDB_ADDRESS]
        assert result.erc20_transfers == []

    def test_allowance_below_amount_counts_as_zero(self):
        token = make_token_snapshot(USDA2_ADDRESS, balance=0x1DCD6500, permit2_allowance=0x1DCD650)
        transfer = accept(token)

        assert effective_permit2_allowance(transfer) == 0
        result = plan([transfer], [token], MOCK_OWNER_ADDRESS, MOCK_RECEIVER_ADDRESS)
        assert len(result.erc20_transfers) == 1

    def test_permit_capable_token_uses_permit_only_when_relayed(self):
        token = make_token_snapshot(USDA1_ADDRESS, balance=10, permit_exists=True)

        gasless = plan([accept(token)], [token], MOCK_OWNER_ADDRESS, MOCK_RECEIVER_ADDRESS,
                       MigrationMode.GASLESS)
        direct = plan([accept(token)], [token], MOCK_OWNER_ADDRESS, MOCK_RECEIVER_ADDRESS,
                      MigrationMode.DIRECT)

        assert [t.token_address for t in gasless.permit_candidates] == [USDA1_ADDRESS]
        assert gasless.erc20_transfers == []
        assert direct.permit_candidates == []
        assert direct.erc20_transfers[0].amount == 10

    def test_erc20_transfer_keeps_asset_kind(self):
        token = make_token_snapshot(USDA1_ADDRESS, balance=10, kind=AssetKind.STABLECOIN)
        result = plan([accept(token, amount=3)], [token], MOCK_OWNER_ADDRESS, MOCK_RECEIVER_ADDRESS)

        assert result.erc20_transfers[0].kind is AssetKind.STABLECOIN
        assert result.erc20_transfers[0].amount == 3


class TestNftTransfers:

    def test_one_transfer_per_token_id(self):
        nft = make_nft_snapshot(NFT_ADDRESS, ["1", "2", "3"])
        result = plan([accept(nft, token_ids=["1", "3"])], [nft], MOCK_OWNER_ADDRESS, MOCK_RECEIVER_ADDRESS)

        assert [(t.token_id, t.amount) for t in result.nft_transfers] == [("1", 1), ("3", 1)]

    def test_direct_transactions_order(self):
        native = make_native_snapshot()
        token = make_token_snapshot(USDA1_ADDRESS, balance=10)
        nft = make_nft_snapshot(NFT_ADDRESS, ["7"])
        accepted = [accept(nft, token_ids=["7"]), accept(token), accept(native)]

        result = plan(accepted, [native, token, nft], MOCK_OWNER_ADDRESS, MOCK_RECEIVER_ADDRESS)

        assert [tx.type for tx in result.direct_transactions()] == ["native", "erc20", "nft"]
        assert result.direct_transactions()[0].token_address == NATIVE_ADDRESS


class TestPermit2Strategy:

    @pytest.mark.parametrize("count, expected", [
        (0, Permit2Strategy.NONE),
        (1, Permit2Strategy.SINGLE),
        (2, Permit2Strategy.BATCH),
        (5, Permit2Strategy.BATCH),
    ])
    def test_selection_by_count(self, count, expected):
        token = make_token_snapshot(USDB_ADDRESS, balance=10, permit2_allowance=-1)
        assert select_permit2_strategy([accept(token)] * count) is expected

    def test_mode_is_relayed(self):
        assert not MigrationMode.DIRECT.is_relayed
        assert MigrationMode.GASLESS.is_relayed
        assert MigrationMode.FORWARD.is_relayed
