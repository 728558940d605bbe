"""
Reconciler Test Suite

Tests request validation against the balance snapshot: unknown tokens,
duplicates, over-balance amounts, NFT id filtering and the
"migrate everything" default.
"""

import pytest

from migration_mocks import (
    NATIVE_ADDRESS,
    USDA1_ADDRESS,
    USDB_ADDRESS,
    NFT_ADDRESS,
    UNKNOWN_ADDRESS,
    make_native_snapshot,
    make_token_snapshot,
    make_nft_snapshot,
)

from asset_migrator.engine.reconciler import (
    AMOUNT_EXCEEDS_BALANCE,
    DUPLICATE_TOKEN,
    UNKNOWN_NFT,
    UNKNOWN_TOKEN,
    reconcile,
)
from asset_migrator.schemas.bases import TransferRequest


@pytest.fixture
def snapshots():
    return [
        make_native_snapshot(balance=0x989680),
        make_token_snapshot(USDA1_ADDRESS, balance=1000),
        make_token_snapshot(USDB_ADDRESS, balance=0),
        make_nft_snapshot(NFT_ADDRESS, ["1", "2", "3"]),
    ]


def request(address, amount=None, token_ids=None) -> TransferRequest:
    return TransferRequest(token_address=address, amount=amount, token_ids=token_ids)


class TestFungibleRequests:

    def test_accepts_known_token_with_explicit_amount(self, snapshots):
        accepted, outcomes = reconcile([request(USDA1_ADDRESS, 400)], snapshots)

        assert outcomes == []
        assert len(accepted) == 1
        assert accepted[0].token_address == USDA1_ADDRESS
        assert accepted[0].resolved_amount == 400

    def test_missing_or_zero_amount_means_full_balance(self, snapshots):
        accepted, _ = reconcile([request(USDA1_ADDRESS)], snapshots)
        assert accepted[0].resolved_amount == 1000

        accepted, _ = reconcile([request(USDA1_ADDRESS, 0)], snapshots)
        assert accepted[0].resolved_amount == 1000

    def test_unknown_token(self, snapshots):
        accepted, outcomes = reconcile([request(UNKNOWN_ADDRESS, 5)], snapshots)

        assert accepted == []
        assert len(outcomes) == 1
        assert outcomes[0].token_address == UNKNOWN_ADDRESS
        assert outcomes[0].amount == 5
        assert outcomes[0].message == UNKNOWN_TOKEN

    def test_amount_greater_than_balance_is_echoed_not_clamped(self, snapshots):
        accepted, outcomes = reconcile([request(USDA1_ADDRESS, 1001)], snapshots)

        assert accepted == []
        assert outcomes[0].amount == 1001
        assert outcomes[0].message == AMOUNT_EXCEEDS_BALANCE

    def test_duplicate_address_is_case_insensitive_and_first_wins(self, snapshots):
        requests = [
            request(USDA1_ADDRESS, 10),
            request(USDA1_ADDRESS.upper().replace("0X", "0x"), 20),
        ]
        accepted, outcomes = reconcile(requests, snapshots)

        assert [a.resolved_amount for a in accepted] == [10]
        assert len(outcomes) == 1
        assert outcomes[0].amount == 20
        assert outcomes[0].message == DUPLICATE_TOKEN

    def test_outcomes_follow_request_order(self, snapshots):
        requests = [
            request(UNKNOWN_ADDRESS),
            request(USDA1_ADDRESS, 5000),
            request(USDA1_ADDRESS, 1),
            request(USDA1_ADDRESS, 2),
        ]
        accepted, outcomes = reconcile(requests, snapshots)

        # the over-balance request still claims the address
        assert [o.message for o in outcomes] == [
            UNKNOWN_TOKEN, AMOUNT_EXCEEDS_BALANCE, DUPLICATE_TOKEN, DUPLICATE_TOKEN
        ]
        assert accepted == []


class TestNftRequests:

    def test_requested_subset_of_owned_ids(self, snapshots):
        accepted, outcomes = reconcile([request(NFT_ADDRESS, token_ids=["1", "3"])], snapshots)

        assert outcomes == []
        assert accepted[0].token_ids == ["1", "3"]

    def test_not_owned_id_is_rejected_individually(self, snapshots):
        accepted, outcomes = reconcile([request(NFT_ADDRESS, token_ids=["2", "9"])], snapshots)

        assert accepted[0].token_ids == ["2"]
        assert len(outcomes) == 1
        assert outcomes[0].token_id == "9"
        assert outcomes[0].amount == 1
        assert outcomes[0].message == UNKNOWN_NFT

    def test_repeated_id_within_request(self, snapshots):
        accepted, outcomes = reconcile([request(NFT_ADDRESS, token_ids=["1", "1"])], snapshots)

        assert accepted[0].token_ids == ["1"]
        assert [(o.token_id, o.message) for o in outcomes] == [("1", DUPLICATE_TOKEN)]

    def test_no_ids_means_every_owned_id(self, snapshots):
        accepted, _ = reconcile([request(NFT_ADDRESS)], snapshots)
        assert accepted[0].token_ids == ["1", "2", "3"]

    def test_empty_id_list_selects_nothing(self, snapshots):
        accepted, outcomes = reconcile([request(NFT_ADDRESS, token_ids=[])], snapshots)
        assert accepted == []
        assert outcomes == []

    def test_duplicate_nft_request_reports_each_id(self, snapshots):
        requests = [
            request(NFT_ADDRESS, token_ids=["1"]),
            request(NFT_ADDRESS, token_ids=["2", "3"]),
        ]
        accepted, outcomes = reconcile(requests, snapshots)

        assert accepted[0].token_ids == ["1"]
        assert [(o.token_id, o.message) for o in outcomes] == [
            ("2", DUPLICATE_TOKEN),
            ("3", DUPLICATE_TOKEN),
        ]


class TestMigrateEverything:

    def test_none_accepts_every_held_asset(self, snapshots):
        accepted, outcomes = reconcile(None, snapshots)

        assert outcomes == []
        assert [a.token_address for a in accepted] == [NATIVE_ADDRESS, USDA1_ADDRESS, NFT_ADDRESS]
        assert accepted[2].token_ids == ["1", "2", "3"]

    def test_empty_list_accepts_nothing(self, snapshots):
        assert reconcile([], snapshots) == ([], [])
