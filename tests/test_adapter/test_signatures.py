"""
Off-chain Signing Test Suite

Signs ERC-2612 and Permit2 payloads with a real test key and recovers the
signer from the EIP-712 digest, plus the bounded Permit2 nonce search.
"""

from unittest.mock import AsyncMock

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data
from web3 import AsyncWeb3

from migration_mocks import (
    MOCK_OWNER_ACCOUNT,
    MOCK_OWNER_ADDRESS,
    MOCK_RECEIVER_ADDRESS,
    MOCK_RELAYER_ADDRESS,
    MOCK_CHAIN_ID,
    USDA1_ADDRESS,
    USDB_ADDRESS,
)

from asset_migrator.adapters.evm.constants import MAX_UINT256, PERMIT2_ADDRESS
from asset_migrator.adapters.evm.schemas import PermittedToken
from asset_migrator.adapters.evm.signatures import (
    build_erc2612_typed_data,
    find_unused_permit2_nonce,
    random_nonce_start,
    sign_erc2612_permit,
    sign_permit2_batch,
    sign_permit2_single,
)
from asset_migrator.adapters.evm.standards import (
    Permit2BatchTypedData,
    Permit2TypedData,
    TokenPermission,
)
from asset_migrator.engine.exceptions import NonceExhaustedError, SigningError

DEADLINE = 1_900_000_000


def recover(typed_data: dict, packed_signature: str) -> str:
    signable = encode_typed_data(full_message=typed_data)
    return Account.recover_message(signable, signature=bytes.fromhex(packed_signature[2:]))


def checksum(address: str) -> str:
    return AsyncWeb3.to_checksum_address(address)


class TestErc2612Permit:

    def test_signature_recovers_owner(self):
        permit = sign_erc2612_permit(
            signer=MOCK_OWNER_ACCOUNT,
            token=USDA1_ADDRESS,
            token_name="USD Coin",
            chain_id=MOCK_CHAIN_ID,
            spender=PERMIT2_ADDRESS,
            value=MAX_UINT256,
            nonce=3,
            deadline=DEADLINE,
        )
        typed = build_erc2612_typed_data(
            token=USDA1_ADDRESS,
            token_name="USD Coin",
            chain_id=MOCK_CHAIN_ID,
            owner=MOCK_OWNER_ADDRESS,
            spender=PERMIT2_ADDRESS,
            value=MAX_UINT256,
            nonce=3,
            deadline=DEADLINE,
        ).to_dict()

        assert recover(typed, permit.signature.to_packed_hex()) == MOCK_OWNER_ADDRESS
        assert permit.signature.signature_type == "EIP2612"
        assert permit.owner == MOCK_OWNER_ADDRESS
        assert permit.value == MAX_UINT256
        assert permit.call_data is None

    def test_domain_uses_token_name_and_version_one(self):
        typed = build_erc2612_typed_data(
            token=USDA1_ADDRESS,
            token_name="USDA1",
            chain_id=137,
            owner=MOCK_OWNER_ADDRESS,
            spender=PERMIT2_ADDRESS,
            value=1,
            nonce=0,
            deadline=DEADLINE,
        ).to_dict()

        assert typed["primaryType"] == "Permit"
        assert typed["domain"] == {
            "name": "USDA1",
            "version": "1",
            "chainId": 137,
            "verifyingContract": checksum(USDA1_ADDRESS),
        }

    def test_signature_components_are_padded(self):
        permit = sign_erc2612_permit(
            signer=MOCK_OWNER_ACCOUNT,
            token=USDA1_ADDRESS,
            token_name="USD Coin",
            chain_id=MOCK_CHAIN_ID,
            spender=PERMIT2_ADDRESS,
            value=1,
            nonce=0,
            deadline=DEADLINE,
        )
        assert permit.signature.v in (27, 28)
        assert len(permit.signature.r) == 66
        assert len(permit.signature.s) == 66
        assert len(permit.signature.to_packed_hex()) == 132


class TestPermit2Signatures:

    def test_single_transfer_recovers_owner(self):
        transfer = sign_permit2_single(
            signer=MOCK_OWNER_ACCOUNT,
            chain_id=MOCK_CHAIN_ID,
            spender=MOCK_RELAYER_ADDRESS,
            recipient=MOCK_RECEIVER_ADDRESS,
            token=USDB_ADDRESS,
            amount=100,
            nonce=4242,
            deadline=DEADLINE,
        )
        typed = Permit2TypedData(
            chain_id=MOCK_CHAIN_ID,
            verifying_contract=checksum(PERMIT2_ADDRESS),
            spender=checksum(MOCK_RELAYER_ADDRESS),
            permitted=TokenPermission(token=checksum(USDB_ADDRESS), amount=100),
            nonce=4242,
            deadline=DEADLINE,
        ).to_dict()

        assert "version" not in typed["domain"]
        assert recover(typed, transfer.signature) == MOCK_OWNER_ADDRESS
        assert transfer.recipient == MOCK_RECEIVER_ADDRESS
        assert transfer.token_address == USDB_ADDRESS
        assert transfer.amount == 100

    def test_batch_transfer_recovers_owner_and_routes_to_recipient(self):
        tokens = [
            PermittedToken(token=USDA1_ADDRESS, amount=1),
            PermittedToken(token=USDB_ADDRESS, amount=2),
        ]
        transfer = sign_permit2_batch(
            signer=MOCK_OWNER_ACCOUNT,
            chain_id=MOCK_CHAIN_ID,
            spender=MOCK_OWNER_ADDRESS,
            recipient=MOCK_RECEIVER_ADDRESS,
            tokens=tokens,
            nonce=5000,
            deadline=DEADLINE,
        )
        typed = Permit2BatchTypedData(
            chain_id=MOCK_CHAIN_ID,
            verifying_contract=checksum(PERMIT2_ADDRESS),
            spender=MOCK_OWNER_ADDRESS,
            permitted=[TokenPermission(token=checksum(t.token), amount=t.amount) for t in tokens],
            nonce=5000,
            deadline=DEADLINE,
        ).to_dict()

        assert typed["primaryType"] == "PermitBatchTransferFrom"
        assert recover(typed, transfer.signature) == MOCK_OWNER_ADDRESS
        assert [(d.to, d.requested_amount) for d in transfer.transfer_details] == [
            (MOCK_RECEIVER_ADDRESS, 1),
            (MOCK_RECEIVER_ADDRESS, 2),
        ]
        assert transfer.token_addresses() == [USDA1_ADDRESS, USDB_ADDRESS]

    def test_empty_batch_raises(self):
        with pytest.raises(SigningError):
            sign_permit2_batch(
                signer=MOCK_OWNER_ACCOUNT,
                chain_id=MOCK_CHAIN_ID,
                spender=MOCK_OWNER_ADDRESS,
                recipient=MOCK_RECEIVER_ADDRESS,
                tokens=[],
                nonce=1,
                deadline=DEADLINE,
            )


class TestPermit2NonceSearch:

    def test_random_start_range(self):
        for _ in range(50):
            assert 1000 <= random_nonce_start() <= 9999

    @pytest.mark.asyncio
    async def test_skips_used_bits_within_one_word(self):
        # nonce 1000 -> word 3, bit 232
        read_bitmap = AsyncMock(return_value=(1 << 232) | (1 << 233))

        nonce = await find_unused_permit2_nonce(read_bitmap, MOCK_OWNER_ADDRESS, start=1000)

        assert nonce == 1002
        read_bitmap.assert_awaited_once_with(MOCK_OWNER_ADDRESS, 3)

    @pytest.mark.asyncio
    async def test_crosses_word_boundary(self):
        bitmaps = {2: 1 << 255, 3: 0}
        read_bitmap = AsyncMock(side_effect=lambda owner, word: bitmaps[word])

        nonce = await find_unused_permit2_nonce(read_bitmap, MOCK_OWNER_ADDRESS, start=767)

        assert nonce == 768
        assert read_bitmap.await_count == 2

    @pytest.mark.asyncio
    async def test_bounded_search_raises(self):
        read_bitmap = AsyncMock(return_value=(1 << 256) - 1)

        with pytest.raises(NonceExhaustedError):
            await find_unused_permit2_nonce(read_bitmap, MOCK_OWNER_ADDRESS, start=1000, max_attempts=5)
        assert read_bitmap.await_count == 1
