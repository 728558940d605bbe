"""
EVM Chain Gateway

Provides every on-chain operation the migration engine needs, on behalf of a
single source account: contract reads for permit signing, gas estimation,
calldata encoding and transaction submission.

Key Features:
    - Token ``name()`` / ERC-2612 ``nonces()`` / Permit2 ``nonceBitmap()`` reads
    - Calldata encoding for ``permit`` and Permit2 ``permitTransferFrom``
    - Simulated gas estimation for any submittable planned transaction
    - Native, ERC-20, ERC-721 and Permit2 submission signed by the owner

Dependencies:
    - web3.py: For blockchain RPC interaction
    - eth_account: For transaction signing
"""

import logging
from typing import Optional, Dict, Any, Union

from web3 import AsyncWeb3
from eth_account.signers.local import LocalAccount

from .ERC20_ABI import (
    get_erc20_abi,
    get_erc2612_abi,
    get_erc721_abi,
    get_permit2_single_abi,
    get_permit2_batch_abi,
)
from .constants import (
    PERMIT2_ADDRESS,
    GAS_LIMIT_BUFFER_PERCENT,
    DEFAULT_REQUEST_TIMEOUT,
)
from .schemas import (
    NativeTransfer,
    Erc20Transfer,
    NftTransfer,
    PermitAuthorization,
    Permit2SingleTransfer,
    Permit2BatchTransfer,
)
from ...schemas.bases import to_int
from ...engine.exceptions import (
    GasEstimationError,
    TransactionExecutionError,
    ValidationError,
)

logger = logging.getLogger(__name__)

SubmittableTransaction = Union[
    NativeTransfer, Erc20Transfer, NftTransfer, Permit2SingleTransfer, Permit2BatchTransfer
]


def _signature_bytes(packed_hex: str) -> bytes:
    return bytes.fromhex(packed_hex[2:] if packed_hex.startswith("0x") else packed_hex)


class EVMChainGateway:
    """
    Chain access for one source account.

    All transactions are signed locally by ``signer`` and broadcast through
    ``eth_sendRawTransaction``. Nothing waits for receipts: a returned hash
    means the node accepted the transaction, not that it was mined.

    Attributes:
        signer: Owner's ``eth_account`` ``LocalAccount``.
        owner: Checksum address of the signer.
        chain_id: EVM chain id the gateway talks to.

    Example:
        gateway = EVMChainGateway(signer, chain_id=1, rpc_url="https://...")
        name = await gateway.get_token_name("0xA0b8...")
        tx_hash = await gateway.submit(native_transfer)
    """

    def __init__(
        self,
        signer: LocalAccount,
        chain_id: int,
        rpc_url: str,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        permit2_address: str = PERMIT2_ADDRESS,
    ):
        if signer is None:
            raise ValidationError("A sender signer is required")
        if not rpc_url:
            raise ValidationError("An RPC URL is required")

        self.signer = signer
        self.owner = AsyncWeb3.to_checksum_address(signer.address)
        self.chain_id = chain_id
        self._rpc_url = rpc_url
        self._request_timeout = request_timeout
        self._permit2_address = AsyncWeb3.to_checksum_address(permit2_address)
        self._web3: Optional[AsyncWeb3] = None

    def _get_web3_instance(self) -> AsyncWeb3:
        """
        Create (once) and return the AsyncWeb3 instance for this gateway.

        The provider timeout is explicit; web3's retry middleware is not
        configured, so every RPC call is a single round trip.
        """
        if self._web3 is None:
            self._web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
                self._rpc_url,
                request_kwargs={"timeout": self._request_timeout}
            ))
        return self._web3

    # ------------------------------------------------------------------
    # Contract reads
    # ------------------------------------------------------------------

    async def get_token_name(self, token_address: str) -> str:
        web3 = self._get_web3_instance()
        contract = web3.eth.contract(
            address=AsyncWeb3.to_checksum_address(token_address), abi=get_erc2612_abi()
        )
        return await contract.functions.name().call()

    async def get_permit_nonce(self, token_address: str) -> int:
        """Current ERC-2612 ``nonces(owner)`` of ``token_address``."""
        web3 = self._get_web3_instance()
        contract = web3.eth.contract(
            address=AsyncWeb3.to_checksum_address(token_address), abi=get_erc2612_abi()
        )
        return await contract.functions.nonces(self.owner).call()

    async def get_permit2_nonce_bitmap(self, owner: str, word_pos: int) -> int:
        """Permit2 ``nonceBitmap(owner, wordPos)``."""
        web3 = self._get_web3_instance()
        contract = web3.eth.contract(address=self._permit2_address, abi=get_permit2_single_abi())
        return await contract.functions.nonceBitmap(
            AsyncWeb3.to_checksum_address(owner), word_pos
        ).call()

    # ------------------------------------------------------------------
    # Calldata encoding
    # ------------------------------------------------------------------

    def encode_permit_call(self, permit: PermitAuthorization) -> str:
        """ABI-encode ``permit(owner, spender, value, deadline, v, r, s)``."""
        web3 = self._get_web3_instance()
        contract = web3.eth.contract(
            address=AsyncWeb3.to_checksum_address(permit.token_address), abi=get_erc2612_abi()
        )
        sig = permit.signature
        return contract.encode_abi("permit", args=[
            AsyncWeb3.to_checksum_address(permit.owner),
            AsyncWeb3.to_checksum_address(permit.spender),
            permit.value,
            permit.deadline,
            sig.v,
            bytes.fromhex(sig.r[2:]),
            bytes.fromhex(sig.s[2:]),
        ])

    def encode_permit2_single_call(self, transfer: Permit2SingleTransfer) -> str:
        """ABI-encode the single-token ``permitTransferFrom`` call."""
        web3 = self._get_web3_instance()
        contract = web3.eth.contract(address=self._permit2_address, abi=get_permit2_single_abi())
        return contract.encode_abi("permitTransferFrom", args=[
            (
                (AsyncWeb3.to_checksum_address(transfer.permitted.token), transfer.permitted.amount),
                transfer.nonce,
                transfer.deadline,
            ),
            (AsyncWeb3.to_checksum_address(transfer.recipient), transfer.permitted.amount),
            AsyncWeb3.to_checksum_address(transfer.owner),
            _signature_bytes(transfer.signature),
        ])

    def encode_permit2_batch_call(self, transfer: Permit2BatchTransfer) -> str:
        """ABI-encode the batch ``permitTransferFrom`` call."""
        web3 = self._get_web3_instance()
        contract = web3.eth.contract(address=self._permit2_address, abi=get_permit2_batch_abi())
        return contract.encode_abi("permitTransferFrom", args=[
            (
                [
                    (AsyncWeb3.to_checksum_address(entry.token), entry.amount)
                    for entry in transfer.permitted
                ],
                transfer.nonce,
                transfer.deadline,
            ),
            [
                (AsyncWeb3.to_checksum_address(detail.to), detail.requested_amount)
                for detail in transfer.transfer_details
            ],
            AsyncWeb3.to_checksum_address(transfer.owner),
            _signature_bytes(transfer.signature),
        ])

    # ------------------------------------------------------------------
    # Transaction requests
    # ------------------------------------------------------------------

    def build_call(self, tx: SubmittableTransaction) -> Dict[str, Any]:
        """
        Build the ``{from, to, data, value}`` call for a planned transaction.

        Permit2 calls are sent from the signature's spender: Permit2 requires
        ``msg.sender`` to be the spender the owner signed for.
        """
        web3 = self._get_web3_instance()

        if isinstance(tx, NativeTransfer):
            return {
                "from": self.owner,
                "to": AsyncWeb3.to_checksum_address(tx.to_address),
                "value": tx.amount,
            }
        if isinstance(tx, Erc20Transfer):
            contract = web3.eth.contract(
                address=AsyncWeb3.to_checksum_address(tx.token_address), abi=get_erc20_abi()
            )
            data = contract.encode_abi("transfer", args=[
                AsyncWeb3.to_checksum_address(tx.to_address), tx.amount
            ])
            return {"from": self.owner, "to": contract.address, "data": data, "value": 0}
        if isinstance(tx, NftTransfer):
            contract = web3.eth.contract(
                address=AsyncWeb3.to_checksum_address(tx.token_address), abi=get_erc721_abi()
            )
            data = contract.encode_abi("safeTransferFrom", args=[
                self.owner, AsyncWeb3.to_checksum_address(tx.to_address), to_int(tx.token_id)
            ])
            return {"from": self.owner, "to": contract.address, "data": data, "value": 0}
        if isinstance(tx, Permit2SingleTransfer):
            data = tx.call_data or self.encode_permit2_single_call(tx)
        elif isinstance(tx, Permit2BatchTransfer):
            data = tx.call_data or self.encode_permit2_batch_call(tx)
        else:
            raise TransactionExecutionError(f"Unsupported transaction type: {type(tx).__name__}")

        return {
            "from": AsyncWeb3.to_checksum_address(tx.spender),
            "to": self._permit2_address,
            "data": data,
            "value": 0,
        }

    async def estimate_gas(self, tx: SubmittableTransaction) -> int:
        """
        Simulate ``tx`` against current chain state.

        Returns:
            int: Gas units reported by ``eth_estimateGas``.

        Raises:
            GasEstimationError: If the simulated call fails.
        """
        web3 = self._get_web3_instance()
        try:
            return await web3.eth.estimate_gas(self.build_call(tx))
        except Exception as e:
            raise GasEstimationError(f"Gas estimation failed for {tx.type}: {e}") from e

    async def submit(self, tx: SubmittableTransaction) -> str:
        """
        Sign and broadcast ``tx`` from the owner account.

        Flow: estimate gas (+30% buffer) → gas price → pending nonce →
        sign locally → ``eth_sendRawTransaction``.

        Returns:
            str: Transaction hash (0x-prefixed hex).

        Raises:
            TransactionExecutionError: If any step fails.
        """
        web3 = self._get_web3_instance()
        try:
            call = self.build_call(tx)
            if call["from"] != self.owner:
                raise TransactionExecutionError(
                    f"Cannot submit {tx.type} as {self.owner}: signature spender is {call['from']}"
                )

            gas_estimate = await web3.eth.estimate_gas(call)
            gas_price = await web3.eth.gas_price
            tx_nonce = await web3.eth.get_transaction_count(self.owner, "pending")

            tx_dict = dict(call)
            tx_dict.update({
                "gas": gas_estimate * GAS_LIMIT_BUFFER_PERCENT // 100,
                "gasPrice": gas_price,
                "nonce": tx_nonce,
                "chainId": self.chain_id,
            })

            signed_tx = self.signer.sign_transaction(tx_dict)
            tx_hash = await web3.eth.send_raw_transaction(signed_tx.raw_transaction)
            tx_hex = tx_hash.hex()
            if not tx_hex.startswith("0x"):
                tx_hex = "0x" + tx_hex
            logger.info("Submitted %s transaction %s", tx.type, tx_hex)
            return tx_hex

        except TransactionExecutionError:
            raise
        except Exception as e:
            raise TransactionExecutionError(f"Failed to submit {tx.type} transaction: {e}") from e
