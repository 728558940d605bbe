"""
Migration execution engine.

``MigrationExecutor`` is the public entry point. Each call runs the same
pipeline and differs only in how signed work reaches the chain:

    reconcile -> plan -> phase 1: sign (permits fan out concurrently, then
    one Permit2 signature) -> relay (gasless / forward) -> phase 2: gas
    budget sequencer -> aggregated outcomes

Nothing is shared between calls; every snapshot, plan and budget lives for
one call only.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError
from web3 import AsyncWeb3
from eth_account.signers.local import LocalAccount

from .aggregator import OutcomeAggregator
from .exceptions import ConfigurationError, GasEstimationError, ValidationError
from .planner import MigrationMode, plan
from .reconciler import AcceptedTransfer, reconcile
from .relay import (
    RelayDispatcher,
    permit_authorization,
    permit2_authorization,
    relay_fee_usd,
    route_fee_entries,
)
from .sequencer import GasBudgetSequencer
from .signing import PermitSigner
from ..adapters.evm.adapter import EVMChainGateway
from ..adapters.evm.constants import GAS_UNITS, MigrationConfig, get_chain_config
from ..adapters.evm.schemas import Permit2BatchTransfer
from ..clients.http_client import MigrationApiClient
from ..schemas.bases import MigrationOutcome, TokenSnapshot, TransferRequest

logger = logging.getLogger(__name__)

TransferDetails = Optional[Sequence[Union[TransferRequest, Dict[str, Any]]]]


class MigrationExecutor:
    """
    Migrates assets from a signer's account to a receiver address.

    Args:
        config: Chain, backend and relay configuration.
        api_client: Backend client to use; one is created from ``config``
            (and closed by ``aclose``) when omitted.

    Usage:
        ```python
        config = MigrationConfig.from_env(chain_id=1)
        async with MigrationExecutor(config) as executor:
            outcomes = await executor.execute_migration(signer, "0xReceiver")
        ```

    Raises:
        ValidationError: If ``config.chain_id`` is not supported.
    """

    def __init__(self, config: MigrationConfig, api_client: Optional[MigrationApiClient] = None):
        self.config = config
        self.chain = get_chain_config(config.chain_id)
        self._owns_client = api_client is None
        self._client = api_client or MigrationApiClient(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.request_timeout,
        )

    async def __aenter__(self) -> "MigrationExecutor":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _get_gateway(self, signer: LocalAccount) -> EVMChainGateway:
        return EVMChainGateway(
            signer,
            chain_id=self.config.chain_id,
            rpc_url=self.config.rpc_url,
            request_timeout=self.config.request_timeout,
        )

    # =========================================================================
    # Public API
    # =========================================================================

    async def fetch_balances(
        self,
        owner_address: str,
        token_addresses: Optional[List[str]] = None,
    ) -> List[TokenSnapshot]:
        """
        Balance snapshot of ``owner_address``, including Permit2 allowances
        and ERC-2612 support.

        Raises:
            NetworkError: If the balances API call fails.
        """
        response = await self._client.fetch_balances(
            self.config.chain_id,
            owner_address,
            only_balances=False,
            token_addresses=token_addresses,
        )
        return response.data

    async def execute_migration(
        self,
        sender_signer: LocalAccount,
        receiver_address: str,
        transfer_token_details: TransferDetails = None,
    ) -> List[MigrationOutcome]:
        """
        Migrate assets with transactions the sender submits and pays for.

        Args:
            sender_signer: Source account.
            receiver_address: Destination address.
            transfer_token_details: Requested transfers; None migrates every
                asset with a positive balance.

        Returns:
            One outcome per requested asset / NFT token id.

        Raises:
            ValidationError: On a missing signer or invalid receiver.
            NetworkError: If a backend call fails.
        """
        return await self._run(
            MigrationMode.DIRECT, sender_signer, receiver_address, transfer_token_details
        )

    async def execute_migration_gasless(
        self,
        sender_signer: LocalAccount,
        receiver_address: str,
        transfer_token_details: TransferDetails = None,
    ) -> List[MigrationOutcome]:
        """
        Migrate assets with ERC-20 permits and Permit2 transfers submitted
        by the relay. Native and NFT transfers are still sent by the sender.
        """
        return await self._run(
            MigrationMode.GASLESS, sender_signer, receiver_address, transfer_token_details
        )

    async def execute_forward_transaction(
        self,
        sender_signer: LocalAccount,
        receiver_address: str,
        transfer_token_details: TransferDetails,
    ) -> List[MigrationOutcome]:
        """
        Relay ERC-20 transfers and pay the relay fee from the transferred
        tokens: enough Permit2 batch entries go to the treasury to cover it.

        Raises:
            ConfigurationError: If no treasury address is configured.
            ValidationError: If no transfers are given, or a native or NFT
                asset is requested.
        """
        if not self.config.treasury_address:
            raise ConfigurationError(
                "Treasury address not provided. Either pass 'treasury_address' or set the "
                "'MIGRATOR_TREASURY_ADDRESS' environment variable."
            )
        if transfer_token_details is None:
            raise ValidationError("Forwarding requires explicit transfer_token_details")
        return await self._run(
            MigrationMode.FORWARD, sender_signer, receiver_address, transfer_token_details
        )

    # =========================================================================
    # Pipeline
    # =========================================================================

    @staticmethod
    def _parse_requests(details: TransferDetails) -> Optional[List[TransferRequest]]:
        if details is None:
            return None
        try:
            return [
                d if isinstance(d, TransferRequest) else TransferRequest.model_validate(d)
                for d in details
            ]
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid transfer request: {e}") from e

    async def _fetch_snapshots(
        self, owner: str, requests: Optional[List[TransferRequest]]
    ) -> List[TokenSnapshot]:
        token_addresses = None
        if requests is not None:
            # the native entry funds the gas budget even when not requested
            native = self.chain.native_token_address.lower()
            token_addresses = list(dict.fromkeys([*(r.token_address for r in requests), native]))
        return await self.fetch_balances(owner, token_addresses)

    async def _route_fee(
        self,
        gateway: EVMChainGateway,
        batch: Permit2BatchTransfer,
        snapshots: List[TokenSnapshot],
        gas_price: int,
    ):
        try:
            gas_units = await gateway.estimate_gas(batch)
        except GasEstimationError as e:
            # permit allowances are not on-chain yet when the batch depends on them
            gas_units = GAS_UNITS["cryptocurrency"] * len(batch.permitted)
            logger.info("Using fixed gas units %s for relay fee: %s", gas_units, e)

        native_price = await self._client.fetch_native_price(self.config.chain_id)
        fee_usd = relay_fee_usd(gas_units, gas_price, native_price)
        return route_fee_entries(
            batch, snapshots, fee_usd, self.config.treasury_address, gateway.encode_permit2_batch_call
        )

    async def _run(
        self,
        mode: MigrationMode,
        sender_signer: LocalAccount,
        receiver_address: str,
        transfer_token_details: TransferDetails,
    ) -> List[MigrationOutcome]:
        if sender_signer is None:
            raise ValidationError("A sender signer is required")
        if not receiver_address or not AsyncWeb3.is_address(receiver_address):
            raise ValidationError(f"Invalid receiver address: {receiver_address!r}")

        requests = self._parse_requests(transfer_token_details)
        gateway = self._get_gateway(sender_signer)
        owner = gateway.owner
        chain_id = self.config.chain_id
        logger.info("Starting %s migration from %s to %s on chain %s",
                    mode.value, owner, receiver_address, chain_id)

        aggregator = OutcomeAggregator()
        snapshots = await self._fetch_snapshots(owner, requests)

        accepted, rejected = reconcile(requests, snapshots)
        aggregator.add_reconciliation(rejected)

        if mode is MigrationMode.FORWARD:
            unsupported = [t.token_address for t in accepted if t.snapshot.is_native or t.snapshot.is_nft]
            if unsupported:
                raise ValidationError(f"Forwarding supports ERC-20 tokens only, got {unsupported}")

        migration_plan = plan(accepted, snapshots, owner, receiver_address, mode)
        gas_price = await self._client.fetch_gas_price(chain_id)

        # Phase 1: signatures
        signer = PermitSigner(gateway, chain_id, max_nonce_attempts=self.config.max_nonce_attempts)
        permits = []
        permit2_tokens: List[AcceptedTransfer] = list(migration_plan.permit2_candidates)
        if mode.is_relayed:
            permit_result = await signer.sign_permits(migration_plan.permit_candidates)
            aggregator.add_relay(permit_result.outcomes)
            permits = permit_result.permits
            eligible = {id(t) for t in [*permit2_tokens, *permit_result.authorized]}
            permit2_tokens = [t for t in accepted if id(t) in eligible]

        spender = self.config.relayer_address if mode.is_relayed else owner
        permit2_transfer, permit2_failures = await signer.sign_permit2(
            permit2_tokens, spender, receiver_address, batch_only=mode is MigrationMode.FORWARD
        )
        aggregator.add_relay(permit2_failures)

        submittable = migration_plan.direct_transactions()
        if mode.is_relayed:
            authorizations = [permit_authorization(p) for p in permits]
            if permit2_transfer is not None and mode is MigrationMode.FORWARD:
                permit2_transfer, fee_outcomes = await self._route_fee(
                    gateway, permit2_transfer, snapshots, gas_price
                )
                aggregator.add_relay(fee_outcomes)
            if permit2_transfer is not None:
                authorizations.append(permit2_authorization(permit2_transfer))

            dispatcher = RelayDispatcher(
                self._client, chain_id, status_as_message=mode is MigrationMode.FORWARD
            )
            aggregator.add_relay(await dispatcher.dispatch(authorizations))
        elif permit2_transfer is not None:
            submittable.append(permit2_transfer)

        # Phase 2: on-chain submissions against the fee budget
        sequencer = GasBudgetSequencer(gateway, gas_price)
        executed, remaining = await sequencer.sequence(submittable, migration_plan.fee_budget)
        aggregator.add_execution(executed)

        logger.info("Finished %s migration: %d outcomes, %s wei of fee budget left",
                    mode.value, len(aggregator), remaining)
        return aggregator.outcomes()
