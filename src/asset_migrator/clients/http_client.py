"""
Migration API Client

Provides an httpx-based client for the migration backend: balance
snapshots, gas price, native token USD price and the relay service that
submits gasless authorizations.

Every call is a single round trip with an explicit timeout. There is no
retry: a relayed signature must never be submitted twice, and any failure is
fatal to the in-flight migration (raised as NetworkError).
"""

import logging
from typing import Any, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError as PydanticValidationError

from ..adapters.evm.constants import (
    BALANCES_ENDPOINT,
    GAS_PRICE_ENDPOINT,
    PRICE_ENDPOINT,
    RELAY_ENDPOINT,
    DEFAULT_BASE_URL,
    DEFAULT_REQUEST_TIMEOUT,
)
from ..engine.exceptions import NetworkError
from ..schemas.https import (
    BalancesRequest,
    BalancesResponse,
    GasPriceResponse,
    PriceResponse,
    RelayRequest,
    RelayResult,
    RelayedAuthorization,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_SUCCESS_CODE = 200


class MigrationApiClient(httpx.AsyncClient):
    """
    Extended httpx.AsyncClient for the migration backend.

    Fully compatible with httpx.AsyncClient: it can be used as an async
    context manager and accepts every standard constructor argument
    (``transport``, ``headers``, ...).

    Usage:
        ```python
        async with MigrationApiClient(api_key="...") as client:
            balances = await client.fetch_balances(1, "0xOwner")
            gas_price = await client.fetch_gas_price(1)
        ```
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        **kwargs
    ):
        """
        Initialize the client.

        Args:
            api_key: Migration backend API key.
            base_url: Backend base URL.
            timeout: Per-request timeout in seconds.
            **kwargs: All standard httpx.AsyncClient arguments.
        """
        super().__init__(base_url=base_url, timeout=timeout, **kwargs)
        self._api_key = api_key

    # =========================================================================
    # Transport helpers
    # =========================================================================

    async def _request_json(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = await self.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} {url} failed: {e}") from e

        if not response.is_success:
            raise NetworkError(
                f"{method} {url} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(f"{method} {url} returned a non-JSON body") from e

    @staticmethod
    def _parse(model: Type[ModelT], payload: Any, url: str) -> ModelT:
        try:
            parsed = model.model_validate(payload)
        except PydanticValidationError as e:
            raise NetworkError(f"Malformed response from {url}: {e}") from e
        code = getattr(parsed, "code", _SUCCESS_CODE)
        if code != _SUCCESS_CODE:
            raise NetworkError(
                f"{url} responded with code {code}: {getattr(parsed, 'message', None)}",
                status_code=code,
            )
        return parsed

    # =========================================================================
    # Endpoints
    # =========================================================================

    async def fetch_balances(
        self,
        chain_id: int,
        address: str,
        only_balances: bool = True,
        token_addresses: Optional[List[str]] = None,
    ) -> BalancesResponse:
        """
        Fetch the balance snapshot of ``address``.

        Args:
            chain_id: EVM chain id.
            address: Source account address.
            only_balances: Skip allowance/permit discovery when True.
            token_addresses: Optional list of tokens to restrict the snapshot to.

        Returns:
            BalancesResponse: Envelope whose ``data`` holds TokenSnapshot records.

        Raises:
            NetworkError: On transport failure, HTTP error or non-200 code.
        """
        body = BalancesRequest(
            chain_id=str(chain_id),
            address=address,
            only_balances=only_balances,
            token_addresses=token_addresses,
        ).model_dump(by_alias=True, exclude_none=True)

        payload = await self._request_json(
            "POST", BALANCES_ENDPOINT, json=body, headers={"x-api-key": self._api_key}
        )
        response = self._parse(BalancesResponse, payload, BALANCES_ENDPOINT)
        logger.debug("Fetched %d balances for %s on chain %s", len(response.data), address, chain_id)
        return response

    async def fetch_gas_price(self, chain_id: int) -> int:
        """Current gas price in wei."""
        url = f"{GAS_PRICE_ENDPOINT}/{chain_id}"
        payload = await self._request_json("GET", url, headers={"x-api-key": self._api_key})
        return self._parse(GasPriceResponse, payload, url).data.gas_price

    async def fetch_native_price(self, chain_id: int) -> float:
        """USD price of one whole native token."""
        url = f"{PRICE_ENDPOINT}/{chain_id}"
        payload = await self._request_json("GET", url, headers={"x-api-key": self._api_key})
        return self._parse(PriceResponse, payload, url).data.price

    async def dispatch_relay(
        self,
        chain_id: int,
        authorizations: List[RelayedAuthorization],
    ) -> List[RelayResult]:
        """
        Submit every signed authorization to the relay in one call.

        Returns:
            List[RelayResult]: One entry per authorization, in relay order.

        Raises:
            NetworkError: On transport failure, HTTP error or malformed body.
        """
        body = RelayRequest(
            chain_id=chain_id,
            authorizations=authorizations,
            api_key=self._api_key,
        ).model_dump(mode="json", by_alias=True)

        payload = await self._request_json("POST", RELAY_ENDPOINT, json=body)
        if not isinstance(payload, list):
            raise NetworkError(f"Malformed response from {RELAY_ENDPOINT}: expected a list")
        results = [self._parse(RelayResult, entry, RELAY_ENDPOINT) for entry in payload]
        logger.info("Relay accepted %d of %d authorizations",
                    sum(1 for r in results if r.task_id), len(authorizations))
        return results
