from .bases import CanonicalModel, AssetKind, NftHolding, TokenSnapshot, TransferRequest, MigrationOutcome, to_int
from .https import BalancesRequest, BalancesResponse, GasPriceResponse, PriceResponse, TokenInfo, RelayedAuthorization, RelayRequest, RelayResult

__all__ = [
    "CanonicalModel",
    "AssetKind",
    "NftHolding",
    "TokenSnapshot",
    "TransferRequest",
    "MigrationOutcome",
    "to_int",
    "BalancesRequest",
    "BalancesResponse",
    "GasPriceResponse",
    "PriceResponse",
    "TokenInfo",
    "RelayedAuthorization",
    "RelayRequest",
    "RelayResult",
]
