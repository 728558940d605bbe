from .unions import PlannedTransactionTypes, PLANNED_TRANSACTION_ADAPTER
from .evm import (
    EVMChainGateway,
    EVMECDSASignature,
    NativeTransfer,
    Erc20Transfer,
    NftTransfer,
    PermitAuthorization,
    Permit2SingleTransfer,
    Permit2BatchTransfer,
)

__all__ = [
    "PlannedTransactionTypes",
    "PLANNED_TRANSACTION_ADAPTER",
    "EVMChainGateway",
    "EVMECDSASignature",
    "NativeTransfer",
    "Erc20Transfer",
    "NftTransfer",
    "PermitAuthorization",
    "Permit2SingleTransfer",
    "Permit2BatchTransfer",
]
