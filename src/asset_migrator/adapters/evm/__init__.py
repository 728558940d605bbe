from .adapter import EVMChainGateway
from .constants import MigrationConfig, get_chain_config
from .schemas import (
    EVMECDSASignature,
    PermittedToken,
    TransferDetail,
    NativeTransfer,
    Erc20Transfer,
    NftTransfer,
    PermitAuthorization,
    Permit2SingleTransfer,
    Permit2BatchTransfer,
)
from .signatures import (
    sign_erc2612_permit,
    sign_permit2_single,
    sign_permit2_batch,
    find_unused_permit2_nonce,
)

__all__ = [
    "EVMChainGateway",
    "MigrationConfig",
    "get_chain_config",
    "EVMECDSASignature",
    "PermittedToken",
    "TransferDetail",
    "NativeTransfer",
    "Erc20Transfer",
    "NftTransfer",
    "PermitAuthorization",
    "Permit2SingleTransfer",
    "Permit2BatchTransfer",
    "sign_erc2612_permit",
    "sign_permit2_single",
    "sign_permit2_batch",
    "find_unused_permit2_nonce",
]
