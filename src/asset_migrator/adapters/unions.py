"""
Planned Transaction Polymorphic Types (Discriminated Unions)

Defines type unions that automatically discriminate between the planned
transaction variants using their ``type`` field.

Pydantic's Discriminated Union automatically:
- Validates and selects the correct model based on the discriminator field value
- Provides type safety for all variants
- Eliminates manual type detection when transactions are rebuilt from dicts

Example usage:
    tx = PLANNED_TRANSACTION_ADAPTER.validate_python({
        "type": "native",
        "from": "0x...",
        "to": "0x...",
        "token_address": "0xeeee...",
        "amount": 8000000,
    })
"""

from typing import Union
from typing_extensions import Annotated
from pydantic import Field, TypeAdapter

from .evm.schemas import (
    NativeTransfer,
    Erc20Transfer,
    NftTransfer,
    PermitAuthorization,
    Permit2SingleTransfer,
    Permit2BatchTransfer,
)


# Every transaction the planner or the signing subsystem can produce.
PlannedTransactionTypes = Annotated[
    Union[
        NativeTransfer,         # type: "native"
        Erc20Transfer,          # type: "erc20"
        NftTransfer,            # type: "nft"
        PermitAuthorization,    # type: "permit"
        Permit2SingleTransfer,  # type: "permit2_single"
        Permit2BatchTransfer,   # type: "permit2_batch"
    ],
    Field(discriminator="type")
]


PLANNED_TRANSACTION_ADAPTER: TypeAdapter = TypeAdapter(PlannedTransactionTypes)
