"""
ERC20 + ERC-2612 + ERC-721 + Permit2 Smart Contract ABI Module

This module provides trimmed ABI definitions for every contract call the
migrator makes: plain ERC-20 transfers, ERC-2612 permit reads and calls,
ERC-721 safe transfers and Uniswap Permit2 signature transfers.

Usage:
    from ERC20_ABI import (
        get_erc20_abi,
        get_erc2612_abi,
        get_erc721_abi,
        get_permit2_single_abi,
        get_permit2_batch_abi,
    )

    # ERC-20 transfer
    contract = web3.eth.contract(address=token_address, abi=get_erc20_abi())

    # Permit2 batch permitTransferFrom
    permit2 = web3.eth.contract(address=PERMIT2_ADDRESS, abi=get_permit2_batch_abi())

Permit2 single and batch ``permitTransferFrom`` are overloads of the same
name on-chain; they are kept in separate ABIs so each contract object has a
single unambiguous function.
"""

from typing import Dict, Any, List


_TOKEN_PERMISSIONS = {
    "name": "permitted",
    "type": "tuple",
    "components": [
        {"name": "token",  "type": "address"},
        {"name": "amount", "type": "uint256"},
    ],
}

_TRANSFER_DETAILS_COMPONENTS = [
    {"name": "to",              "type": "address"},
    {"name": "requestedAmount", "type": "uint256"},
]

_NONCE_BITMAP = {
    "name": "nonceBitmap",
    "type": "function",
    "stateMutability": "view",
    "inputs": [
        {"name": "owner", "type": "address"},
        {"name": "wordPos", "type": "uint256"},
    ],
    "outputs": [{"name": "", "type": "uint256"}],
}


def get_erc20_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC-20 ``transfer`` and ``name``.

    Returns:
        List[Dict[str, Any]]: ABI for transfer(address,uint256) and name()

    Example:
        abi = get_erc20_abi()
        contract = web3.eth.contract(address=token_address, abi=abi)
        await contract.functions.transfer(to, amount).estimate_gas({"from": owner})
    """
    return [
        {
            "constant": False,
            "inputs": [
                {"name": "_to", "type": "address"},
                {"name": "_value", "type": "uint256"},
            ],
            "name": "transfer",
            "outputs": [{"name": "", "type": "bool"}],
            "stateMutability": "nonpayable",
            "type": "function",
        },
        {
            "constant": True,
            "inputs": [],
            "name": "name",
            "outputs": [{"name": "", "type": "string"}],
            "stateMutability": "view",
            "type": "function",
        },
    ]


def get_erc2612_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC-2612 ``nonces``, ``name`` and ``permit``.

    ``nonces(owner)`` and ``name()`` feed the permit EIP-712 domain and
    message; ``permit(...)`` is what the relay ultimately calls.

    Returns:
        List[Dict[str, Any]]: ABI containing nonces, name and permit
    """
    return [
        {
            "inputs": [{"name": "owner", "type": "address"}],
            "name": "nonces",
            "outputs": [{"name": "", "type": "uint256"}],
            "stateMutability": "view",
            "type": "function",
        },
        {
            "inputs": [],
            "name": "name",
            "outputs": [{"name": "", "type": "string"}],
            "stateMutability": "view",
            "type": "function",
        },
        {
            "inputs": [
                {"name": "owner", "type": "address"},
                {"name": "spender", "type": "address"},
                {"name": "value", "type": "uint256"},
                {"name": "deadline", "type": "uint256"},
                {"name": "v", "type": "uint8"},
                {"name": "r", "type": "bytes32"},
                {"name": "s", "type": "bytes32"},
            ],
            "name": "permit",
            "outputs": [],
            "stateMutability": "nonpayable",
            "type": "function",
        },
    ]


def get_erc721_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC-721 ``safeTransferFrom(address,address,uint256)``.

    Returns:
        List[Dict[str, Any]]: ABI for the three-argument safeTransferFrom
    """
    return [
        {
            "inputs": [
                {"name": "from", "type": "address"},
                {"name": "to", "type": "address"},
                {"name": "tokenId", "type": "uint256"},
            ],
            "name": "safeTransferFrom",
            "outputs": [],
            "stateMutability": "nonpayable",
            "type": "function",
        },
    ]


def get_permit2_single_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for Permit2 single-token ``permitTransferFrom`` and ``nonceBitmap``.

    The function signature on-chain::

        function permitTransferFrom(
            PermitTransferFrom calldata permit,
            SignatureTransferDetails calldata transferDetails,
            address owner,
            bytes calldata signature
        ) external

    where ``PermitTransferFrom = { TokenPermissions permitted; uint256 nonce; uint256 deadline }``.

    Returns:
        List[Dict[str, Any]]: ABI with permitTransferFrom and nonceBitmap
    """
    return [
        {
            "name": "permitTransferFrom",
            "type": "function",
            "stateMutability": "nonpayable",
            "inputs": [
                {
                    "name": "permit",
                    "type": "tuple",
                    "components": [
                        _TOKEN_PERMISSIONS,
                        {"name": "nonce",    "type": "uint256"},
                        {"name": "deadline", "type": "uint256"},
                    ],
                },
                {
                    "name": "transferDetails",
                    "type": "tuple",
                    "components": _TRANSFER_DETAILS_COMPONENTS,
                },
                {"name": "owner",     "type": "address"},
                {"name": "signature", "type": "bytes"},
            ],
            "outputs": [],
        },
        _NONCE_BITMAP,
    ]


def get_permit2_batch_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for Permit2 batch ``permitTransferFrom``.

    The function signature on-chain::

        function permitTransferFrom(
            PermitBatchTransferFrom calldata permit,
            SignatureTransferDetails[] calldata transferDetails,
            address owner,
            bytes calldata signature
        ) external

    where ``PermitBatchTransferFrom = { TokenPermissions[] permitted; uint256 nonce; uint256 deadline }``.

    Returns:
        List[Dict[str, Any]]: ABI with the batch permitTransferFrom entry
    """
    return [
        {
            "name": "permitTransferFrom",
            "type": "function",
            "stateMutability": "nonpayable",
            "inputs": [
                {
                    "name": "permit",
                    "type": "tuple",
                    "components": [
                        dict(_TOKEN_PERMISSIONS, type="tuple[]"),
                        {"name": "nonce",    "type": "uint256"},
                        {"name": "deadline", "type": "uint256"},
                    ],
                },
                {
                    "name": "transferDetails",
                    "type": "tuple[]",
                    "components": _TRANSFER_DETAILS_COMPONENTS,
                },
                {"name": "owner",     "type": "address"},
                {"name": "signature", "type": "bytes"},
            ],
            "outputs": [],
        },
    ]
