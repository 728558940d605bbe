import logging

from eth_account import Account

from asset_migrator.adapters.evm.constants import MigrationConfig, get_private_key_from_env
from asset_migrator.engine.executors import MigrationExecutor

receiver = "0xxxx"  # Replace with the destination address

logging.basicConfig(level=logging.INFO)


async def main():
    signer = Account.from_key(get_private_key_from_env())
    config = MigrationConfig.from_env(chain_id=11155111)

    async with MigrationExecutor(config) as executor:
        return await executor.execute_migration_gasless(
            signer,
            receiver,
            [
                {"tokenAddress": "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238"},
                {"tokenAddress": "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee", "amount": 10 ** 15},
            ],
        )


if __name__ == "__main__":
    import asyncio
    outcomes = asyncio.run(main())
    for outcome in outcomes:
        print(outcome.to_canonical_json())
