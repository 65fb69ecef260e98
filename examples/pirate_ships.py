# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Mint the Seven Seas fleet on devnet.

1. Load the payer keypair and the token mint saved by an earlier run.
2. Create the "Seven Seas" sized collection.
3. Mint 32 ships into it, one after another. Each ship is created and then
   verified as a collection member; a ship that fails is retried up to 5
   times, 5 seconds apart. If a ship still fails, the run stops with a
   non-zero exit status and no later ship is minted.
4. Create the fungible tokens (gold, rum, cannons), each with a new mint,
   and remember the last mint for the next run.
5. With ``--find-by-mint``, print the metadata of the saved token mint.

Run with::

    python -m examples.pirate_ships [--find-by-mint]
"""

import argparse
import asyncio
import logging
import sys

from seven_seas.batch import BatchAborted, run_batch
from seven_seas.explorer import explorer_url
from seven_seas.keypair import Keypair
from seven_seas.local_keys import LocalKeys
from seven_seas.nft_client import (
    CreateAndVerify,
    CreateNftOutput,
    JsonMetadata,
    NftClient,
)
from seven_seas.retry import RetryPolicy
from seven_seas.rpc_client import (
    ClientConfig,
    RpcClient,
    TransactionFailed,
    TransactionTimeout,
)
from seven_seas.ships import (
    COLLECTION_SELLER_FEE_BASIS_POINTS,
    SHIP_SELLER_FEE_BASIS_POINTS,
    TOKEN_CONFIGS,
    collection_metadata,
    fleet,
)
from seven_seas.storage import NftStorageClient

from .common import (
    CLUSTER,
    LOCAL_KEYS_PATH,
    NFT_STORAGE_TOKEN,
    NFT_STORAGE_URL,
    PAYER_KEYPAIR_PATH,
    RPC_URL,
)

CLIENT_CONFIG = ClientConfig()

# An attempt is only cut off once its confirmations could not have arrived.
SHIP_RETRY_POLICY = RetryPolicy(
    max_retries=5,
    delay=5.0,
    attempt_timeout=CreateAndVerify.attempt_timeout(CLIENT_CONFIG),
)


def print_separator(message: str = ""):
    print(f"\n==== {message} ====" if message else "\n========")


async def mint_fleet(
    nft_client: NftClient, payer: Keypair, collection: CreateNftOutput
) -> None:
    def announce(created: CreateNftOutput):
        print_separator(f"NFT created: {created.mint}")
        if created.signature is None:
            print(explorer_url(address=str(created.mint), cluster=CLUSTER))
        else:
            print(explorer_url(tx_signature=created.signature, cluster=CLUSTER))

    def make_operation(index: int, metadata: JsonMetadata) -> CreateAndVerify:
        print_separator(f"Creating Ship {index + 1}")
        return CreateAndVerify(
            nft_client,
            payer,
            collection.mint,
            metadata,
            SHIP_SELLER_FEE_BASIS_POINTS,
            is_mutable=True,
            on_created=announce,
        )

    report = await run_batch(
        fleet(),
        make_operation,
        SHIP_RETRY_POLICY,
        on_success=lambda index, created: print(f"Ship {index + 1} verified"),
    )
    print(f"{len(report.completed)} of {report.total} ships minted")
    report.raise_if_aborted()


async def create_tokens(
    nft_client: NftClient, payer: Keypair, local_keys: LocalKeys
) -> None:
    for config in TOKEN_CONFIGS:
        print("Creating", config)
        try:
            output = await nft_client.create_fungible_token(payer, config)
        except (TransactionFailed, TransactionTimeout) as e:
            print("Failed to send transaction:")
            print(
                "Failed signature:",
                explorer_url(tx_signature=e.signature, cluster=CLUSTER),
            )
            raise
        print("Metadata address:", output.metadata)
        print("Transaction completed.")
        print(explorer_url(tx_signature=output.signature, cluster=CLUSTER))
        local_keys.save("tokenMint", output.mint)


async def main(find_by_mint: bool = False):
    payer = Keypair.load(PAYER_KEYPAIR_PATH)
    print("Payer address:", payer.public_key())

    local_keys = LocalKeys(LOCAL_KEYS_PATH)
    token_mint = local_keys.get("tokenMint")
    if token_mint is None:
        logging.warning(
            f"No tokenMint found in {LOCAL_KEYS_PATH}. "
            "Create a token with metadata first."
        )
        return

    print_separator("Local PublicKeys loaded")
    print("Token's mint address:", token_mint)
    print(explorer_url(address=str(token_mint), cluster=CLUSTER))

    rpc_client = RpcClient(RPC_URL, CLIENT_CONFIG)
    storage = NftStorageClient(NFT_STORAGE_URL, NFT_STORAGE_TOKEN)
    nft_client = NftClient(rpc_client, storage)

    try:
        metadata = collection_metadata()
        uri = await nft_client.upload_metadata(metadata)
        collection = await nft_client.create(
            payer,
            metadata.name,
            metadata.symbol,
            uri,
            COLLECTION_SELLER_FEE_BASIS_POINTS,
            is_collection=True,
        )
        print("Collection address", collection.mint)

        await mint_fleet(nft_client, payer, collection)
        await create_tokens(nft_client, payer, local_keys)

        if find_by_mint:
            print_separator("Find by mint:")
            print(await nft_client.find_by_mint(token_mint))
    finally:
        await storage.close()
        await rpc_client.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="Mint the Seven Seas fleet")
    parser.add_argument(
        "--find-by-mint",
        action="store_true",
        help="print the metadata of the saved token mint at the end",
    )
    args = parser.parse_args()
    try:
        asyncio.run(main(args.find_by_mint))
    except BatchAborted as e:
        logging.error(e)
        sys.exit(1)
