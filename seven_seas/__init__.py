# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Seven Seas - mint a pirate NFT fleet and fungible tokens on a Solana test network.

The core is a bounded retry submitter: a remote create-and-verify operation is
attempted, retried a fixed number of times with a fixed delay, and resolves to
either a success carrying the created artifact or the last error. A sequential
batch driver stops the batch at the first item that runs out of retries.

Around it sit the pieces needed to talk to the network:

- ``retry`` and ``batch``: the submitter and the batch driver.
- ``public_key``, ``keypair``: base58 addresses, program derived addresses and
  ed25519 signing keys.
- ``borsh``, ``transactions``, ``programs``, ``token_metadata``: wire formats,
  legacy transactions and instruction builders for the System, SPL Token,
  Associated Token Account and Token Metadata programs.
- ``rpc_client``, ``storage``, ``nft_client``: the JSON-RPC client, the
  metadata upload client and the NFT / token client built on both.
- ``ships``, ``local_keys``, ``explorer``: demo data and helpers.

Examples:
    ::

        import asyncio

        from seven_seas.keypair import Keypair
        from seven_seas.nft_client import NftClient
        from seven_seas.retry import RetryPolicy, submit_with_retry
        from seven_seas.rpc_client import RpcClient

        async def main():
            rpc_client = RpcClient("https://api.devnet.solana.com")
            nft_client = NftClient(rpc_client)
            payer = Keypair.load("id.json")

            async def mint():
                return await nft_client.create(payer, "Bold Corsair", "SHIP", uri, 500)

            print(await submit_with_retry(mint, RetryPolicy(max_retries=5, delay=5.0)))
            await rpc_client.close()

        asyncio.run(main())
"""
