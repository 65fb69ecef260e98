# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Shared configuration for the Seven Seas examples, read once from the
environment and defaulting to devnet.

Environment Variables:
    SOLANA_RPC_URL: JSON-RPC endpoint of the Solana node.
    SOLANA_CLUSTER: Cluster name used in explorer links.
    NFT_STORAGE_URL: nft.storage API endpoint for metadata uploads.
    NFT_STORAGE_TOKEN: API token for nft.storage.
    PAYER_KEYPAIR_PATH: Solana CLI keypair file of the fee payer.
    LOCAL_KEYS_PATH: JSON file of public keys saved between runs.

Switching to a local validator::

    SOLANA_RPC_URL=http://127.0.0.1:8899 SOLANA_CLUSTER=custom \\
        python -m examples.pirate_ships
"""

import os
import os.path

# :!:>section_1
RPC_URL = os.getenv("SOLANA_RPC_URL", "https://api.devnet.solana.com")

CLUSTER = os.getenv("SOLANA_CLUSTER", "devnet")

NFT_STORAGE_URL = os.getenv("NFT_STORAGE_URL", "https://api.nft.storage")

NFT_STORAGE_TOKEN = os.getenv("NFT_STORAGE_TOKEN")

PAYER_KEYPAIR_PATH = os.getenv(
    "PAYER_KEYPAIR_PATH",
    os.path.expanduser(os.path.join("~", ".config", "solana", "id.json")),
)

LOCAL_KEYS_PATH = os.getenv(
    "LOCAL_KEYS_PATH",
    os.path.abspath(os.path.join(".local_keys", "local_keys.json")),
)
# <:!:section_1
