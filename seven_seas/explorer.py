# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import unittest
from typing import Optional

EXPLORER_URL = "https://explorer.solana.com"


def explorer_url(
    address: Optional[str] = None,
    tx_signature: Optional[str] = None,
    cluster: str = "devnet",
) -> str:
    """Link to an account or a transaction on the Solana explorer."""
    if tx_signature is not None:
        path = f"tx/{tx_signature}"
    elif address is not None:
        path = f"address/{address}"
    else:
        raise ValueError("Either an address or a transaction signature is required")
    return f"{EXPLORER_URL}/{path}?cluster={cluster}"


class Test(unittest.TestCase):
    def test_links(self):
        self.assertEqual(
            explorer_url(address="11111111111111111111111111111111"),
            "https://explorer.solana.com/address/11111111111111111111111111111111"
            "?cluster=devnet",
        )
        self.assertEqual(
            explorer_url(tx_signature="5sig", cluster="testnet"),
            "https://explorer.solana.com/tx/5sig?cluster=testnet",
        )
        with self.assertRaises(ValueError):
            explorer_url()


if __name__ == "__main__":
    unittest.main()
