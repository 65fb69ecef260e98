# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Named public keys kept between demo runs in a small JSON file::

    {"tokenMint": "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"}
"""

from __future__ import annotations

import json
import os
import tempfile
import unittest
from typing import Dict, Optional

from .public_key import PublicKey

DEFAULT_LOCAL_KEYS_PATH = os.path.join(".local_keys", "local_keys.json")


class LocalKeys:
    path: str

    def __init__(self, path: str = DEFAULT_LOCAL_KEYS_PATH):
        self.path = path

    def load(self) -> Dict[str, PublicKey]:
        """All saved keys; empty when the file does not exist yet."""
        if not os.path.exists(self.path):
            return {}
        with open(self.path) as file:
            data = json.load(file)
        return {name: PublicKey.from_str(value) for name, value in data.items()}

    def get(self, name: str) -> Optional[PublicKey]:
        return self.load().get(name)

    def save(self, name: str, key: PublicKey):
        """Add or replace ``name``, keeping every other saved key."""
        data = {stored: str(value) for stored, value in self.load().items()}
        data[name] = str(key)
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w") as file:
            json.dump(data, file, indent=2)


class Test(unittest.TestCase):
    def test_save_and_load(self):
        with tempfile.TemporaryDirectory() as directory:
            keys = LocalKeys(os.path.join(directory, "nested", "local_keys.json"))
            self.assertEqual(keys.load(), {})
            self.assertIsNone(keys.get("tokenMint"))

            first = PublicKey(b"\x01" * 32)
            second = PublicKey(b"\x02" * 32)
            keys.save("tokenMint", first)
            keys.save("collection", second)
            keys.save("tokenMint", second)

            self.assertEqual(keys.load(), {"tokenMint": second, "collection": second})
            with open(keys.path) as file:
                self.assertEqual(json.load(file)["collection"], str(second))


if __name__ == "__main__":
    unittest.main()
