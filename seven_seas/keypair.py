# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import json
import os
import tempfile
import unittest
from typing import List

from nacl.signing import SigningKey

from .public_key import PublicKey


class InvalidKeypairError(Exception):
    """The secret key bytes do not describe a usable ed25519 keypair"""


class Keypair:
    """An ed25519 signing keypair, the payer or a freshly generated mint.

    Keypairs are stored the way the Solana CLI stores them: a JSON array of 64
    integers, the 32 byte seed followed by the 32 byte public key.

    Examples:
        Load the CLI wallet and sign::

            from seven_seas.keypair import Keypair

            payer = Keypair.load(os.path.expanduser("~/.config/solana/id.json"))
            print(f"Payer: {payer.public_key()}")
            signature = payer.sign(b"message bytes")

        A new mint account::

            mint = Keypair.generate()
    """

    signing_key: SigningKey

    SEED_LENGTH: int = 32
    SECRET_KEY_LENGTH: int = 64

    def __init__(self, signing_key: SigningKey):
        self.signing_key = signing_key

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Keypair):
            return NotImplemented
        return self.secret_key() == other.secret_key()

    def __repr__(self) -> str:
        return f"Keypair({self.public_key()})"

    @staticmethod
    def generate() -> Keypair:
        return Keypair(SigningKey.generate())

    @staticmethod
    def from_seed(seed: bytes) -> Keypair:
        if len(seed) != Keypair.SEED_LENGTH:
            raise InvalidKeypairError(
                f"Expected a {Keypair.SEED_LENGTH} byte seed, got {len(seed)}"
            )
        return Keypair(SigningKey(seed))

    @staticmethod
    def from_secret_key(secret_key: bytes) -> Keypair:
        """Build a keypair from the 64 byte seed-then-public-key form.

        Raises:
            InvalidKeypairError: If the length is wrong or the trailing public
                key does not belong to the seed.
        """
        if len(secret_key) != Keypair.SECRET_KEY_LENGTH:
            raise InvalidKeypairError(
                f"Expected a {Keypair.SECRET_KEY_LENGTH} byte secret key, "
                f"got {len(secret_key)}"
            )
        keypair = Keypair.from_seed(secret_key[: Keypair.SEED_LENGTH])
        if bytes(keypair.public_key()) != secret_key[Keypair.SEED_LENGTH :]:
            raise InvalidKeypairError("Public key does not match the secret seed")
        return keypair

    @staticmethod
    def load(path: str) -> Keypair:
        """Read a Solana CLI keypair file."""
        with open(path) as file:
            data = json.load(file)
        if not isinstance(data, list):
            raise InvalidKeypairError(f"{path} does not hold a JSON array of bytes")
        try:
            secret_key = bytes(data)
        except (TypeError, ValueError) as e:
            raise InvalidKeypairError(f"{path} holds values that are not bytes: {e}")
        return Keypair.from_secret_key(secret_key)

    def store(self, path: str):
        data: List[int] = list(self.secret_key())
        with open(path, "w") as file:
            json.dump(data, file)

    def secret_key(self) -> bytes:
        return bytes(self.signing_key) + bytes(self.public_key())

    def public_key(self) -> PublicKey:
        return PublicKey.from_verify_key(self.signing_key.verify_key)

    def sign(self, data: bytes) -> bytes:
        """Detached 64 byte ed25519 signature over ``data``."""
        return self.signing_key.sign(data).signature


class Test(unittest.TestCase):
    def test_load_and_store(self):
        (file, path) = tempfile.mkstemp()
        os.close(file)
        start = Keypair.generate()
        start.store(path)
        load = Keypair.load(path)
        os.remove(path)

        self.assertEqual(start, load)
        self.assertEqual(start.public_key(), load.public_key())

    def test_cli_file_layout(self):
        (file, path) = tempfile.mkstemp()
        os.close(file)
        keypair = Keypair.from_seed(bytes(range(32)))
        keypair.store(path)
        with open(path) as handle:
            data = json.load(handle)
        os.remove(path)

        self.assertEqual(len(data), 64)
        self.assertEqual(data[:32], list(range(32)))
        self.assertEqual(bytes(data[32:]), bytes(keypair.public_key()))

    def test_sign(self):
        message = b"test message"
        keypair = Keypair.generate()
        signature = keypair.sign(message)
        self.assertEqual(len(signature), 64)
        self.assertTrue(keypair.public_key().verify(message, signature))

    def test_mismatched_secret_key(self):
        secret = bytes(range(32)) + bytes(Keypair.generate().public_key())
        with self.assertRaises(InvalidKeypairError):
            Keypair.from_secret_key(secret)
        with self.assertRaises(InvalidKeypairError):
            Keypair.from_secret_key(b"\x01" * 32)

    def test_load_rejects_non_array(self):
        (file, path) = tempfile.mkstemp()
        with os.fdopen(file, "w") as handle:
            json.dump({"secret": "nope"}, handle)
        with self.assertRaises(InvalidKeypairError):
            Keypair.load(path)
        os.remove(path)


if __name__ == "__main__":
    unittest.main()
