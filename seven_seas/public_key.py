# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Public keys and program derived addresses.

Every account on Solana is addressed by 32 bytes, written as base58 text. Most
addresses are ed25519 public keys; program derived addresses (PDAs) are
deliberately *not* valid curve points, so no private key can sign for them and
only the owning program can.

Derivation:
    ``create_program_address`` hashes the seeds, the program id and the marker
    ``ProgramDerivedAddress`` with SHA-256 and rejects results that decompress
    to an ed25519 point. ``find_program_address`` appends a one byte "bump"
    seed, starting at 255 and counting down, and returns the first result that
    is off the curve.

Examples:
    Parsing and printing::

        from seven_seas.public_key import PublicKey

        key = PublicKey.from_str("11111111111111111111111111111111")
        print(key)              # base58
        key.address.hex()       # raw bytes

    Metadata account of a mint::

        metadata, bump = PublicKey.find_program_address(
            [b"metadata", bytes(METADATA_PROGRAM_ID), bytes(mint)],
            METADATA_PROGRAM_ID,
        )
"""

from __future__ import annotations

import hashlib
import unittest
from typing import List, Sequence, Tuple

import base58
from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from .borsh import Deserializer, Serializer

# Field prime and twisted Edwards constant of curve25519.
ED25519_P = 2**255 - 19
ED25519_D = (-121665 * pow(121666, ED25519_P - 2, ED25519_P)) % ED25519_P

MAX_SEED_LENGTH = 32
MAX_SEEDS = 16
PDA_MARKER = b"ProgramDerivedAddress"


class ParsePublicKeyError(Exception):
    """The input could not be parsed into a 32 byte public key"""


class InvalidSeedsError(Exception):
    """The seeds cannot produce a program derived address"""


class PublicKey:
    """A 32 byte account address on Solana.

    Attributes:
        address: The raw 32 bytes.
        LENGTH: Required byte length (32).
    """

    address: bytes

    LENGTH: int = 32

    def __init__(self, address: bytes):
        if len(address) != PublicKey.LENGTH:
            raise ParsePublicKeyError(
                f"Expected {PublicKey.LENGTH} bytes, got {len(address)}"
            )
        self.address = bytes(address)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PublicKey):
            return NotImplemented
        return self.address == other.address

    def __hash__(self) -> int:
        return hash(self.address)

    def __bytes__(self) -> bytes:
        return self.address

    def __str__(self) -> str:
        return base58.b58encode(self.address).decode()

    def __repr__(self) -> str:
        return f"PublicKey({self})"

    @staticmethod
    def from_str(address: str) -> PublicKey:
        """Parse a base58 address.

        Raises:
            ParsePublicKeyError: If the text is not base58 or does not decode
                to exactly 32 bytes.
        """
        try:
            decoded = base58.b58decode(address.strip())
        except ValueError as e:
            raise ParsePublicKeyError(f"Invalid base58 address {address!r}: {e}")
        return PublicKey(decoded)

    @staticmethod
    def from_verify_key(key: VerifyKey) -> PublicKey:
        return PublicKey(key.encode())

    def is_on_curve(self) -> bool:
        return is_on_curve(self.address)

    def verify(self, data: bytes, signature: bytes) -> bool:
        try:
            VerifyKey(self.address).verify(data, signature)
        except (BadSignatureError, ValueError):
            return False
        return True

    @staticmethod
    def create_program_address(
        seeds: Sequence[bytes], program_id: PublicKey
    ) -> PublicKey:
        """Derive the address for exactly these seeds.

        Raises:
            InvalidSeedsError: If a seed is too long, there are too many seeds,
                or the hash lands on the ed25519 curve.
        """
        if len(seeds) > MAX_SEEDS:
            raise InvalidSeedsError(f"At most {MAX_SEEDS} seeds, got {len(seeds)}")
        hasher = hashlib.sha256()
        for seed in seeds:
            if len(seed) > MAX_SEED_LENGTH:
                raise InvalidSeedsError(
                    f"Seed longer than {MAX_SEED_LENGTH} bytes: {seed!r}"
                )
            hasher.update(seed)
        hasher.update(program_id.address)
        hasher.update(PDA_MARKER)
        derived = hasher.digest()
        if is_on_curve(derived):
            raise InvalidSeedsError("Derived address is on the ed25519 curve")
        return PublicKey(derived)

    @staticmethod
    def find_program_address(
        seeds: Sequence[bytes], program_id: PublicKey
    ) -> Tuple[PublicKey, int]:
        """Return the first off-curve address and its bump, trying 255 down to 0."""
        for bump in range(255, -1, -1):
            try:
                address = PublicKey.create_program_address(
                    list(seeds) + [bytes([bump])], program_id
                )
            except InvalidSeedsError:
                continue
            return (address, bump)
        raise InvalidSeedsError("Unable to find a viable program address bump seed")

    @staticmethod
    def deserialize(deserializer: Deserializer) -> PublicKey:
        return PublicKey(deserializer.fixed_bytes(PublicKey.LENGTH))

    def serialize(self, serializer: Serializer):
        serializer.fixed_bytes(self.address)


def is_on_curve(data: bytes) -> bool:
    """Whether ``data`` decompresses to a point on the ed25519 curve.

    Mirrors compressed Edwards Y decompression: the top bit is the sign of x,
    the rest is y, and the point exists when (y^2 - 1) / (d*y^2 + 1) is a
    square modulo p.
    """
    y = (int.from_bytes(data, "little") & ((1 << 255) - 1)) % ED25519_P
    y2 = y * y % ED25519_P
    u = (y2 - 1) % ED25519_P
    v = (ED25519_D * y2 + 1) % ED25519_P
    if v == 0:
        return False
    x2 = u * pow(v, ED25519_P - 2, ED25519_P) % ED25519_P
    if x2 == 0:
        return True
    return pow(x2, (ED25519_P - 1) // 2, ED25519_P) == 1


class Test(unittest.TestCase):
    def test_system_program_is_all_zeroes(self):
        key = PublicKey.from_str("11111111111111111111111111111111")
        self.assertEqual(key.address, b"\x00" * 32)
        self.assertEqual(str(key), "11111111111111111111111111111111")

    def test_round_trip(self):
        text = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
        key = PublicKey.from_str(text)
        self.assertEqual(str(key), text)
        self.assertEqual(PublicKey(bytes(key)), key)
        self.assertEqual(len({key, PublicKey.from_str(text)}), 1)

    def test_invalid(self):
        with self.assertRaises(ParsePublicKeyError):
            PublicKey.from_str("0OIl")
        with self.assertRaises(ParsePublicKeyError):
            PublicKey.from_str("1111")
        with self.assertRaises(ParsePublicKeyError):
            PublicKey(b"\x01" * 31)

    def test_generated_keys_are_on_curve(self):
        for _ in range(8):
            key = PublicKey.from_verify_key(SigningKey.generate().verify_key)
            self.assertTrue(key.is_on_curve())

    def test_find_program_address(self):
        program_id = PublicKey.from_str("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")
        seeds: List[bytes] = [b"metadata", bytes(program_id), b"\x07" * 32]
        address, bump = PublicKey.find_program_address(seeds, program_id)
        self.assertFalse(address.is_on_curve())
        self.assertTrue(0 <= bump <= 255)
        self.assertEqual(
            PublicKey.create_program_address(seeds + [bytes([bump])], program_id),
            address,
        )
        self.assertEqual(
            PublicKey.find_program_address(seeds, program_id), (address, bump)
        )

    def test_create_program_address_known_values(self):
        program_id = PublicKey.from_str("BPFLoader1111111111111111111111111111111111")
        cases = [
            ([b"", b"\x01"], "3gF2KMe9KiC6FNVBmfg9i267aMPvK37FewCip4eGBFcT"),
            (["☉".encode()], "7ytmC1nT1xY4RfxCV2ZgyA7UakC93do5ZdyhdF3EtPj7"),
            ([b"Talking", b"Squirrels"], "HwRVBufQ4haG5XSgpspwKtNd3PC9GM9m1196uJW36vds"),
        ]
        for seeds, expected in cases:
            self.assertEqual(
                str(PublicKey.create_program_address(seeds, program_id)), expected
            )

    def test_seed_limits(self):
        program_id = PublicKey(b"\x00" * 32)
        with self.assertRaises(InvalidSeedsError):
            PublicKey.create_program_address([b"x" * 33], program_id)
        with self.assertRaises(InvalidSeedsError):
            PublicKey.create_program_address([b"x"] * 17, program_id)

    def test_verify(self):
        signing_key = SigningKey.generate()
        key = PublicKey.from_verify_key(signing_key.verify_key)
        signature = signing_key.sign(b"ahoy").signature
        self.assertTrue(key.verify(b"ahoy", signature))
        self.assertFalse(key.verify(b"avast", signature))

    def test_serialization(self):
        key = PublicKey(bytes(range(32)))
        ser = Serializer()
        key.serialize(ser)
        self.assertEqual(ser.output(), bytes(range(32)))
        self.assertEqual(PublicKey.deserialize(Deserializer(ser.output())), key)


if __name__ == "__main__":
    unittest.main()
