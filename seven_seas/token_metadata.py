# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Metaplex Token Metadata structures and instructions.

An NFT on Solana is an SPL mint with supply 1 and decimals 0, plus two
accounts owned by the Token Metadata program:

- a *metadata* account at PDA ``["metadata", program, mint]`` holding name,
  symbol, URI, royalties, creators and the collection reference, and
- a *master edition* account at PDA ``["metadata", program, mint, "edition"]``
  which takes over the mint authority and fixes the supply.

A collection is itself an NFT. Items point at it with an unverified collection
reference at creation time; the collection's update authority then signs
``VerifySizedCollectionItem`` to flip ``verified`` to true.

Fungible tokens reuse the metadata account without the master edition.

Examples:
    Metadata for a ship::

        data = DataV2(
            name="Dreadful Galleon",
            symbol="SHIP",
            uri="https://bafy....ipfs.nftstorage.link/",
            seller_fee_basis_points=500,
            creators=[Creator(payer.public_key(), True, 100)],
            collection=CollectionRef(False, collection_mint),
        )
        instruction = create_metadata_account_v3(
            metadata_address(mint), mint, payer_key, payer_key, payer_key, data
        )

    Reading it back::

        info = await rpc_client.account_info(metadata_address(mint))
        metadata = Metadata.from_bytes(info.data)
"""

from __future__ import annotations

import unittest
from typing import List, Optional

from .borsh import Deserializer, Serializer
from .keypair import Keypair
from .programs import SYSTEM_PROGRAM_ID, TOKEN_PROGRAM_ID
from .public_key import PublicKey
from .transactions import AccountMeta, Instruction

METADATA_PROGRAM_ID = PublicKey.from_str("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")

CREATE_MASTER_EDITION_V3 = 17
VERIFY_SIZED_COLLECTION_ITEM = 30
CREATE_METADATA_ACCOUNT_V3 = 33

MAX_NAME_LENGTH = 32
MAX_SYMBOL_LENGTH = 10
MAX_URI_LENGTH = 200
MAX_CREATORS = 5


class InvalidMetadataError(Exception):
    """Metadata fields exceed what the program accepts"""


def metadata_address(mint: PublicKey) -> PublicKey:
    address, _ = PublicKey.find_program_address(
        [b"metadata", bytes(METADATA_PROGRAM_ID), bytes(mint)], METADATA_PROGRAM_ID
    )
    return address


def master_edition_address(mint: PublicKey) -> PublicKey:
    address, _ = PublicKey.find_program_address(
        [b"metadata", bytes(METADATA_PROGRAM_ID), bytes(mint), b"edition"],
        METADATA_PROGRAM_ID,
    )
    return address


class Creator:
    """A royalty recipient. ``share`` is a percentage; shares sum to 100."""

    address: PublicKey
    verified: bool
    share: int

    def __init__(self, address: PublicKey, verified: bool, share: int):
        self.address = address
        self.verified = verified
        self.share = share

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Creator):
            return NotImplemented
        return (
            self.address == other.address
            and self.verified == other.verified
            and self.share == other.share
        )

    def __str__(self) -> str:
        return f"Creator[address: {self.address}, verified: {self.verified}, share: {self.share}]"

    @staticmethod
    def deserialize(deserializer: Deserializer) -> Creator:
        return Creator(
            PublicKey.deserialize(deserializer), deserializer.bool(), deserializer.u8()
        )

    def serialize(self, serializer: Serializer):
        serializer.struct(self.address)
        serializer.bool(self.verified)
        serializer.u8(self.share)


class CollectionRef:
    """The collection an item claims to belong to, and whether that is verified."""

    verified: bool
    key: PublicKey

    def __init__(self, verified: bool, key: PublicKey):
        self.verified = verified
        self.key = key

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CollectionRef):
            return NotImplemented
        return self.verified == other.verified and self.key == other.key

    def __str__(self) -> str:
        return f"Collection[key: {self.key}, verified: {self.verified}]"

    @staticmethod
    def deserialize(deserializer: Deserializer) -> CollectionRef:
        return CollectionRef(deserializer.bool(), PublicKey.deserialize(deserializer))

    def serialize(self, serializer: Serializer):
        serializer.bool(self.verified)
        serializer.struct(self.key)


class DataV2:
    name: str
    symbol: str
    uri: str
    seller_fee_basis_points: int
    creators: Optional[List[Creator]]
    collection: Optional[CollectionRef]

    def __init__(
        self,
        name: str,
        symbol: str,
        uri: str,
        seller_fee_basis_points: int = 0,
        creators: Optional[List[Creator]] = None,
        collection: Optional[CollectionRef] = None,
    ):
        self.name = name
        self.symbol = symbol
        self.uri = uri
        self.seller_fee_basis_points = seller_fee_basis_points
        self.creators = creators
        self.collection = collection

    def validate(self):
        """Reject fields the program would refuse, before paying for a transaction."""
        if len(self.name.encode()) > MAX_NAME_LENGTH:
            raise InvalidMetadataError(f"Name longer than {MAX_NAME_LENGTH} bytes: {self.name}")
        if len(self.symbol.encode()) > MAX_SYMBOL_LENGTH:
            raise InvalidMetadataError(
                f"Symbol longer than {MAX_SYMBOL_LENGTH} bytes: {self.symbol}"
            )
        if len(self.uri.encode()) > MAX_URI_LENGTH:
            raise InvalidMetadataError(f"URI longer than {MAX_URI_LENGTH} bytes")
        if not 0 <= self.seller_fee_basis_points <= 10000:
            raise InvalidMetadataError(
                f"Seller fee must be within 0..10000: {self.seller_fee_basis_points}"
            )
        if self.creators is not None:
            if len(self.creators) > MAX_CREATORS:
                raise InvalidMetadataError(f"At most {MAX_CREATORS} creators")
            if sum(creator.share for creator in self.creators) != 100:
                raise InvalidMetadataError("Creator shares must add up to 100")

    def serialize(self, serializer: Serializer):
        serializer.str(self.name)
        serializer.str(self.symbol)
        serializer.str(self.uri)
        serializer.u16(self.seller_fee_basis_points)
        serializer.option(
            self.creators, lambda s, v: s.sequence(v, Serializer.struct)
        )
        serializer.option(self.collection, Serializer.struct)
        # uses
        serializer.option(None, Serializer.struct)


class Metadata:
    """The decoded metadata account of a mint.

    Strings are stored zero padded to their maximum length on chain; the
    padding is stripped here.
    """

    update_authority: PublicKey
    mint: PublicKey
    name: str
    symbol: str
    uri: str
    seller_fee_basis_points: int
    creators: Optional[List[Creator]]
    primary_sale_happened: bool
    is_mutable: bool
    collection: Optional[CollectionRef]

    def __init__(
        self,
        update_authority: PublicKey,
        mint: PublicKey,
        name: str,
        symbol: str,
        uri: str,
        seller_fee_basis_points: int,
        creators: Optional[List[Creator]],
        primary_sale_happened: bool,
        is_mutable: bool,
        collection: Optional[CollectionRef] = None,
    ):
        self.update_authority = update_authority
        self.mint = mint
        self.name = name
        self.symbol = symbol
        self.uri = uri
        self.seller_fee_basis_points = seller_fee_basis_points
        self.creators = creators
        self.primary_sale_happened = primary_sale_happened
        self.is_mutable = is_mutable
        self.collection = collection

    def __str__(self) -> str:
        return (
            f"Metadata[mint: {self.mint}, name: {self.name}, symbol: {self.symbol}, "
            f"uri: {self.uri}, seller_fee_basis_points: {self.seller_fee_basis_points}, "
            f"update_authority: {self.update_authority}, collection: {self.collection}]"
        )

    @staticmethod
    def from_bytes(data: bytes) -> Metadata:
        return Metadata.deserialize(Deserializer(data))

    @staticmethod
    def deserialize(deserializer: Deserializer) -> Metadata:
        deserializer.u8()  # account key
        update_authority = PublicKey.deserialize(deserializer)
        mint = PublicKey.deserialize(deserializer)
        name = deserializer.str().rstrip("\x00")
        symbol = deserializer.str().rstrip("\x00")
        uri = deserializer.str().rstrip("\x00")
        seller_fee_basis_points = deserializer.u16()
        creators = deserializer.option(
            lambda d: d.sequence(Creator.deserialize)
        )
        primary_sale_happened = deserializer.bool()
        is_mutable = deserializer.bool()

        collection = None
        if deserializer.remaining() > 0:
            deserializer.option(Deserializer.u8)  # edition nonce
        if deserializer.remaining() > 0:
            deserializer.option(Deserializer.u8)  # token standard
        if deserializer.remaining() > 0:
            collection = deserializer.option(CollectionRef.deserialize)

        return Metadata(
            update_authority,
            mint,
            name,
            symbol,
            uri,
            seller_fee_basis_points,
            creators,
            primary_sale_happened,
            is_mutable,
            collection,
        )


def create_metadata_account_v3(
    metadata: PublicKey,
    mint: PublicKey,
    mint_authority: PublicKey,
    payer: PublicKey,
    update_authority: PublicKey,
    data: DataV2,
    is_mutable: bool = True,
    collection_size: Optional[int] = None,
) -> Instruction:
    """Create the metadata account of ``mint``.

    ``collection_size`` marks the mint as a sized collection parent.
    """
    data.validate()
    ser = Serializer()
    ser.u8(CREATE_METADATA_ACCOUNT_V3)
    ser.struct(data)
    ser.bool(is_mutable)
    if collection_size is None:
        ser.bool(False)
    else:
        ser.bool(True)
        ser.u8(0)  # CollectionDetails::V1
        ser.u64(collection_size)
    return Instruction(
        METADATA_PROGRAM_ID,
        [
            AccountMeta(metadata, False, True),
            AccountMeta(mint, False, False),
            AccountMeta(mint_authority, True, False),
            AccountMeta(payer, True, True),
            AccountMeta(update_authority, True, False),
            AccountMeta(SYSTEM_PROGRAM_ID, False, False),
        ],
        ser.output(),
    )


def create_master_edition_v3(
    mint: PublicKey,
    update_authority: PublicKey,
    mint_authority: PublicKey,
    payer: PublicKey,
    max_supply: Optional[int] = 0,
) -> Instruction:
    ser = Serializer()
    ser.u8(CREATE_MASTER_EDITION_V3)
    ser.option(max_supply, Serializer.u64)
    return Instruction(
        METADATA_PROGRAM_ID,
        [
            AccountMeta(master_edition_address(mint), False, True),
            AccountMeta(mint, False, True),
            AccountMeta(update_authority, True, False),
            AccountMeta(mint_authority, True, False),
            AccountMeta(payer, True, True),
            AccountMeta(metadata_address(mint), False, True),
            AccountMeta(TOKEN_PROGRAM_ID, False, False),
            AccountMeta(SYSTEM_PROGRAM_ID, False, False),
        ],
        ser.output(),
    )


def verify_sized_collection_item(
    mint: PublicKey,
    collection_authority: Keypair,
    payer: PublicKey,
    collection_mint: PublicKey,
) -> Instruction:
    return Instruction(
        METADATA_PROGRAM_ID,
        [
            AccountMeta(metadata_address(mint), False, True),
            AccountMeta(collection_authority.public_key(), True, False),
            AccountMeta(payer, True, True),
            AccountMeta(collection_mint, False, False),
            AccountMeta(metadata_address(collection_mint), False, True),
            AccountMeta(master_edition_address(collection_mint), False, False),
        ],
        bytes([VERIFY_SIZED_COLLECTION_ITEM]),
    )


class Test(unittest.TestCase):
    def test_data_v2_layout(self):
        creator = PublicKey(b"\x01" * 32)
        collection = PublicKey(b"\x02" * 32)
        data = DataV2(
            "Ship",
            "SHIP",
            "u",
            500,
            [Creator(creator, True, 100)],
            CollectionRef(False, collection),
        )
        ser = Serializer()
        data.serialize(ser)
        expected = (
            b"\x04\x00\x00\x00Ship"
            + b"\x04\x00\x00\x00SHIP"
            + b"\x01\x00\x00\x00u"
            + b"\xf4\x01"
            + b"\x01\x01\x00\x00\x00"
            + bytes(creator)
            + b"\x01\x64"
            + b"\x01\x00"
            + bytes(collection)
            + b"\x00"
        )
        self.assertEqual(ser.output(), expected)

    def test_create_metadata_instruction(self):
        mint = PublicKey(b"\x03" * 32)
        payer = PublicKey(b"\x04" * 32)
        data = DataV2("Seven Seas", "7SEAS", "https://example.com/", 100)

        plain = create_metadata_account_v3(
            metadata_address(mint), mint, payer, payer, payer, data
        )
        self.assertEqual(plain.data[0], CREATE_METADATA_ACCOUNT_V3)
        self.assertEqual(plain.data[-2:], b"\x01\x00")

        sized = create_metadata_account_v3(
            metadata_address(mint), mint, payer, payer, payer, data, collection_size=0
        )
        self.assertEqual(sized.data[-11:], b"\x01\x01\x00" + bytes(8))
        self.assertEqual(sized.accounts[0].public_key, metadata_address(mint))
        self.assertEqual(sized.accounts[5].public_key, SYSTEM_PROGRAM_ID)

    def test_validation(self):
        with self.assertRaises(InvalidMetadataError):
            DataV2("x" * 33, "SHIP", "u").validate()
        with self.assertRaises(InvalidMetadataError):
            DataV2("Ship", "TOOLONGSYMB", "u").validate()
        with self.assertRaises(InvalidMetadataError):
            DataV2("Ship", "SHIP", "u", 10001).validate()
        with self.assertRaises(InvalidMetadataError):
            DataV2(
                "Ship", "SHIP", "u", 0, [Creator(PublicKey(b"\x01" * 32), True, 50)]
            ).validate()

    def test_master_edition(self):
        mint = PublicKey(b"\x05" * 32)
        payer = PublicKey(b"\x06" * 32)
        instruction = create_master_edition_v3(mint, payer, payer, payer)
        self.assertEqual(instruction.data, b"\x11\x01" + bytes(8))
        self.assertEqual(instruction.accounts[0].public_key, master_edition_address(mint))
        self.assertNotEqual(master_edition_address(mint), metadata_address(mint))

    def test_verify_collection(self):
        authority = Keypair.generate()
        mint = PublicKey(b"\x07" * 32)
        collection = PublicKey(b"\x08" * 32)
        instruction = verify_sized_collection_item(
            mint, authority, authority.public_key(), collection
        )
        self.assertEqual(instruction.data, b"\x1e")
        self.assertEqual(instruction.accounts[3].public_key, collection)
        self.assertEqual(
            instruction.accounts[4].public_key, metadata_address(collection)
        )

    def test_metadata_decode(self):
        authority = PublicKey(b"\x09" * 32)
        mint = PublicKey(b"\x0a" * 32)
        collection = PublicKey(b"\x0b" * 32)

        ser = Serializer()
        ser.u8(4)
        ser.struct(authority)
        ser.struct(mint)
        ser.str("Salty Sloop".ljust(MAX_NAME_LENGTH, "\x00"))
        ser.str("SHIP".ljust(MAX_SYMBOL_LENGTH, "\x00"))
        ser.str("https://example.com/".ljust(MAX_URI_LENGTH, "\x00"))
        ser.u16(500)
        ser.option([Creator(authority, True, 100)], lambda s, v: s.sequence(v, Serializer.struct))
        ser.bool(False)
        ser.bool(True)
        ser.option(254, Serializer.u8)
        ser.option(0, Serializer.u8)
        ser.option(CollectionRef(True, collection), Serializer.struct)

        metadata = Metadata.from_bytes(ser.output() + bytes(20))
        self.assertEqual(metadata.name, "Salty Sloop")
        self.assertEqual(metadata.symbol, "SHIP")
        self.assertEqual(metadata.uri, "https://example.com/")
        self.assertEqual(metadata.seller_fee_basis_points, 500)
        self.assertEqual(metadata.creators, [Creator(authority, True, 100)])
        self.assertEqual(metadata.mint, mint)
        self.assertTrue(metadata.is_mutable)
        self.assertEqual(metadata.collection, CollectionRef(True, collection))


if __name__ == "__main__":
    unittest.main()
