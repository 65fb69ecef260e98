# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
NFT and fungible token client on top of :class:`seven_seas.rpc_client.RpcClient`.

Each high level call builds the full instruction list for one transaction,
signs it with the payer (and the new mint where one is created), submits it
and waits for confirmation:

- :meth:`NftClient.create` mints a one-of-one NFT: mint account, mint
  initialization, the payer's associated token account, a mint of 1 token,
  the metadata account and the master edition. With ``is_collection`` the
  metadata is marked as a sized collection parent; with ``collection`` the
  item points at that collection, unverified.
- :meth:`NftClient.verify_collection` has the collection authority confirm
  an item's membership.
- :meth:`NftClient.create_fungible_token` creates a mint with decimals and a
  metadata account, without master edition.
- :meth:`NftClient.find_by_mint` reads the metadata account back.

:class:`CreateAndVerify` wraps create plus verify as the zero-argument
operation retried by :mod:`seven_seas.retry`.

Examples:
    Mint into a collection::

        nft_client = NftClient(rpc_client, storage)
        uri = await nft_client.upload_metadata(metadata)
        collection = await nft_client.create(
            payer, "Seven Seas", "7SEAS", uri, 100, is_collection=True
        )
        ship = await nft_client.create(
            payer, "Bold Corsair", "SHIP", ship_uri, 500,
            collection=collection.mint,
        )
        await nft_client.verify_collection(payer, collection.mint, ship.mint)
"""

from __future__ import annotations

import asyncio
import base64
import logging
import unittest
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx

from .borsh import Serializer
from .keypair import Keypair
from .programs import (
    MINT_SIZE,
    associated_token_address,
    create_associated_token_account,
    create_mint_instructions,
    mint_to,
)
from .public_key import PublicKey
from .rpc_client import BLOCKHASH, ClientConfig, FakeNode, RpcClient
from .storage import MetadataStorage
from .token_metadata import (
    METADATA_PROGRAM_ID,
    CollectionRef,
    Creator,
    DataV2,
    Metadata,
    create_master_edition_v3,
    create_metadata_account_v3,
    master_edition_address,
    metadata_address,
    verify_sized_collection_item,
)


@dataclass(frozen=True)
class JsonMetadata:
    """The off-chain JSON document behind an NFT's URI."""

    name: str
    symbol: str
    description: str
    image: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TokenConfig:
    decimals: int
    name: str
    symbol: str
    uri: str


@dataclass
class CreateNftOutput:
    mint: PublicKey
    metadata: PublicKey
    master_edition: PublicKey
    token_account: PublicKey
    # None when the NFT was found on chain rather than created by this call
    signature: Optional[str]

    @staticmethod
    def for_mint(
        owner: PublicKey, mint: PublicKey, signature: Optional[str]
    ) -> CreateNftOutput:
        return CreateNftOutput(
            mint=mint,
            metadata=metadata_address(mint),
            master_edition=master_edition_address(mint),
            token_account=associated_token_address(owner, mint),
            signature=signature,
        )


@dataclass
class CreateTokenOutput:
    mint: PublicKey
    metadata: PublicKey
    signature: str


class AccountNotFound(Exception):
    """The account was not found"""

    account: PublicKey

    def __init__(self, message: str, account: PublicKey):
        super().__init__(message)
        self.account = account


class NftClient:
    rpc_client: RpcClient
    storage: Optional[MetadataStorage]

    def __init__(self, rpc_client: RpcClient, storage: Optional[MetadataStorage] = None):
        self.rpc_client = rpc_client
        self.storage = storage

    async def upload_metadata(self, metadata: JsonMetadata) -> str:
        """Upload the JSON document and return its URI."""
        if self.storage is None:
            raise ValueError("No metadata storage configured")
        return await self.storage.upload(metadata.to_dict())

    async def create(
        self,
        payer: Keypair,
        name: str,
        symbol: str,
        uri: str,
        seller_fee_basis_points: int,
        is_mutable: bool = True,
        collection: Optional[PublicKey] = None,
        is_collection: bool = False,
        mint: Optional[Keypair] = None,
    ) -> CreateNftOutput:
        """Mint a new NFT owned, paid for and updatable by ``payer``.

        A fresh mint keypair is generated unless one is passed in.
        """
        mint = Keypair.generate() if mint is None else mint
        owner = payer.public_key()
        data = DataV2(
            name=name,
            symbol=symbol,
            uri=uri,
            seller_fee_basis_points=seller_fee_basis_points,
            creators=[Creator(owner, True, 100)],
            collection=None if collection is None else CollectionRef(False, collection),
        )
        data.validate()
        lamports = await self.rpc_client.minimum_balance_for_rent_exemption(MINT_SIZE)

        instructions = create_mint_instructions(payer, mint, lamports, 0, owner)
        instructions += [
            create_associated_token_account(owner, owner, mint.public_key()),
            mint_to(
                mint.public_key(),
                associated_token_address(owner, mint.public_key()),
                owner,
                1,
            ),
            create_metadata_account_v3(
                metadata_address(mint.public_key()),
                mint.public_key(),
                owner,
                owner,
                owner,
                data,
                is_mutable=is_mutable,
                collection_size=0 if is_collection else None,
            ),
            create_master_edition_v3(mint.public_key(), owner, owner, owner),
        ]
        signature = await self.rpc_client.send_and_confirm_transaction(
            instructions, payer, [payer, mint]
        )
        logging.info(f"Created NFT {mint.public_key()} in {signature}")
        return CreateNftOutput.for_mint(owner, mint.public_key(), signature)

    async def verify_collection(
        self, payer: Keypair, collection_mint: PublicKey, mint: PublicKey
    ) -> str:
        """Mark ``mint`` as a verified member of the sized collection."""
        instruction = verify_sized_collection_item(
            mint, payer, payer.public_key(), collection_mint
        )
        return await self.rpc_client.send_and_confirm_transaction(
            [instruction], payer, [payer]
        )

    async def create_fungible_token(
        self, payer: Keypair, config: TokenConfig, mint: Optional[Keypair] = None
    ) -> CreateTokenOutput:
        """Create a mint with ``config.decimals`` and its metadata account.

        A fresh mint keypair is generated unless one is passed in.
        """
        mint = Keypair.generate() if mint is None else mint
        owner = payer.public_key()
        lamports = await self.rpc_client.minimum_balance_for_rent_exemption(MINT_SIZE)
        instructions = create_mint_instructions(
            payer, mint, lamports, config.decimals, owner
        )
        instructions.append(
            create_metadata_account_v3(
                metadata_address(mint.public_key()),
                mint.public_key(),
                owner,
                owner,
                owner,
                DataV2(config.name, config.symbol, config.uri),
            )
        )
        signature = await self.rpc_client.send_and_confirm_transaction(
            instructions, payer, [payer, mint]
        )
        return CreateTokenOutput(
            mint=mint.public_key(),
            metadata=metadata_address(mint.public_key()),
            signature=signature,
        )

    async def find_by_mint(self, mint: PublicKey) -> Metadata:
        """Decode the metadata account of ``mint``.

        Raises:
            AccountNotFound: If the mint has no metadata account.
        """
        address = metadata_address(mint)
        info = await self.rpc_client.account_info(address)
        if info is None:
            raise AccountNotFound(f"No metadata account for mint {mint}", address)
        return Metadata.from_bytes(info.data)


class CreateAndVerify:
    """Upload, create and verify one collection item, resumable across retries.

    The mint keypair is fixed when the operation is built, so every attempt
    works on the same NFT. An attempt can be cancelled while a transaction it
    sent is still in flight, so each retry first reads the metadata account:
    an NFT that already exists is not created again, and a membership that is
    already verified is not verified again.
    """

    nft_client: NftClient
    payer: Keypair
    collection: PublicKey
    metadata: JsonMetadata
    seller_fee_basis_points: int
    is_mutable: bool
    on_created: Optional[Callable[[CreateNftOutput], Any]]
    mint: Keypair
    uri: Optional[str]
    created: Optional[CreateNftOutput]
    attempts: int

    def __init__(
        self,
        nft_client: NftClient,
        payer: Keypair,
        collection: PublicKey,
        metadata: JsonMetadata,
        seller_fee_basis_points: int,
        is_mutable: bool = True,
        on_created: Optional[Callable[[CreateNftOutput], Any]] = None,
    ):
        self.nft_client = nft_client
        self.payer = payer
        self.collection = collection
        self.metadata = metadata
        self.seller_fee_basis_points = seller_fee_basis_points
        self.is_mutable = is_mutable
        self.on_created = on_created
        self.mint = Keypair.generate()
        self.uri = None
        self.created = None
        self.attempts = 0

    @staticmethod
    def attempt_timeout(config: ClientConfig) -> float:
        """Worst case duration of one attempt under ``config``.

        One attempt makes up to seven requests outside of confirmation
        (upload, metadata lookup, rent, and a blockhash plus a send per
        transaction) and waits for two confirmations, each of which may
        overrun by one request.
        """
        return 9 * config.request_timeout + 2 * config.transaction_wait_in_seconds

    async def __call__(self) -> CreateNftOutput:
        self.attempts += 1
        if self.uri is None:
            self.uri = await self.nft_client.upload_metadata(self.metadata)

        on_chain = None
        if self.attempts > 1:
            on_chain = await self._on_chain()
        if self.created is None and on_chain is not None:
            logging.info(f"NFT {self.mint.public_key()} already exists, not creating")
            self._set_created(
                CreateNftOutput.for_mint(
                    self.payer.public_key(), self.mint.public_key(), None
                )
            )
        if self.created is None:
            self._set_created(
                await self.nft_client.create(
                    self.payer,
                    self.metadata.name,
                    self.metadata.symbol,
                    self.uri,
                    self.seller_fee_basis_points,
                    is_mutable=self.is_mutable,
                    collection=self.collection,
                    mint=self.mint,
                )
            )

        if on_chain is not None and on_chain.collection is not None:
            if on_chain.collection.verified:
                logging.info(f"NFT {self.mint.public_key()} already verified")
                return self.created
        await self.nft_client.verify_collection(
            self.payer, self.collection, self.created.mint
        )
        return self.created

    async def _on_chain(self) -> Optional[Metadata]:
        try:
            return await self.nft_client.find_by_mint(self.mint.public_key())
        except AccountNotFound:
            return None

    def _set_created(self, created: CreateNftOutput):
        self.created = created
        if self.on_created is not None:
            self.on_created(created)


class FakeStorage:
    uploads: List[Dict[str, Any]]

    def __init__(self):
        self.uploads = []

    async def upload(self, metadata: Dict[str, Any]) -> str:
        self.uploads.append(metadata)
        return f"https://cid{len(self.uploads)}.ipfs.nftstorage.link/"


def metadata_account(
    mint: PublicKey, authority: PublicKey, collection: Optional[CollectionRef]
) -> Dict[str, Any]:
    """A getAccountInfo result holding the metadata account of ``mint``."""
    ser = Serializer()
    ser.u8(4)
    ser.struct(authority)
    ser.struct(mint)
    ser.str("Bold Corsair")
    ser.str("SHIP")
    ser.str("https://cid.test/")
    ser.u16(500)
    ser.option(None, Serializer.struct)
    ser.bool(False)
    ser.bool(True)
    ser.option(None, Serializer.u8)
    ser.option(None, Serializer.u8)
    ser.option(collection, Serializer.struct)
    return {
        "context": {"slot": 1},
        "value": {
            "lamports": 1,
            "owner": str(METADATA_PROGRAM_ID),
            "data": [base64.b64encode(ser.output()).decode(), "base64"],
            "executable": False,
        },
    }


def sent_transactions(node: FakeNode) -> List[bytes]:
    return [
        base64.b64decode(call["params"][0])
        for call in node.calls
        if call["method"] == "sendTransaction"
    ]


class Test(unittest.IsolatedAsyncioTestCase):
    SHIP = JsonMetadata(
        "Bold Corsair", "SHIP", "A sturdy hull", "https://cid.ipfs.nftstorage.link/"
    )

    def node(self) -> FakeNode:
        return FakeNode(
            {
                "getMinimumBalanceForRentExemption": [1461600],
                "getLatestBlockhash": [
                    {"context": {"slot": 1}, "value": {"blockhash": BLOCKHASH}}
                ],
                "sendTransaction": ["sig"],
                "getSignatureStatuses": [
                    {
                        "context": {"slot": 1},
                        "value": [{"err": None, "confirmationStatus": "finalized"}],
                    }
                ],
            }
        )

    async def test_upload_metadata(self):
        storage = FakeStorage()
        nft_client = NftClient(self.node().client(), storage)

        uri = await nft_client.upload_metadata(self.SHIP)
        self.assertEqual(uri, "https://cid1.ipfs.nftstorage.link/")
        self.assertEqual(
            storage.uploads,
            [
                {
                    "name": "Bold Corsair",
                    "symbol": "SHIP",
                    "description": "A sturdy hull",
                    "image": "https://cid.ipfs.nftstorage.link/",
                }
            ],
        )
        with self.assertRaises(ValueError):
            await NftClient(self.node().client()).upload_metadata(self.SHIP)

    async def test_create_collection_item(self):
        node = self.node()
        nft_client = NftClient(node.client())
        payer = Keypair.generate()
        collection = Keypair.generate().public_key()

        output = await nft_client.create(
            payer, "Bold Corsair", "SHIP", "https://cid.test/", 500, collection=collection
        )

        self.assertEqual(output.signature, "sig")
        self.assertEqual(output.metadata, metadata_address(output.mint))
        self.assertEqual(
            output.token_account, associated_token_address(payer.public_key(), output.mint)
        )
        (wire,) = sent_transactions(node)
        # payer and mint sign
        self.assertEqual(wire[0], 2)
        for key in [output.mint, output.metadata, output.master_edition, collection]:
            self.assertIn(bytes(key), wire)
        self.assertIn(b"Bold Corsair", wire)

    async def test_create_with_given_mint(self):
        nft_client = NftClient(self.node().client())
        mint = Keypair.generate()

        output = await nft_client.create(
            Keypair.generate(), "Bold Corsair", "SHIP", "https://cid.test/", 500, mint=mint
        )
        self.assertEqual(output.mint, mint.public_key())

    async def test_verify_collection(self):
        node = self.node()
        nft_client = NftClient(node.client())
        payer = Keypair.generate()
        collection = Keypair.generate().public_key()
        mint = Keypair.generate().public_key()

        self.assertEqual(
            await nft_client.verify_collection(payer, collection, mint), "sig"
        )
        (wire,) = sent_transactions(node)
        self.assertEqual(wire[0], 1)
        self.assertIn(bytes(metadata_address(collection)), wire)
        self.assertIn(bytes(master_edition_address(collection)), wire)

    async def test_create_fungible_token(self):
        node = self.node()
        nft_client = NftClient(node.client())
        payer = Keypair.generate()
        mint = Keypair.generate()
        config = TokenConfig(2, "Seven Seas Gold", "GOLD", "https://example.com/info.json")

        output = await nft_client.create_fungible_token(payer, config, mint)

        self.assertEqual(output.mint, mint.public_key())
        self.assertEqual(output.metadata, metadata_address(mint.public_key()))
        (wire,) = sent_transactions(node)
        self.assertIn(b"Seven Seas Gold", wire)
        self.assertNotIn(bytes(master_edition_address(mint.public_key())), wire)

        other = await nft_client.create_fungible_token(payer, config)
        self.assertNotEqual(other.mint, output.mint)

    async def test_find_by_mint(self):
        authority = Keypair.generate().public_key()
        mint = Keypair.generate().public_key()
        data = (
            bytes([4])
            + bytes(authority)
            + bytes(mint)
            + b"\x04\x00\x00\x00Rum\x00"
            + b"\x03\x00\x00\x00RUM"
            + b"\x01\x00\x00\x00u"
            + b"\x00\x00"
            + b"\x00"
            + b"\x00\x01"
        )
        node = FakeNode(
            {
                "getAccountInfo": [
                    {
                        "context": {"slot": 1},
                        "value": {
                            "lamports": 1,
                            "owner": "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s",
                            "data": [base64.b64encode(data).decode(), "base64"],
                            "executable": False,
                        },
                    },
                    {"context": {"slot": 1}, "value": None},
                ]
            }
        )
        nft_client = NftClient(node.client())

        metadata = await nft_client.find_by_mint(mint)
        self.assertEqual(metadata.name, "Rum")
        self.assertEqual(metadata.update_authority, authority)
        self.assertIsNone(metadata.creators)
        self.assertEqual(
            node.calls[0]["params"][0], str(metadata_address(mint))
        )
        with self.assertRaises(AccountNotFound):
            await nft_client.find_by_mint(mint)

    async def test_find_by_mint_collection(self):
        mint = Keypair.generate().public_key()
        collection = CollectionRef(True, Keypair.generate().public_key())
        node = FakeNode(
            {"getAccountInfo": [metadata_account(mint, mint, collection)]}
        )

        metadata = await NftClient(node.client()).find_by_mint(mint)
        self.assertEqual(metadata.collection, collection)
        self.assertEqual(metadata.uri, "https://cid.test/")


class FlakyNftClient:
    """Stands in for NftClient; verify fails a set number of times."""

    def __init__(self, verify_failures: int):
        self.verify_failures = verify_failures
        self.created: List[str] = []
        self.minted: List[PublicKey] = []
        self.verified: List[PublicKey] = []
        self.uploads = 0

    async def upload_metadata(self, metadata: JsonMetadata) -> str:
        self.uploads += 1
        return "https://cid.test/"

    async def create(self, payer, name, symbol, uri, seller_fee_basis_points, **kwargs):
        self.created.append(name)
        mint = kwargs["mint"].public_key()
        self.minted.append(mint)
        return CreateNftOutput(mint, mint, mint, mint, f"sig-{len(self.created)}")

    async def verify_collection(self, payer, collection_mint, mint):
        self.verified.append(mint)
        if self.verify_failures > 0:
            self.verify_failures -= 1
            raise httpx.ConnectTimeout("node unavailable")
        return "verify-sig"

    async def find_by_mint(self, mint):
        if mint not in self.minted:
            raise AccountNotFound(f"No metadata account for mint {mint}", mint)
        return Metadata(
            mint, mint, "Bold Corsair", "SHIP", "https://cid.test/", 500, None, False, True
        )


class CreateAndVerifyTest(unittest.IsolatedAsyncioTestCase):
    async def no_sleep(self, seconds: float):
        await asyncio.sleep(0)

    async def test_retry_does_not_mint_twice(self):
        fake = FlakyNftClient(verify_failures=1)
        announced: List[CreateNftOutput] = []
        operation = CreateAndVerify(
            fake,  # type: ignore[arg-type]
            Keypair.generate(),
            Keypair.generate().public_key(),
            Test.SHIP,
            500,
            on_created=announced.append,
        )

        with self.assertRaises(httpx.ConnectTimeout):
            await operation()
        output = await operation()

        self.assertEqual(fake.created, ["Bold Corsair"])
        self.assertEqual(fake.uploads, 1)
        self.assertEqual(fake.verified, [output.mint, output.mint])
        self.assertEqual(output.mint, operation.mint.public_key())
        self.assertEqual(announced, [output])

    async def test_with_retry_submitter(self):
        from .retry import RetryPolicy, Success, submit_with_retry

        fake = FlakyNftClient(verify_failures=2)
        operation = CreateAndVerify(
            fake,  # type: ignore[arg-type]
            Keypair.generate(),
            Keypair.generate().public_key(),
            Test.SHIP,
            500,
        )

        outcome = await submit_with_retry(
            operation, RetryPolicy(max_retries=5, delay=5.0), sleep=self.no_sleep
        )
        self.assertIsInstance(outcome, Success)
        self.assertEqual(outcome.attempts, 3)
        self.assertEqual(len(fake.created), 1)

    def slow_node(self) -> FakeNode:
        node = FakeNode({})
        self.operation = CreateAndVerify(
            NftClient(
                node.client(
                    ClientConfig(transaction_wait_in_seconds=30.0, poll_interval=0.01)
                ),
                FakeStorage(),
            ),
            Keypair.generate(),
            Keypair.generate().public_key(),
            Test.SHIP,
            500,
        )
        return node

    def never_confirm(self, node: FakeNode, pending: str, verified: bool):
        """The node never confirms ``pending``, but the transaction landed.

        From the second attempt on, the metadata account of the mint exists
        and records the collection as ``verified`` or not.
        """

        def statuses(params):
            (signature,) = params[0]
            if signature == pending:
                return {"context": {"slot": 1}, "value": [None]}
            return {
                "context": {"slot": 1},
                "value": [{"err": None, "confirmationStatus": "confirmed"}],
            }

        mint = self.operation.mint.public_key()
        collection = CollectionRef(verified, self.operation.collection)
        node.responses.update(
            {
                "getMinimumBalanceForRentExemption": [1461600],
                "getLatestBlockhash": [
                    {"context": {"slot": 1}, "value": {"blockhash": BLOCKHASH}}
                ],
                "sendTransaction": ["create-sig", "verify-sig"],
                "getSignatureStatuses": [statuses],
                "getAccountInfo": [metadata_account(mint, mint, collection)],
            }
        )

    async def submit(self):
        from .retry import RetryPolicy, Success, submit_with_retry

        outcome = await submit_with_retry(
            self.operation,
            RetryPolicy(max_retries=5, delay=5.0, attempt_timeout=0.2),
            sleep=self.no_sleep,
        )
        self.assertIsInstance(outcome, Success)
        self.assertEqual(outcome.attempts, 2)
        return outcome.artifact

    async def test_create_landed_after_timeout(self):
        node = self.slow_node()
        self.never_confirm(node, "create-sig", verified=False)

        created = await self.submit()

        # one create signed by payer and mint, one verify signed by the payer
        self.assertEqual([wire[0] for wire in sent_transactions(node)], [2, 1])
        self.assertEqual(created.mint, self.operation.mint.public_key())
        self.assertIsNone(created.signature)
        self.assertEqual(node.methods().count("getAccountInfo"), 1)

    async def test_verify_landed_after_timeout(self):
        node = self.slow_node()
        self.never_confirm(node, "verify-sig", verified=True)

        created = await self.submit()

        self.assertEqual([wire[0] for wire in sent_transactions(node)], [2, 1])
        self.assertEqual(created.signature, "create-sig")

    def test_attempt_timeout_covers_confirmation(self):
        config = ClientConfig()
        self.assertGreater(
            CreateAndVerify.attempt_timeout(config),
            2 * config.transaction_wait_in_seconds,
        )


if __name__ == "__main__":
    unittest.main()
