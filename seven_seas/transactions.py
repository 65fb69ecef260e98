# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Legacy Solana transactions: instructions, message compilation and signing.

A transaction is a list of signatures followed by a message. The message lists
every account the instructions touch exactly once, ordered so that the header
alone tells the runtime which accounts sign and which may be written::

    [signer + writable] [signer + readonly] [writable] [readonly]

The fee payer is always the first account. Instructions then refer to accounts
by their index in that list. Lengths on the wire use the compact "shortvec"
encoding (7 bits per byte, high bit set while more bytes follow).

Examples:
    Build, sign and encode::

        from seven_seas.transactions import Transaction

        transaction = Transaction.new(
            [instruction_a, instruction_b],
            payer=payer,
            signers=[payer, mint],
            recent_blockhash=blockhash,
        )
        wire = transaction.to_base64()       # for sendTransaction
        transaction.signature()              # base58 id of the transaction
"""

from __future__ import annotations

import base64
import unittest
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

import base58

from .keypair import Keypair
from .public_key import PublicKey

SIGNATURE_LENGTH = 64
BLOCKHASH_LENGTH = 32


class MissingSignatureError(Exception):
    """A required signer was not provided"""


class UnknownSignerError(Exception):
    """A keypair was offered that the message does not require"""


def encode_length(value: int) -> bytes:
    """Compact-u16 encoding used for array lengths."""
    if value < 0 or value > 0xFFFF:
        raise ValueError(f"Length {value} does not fit a compact u16")
    output = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value == 0:
            output.append(byte)
            return bytes(output)
        output.append(byte | 0x80)


def decode_length(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """Return ``(value, bytes_consumed)`` for a compact-u16 at ``offset``."""
    value = 0
    for size in range(3):
        if offset + size >= len(data):
            raise ValueError("Unexpected end of compact u16")
        byte = data[offset + size]
        value |= (byte & 0x7F) << (size * 7)
        if byte & 0x80 == 0:
            return (value, size + 1)
    raise ValueError("Compact u16 longer than 3 bytes")


@dataclass(frozen=True)
class AccountMeta:
    public_key: PublicKey
    is_signer: bool
    is_writable: bool


@dataclass
class Instruction:
    program_id: PublicKey
    accounts: List[AccountMeta]
    data: bytes


@dataclass(frozen=True)
class MessageHeader:
    num_required_signatures: int
    num_readonly_signed_accounts: int
    num_readonly_unsigned_accounts: int


@dataclass
class CompiledInstruction:
    program_id_index: int
    accounts: List[int]
    data: bytes

    def serialize(self) -> bytes:
        return (
            bytes([self.program_id_index])
            + encode_length(len(self.accounts))
            + bytes(self.accounts)
            + encode_length(len(self.data))
            + self.data
        )


@dataclass
class Message:
    header: MessageHeader
    account_keys: List[PublicKey]
    recent_blockhash: str
    instructions: List[CompiledInstruction] = field(default_factory=list)

    @staticmethod
    def compile(
        payer: PublicKey, instructions: Sequence[Instruction], recent_blockhash: str
    ) -> Message:
        """Deduplicate and order the accounts, then index the instructions."""
        # key -> [is_signer, is_writable]; dicts keep first-seen order
        flags: Dict[PublicKey, List[bool]] = {payer: [True, True]}
        for instruction in instructions:
            for meta in instruction.accounts:
                entry = flags.setdefault(meta.public_key, [False, False])
                entry[0] = entry[0] or meta.is_signer
                entry[1] = entry[1] or meta.is_writable
            flags.setdefault(instruction.program_id, [False, False])

        groups: Tuple[List[PublicKey], ...] = ([], [], [], [])
        for key, (is_signer, is_writable) in flags.items():
            if is_signer:
                groups[0 if is_writable else 1].append(key)
            else:
                groups[2 if is_writable else 3].append(key)

        account_keys = groups[0] + groups[1] + groups[2] + groups[3]
        header = MessageHeader(
            num_required_signatures=len(groups[0]) + len(groups[1]),
            num_readonly_signed_accounts=len(groups[1]),
            num_readonly_unsigned_accounts=len(groups[3]),
        )
        index = {key: position for position, key in enumerate(account_keys)}
        compiled = [
            CompiledInstruction(
                program_id_index=index[instruction.program_id],
                accounts=[index[meta.public_key] for meta in instruction.accounts],
                data=instruction.data,
            )
            for instruction in instructions
        ]
        return Message(header, account_keys, recent_blockhash, compiled)

    def signers(self) -> List[PublicKey]:
        return self.account_keys[: self.header.num_required_signatures]

    def serialize(self) -> bytes:
        blockhash = base58.b58decode(self.recent_blockhash)
        if len(blockhash) != BLOCKHASH_LENGTH:
            raise ValueError(f"Invalid blockhash {self.recent_blockhash}")
        output = bytearray(
            [
                self.header.num_required_signatures,
                self.header.num_readonly_signed_accounts,
                self.header.num_readonly_unsigned_accounts,
            ]
        )
        output += encode_length(len(self.account_keys))
        for key in self.account_keys:
            output += bytes(key)
        output += blockhash
        output += encode_length(len(self.instructions))
        for instruction in self.instructions:
            output += instruction.serialize()
        return bytes(output)


class Transaction:
    message: Message
    signatures: List[bytes]

    def __init__(self, message: Message):
        self.message = message
        self.signatures = [
            bytes(SIGNATURE_LENGTH) for _ in range(message.header.num_required_signatures)
        ]

    @staticmethod
    def new(
        instructions: Sequence[Instruction],
        payer: Keypair,
        signers: Sequence[Keypair],
        recent_blockhash: str,
    ) -> Transaction:
        transaction = Transaction(
            Message.compile(payer.public_key(), instructions, recent_blockhash)
        )
        transaction.sign([payer] + [s for s in signers if s != payer])
        return transaction

    def sign(self, signers: Sequence[Keypair]):
        """Sign the message with every required keypair.

        Raises:
            UnknownSignerError: If a keypair is not a required signer.
            MissingSignatureError: If a required signer is still unsigned.
        """
        message = self.message.serialize()
        required = self.message.signers()
        for signer in signers:
            key = signer.public_key()
            if key not in required:
                raise UnknownSignerError(f"{key} is not a signer of this transaction")
            self.signatures[required.index(key)] = signer.sign(message)

        empty = bytes(SIGNATURE_LENGTH)
        missing = [
            str(key)
            for key, signature in zip(required, self.signatures)
            if signature == empty
        ]
        if missing:
            raise MissingSignatureError(f"Missing signatures for {', '.join(missing)}")

    def signature(self) -> str:
        """The transaction id: base58 of the fee payer's signature."""
        return base58.b58encode(self.signatures[0]).decode()

    def serialize(self) -> bytes:
        output = bytearray(encode_length(len(self.signatures)))
        for signature in self.signatures:
            output += signature
        output += self.message.serialize()
        return bytes(output)

    def to_base64(self) -> str:
        return base64.b64encode(self.serialize()).decode()


class Test(unittest.TestCase):
    BLOCKHASH = base58.b58encode(bytes(range(32))).decode()

    def test_shortvec(self):
        cases = {
            0: "00",
            5: "05",
            0x7F: "7f",
            0x80: "8001",
            0x3FFF: "ff7f",
            0x4000: "808001",
            0xFFFF: "ffff03",
        }
        for value, expected in cases.items():
            self.assertEqual(encode_length(value).hex(), expected)
            self.assertEqual(
                decode_length(bytes.fromhex(expected)),
                (value, len(expected) // 2),
            )
        with self.assertRaises(ValueError):
            encode_length(0x10000)

    def test_compile_orders_accounts(self):
        payer = Keypair.generate().public_key()
        mint = Keypair.generate().public_key()
        authority = Keypair.generate().public_key()
        destination = Keypair.generate().public_key()
        program = Keypair.generate().public_key()
        readonly = Keypair.generate().public_key()

        instruction = Instruction(
            program,
            [
                AccountMeta(readonly, is_signer=False, is_writable=False),
                AccountMeta(destination, is_signer=False, is_writable=True),
                AccountMeta(authority, is_signer=True, is_writable=False),
                AccountMeta(mint, is_signer=True, is_writable=True),
                AccountMeta(payer, is_signer=True, is_writable=True),
            ],
            b"\x07",
        )
        message = Message.compile(payer, [instruction], self.BLOCKHASH)

        self.assertEqual(
            message.account_keys,
            [payer, mint, authority, destination, readonly, program],
        )
        self.assertEqual(message.header, MessageHeader(3, 1, 2))
        self.assertEqual(message.instructions[0].program_id_index, 5)
        self.assertEqual(message.instructions[0].accounts, [4, 3, 2, 1, 0])

    def test_duplicate_accounts_are_merged(self):
        payer = Keypair.generate().public_key()
        account = Keypair.generate().public_key()
        program = Keypair.generate().public_key()

        first = Instruction(program, [AccountMeta(account, False, False)], b"")
        second = Instruction(program, [AccountMeta(account, False, True)], b"")
        message = Message.compile(payer, [first, second], self.BLOCKHASH)

        self.assertEqual(message.account_keys, [payer, account, program])
        self.assertEqual(message.header, MessageHeader(1, 0, 1))

    def test_sign_and_serialize(self):
        payer = Keypair.generate()
        mint = Keypair.generate()
        program = Keypair.generate().public_key()
        instruction = Instruction(
            program,
            [
                AccountMeta(payer.public_key(), True, True),
                AccountMeta(mint.public_key(), True, True),
            ],
            b"\x00\x01",
        )
        transaction = Transaction.new([instruction], payer, [mint], self.BLOCKHASH)
        message = transaction.message.serialize()
        wire = transaction.serialize()

        self.assertEqual(wire[0], 2)
        self.assertEqual(wire[1 + 2 * SIGNATURE_LENGTH :], message)
        self.assertTrue(
            payer.public_key().verify(message, wire[1 : 1 + SIGNATURE_LENGTH])
        )
        self.assertTrue(
            mint.public_key().verify(
                message, wire[1 + SIGNATURE_LENGTH : 1 + 2 * SIGNATURE_LENGTH]
            )
        )
        self.assertEqual(
            transaction.signature(),
            base58.b58encode(wire[1 : 1 + SIGNATURE_LENGTH]).decode(),
        )
        self.assertEqual(base64.b64decode(transaction.to_base64()), wire)
        # header, keys, blockhash
        self.assertEqual(message[:3], bytes([2, 0, 1]))
        self.assertEqual(message[3], 3)
        self.assertEqual(message[4 + 3 * 32 : 4 + 4 * 32], bytes(range(32)))

    def test_missing_signer(self):
        payer = Keypair.generate()
        mint = Keypair.generate()
        instruction = Instruction(
            Keypair.generate().public_key(),
            [AccountMeta(mint.public_key(), True, True)],
            b"",
        )
        with self.assertRaises(MissingSignatureError):
            Transaction.new([instruction], payer, [], self.BLOCKHASH)
        with self.assertRaises(UnknownSignerError):
            Transaction.new(
                [instruction], payer, [mint, Keypair.generate()], self.BLOCKHASH
            )


if __name__ == "__main__":
    unittest.main()
