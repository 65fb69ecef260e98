# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Instruction builders for the System, SPL Token and Associated Token Account
programs.

Only the handful of instructions needed to create and fund a mint are covered:
``CreateAccount``, ``InitializeMint2``, ``MintTo`` and the associated token
account ``Create``.
"""

from __future__ import annotations

import unittest
from typing import List, Optional

from .borsh import Serializer
from .keypair import Keypair
from .public_key import PublicKey
from .transactions import AccountMeta, Instruction

SYSTEM_PROGRAM_ID = PublicKey.from_str("11111111111111111111111111111111")
TOKEN_PROGRAM_ID = PublicKey.from_str("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = PublicKey.from_str(
    "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
)

# Size of an SPL Token mint account.
MINT_SIZE = 82

CREATE_ACCOUNT = 0
MINT_TO = 7
INITIALIZE_MINT2 = 20


def create_account(
    payer: PublicKey, new_account: PublicKey, lamports: int, space: int, owner: PublicKey
) -> Instruction:
    ser = Serializer()
    ser.u32(CREATE_ACCOUNT)
    ser.u64(lamports)
    ser.u64(space)
    ser.struct(owner)
    return Instruction(
        SYSTEM_PROGRAM_ID,
        [AccountMeta(payer, True, True), AccountMeta(new_account, True, True)],
        ser.output(),
    )


def initialize_mint(
    mint: PublicKey,
    decimals: int,
    mint_authority: PublicKey,
    freeze_authority: Optional[PublicKey] = None,
) -> Instruction:
    ser = Serializer()
    ser.u8(INITIALIZE_MINT2)
    ser.u8(decimals)
    ser.struct(mint_authority)
    ser.option(freeze_authority, Serializer.struct)
    return Instruction(TOKEN_PROGRAM_ID, [AccountMeta(mint, False, True)], ser.output())


def mint_to(
    mint: PublicKey, destination: PublicKey, authority: PublicKey, amount: int
) -> Instruction:
    ser = Serializer()
    ser.u8(MINT_TO)
    ser.u64(amount)
    return Instruction(
        TOKEN_PROGRAM_ID,
        [
            AccountMeta(mint, False, True),
            AccountMeta(destination, False, True),
            AccountMeta(authority, True, False),
        ],
        ser.output(),
    )


def associated_token_address(owner: PublicKey, mint: PublicKey) -> PublicKey:
    address, _ = PublicKey.find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address


def create_associated_token_account(
    payer: PublicKey, owner: PublicKey, mint: PublicKey
) -> Instruction:
    return Instruction(
        ASSOCIATED_TOKEN_PROGRAM_ID,
        [
            AccountMeta(payer, True, True),
            AccountMeta(associated_token_address(owner, mint), False, True),
            AccountMeta(owner, False, False),
            AccountMeta(mint, False, False),
            AccountMeta(SYSTEM_PROGRAM_ID, False, False),
            AccountMeta(TOKEN_PROGRAM_ID, False, False),
        ],
        b"\x00",
    )


def create_mint_instructions(
    payer: Keypair,
    mint: Keypair,
    lamports: int,
    decimals: int,
    freeze_authority: Optional[PublicKey] = None,
) -> List[Instruction]:
    """Allocate a rent exempt mint account and initialize it, payer as authority."""
    return [
        create_account(
            payer.public_key(), mint.public_key(), lamports, MINT_SIZE, TOKEN_PROGRAM_ID
        ),
        initialize_mint(
            mint.public_key(), decimals, payer.public_key(), freeze_authority
        ),
    ]


class Test(unittest.TestCase):
    def test_create_account(self):
        payer = Keypair.generate().public_key()
        mint = Keypair.generate().public_key()
        instruction = create_account(payer, mint, 1461600, MINT_SIZE, TOKEN_PROGRAM_ID)

        self.assertEqual(instruction.program_id, SYSTEM_PROGRAM_ID)
        self.assertEqual(
            instruction.data,
            (0).to_bytes(4, "little")
            + (1461600).to_bytes(8, "little")
            + (82).to_bytes(8, "little")
            + bytes(TOKEN_PROGRAM_ID),
        )
        self.assertTrue(all(meta.is_signer for meta in instruction.accounts))

    def test_initialize_mint(self):
        mint = Keypair.generate().public_key()
        authority = Keypair.generate().public_key()

        without_freeze = initialize_mint(mint, 2, authority)
        self.assertEqual(
            without_freeze.data, bytes([20, 2]) + bytes(authority) + b"\x00"
        )
        with_freeze = initialize_mint(mint, 0, authority, authority)
        self.assertEqual(
            with_freeze.data,
            bytes([20, 0]) + bytes(authority) + b"\x01" + bytes(authority),
        )
        self.assertEqual(with_freeze.accounts, [AccountMeta(mint, False, True)])

    def test_mint_to(self):
        keys = [Keypair.generate().public_key() for _ in range(3)]
        instruction = mint_to(keys[0], keys[1], keys[2], 100_000_000)
        self.assertEqual(instruction.data, b"\x07" + (100_000_000).to_bytes(8, "little"))
        self.assertEqual(instruction.accounts[2], AccountMeta(keys[2], True, False))

    def test_associated_token_account(self):
        payer = Keypair.generate().public_key()
        mint = Keypair.generate().public_key()
        instruction = create_associated_token_account(payer, payer, mint)
        address = associated_token_address(payer, mint)

        self.assertFalse(address.is_on_curve())
        self.assertEqual(instruction.accounts[1].public_key, address)
        self.assertEqual(instruction.data, b"\x00")
        self.assertEqual(associated_token_address(payer, mint), address)

    def test_associated_token_address_known_value(self):
        owner = PublicKey.from_str("B8UwBUUnKwCyKuGMbFKWaG7exYdDk2ozZrPg72NyVbfj")
        mint = PublicKey.from_str("7o36UsWR1JQLpZ9PE2gn9L4SQ69CNNiWAXd4Jt7rqz9Z")
        self.assertEqual(
            str(associated_token_address(owner, mint)),
            "DShWnroshVbeUp28oopA3Pu7oFPDBtC1DBmPECXXAQ9n",
        )


if __name__ == "__main__":
    unittest.main()
