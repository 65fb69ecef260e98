# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Borsh serialization for Solana program instruction data and account state.

Borsh (Binary Object Representation Serializer for Hashing) is the encoding
used by the Token Metadata program for its instruction arguments and account
layouts. Integers are little-endian and fixed width, strings and vectors carry
a u32 length prefix, and ``Option<T>`` is a one byte tag followed by the value
when present.

Learn more at https://borsh.io

Examples:
    Basic serialization::

        from seven_seas.borsh import Deserializer, Serializer

        ser = Serializer()
        ser.str("Seven Seas")
        ser.option(500, Serializer.u16)
        data = ser.output()

        der = Deserializer(data)
        der.str()                      # "Seven Seas"
        der.option(Deserializer.u16)   # 500

    Custom structures implement ``serialize`` and ``deserialize``::

        class Creator:
            def serialize(self, serializer: Serializer):
                serializer.struct(self.address)
                serializer.bool(self.verified)
                serializer.u8(self.share)
"""

from __future__ import annotations

import io
import typing
import unittest
from typing import List, Optional

MAX_U8 = 2**8 - 1
MAX_U16 = 2**16 - 1
MAX_U32 = 2**32 - 1
MAX_U64 = 2**64 - 1


class Deserializer:
    """Reads Borsh values from a byte buffer, front to back."""

    _input: io.BytesIO
    _length: int

    def __init__(self, data: bytes):
        self._length = len(data)
        self._input = io.BytesIO(data)

    def remaining(self) -> int:
        return self._length - self._input.tell()

    def bool(self) -> bool:
        value = int.from_bytes(self._read(1), byteorder="little", signed=False)
        if value == 0:
            return False
        elif value == 1:
            return True
        else:
            raise Exception("Unexpected boolean value: ", value)

    def to_bytes(self) -> bytes:
        return self._read(self.u32())

    def fixed_bytes(self, length: int) -> bytes:
        return self._read(length)

    def option(
        self, value_decoder: typing.Callable[[Deserializer], typing.Any]
    ) -> typing.Any:
        """Read an ``Option<T>``: a 0/1 tag, then the value when the tag is 1."""
        if not self.bool():
            return None
        return value_decoder(self)

    def sequence(
        self,
        value_decoder: typing.Callable[[Deserializer], typing.Any],
    ) -> List[typing.Any]:
        length = self.u32()
        values: List[typing.Any] = []
        while len(values) < length:
            values.append(value_decoder(self))
        return values

    def str(self) -> str:
        return self.to_bytes().decode()

    def struct(self, struct: typing.Any) -> typing.Any:
        return struct.deserialize(self)

    def u8(self) -> int:
        return self._read_int(1)

    def u16(self) -> int:
        return self._read_int(2)

    def u32(self) -> int:
        return self._read_int(4)

    def u64(self) -> int:
        return self._read_int(8)

    def _read(self, length: int) -> bytes:
        value = self._input.read(length)
        if value is None or len(value) < length:
            actual_length = 0 if value is None else len(value)
            error = (
                f"Unexpected end of input. Requested: {length}, found: {actual_length}"
            )
            raise Exception(error)
        return value

    def _read_int(self, length: int) -> int:
        return int.from_bytes(self._read(length), byteorder="little", signed=False)


class Serializer:
    """Accumulates Borsh encoded values in an in-memory buffer.

    Examples:
        Instruction data for a metadata program call::

            ser = Serializer()
            ser.u8(33)                         # instruction discriminator
            ser.str("Seven Seas Gold")
            ser.option(None, Serializer.u64)   # writes a single 0 byte
            data = ser.output()
    """

    _output: io.BytesIO

    def __init__(self):
        self._output = io.BytesIO()

    def output(self) -> bytes:
        return self._output.getvalue()

    def bool(self, value: bool):
        self._write_int(int(value), 1)

    def to_bytes(self, value: bytes):
        """Write a byte vector: u32 length followed by the raw bytes."""
        self.u32(len(value))
        self._output.write(value)

    def fixed_bytes(self, value: bytes):
        """Write raw bytes without a length prefix (``[u8; N]`` fields)."""
        self._output.write(value)

    def option(
        self,
        value: Optional[typing.Any],
        value_encoder: typing.Callable[[Serializer, typing.Any], None],
    ):
        if value is None:
            self.bool(False)
        else:
            self.bool(True)
            value_encoder(self, value)

    def sequence(
        self,
        values: typing.Sequence[typing.Any],
        value_encoder: typing.Callable[[Serializer, typing.Any], None],
    ):
        self.u32(len(values))
        for value in values:
            value_encoder(self, value)

    def str(self, value: str):
        self.to_bytes(value.encode())

    def struct(self, value: typing.Any):
        value.serialize(self)

    def u8(self, value: int):
        if value > MAX_U8:
            raise Exception(f"Cannot encode {value} into u8")

        self._write_int(value, 1)

    def u16(self, value: int):
        if value > MAX_U16:
            raise Exception(f"Cannot encode {value} into u16")

        self._write_int(value, 2)

    def u32(self, value: int):
        if value > MAX_U32:
            raise Exception(f"Cannot encode {value} into u32")

        self._write_int(value, 4)

    def u64(self, value: int):
        if value > MAX_U64:
            raise Exception(f"Cannot encode {value} into u64")

        self._write_int(value, 8)

    def _write_int(self, value: int, length: int):
        self._output.write(value.to_bytes(length, "little", signed=False))


class Test(unittest.TestCase):
    def test_str_layout(self):
        ser = Serializer()
        ser.str("SHIP")
        self.assertEqual(ser.output(), b"\x04\x00\x00\x00SHIP")

    def test_integers_little_endian(self):
        ser = Serializer()
        ser.u8(7)
        ser.u16(500)
        ser.u32(1)
        ser.u64(2**40)
        self.assertEqual(
            ser.output().hex(), "07" "f401" "01000000" "0000000000010000"
        )

    def test_option(self):
        ser = Serializer()
        ser.option(None, Serializer.u64)
        ser.option(0, Serializer.u64)
        self.assertEqual(ser.output(), b"\x00" + b"\x01" + b"\x00" * 8)
        der = Deserializer(b"\x01\xf4\x01\x00")
        self.assertEqual(der.option(Deserializer.u16), 500)
        self.assertEqual(der.option(Deserializer.u16), None)
        self.assertEqual(der.remaining(), 0)

    def test_sequence(self):
        in_value = ["Gold", "Rum", "Cannons"]

        ser = Serializer()
        ser.sequence(in_value, Serializer.str)
        der = Deserializer(ser.output())

        self.assertEqual(der.sequence(Deserializer.str), in_value)

    def test_bool_error(self):
        der = Deserializer(b"\x02")
        with self.assertRaises(Exception):
            der.bool()

    def test_overflow(self):
        with self.assertRaises(Exception):
            Serializer().u16(MAX_U16 + 1)

    def test_truncated_input(self):
        der = Deserializer(b"\x05\x00\x00\x00ab")
        with self.assertRaises(Exception):
            der.str()


if __name__ == "__main__":
    unittest.main()
