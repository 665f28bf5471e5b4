"""
Register Decoder

Pure functions converting raw 16-bit register words into typed values.
No I/O. Callers supply exactly the word count the decode kind needs;
decode_words() is the checked entry point used by the reader.
"""

import struct
from typing import Sequence

from fieldpoller.common.config import DecodeKind, WordOrder
from fieldpoller.common.exceptions import DecodeError


def decode_boolean(raw: int) -> bool:
    """Nonzero -> True"""
    return raw != 0


def decode_signed_holding(raw: int) -> int:
    """Two's-complement reinterpretation of a 16-bit word"""
    raw &= 0xFFFF
    if raw >= 0x8000:
        raw -= 0x10000
    return raw


def decode_float32_be(high: int, low: int) -> float:
    """`high` then `low` as four big-endian bytes, read as IEEE-754 single"""
    packed = struct.pack(">HH", high & 0xFFFF, low & 0xFFFF)
    return struct.unpack(">f", packed)[0]


def decode_words(
    kind: DecodeKind | str,
    words: Sequence[int],
    word_order: WordOrder = WordOrder.HIGH_FIRST,
) -> bool | int | float:
    """
    Decode the words returned by one read.

    Raises:
        DecodeError: unknown kind, too few words or non-integer payload
    """
    if not isinstance(kind, DecodeKind):
        raise DecodeError(f"unknown decode kind '{kind}'", kind=str(kind))

    needed = 2 if kind == DecodeKind.FLOAT32_BE else 1
    if len(words) < needed:
        raise DecodeError(
            f"expected {needed} word(s), got {len(words)}",
            kind=kind.value,
        )

    head = list(words[:needed])
    # bool is an int subclass; discrete inputs arrive as bools
    if not all(isinstance(w, int) for w in head):
        raise DecodeError(f"non-numeric payload {head!r}", kind=kind.value)

    if kind == DecodeKind.BOOLEAN_DISCRETE:
        return decode_boolean(int(head[0]))

    if kind == DecodeKind.UNSIGNED_HOLDING:
        return head[0] & 0xFFFF

    if kind == DecodeKind.SIGNED_HOLDING:
        return decode_signed_holding(head[0])

    if word_order == WordOrder.LOW_FIRST:
        low, high = head
    else:
        high, low = head
    return decode_float32_be(high, low)
