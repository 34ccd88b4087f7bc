"""
assetchain/ledger/bcs.py

Minimal BCS (Binary Canonical Serialization) encoders for the subset of Sui
types that transaction building needs, plus the base58 decoding used for
object digests.
"""

from __future__ import annotations

from typing import Iterable

import base58

from assetchain.errors import InvalidParameter

U64_MAX = (1 << 64) - 1
ADDRESS_LENGTH = 32


def uleb128(value: int) -> bytes:
    if value < 0:
        raise InvalidParameter(f"uleb128 cannot encode negative value {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def u8(value: int) -> bytes:
    return int(value).to_bytes(1, "little")


def u16(value: int) -> bytes:
    return int(value).to_bytes(2, "little")


def u64(value: int) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParameter(f"u64 value must be an integer, got {value!r}")
    if not 0 <= value <= U64_MAX:
        raise InvalidParameter(f"u64 value out of range: {value}")
    return value.to_bytes(8, "little")


def boolean(value: bool) -> bytes:
    return b"\x01" if value else b"\x00"


def byte_vector(data: bytes) -> bytes:
    return uleb128(len(data)) + bytes(data)


def string(value: str) -> bytes:
    return byte_vector(value.encode("utf-8"))


def vector(items: Iterable[bytes]) -> bytes:
    encoded = list(items)
    return uleb128(len(encoded)) + b"".join(encoded)


def address(value: str) -> bytes:
    """Encode a 0x-prefixed hex address or object id as 32 raw bytes."""
    raw = value.strip().lower()
    if raw.startswith("0x"):
        raw = raw[2:]
    if not raw or len(raw) > ADDRESS_LENGTH * 2:
        raise InvalidParameter(f"Invalid address: {value!r}")
    try:
        data = bytes.fromhex(raw.rjust(ADDRESS_LENGTH * 2, "0"))
    except ValueError as exc:
        raise InvalidParameter(f"Invalid address: {value!r}") from exc
    return data


def normalize_address(value: str) -> str:
    return "0x" + address(value).hex()


def b58decode(value: str) -> bytes:
    try:
        return base58.b58decode(value)
    except ValueError as exc:
        raise InvalidParameter(f"Invalid base58 digest {value!r}") from exc
