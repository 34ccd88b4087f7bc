"""
assetchain/ledger/keys.py

The service-held Ed25519 signing credential.

The credential is constructed once at startup from SUI_PRIVATE_KEY and handed
to the LedgerGateway; it is never exposed to callers. Both the bech32
``suiprivkey1...`` export format and the legacy base64 format (flag byte +
32-byte seed, or the bare seed) are accepted.

Run as a module to mint a fresh development key:

    python -m assetchain.ledger.keys
"""

from __future__ import annotations

import base64
import binascii
import hashlib
from typing import List, Sequence, Tuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from assetchain.errors import ConfigError

ED25519_FLAG = 0x00
SUI_PRIVKEY_HRP = "suiprivkey"
# IntentScope::TransactionData, IntentVersion::V0, AppId::Sui
TRANSACTION_INTENT = b"\x00\x00\x00"

_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32_GEN = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)


# ---------------------------------------------------------------------------
# bech32 (BIP-173)
# ---------------------------------------------------------------------------


def _polymod(values: Sequence[int]) -> int:
    chk = 1
    for v in values:
        top = chk >> 25
        chk = ((chk & 0x1FFFFFF) << 5) ^ v
        for i in range(5):
            if (top >> i) & 1:
                chk ^= _BECH32_GEN[i]
    return chk


def _hrp_expand(hrp: str) -> List[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _convert_bits(data: Sequence[int], from_bits: int, to_bits: int, pad: bool) -> List[int]:
    acc = 0
    bits = 0
    out: List[int] = []
    maxv = (1 << to_bits) - 1
    for value in data:
        acc = (acc << from_bits) | value
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            out.append((acc >> bits) & maxv)
    if pad:
        if bits:
            out.append((acc << (to_bits - bits)) & maxv)
    elif bits >= from_bits or ((acc << (to_bits - bits)) & maxv):
        raise ConfigError("Invalid bech32 padding")
    return out


def bech32_decode(text: str) -> Tuple[str, bytes]:
    if text.lower() != text and text.upper() != text:
        raise ConfigError("Mixed-case bech32 string")
    text = text.lower()
    pos = text.rfind("1")
    if pos < 1 or pos + 7 > len(text):
        raise ConfigError("Malformed bech32 string")
    hrp = text[:pos]
    try:
        data = [_BECH32_CHARSET.index(c) for c in text[pos + 1:]]
    except ValueError as exc:
        raise ConfigError("Invalid bech32 character") from exc
    if _polymod(_hrp_expand(hrp) + data) != 1:
        raise ConfigError("Invalid bech32 checksum")
    return hrp, bytes(_convert_bits(data[:-6], 5, 8, pad=False))


def bech32_encode(hrp: str, payload: bytes) -> str:
    data = _convert_bits(list(payload), 8, 5, pad=True)
    polymod = _polymod(_hrp_expand(hrp) + data + [0] * 6) ^ 1
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]
    return hrp + "1" + "".join(_BECH32_CHARSET[d] for d in data + checksum)


# ---------------------------------------------------------------------------
# Credential
# ---------------------------------------------------------------------------


class SigningCredential:
    """
    Read-only handle around one Ed25519 key.

    Safe to share between threads: signing does not mutate the handle.
    """

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._key = private_key
        self._public = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        digest = hashlib.blake2b(bytes([ED25519_FLAG]) + self._public, digest_size=32).hexdigest()
        self._address = "0x" + digest

    @classmethod
    def from_encoded(cls, raw: str) -> "SigningCredential":
        value = (raw or "").strip()
        if not value:
            raise ConfigError("SUI_PRIVATE_KEY not set in environment")

        if value.startswith(SUI_PRIVKEY_HRP + "1"):
            hrp, payload = bech32_decode(value)
            if hrp != SUI_PRIVKEY_HRP:
                raise ConfigError(f"Unexpected key prefix {hrp!r}")
        else:
            try:
                payload = base64.b64decode(value, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise ConfigError("SUI_PRIVATE_KEY is neither suiprivkey1... nor base64") from exc
            if len(payload) == 32:
                payload = bytes([ED25519_FLAG]) + payload

        if len(payload) != 33:
            raise ConfigError(f"Unexpected private key length {len(payload)}")
        if payload[0] != ED25519_FLAG:
            raise ConfigError(f"Unsupported key scheme flag {payload[0]}; only Ed25519 is supported")
        return cls(Ed25519PrivateKey.from_private_bytes(payload[1:]))

    @classmethod
    def generate(cls) -> "SigningCredential":
        return cls(Ed25519PrivateKey.generate())

    @property
    def address(self) -> str:
        return self._address

    @property
    def public_key(self) -> bytes:
        return self._public

    def export(self) -> str:
        seed = self._key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return bech32_encode(SUI_PRIVKEY_HRP, bytes([ED25519_FLAG]) + seed)

    def sign_transaction(self, tx_bytes: bytes) -> str:
        """
        Sign serialized TransactionData.

        Returns the base64 Sui signature: flag || signature || public key.
        """
        digest = hashlib.blake2b(TRANSACTION_INTENT + tx_bytes, digest_size=32).digest()
        signature = self._key.sign(digest)
        return base64.b64encode(bytes([ED25519_FLAG]) + signature + self._public).decode("ascii")

    def __repr__(self) -> str:
        return f"SigningCredential(address={self._address})"


if __name__ == "__main__":
    cred = SigningCredential.generate()
    print("=== AssetChain development key ===")
    print(f"SUI_PRIVATE_KEY = {cred.export()}")
    print(f"address         = {cred.address}")
