"""Minimal CID, multihash and base encoding support."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from enum import IntEnum
from typing import Tuple, Union

_B58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_B58_INDEX = {ch: i for i, ch in enumerate(_B58_ALPHABET)}


class CidError(ValueError):
    """A CID could not be decoded."""


class Codec(IntEnum):
    """Known multicodec content types."""

    RAW = 0x55
    DAG_PROTOBUF = 0x70
    DAG_CBOR = 0x71
    LIBP2P_KEY = 0x72
    GIT_RAW = 0x78
    ETH_BLOCK = 0x90
    ETH_BLOCK_LIST = 0x91
    ETH_TX_TRIE = 0x92
    ETH_TX = 0x93
    ETH_TX_RECEIPT_TRIE = 0x94
    ETH_TX_RECEIPT = 0x95
    ETH_STATE_TRIE = 0x96
    ETH_ACCOUNT_SNAPSHOT = 0x97
    ETH_STORAGE_TRIE = 0x98
    BITCOIN_BLOCK = 0xB0
    BITCOIN_TX = 0xB1
    ZCASH_BLOCK = 0xC0
    ZCASH_TX = 0xC1
    DAG_JSON = 0x0129

    def __str__(self) -> str:
        return self.name.lower().replace("_", "-")

    def __format__(self, spec: str) -> str:
        return format(str(self), spec)


def base32_encode(data: bytes) -> str:
    """Encode with the standard upper-case alphabet and no padding."""
    return base64.b32encode(data).decode("ascii").rstrip("=")


def base32_decode(text: str) -> bytes:
    """Decode unpadded standard (upper-case) base32."""
    try:
        return base64.b32decode(text + "=" * (-len(text) % 8))
    except (binascii.Error, ValueError) as err:
        raise ValueError(f"invalid base32 data: {err}") from err


def base58_encode(data: bytes) -> str:
    """Encode with the bitcoin base58 alphabet."""
    number = int.from_bytes(data, "big")
    digits = []
    while number:
        number, rem = divmod(number, 58)
        digits.append(_B58_ALPHABET[rem])
    zeros = len(data) - len(data.lstrip(b"\0"))
    return "1" * zeros + "".join(reversed(digits))


def base58_decode(text: str) -> bytes:
    """Decode bitcoin base58 text."""
    number = 0
    for ch in text:
        try:
            number = number * 58 + _B58_INDEX[ch]
        except KeyError:
            raise ValueError(f"invalid base58 character {ch!r}") from None
    zeros = len(text) - len(text.lstrip("1"))
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    return b"\0" * zeros + body


def _read_uvarint(data: bytes, pos: int) -> Tuple[int, int]:
    result = 0
    shift = 0
    while pos < len(data):
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
        shift += 7
        if shift >= 63:
            raise CidError("varint too long")
    raise CidError("truncated varint")


def _write_uvarint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _read_multihash(data: bytes, pos: int) -> Tuple[bytes, int]:
    start = pos
    _, pos = _read_uvarint(data, pos)
    length, pos = _read_uvarint(data, pos)
    end = pos + length
    if end > len(data):
        raise CidError("multihash length exceeds data")
    return bytes(data[start:end]), end


@dataclass(frozen=True)
class Cid:
    """A content identifier."""

    version: int
    codec: Union[Codec, int]
    multihash: bytes

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "codec", Codec(self.codec))
        except ValueError:
            pass

    def to_bytes(self) -> bytes:
        if self.version == 0:
            return self.multihash
        return _write_uvarint(1) + _write_uvarint(int(self.codec)) + self.multihash

    def __str__(self) -> str:
        if self.version == 0:
            return base58_encode(self.multihash)
        return "b" + base32_encode(self.to_bytes()).lower()


def _parse_cid(data: bytes) -> Tuple[Cid, int]:
    if len(data) == 34 and data[0] == 0x12 and data[1] == 0x20:
        return Cid(0, Codec.DAG_PROTOBUF, bytes(data)), 34
    version, pos = _read_uvarint(data, 0)
    if version != 1:
        raise CidError(f"expected 1 as the cid version number, got: {version}")
    codec, pos = _read_uvarint(data, pos)
    multihash, pos = _read_multihash(data, pos)
    return Cid(1, codec, multihash), pos


def cid_from_bytes(data: bytes) -> Cid:
    """Parse a CID from the start of its binary form."""
    return _parse_cid(data)[0]


def _multibase_decode(text: str) -> bytes:
    prefix, body = text[0], text[1:]
    try:
        if prefix == "b":
            if body != body.lower():
                raise ValueError("mixed case base32")
            return base32_decode(body.upper())
        if prefix == "B":
            return base32_decode(body)
        if prefix == "z":
            return base58_decode(body)
        if prefix == "f":
            return bytes.fromhex(body)
    except ValueError as err:
        raise CidError(f"decoding multibase: {err}") from err
    raise CidError(f"unsupported multibase prefix {prefix!r}")


def decode_cid(text: str) -> Cid:
    """Decode the string form of a CID."""
    if len(text) < 2:
        raise CidError("cid too short")
    if len(text) == 46 and text.startswith("Qm"):
        try:
            multihash = base58_decode(text)
        except ValueError as err:
            raise CidError(str(err)) from err
        _, end = _read_multihash(multihash, 0)
        if end != len(multihash):
            raise CidError("trailing bytes in multihash")
        return Cid(0, Codec.DAG_PROTOBUF, multihash)
    data = _multibase_decode(text)
    cid, consumed = _parse_cid(data)
    if consumed != len(data):
        raise CidError("trailing bytes in cid")
    return cid