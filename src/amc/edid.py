"""EDID parsing and the stable output identity derived from it."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

EDID_BLOCK_SIZE = 128
EDID_HEADER = b"\x00\xff\xff\xff\xff\xff\xff\x00"
IDENTITY_SIZE = 8  # bytes of digest; 16 hex characters

# Offsets in the 128-byte base block
_MANUFACTURER = slice(8, 10)
_PRODUCT_CODE = slice(10, 12)
_SERIAL_NUMBER = slice(12, 16)
_VERSION = slice(18, 20)
_SCREEN_SIZE_CM = slice(21, 23)
_DESCRIPTOR_OFFSETS = (54, 72, 90, 108)
_DESCRIPTOR_SIZE = 18

# Display descriptor tags (bytes 0-2 are zero, byte 3 is the tag)
TAG_SERIAL = 0xFF
TAG_TEXT = 0xFE
TAG_NAME = 0xFC


class MalformedEdid(Exception):
    """Raised when an EDID blob cannot be used to identify an output."""
    pass


@dataclass(frozen=True)
class EdidInfo:
    """Human-readable EDID fields, for display only."""
    manufacturer: str
    product_code: int
    serial_number: int
    name: str = ""
    serial: str = ""

    def __str__(self) -> str:
        label = self.name or f"{self.manufacturer} 0x{self.product_code:04X}"
        if self.serial:
            return f"{label} (S/N {self.serial})"
        return label


def _check(edid: bytes) -> bytes:
    """Validate size, header and checksum; return the base block."""
    if not edid:
        raise MalformedEdid("no EDID")
    if len(edid) < EDID_BLOCK_SIZE:
        raise MalformedEdid(f"EDID too short ({len(edid)} bytes)")
    block = bytes(edid[:EDID_BLOCK_SIZE])
    if block[:8] != EDID_HEADER:
        raise MalformedEdid("EDID header missing")
    if sum(block) % 256 != 0:
        raise MalformedEdid("EDID checksum mismatch")
    return block


def _descriptors(block: bytes):
    for offset in _DESCRIPTOR_OFFSETS:
        yield block[offset:offset + _DESCRIPTOR_SIZE]


def _is_display_descriptor(desc: bytes, tag: int | None = None) -> bool:
    if desc[0:3] != b"\x00\x00\x00":
        return False
    return tag is None or desc[3] == tag


def _descriptor_text(desc: bytes) -> str:
    return desc[5:].split(b"\n", 1)[0].decode("cp437", errors="replace").strip()


def fingerprint(edid: bytes) -> str:
    """Return the identity of the display model that sent *edid*.

    The digest covers manufacturer, product code, EDID version, physical
    size and the descriptor blocks, but not the serial number, the serial
    text descriptor or the manufacture date, so two units of the same model
    share one identity.
    """
    block = _check(edid)
    h = hashlib.blake2b(digest_size=IDENTITY_SIZE)
    h.update(block[_MANUFACTURER])
    h.update(block[_PRODUCT_CODE])
    h.update(block[_VERSION])
    h.update(block[_SCREEN_SIZE_CM])
    for desc in _descriptors(block):
        if _is_display_descriptor(desc, TAG_SERIAL):
            continue
        h.update(desc)
    return h.hexdigest()


def decode_manufacturer(raw: bytes) -> str:
    """Decode the packed 3-letter PNP manufacturer ID."""
    value = int.from_bytes(raw, "big")
    letters = ((value >> 10) & 0x1F, (value >> 5) & 0x1F, value & 0x1F)
    return "".join(chr(ord("A") + c - 1) if 1 <= c <= 26 else "?" for c in letters)


def parse_edid(edid: bytes) -> EdidInfo:
    """Decode the identification fields of an EDID blob."""
    block = _check(edid)
    name = serial = ""
    for desc in _descriptors(block):
        if _is_display_descriptor(desc, TAG_NAME):
            name = _descriptor_text(desc)
        elif _is_display_descriptor(desc, TAG_SERIAL):
            serial = _descriptor_text(desc)
    return EdidInfo(
        manufacturer=decode_manufacturer(block[_MANUFACTURER]),
        product_code=int.from_bytes(block[_PRODUCT_CODE], "little"),
        serial_number=int.from_bytes(block[_SERIAL_NUMBER], "little"),
        name=name,
        serial=serial,
    )
