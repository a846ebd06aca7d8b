"""Build synthetic, checksum-valid EDID blobs for tests."""

from amc.edid import EDID_HEADER


def _pnp(code: str) -> bytes:
    value = 0
    for ch in code:
        value = (value << 5) | (ord(ch) - ord("A") + 1)
    return value.to_bytes(2, "big")


def _text_descriptor(tag: int, text: str) -> bytes:
    body = text.encode("ascii")[:13]
    if len(body) < 13:
        body += b"\n" + b" " * (12 - len(body))
    return bytes([0, 0, 0, tag, 0]) + body


def make_edid(
    manufacturer: str = "DEL",
    product: int = 0x4123,
    serial: int = 0x12345678,
    name: str = "DELL U2414H",
    serial_text: str = "ABC123",
    week: int = 12,
    year: int = 30,
    size_cm: tuple[int, int] = (53, 30),
    extension: bool = False,
) -> bytes:
    block = bytearray(128)
    block[0:8] = EDID_HEADER
    block[8:10] = _pnp(manufacturer)
    block[10:12] = product.to_bytes(2, "little")
    block[12:16] = serial.to_bytes(4, "little")
    block[16] = week
    block[17] = year
    block[18:20] = bytes([1, 4])
    block[21:23] = bytes(size_cm)
    # Detailed timing for 1920x1080@60 (first descriptor)
    block[54:72] = bytes.fromhex("023a801871382d40582c4500132a2100001e")
    block[72:90] = _text_descriptor(0xFF, serial_text)
    block[90:108] = _text_descriptor(0xFC, name)
    block[108:126] = bytes([0, 0, 0, 0xFD, 0]) + bytes.fromhex("384c1e5311000a202020202020")
    block[126] = 1 if extension else 0
    block[127] = (-sum(block[:127])) % 256
    data = bytes(block)
    if extension:
        ext = bytearray(128)
        ext[0] = 0x02
        ext[127] = (-sum(ext[:127])) % 256
        data += bytes(ext)
    return data
