"""
bymlkit Yaz0

Nintendo's Yaz0 container: a 16-byte header followed by an LZ77 stream where
each group of up to eight chunks is preceded by a flag byte (1 = literal,
0 = back reference).

    Header      "Yaz0" size:u32be alignment:u32be reserved:u32
    Backref     NR RR [NN]  (N = length - 2, or 0 with an extra byte + 0x12)
"""

from __future__ import annotations

import logging
import struct

from bymlkit.errors import Yaz0Error

logger = logging.getLogger(__name__)

MAGIC = b"Yaz0"
HEADER_SIZE = 0x10
WINDOW = 0x1000
MIN_MATCH = 3
MAX_MATCH = 0xFF + 0x12


def is_compressed(data: bytes) -> bool:
    return data[:4] == MAGIC


def decompressed_size(data: bytes) -> int:
    if len(data) < HEADER_SIZE or not is_compressed(data):
        raise Yaz0Error("Not a Yaz0 stream")
    return struct.unpack_from(">I", data, 4)[0]


def decompress(data: bytes) -> bytes:
    """Expand a Yaz0 stream. Raises Yaz0Error on any inconsistency."""
    size = decompressed_size(data)
    src = HEADER_SIZE
    n = len(data)
    out = bytearray()
    code = 0
    valid = 0

    while len(out) < size:
        if valid == 0:
            if src >= n:
                raise Yaz0Error(f"Code byte out of range at {src:#x}")
            code = data[src]
            src += 1
            valid = 8

        if code & 0x80:
            if src >= n:
                raise Yaz0Error(f"Literal out of range at {src:#x}")
            out.append(data[src])
            src += 1
        else:
            if src + 1 >= n:
                raise Yaz0Error(f"Back reference out of range at {src:#x}")
            b1 = data[src]
            b2 = data[src + 1]
            src += 2
            distance = ((b1 & 0x0F) << 8 | b2) + 1
            length = b1 >> 4
            if length == 0:
                if src >= n:
                    raise Yaz0Error(f"Length byte out of range at {src:#x}")
                length = data[src] + 0x12
                src += 1
            else:
                length += 2
            back = len(out) - distance
            if back < 0:
                raise Yaz0Error(f"Back reference before start of output at {src:#x}")
            # Overlapping copies are legal (run-length style)
            for _ in range(min(length, size - len(out))):
                out.append(out[back])
                back += 1

        code = (code << 1) & 0xFF
        valid -= 1

    logger.debug("Yaz0: %d -> %d bytes", n, len(out))
    return bytes(out)


def _find_match(data: bytes, pos: int, chains: dict[bytes, list[int]]) -> tuple[int, int]:
    """Longest match for data[pos:] inside the window, as (length, distance)."""
    if pos + MIN_MATCH > len(data):
        return 0, 0
    candidates = chains.get(data[pos:pos + MIN_MATCH])
    if not candidates:
        return 0, 0

    best_length = 0
    best_distance = 0
    max_length = min(MAX_MATCH, len(data) - pos)
    # Newest first, so ties keep the closest match
    for start in reversed(candidates):
        distance = pos - start
        if distance > WINDOW:
            break
        length = MIN_MATCH
        while length < max_length and data[start + length] == data[pos + length]:
            length += 1
        if length > best_length:
            best_length = length
            best_distance = distance
            if length == max_length:
                break
    return best_length, best_distance


def compress(data: bytes) -> bytes:
    """Greedy Yaz0 encoder. Output always decompresses back to `data`."""
    out = bytearray(MAGIC)
    out += struct.pack(">III", len(data), 0, 0)
    chains: dict[bytes, list[int]] = {}

    def remember(position: int) -> None:
        key = data[position:position + MIN_MATCH]
        if len(key) == MIN_MATCH:
            chains.setdefault(key, []).append(position)

    pos = 0
    while pos < len(data):
        flag_index = len(out)
        out.append(0)
        flags = 0
        for bit in range(8):
            if pos >= len(data):
                break
            length, distance = _find_match(data, pos, chains)
            if length >= MIN_MATCH:
                dist = distance - 1
                if length >= 0x12:
                    out += bytes((dist >> 8, dist & 0xFF, length - 0x12))
                else:
                    out += bytes(((length - 2) << 4 | dist >> 8, dist & 0xFF))
                for position in range(pos, pos + length):
                    remember(position)
                pos += length
            else:
                flags |= 0x80 >> bit
                out.append(data[pos])
                remember(pos)
                pos += 1
        out[flag_index] = flags

    logger.debug("Yaz0: compressed %d -> %d bytes", len(data), len(out))
    return bytes(out)
