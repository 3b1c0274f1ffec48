"""
bymlkit Binary Decoder

Parses a BYML buffer into a Node tree. Reads go through a KaitaiStream over
the (possibly decompressed) buffer; every offset and count is checked
against the buffer size before it is followed, so crafted files fail with
MalformedData instead of reading out of bounds or allocating huge lists.

Usage:
    root = decode(Path("ActorInfo.product.sbyml").read_bytes())
    decoder = Decoder(data)
    decoder.header.version, decoder.header.endian
    root = decoder.decode()
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Optional

from kaitaistruct import KaitaiStream

from bymlkit import yaz0
from bymlkit.errors import DecompressionFailed, MalformedData, UnsupportedFormat, Yaz0Error
from bymlkit.formats import (
    HEADER_SIZE,
    MAX_DEPTH,
    NODE_BUDGET_FACTOR,
    Endian,
    FormatSpec,
    TypeCode,
    align,
    node_type_for,
    spec_for,
)
from bymlkit.node import Node, NodeType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Header:
    endian: Endian
    version: int
    key_table_offset: int
    string_table_offset: int
    root_offset: int


# ============================================================================
# Bounds-checked reader
# ============================================================================

class _Reader:
    """Absolute-offset reads with explicit bounds checks."""

    def __init__(self, data: bytes, endian: Endian):
        self.size = len(data)
        self.endian = endian
        self._io = KaitaiStream(io.BytesIO(data))
        suffix = "be" if endian is Endian.BIG else "le"
        self._read_u2 = getattr(self._io, f"read_u2{suffix}")
        self._read_u4 = getattr(self._io, f"read_u4{suffix}")
        self._read_s4 = getattr(self._io, f"read_s4{suffix}")
        self._read_f4 = getattr(self._io, f"read_f4{suffix}")
        self._read_u8 = getattr(self._io, f"read_u8{suffix}")
        self._read_s8 = getattr(self._io, f"read_s8{suffix}")
        self._read_f8 = getattr(self._io, f"read_f8{suffix}")

    def require(self, offset: int, length: int, what: str) -> None:
        if offset < 0 or length < 0 or offset + length > self.size:
            raise MalformedData(
                f"{what} needs {length} bytes but the buffer is {self.size} bytes", offset
            )

    def _seek(self, offset: int, length: int, what: str) -> None:
        self.require(offset, length, what)
        self._io.seek(offset)

    def u8(self, offset: int, what: str = "byte") -> int:
        self._seek(offset, 1, what)
        return self._io.read_u1()

    def u16(self, offset: int, what: str = "u16") -> int:
        self._seek(offset, 2, what)
        return self._read_u2()

    def u24(self, offset: int, what: str = "u24") -> int:
        self._seek(offset, 3, what)
        return int.from_bytes(self._io.read_bytes(3), self.endian.value)

    def u32(self, offset: int, what: str = "u32") -> int:
        self._seek(offset, 4, what)
        return self._read_u4()

    def s32(self, offset: int, what: str = "s32") -> int:
        self._seek(offset, 4, what)
        return self._read_s4()

    def f32(self, offset: int, what: str = "f32") -> float:
        self._seek(offset, 4, what)
        return self._read_f4()

    def u64(self, offset: int, what: str = "u64") -> int:
        self._seek(offset, 8, what)
        return self._read_u8()

    def s64(self, offset: int, what: str = "s64") -> int:
        self._seek(offset, 8, what)
        return self._read_s8()

    def f64(self, offset: int, what: str = "f64") -> float:
        self._seek(offset, 8, what)
        return self._read_f8()

    def raw(self, offset: int, length: int, what: str = "bytes") -> bytes:
        self._seek(offset, length, what)
        return self._io.read_bytes(length)

    def cstring(self, offset: int, what: str = "string") -> bytes:
        self._seek(offset, 0, what)
        try:
            return self._io.read_bytes_term(0, False, True, True)
        except EOFError as e:
            raise MalformedData(f"Unterminated {what}", offset) from e


# ============================================================================
# String tables
# ============================================================================

class _StringTable:
    """Hash-key or string-value table.

    The offset index is read up front (after checking it fits); individual
    strings are decoded on first access and cached.
    """

    def __init__(self, reader: _Reader, offset: int, name: str):
        self.name = name
        self._reader = reader
        self._offset = offset
        self._count = 0
        self._offsets: list[int] = []
        self._cache: list[Optional[str]] = []
        if offset == 0:
            return

        code = reader.u8(offset, f"{name} table")
        if code != TypeCode.STRING_TABLE:
            raise MalformedData(f"Expected {name} table (0xC2), found type {code:#04x}", offset)
        count = reader.u24(offset + 1, f"{name} table count")
        reader.require(offset + 4, 4 * (count + 1), f"{name} table index")
        self._count = count
        self._offsets = [reader.u32(offset + 4 + 4 * i) for i in range(count)]
        self._cache = [None] * count

    def __len__(self) -> int:
        return self._count

    def __getitem__(self, index: int) -> str:
        if not 0 <= index < self._count:
            raise MalformedData(
                f"{self.name} index {index} out of range (table has {self._count} entries)"
            )
        cached = self._cache[index]
        if cached is not None:
            return cached
        position = self._offset + self._offsets[index]
        raw = self._reader.cstring(position, f"{self.name} #{index}")
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedData(f"Invalid UTF-8 in {self.name} #{index}", position) from e
        self._cache[index] = text
        return text


# ============================================================================
# Decoder
# ============================================================================

def _maybe_decompress(data: bytes) -> bytes:
    if Endian.from_magic(data[:2]) is None and yaz0.is_compressed(data):
        try:
            return yaz0.decompress(data)
        except Yaz0Error as e:
            raise DecompressionFailed(f"Yaz0 decompression failed: {e}") from e
    return data


def parse_header(data: bytes) -> Header:
    """Validate the magic/version and read the three table offsets."""
    endian = Endian.from_magic(bytes(data[:2]))
    if endian is None:
        raise UnsupportedFormat(f"Not a BYML buffer (magic {bytes(data[:4])!r})")
    if len(data) < HEADER_SIZE:
        raise MalformedData(f"Truncated header: {len(data)} of {HEADER_SIZE} bytes")
    reader = _Reader(bytes(data[:HEADER_SIZE]), endian)
    version = reader.u16(2)
    if spec_for(version) is None:
        raise UnsupportedFormat(f"Unsupported BYML version {version}")
    return Header(
        endian=endian,
        version=version,
        key_table_offset=reader.u32(4),
        string_table_offset=reader.u32(8),
        root_offset=reader.u32(12),
    )


class Decoder:
    """One-shot decoder for a single buffer."""

    def __init__(self, data: bytes):
        data = _maybe_decompress(bytes(data))
        self.header = parse_header(data)
        self.spec: FormatSpec = spec_for(self.header.version)
        self._reader = _Reader(data, self.header.endian)
        self._keys = _StringTable(self._reader, self.header.key_table_offset, "hash key")
        self._strings = _StringTable(self._reader, self.header.string_table_offset, "string")
        logger.debug(
            "BYML v%d %s-endian, %d bytes, %d keys, %d strings",
            self.header.version, self.header.endian.value, len(data),
            len(self._keys), len(self._strings),
        )

    def decode(self) -> Node:
        root = self.header.root_offset
        if root == 0:
            return Node.null()
        self._budget = NODE_BUDGET_FACTOR * self._reader.size
        code = self._reader.u8(root, "root node")
        if code not in (TypeCode.ARRAY, TypeCode.HASH):
            raise MalformedData(f"Root node must be an array or hash, found type {code:#04x}", root)
        return self._read_container(root, depth=0, path=frozenset())

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------

    def _read_container(self, offset: int, depth: int, path: frozenset[int]) -> Node:
        if depth > MAX_DEPTH:
            raise MalformedData(f"Nesting deeper than {MAX_DEPTH} levels", offset)
        if offset in path:
            raise MalformedData("Cyclic container reference", offset)
        path = path | {offset}

        code = self._reader.u8(offset, "container")
        if code == TypeCode.ARRAY:
            return self._read_array(offset, depth, path)
        if code == TypeCode.HASH:
            return self._read_hash(offset, depth, path)
        raise MalformedData(f"Expected array or hash, found type {code:#04x}", offset)

    def _read_array(self, offset: int, depth: int, path: frozenset[int]) -> Node:
        count = self._reader.u24(offset + 1, "array count")
        values_at = offset + align(4 + count)
        self._reader.require(offset, values_at - offset + 4 * count, f"array of {count} entries")

        types = self._reader.raw(offset + 4, count, "array types")
        items = [
            self._read_value(types[i], values_at + 4 * i, depth, path)
            for i in range(count)
        ]
        return Node.array(items)

    def _read_hash(self, offset: int, depth: int, path: frozenset[int]) -> Node:
        count = self._reader.u24(offset + 1, "hash count")
        entry_size = self.spec.hash_entry_size
        self._reader.require(offset + 4, entry_size * count, f"hash of {count} entries")

        entries: dict[str, Node] = {}
        for i in range(count):
            entry = offset + 4 + entry_size * i
            key = self._keys[self._reader.u24(entry, "hash key index")]
            if key in entries:
                raise MalformedData(f"Duplicate hash key {key!r}", entry)
            code = self._reader.u8(entry + 3, "hash entry type")
            entries[key] = self._read_value(code, entry + 4, depth, path)
        return Node.hash(entries)

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def _read_value(self, code: int, slot: int, depth: int, path: frozenset[int]) -> Node:
        """Decode the value whose 4-byte slot sits at `slot`."""
        self._budget -= 1
        if self._budget < 0:
            raise MalformedData(
                f"More than {NODE_BUDGET_FACTOR} nodes per input byte (shared offsets expand too far)", slot
            )
        node_type = node_type_for(code)
        if node_type is None or not self.spec.allows(TypeCode(code)):
            raise MalformedData(
                f"Type {code:#04x} is not valid in version {self.spec.version}", slot
            )

        reader = self._reader
        if node_type is NodeType.STRING:
            return Node.string(self._strings[reader.u32(slot)])
        if node_type is NodeType.BOOL:
            return Node.bool(reader.u32(slot) != 0)
        if node_type is NodeType.INT:
            return Node.int(reader.s32(slot))
        if node_type is NodeType.UINT:
            return Node.uint(reader.u32(slot))
        if node_type is NodeType.FLOAT:
            return Node.float(reader.f32(slot))
        if node_type is NodeType.NULL:
            return Node.null()

        target = reader.u32(slot)
        if node_type is NodeType.INT64:
            return Node.int64(reader.s64(target, "int64 value"))
        if node_type is NodeType.UINT64:
            return Node.uint64(reader.u64(target, "uint64 value"))
        if node_type is NodeType.DOUBLE:
            return Node.double(reader.f64(target, "double value"))
        if node_type is NodeType.BINARY:
            return self._read_binary(code, target)
        return self._read_container(target, depth + 1, path)

    def _read_binary(self, code: int, offset: int) -> Node:
        size = self._reader.u32(offset, "binary size")
        if code == TypeCode.FILE:
            alignment = self._reader.u32(offset + 4, "binary alignment")
            data = self._reader.raw(offset + 8, size, "binary payload")
            try:
                return Node.binary(data, alignment)
            except ValueError as e:
                raise MalformedData(str(e), offset + 4) from e
        return Node.binary(self._reader.raw(offset + 4, size, "binary payload"))


# ============================================================================
# Public API
# ============================================================================

def decode(data: bytes) -> Node:
    """Decode a BYML (or Yaz0-compressed BYML) buffer into a Node tree."""
    return Decoder(data).decode()
