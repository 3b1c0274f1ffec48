"""
bymlkit Binary Encoder

Serializes a Node tree into a BYML buffer. Offsets are forward references,
so encoding runs in three passes:

1. Collect: gather distinct hash keys and string values, and reject any
   variant the target version cannot represent.
2. Layout: assign every container and out-of-line value its absolute
   offset (header, key table, string table, root, then each container's
   out-of-line children depth first). Identical out-of-line values are
   placed once and shared.
3. Emit: allocate the final buffer and pack every record at its offset.

Usage:
    data = encode(root, version=2)
    data = encode(root, version=4, endian=Endian.BIG)
"""

from __future__ import annotations

import logging
import struct
from typing import Any

from bymlkit import yaz0
from bymlkit.errors import EncodeError, UnsupportedForVersion
from bymlkit.formats import (
    HEADER_SIZE,
    MAX_DEPTH,
    SUPPORTED_VERSIONS,
    Endian,
    FormatSpec,
    TypeCode,
    align,
    code_for,
    spec_for,
)
from bymlkit.node import Node, NodeType

logger = logging.getLogger(__name__)

_F32 = struct.Struct("<f")
_F64 = struct.Struct("<d")


def _table_size(encoded: list[bytes]) -> int:
    if not encoded:
        return 0
    return align(4 + 4 * (len(encoded) + 1) + sum(len(s) + 1 for s in encoded))


class Encoder:
    """Encodes trees for one (version, endian) target."""

    def __init__(self, version: int, endian: Endian = Endian.LITTLE):
        spec = spec_for(version)
        if spec is None:
            raise UnsupportedForVersion(
                f"Version {version} is not supported, expected one of {SUPPORTED_VERSIONS}"
            )
        self.spec: FormatSpec = spec
        self.endian = endian
        self._prefix = endian.prefix

    # ------------------------------------------------------------------
    # Pass 1: collect
    # ------------------------------------------------------------------

    def _collect(self, node: Node, keys: set[str], strings: set[str], depth: int) -> None:
        if depth > MAX_DEPTH:
            raise EncodeError(f"Tree is nested deeper than {MAX_DEPTH} levels")
        code = code_for(node.type, node.alignment)
        if not self.spec.allows(code):
            raise UnsupportedForVersion(
                f"{node.type.value} nodes cannot be encoded in version {self.spec.version}"
            )

        node_type = node.type
        if node_type is NodeType.STRING:
            strings.add(node.value)
        elif node_type is NodeType.BINARY:
            if len(node.value) > 0xFFFFFFFF:
                raise EncodeError("Binary payload larger than 4 GiB")
        elif node_type is NodeType.ARRAY:
            self._check_count(len(node), "Array")
            for child in node:
                self._collect(child, keys, strings, depth + 1)
        elif node_type is NodeType.HASH:
            self._check_count(len(node), "Hash")
            for key, child in node.items():
                keys.add(key)
                self._collect(child, keys, strings, depth + 1)

    def _check_count(self, count: int, what: str) -> None:
        if count > self.spec.max_count:
            raise EncodeError(f"{what} has {count} entries, the format allows {self.spec.max_count}")

    @staticmethod
    def _build_table(values: set[str], what: str) -> tuple[dict[str, int], list[bytes]]:
        ordered = sorted(values)
        try:
            encoded = [s.encode("utf-8") for s in ordered]
        except UnicodeEncodeError as e:
            raise EncodeError(f"{what} is not valid UTF-8: {e}") from e
        for raw in encoded:
            if b"\x00" in raw:
                raise EncodeError(f"{what} {raw!r} contains a NUL byte")
        return {s: i for i, s in enumerate(ordered)}, encoded

    # ------------------------------------------------------------------
    # Pass 2: layout
    # ------------------------------------------------------------------

    def _fingerprint(self, node: Node) -> tuple:
        """Structural identity used to share identical out-of-line values."""
        cached = self._fingerprints.get(id(node))
        if cached is not None:
            return cached
        node_type = node.type
        if node_type is NodeType.ARRAY:
            fp: tuple = ("A", tuple(self._fingerprint(child) for child in node))
        elif node_type is NodeType.HASH:
            fp = ("H", tuple((key, self._fingerprint(child)) for key, child in node.items()))
        elif node_type is NodeType.FLOAT:
            fp = ("F", _F32.pack(node.value))
        elif node_type is NodeType.DOUBLE:
            fp = ("D", _F64.pack(node.value))
        elif node_type is NodeType.BINARY:
            fp = ("B", node.alignment, node.value)
        else:
            fp = (node_type.value, node.value)
        self._fingerprints[id(node)] = fp
        return fp

    @staticmethod
    def _node_size(node: Node) -> int:
        node_type = node.type
        if node_type is NodeType.ARRAY:
            return align(4 + len(node)) + 4 * len(node)
        if node_type is NodeType.HASH:
            return 4 + 8 * len(node)
        if node_type is NodeType.BINARY:
            header = 8 if node.alignment is not None else 4
            return header + len(node.value)
        return 8

    def _plan(self, node: Node, cursor: int) -> int:
        """Assign offsets to `node` and its out-of-line descendants."""
        fp = self._fingerprint(node)
        placed = self._placed.get(fp)
        if placed is not None:
            self._offsets[id(node)] = placed
            return cursor

        offset = cursor
        if node.type is NodeType.BINARY and node.alignment is not None:
            # payload (after size + alignment) must land on the alignment
            offset = max(cursor, align(cursor + 8, node.alignment) - 8)
        self._placed[fp] = offset
        self._offsets[id(node)] = offset
        cursor = align(offset + self._node_size(node))

        if node.is_container():
            children = node.values() if node.type is NodeType.HASH else list(node)
            for child in children:
                if not child.is_inline():
                    cursor = self._plan(child, cursor)
        return cursor

    # ------------------------------------------------------------------
    # Pass 3: emit
    # ------------------------------------------------------------------

    def _pack(self, buf: bytearray, offset: int, fmt: str, *values: Any) -> None:
        struct.pack_into(self._prefix + fmt, buf, offset, *values)

    def _pack_u24(self, buf: bytearray, offset: int, value: int) -> None:
        buf[offset:offset + 3] = value.to_bytes(3, self.endian.value)

    def _write_table(self, buf: bytearray, offset: int, encoded: list[bytes]) -> None:
        buf[offset] = TypeCode.STRING_TABLE
        self._pack_u24(buf, offset + 1, len(encoded))
        position = 4 + 4 * (len(encoded) + 1)
        for i, raw in enumerate(encoded):
            self._pack(buf, offset + 4 + 4 * i, "I", position)
            buf[offset + position:offset + position + len(raw)] = raw
            position += len(raw) + 1
        self._pack(buf, offset + 4 + 4 * len(encoded), "I", position)

    def _write_slot(self, buf: bytearray, offset: int, node: Node) -> None:
        node_type = node.type
        if node_type is NodeType.STRING:
            self._pack(buf, offset, "I", self._string_index[node.value])
        elif node_type is NodeType.BOOL:
            self._pack(buf, offset, "I", 1 if node.value else 0)
        elif node_type is NodeType.INT:
            self._pack(buf, offset, "i", node.value)
        elif node_type is NodeType.UINT:
            self._pack(buf, offset, "I", node.value)
        elif node_type is NodeType.FLOAT:
            self._pack(buf, offset, "f", node.value)
        elif node_type is NodeType.NULL:
            self._pack(buf, offset, "I", 0)
        else:
            self._pack(buf, offset, "I", self._offsets[id(node)])

    def _write_node(self, buf: bytearray, node: Node) -> None:
        offset = self._offsets[id(node)]
        if offset in self._written:
            return
        self._written.add(offset)

        node_type = node.type
        if node_type is NodeType.ARRAY:
            items = list(node)
            buf[offset] = TypeCode.ARRAY
            self._pack_u24(buf, offset + 1, len(items))
            for i, child in enumerate(items):
                buf[offset + 4 + i] = code_for(child.type, child.alignment)
            values_at = offset + align(4 + len(items))
            for i, child in enumerate(items):
                self._write_slot(buf, values_at + 4 * i, child)
            children = items
        elif node_type is NodeType.HASH:
            entries = sorted(node.items(), key=lambda kv: self._key_index[kv[0]])
            buf[offset] = TypeCode.HASH
            self._pack_u24(buf, offset + 1, len(entries))
            for i, (key, child) in enumerate(entries):
                entry = offset + 4 + self.spec.hash_entry_size * i
                self._pack_u24(buf, entry, self._key_index[key])
                buf[entry + 3] = code_for(child.type, child.alignment)
                self._write_slot(buf, entry + 4, child)
            children = [child for _, child in entries]
        elif node_type is NodeType.INT64:
            self._pack(buf, offset, "q", node.value)
            return
        elif node_type is NodeType.UINT64:
            self._pack(buf, offset, "Q", node.value)
            return
        elif node_type is NodeType.DOUBLE:
            self._pack(buf, offset, "d", node.value)
            return
        elif node_type is NodeType.BINARY:
            payload = node.value
            self._pack(buf, offset, "I", len(payload))
            start = offset + 4
            if node.alignment is not None:
                self._pack(buf, start, "I", node.alignment)
                start += 4
            buf[start:start + len(payload)] = payload
            return
        else:
            raise EncodeError(f"{node_type.value} is not an out-of-line node")

        for child in children:
            if not child.is_inline():
                self._write_node(buf, child)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def encode(self, root: Node) -> bytes:
        if not isinstance(root, Node):
            raise TypeError(f"Expected Node, got {type(root).__name__}")
        if root.type not in (NodeType.ARRAY, NodeType.HASH, NodeType.NULL):
            raise EncodeError(f"Root node must be a hash, array or null, not {root.type.value}")

        keys: set[str] = set()
        strings: set[str] = set()
        self._collect(root, keys, strings, depth=0)
        self._key_index, encoded_keys = self._build_table(keys, "Hash key")
        self._string_index, encoded_strings = self._build_table(strings, "String")

        cursor = HEADER_SIZE
        key_table_offset = cursor if encoded_keys else 0
        cursor += _table_size(encoded_keys)
        string_table_offset = cursor if encoded_strings else 0
        cursor += _table_size(encoded_strings)

        self._fingerprints: dict[int, tuple] = {}
        self._placed: dict[tuple, int] = {}
        self._offsets: dict[int, int] = {}
        self._written: set[int] = set()

        root_offset = 0
        if not root.is_null():
            root_offset = cursor
            cursor = self._plan(root, cursor)
        if cursor > 0xFFFFFFFF:
            raise EncodeError(f"Encoded size {cursor} exceeds the 32-bit offset range")

        buf = bytearray(cursor)
        buf[0:2] = self.endian.magic
        self._pack(buf, 2, "HIII", self.spec.version, key_table_offset, string_table_offset, root_offset)
        if encoded_keys:
            self._write_table(buf, key_table_offset, encoded_keys)
        if encoded_strings:
            self._write_table(buf, string_table_offset, encoded_strings)
        if root_offset:
            self._write_node(buf, root)

        logger.debug(
            "Encoded BYML v%d %s-endian: %d keys, %d strings, %d bytes",
            self.spec.version, self.endian.value, len(encoded_keys), len(encoded_strings), len(buf),
        )
        return bytes(buf)


# ============================================================================
# Public API
# ============================================================================

def encode(node: Node, version: int, endian: Endian = Endian.LITTLE) -> bytes:
    """Encode a tree (Hash, Array or Null root) for the given format version."""
    return Encoder(version, endian).encode(node)


def encode_compressed(node: Node, version: int, endian: Endian = Endian.LITTLE) -> bytes:
    """Encode and Yaz0-compress in one step."""
    return yaz0.compress(encode(node, version, endian))
