"""
bymlkit Encoder Tests

Binary round trips across versions and byte orders, plus the layout rules
the encoder must honour: sorted tables, deduplication, hash order,
alignment and version gating.
"""

import math
import os
import struct
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from bymlkit import (
    EncodeError,
    Encoder,
    Endian,
    Node,
    UnsupportedForVersion,
    decode,
    encode,
    encode_compressed,
    yaz0,
)
from bymlkit.formats import MAX_DEPTH, align, code_for, node_type_for, spec_for, TypeCode


def make_v2_tree() -> Node:
    return Node.hash({
        "Actors": Node.array([
            Node.hash({
                "name": Node.string("Enemy_Guardian"),
                "hp": Node.int(-1500),
                "flags": Node.uint(0xDEADBEEF),
                "scale": Node.float(1.25),
                "alive": Node.bool(True),
                "link": Node.null(),
            }),
            Node.hash({"name": Node.string("Enemy_Guardian"), "hp": Node.int(0)}),
        ]),
        "Empty": Node.array(),
        "Nested": Node.array([Node.array([Node.hash()])]),
        "Unicode": Node.string("リンク"),
    })


def make_v3_tree() -> Node:
    tree = make_v2_tree()
    tree["Wide"] = Node.array([
        Node.int64(-(1 << 62)),
        Node.uint64((1 << 64) - 1),
        Node.double(math.pi),
        Node.double(math.nan),
    ])
    tree["Blob"] = Node.binary(b"\x00\x01\x02")
    tree["File"] = Node.binary(b"payload", alignment=0x80)
    return tree


def header_fields(data: bytes, order: str = "<"):
    return struct.unpack(order + "HIII", data[2:16])


def table_strings(data: bytes, offset: int, order: str = "<") -> list:
    count = int.from_bytes(data[offset + 1:offset + 4], "little" if order == "<" else "big")
    result = []
    for i in range(count):
        start = offset + struct.unpack_from(order + "I", data, offset + 4 + 4 * i)[0]
        end = data.index(b"\x00", start)
        result.append(data[start:end].decode("utf-8"))
    return result


# ============================================================================
# Round trips
# ============================================================================

class TestRoundTrip:

    @pytest.mark.parametrize("version", [2, 3, 4])
    @pytest.mark.parametrize("endian", [Endian.LITTLE, Endian.BIG])
    def test_v2_tree(self, version, endian):
        tree = make_v2_tree()
        assert decode(encode(tree, version, endian)) == tree

    @pytest.mark.parametrize("version", [3, 4])
    @pytest.mark.parametrize("endian", [Endian.LITTLE, Endian.BIG])
    def test_v3_tree(self, version, endian):
        tree = make_v3_tree()
        assert decode(encode(tree, version, endian)) == tree

    def test_actor_scenario(self):
        tree = Node.hash({"Actors": Node.array([Node.string("A"), Node.string("B")])})
        assert decode(encode(tree, version=4)) == tree

    def test_null_root(self):
        data = encode(Node.null(), 2)
        assert len(data) == 16
        assert header_fields(data) == (2, 0, 0, 0)
        assert decode(data).is_null()

    def test_array_root(self):
        tree = Node.array([Node.int(1), Node.string("x")])
        assert decode(encode(tree, 2)) == tree

    def test_reencode_is_stable(self):
        data = encode(make_v3_tree(), 3, Endian.BIG)
        assert encode(decode(data), 3, Endian.BIG) == data

    def test_compressed(self):
        tree = make_v2_tree()
        data = encode_compressed(tree, 2)
        assert yaz0.is_compressed(data)
        assert decode(data) == tree


# ============================================================================
# Layout
# ============================================================================

class TestLayout:

    def test_header(self):
        data = encode(make_v2_tree(), 2, Endian.BIG)
        assert data[:2] == b"BY"
        version, keys, strings, root = header_fields(data, ">")
        assert version == 2
        assert keys == 16
        assert keys < strings < root
        assert root % 4 == 0

    def test_little_endian_magic(self):
        assert encode(make_v2_tree(), 2)[:2] == b"YB"

    def test_tables_sorted_and_deduplicated(self):
        data = encode(make_v2_tree(), 2)
        _, keys, strings, _ = header_fields(data)
        key_list = table_strings(data, keys)
        string_list = table_strings(data, strings)
        assert key_list == sorted(set(key_list))
        assert "Actors" in key_list and "name" in key_list
        # "Enemy_Guardian" appears twice in the tree, once in the table
        assert string_list.count("Enemy_Guardian") == 1
        assert string_list == sorted(string_list, key=lambda s: s.encode("utf-8"))

    def test_table_order_is_utf8_byte_order(self):
        tree = Node.hash({"b": Node.null(), "B": Node.null(), "é": Node.null(), "a": Node.null()})
        data = encode(tree, 2)
        assert table_strings(data, 16) == ["B", "a", "b", "é"]

    def test_hash_entries_in_key_order(self):
        tree = Node.hash([("z", Node.int(1)), ("a", Node.int(2)), ("m", Node.int(3))])
        data = encode(tree, 2)
        root = header_fields(data)[3]
        indices = [
            int.from_bytes(data[root + 4 + 8 * i:root + 7 + 8 * i], "little")
            for i in range(3)
        ]
        assert indices == [0, 1, 2]

    def test_identical_subtrees_shared(self):
        block = Node.array([Node.double(1.0), Node.double(2.0)])
        tree = Node.hash({"a": block, "b": block.copy()})
        shared = encode(tree, 3)
        distinct = encode(Node.hash({"a": block, "b": Node.array([Node.double(1.0)])}), 3)
        assert len(shared) < len(distinct)
        assert decode(shared) == tree

    def test_file_payload_aligned(self):
        tree = Node.array([Node.binary(b"X" * 5), Node.binary(b"ALIGNED", alignment=0x100)])
        data = encode(tree, 4)
        assert data.index(b"ALIGNED") % 0x100 == 0
        assert decode(data) == tree

    def test_values_aligned(self):
        tree = Node.hash({"a": Node.array([Node.bool(True)] * 3), "b": Node.array([Node.int(1)] * 5)})
        data = encode(tree, 2)
        assert len(data) % 4 == 0


# ============================================================================
# Rejected trees
# ============================================================================

class TestErrors:

    @pytest.mark.parametrize("node", [
        Node.int64(1),
        Node.uint64(1),
        Node.double(1.0),
        Node.binary(b"x"),
        Node.binary(b"x", alignment=4),
    ])
    def test_wide_types_need_v3(self, node):
        with pytest.raises(UnsupportedForVersion):
            encode(Node.hash({"value": node}), 2)

    def test_unknown_version(self):
        with pytest.raises(UnsupportedForVersion):
            encode(Node.hash(), 7)

    def test_scalar_root(self):
        with pytest.raises(EncodeError):
            encode(Node.int(1), 2)

    def test_not_a_node(self):
        with pytest.raises(TypeError):
            Encoder(2).encode({"a": 1})

    def test_nul_in_string(self):
        with pytest.raises(EncodeError):
            encode(Node.array([Node.string("a\x00b")]), 2)

    def test_nul_in_key(self):
        with pytest.raises(EncodeError):
            encode(Node.hash({"a\x00": Node.null()}), 2)

    def test_too_deep(self):
        tree = Node.array()
        for _ in range(MAX_DEPTH + 5):
            tree = Node.array([tree])
        with pytest.raises(EncodeError):
            encode(tree, 2)


# ============================================================================
# Format tables
# ============================================================================

class TestFormats:

    def test_version_gating(self):
        assert not spec_for(2).allows(TypeCode.INT64)
        assert spec_for(3).allows(TypeCode.INT64)
        assert spec_for(4).allows(TypeCode.FILE)
        assert spec_for(1) is None

    def test_code_lookup(self):
        assert node_type_for(0xA2) is node_type_for(0xA1)
        assert node_type_for(0x00) is None
        assert code_for(node_type_for(0xA1), alignment=8) is TypeCode.FILE

    def test_align(self):
        assert align(0) == 0
        assert align(5) == 8
        assert align(9, 16) == 16

    def test_widths(self):
        spec = spec_for(2)
        assert spec.max_count == 0xFFFFFF
        assert spec.hash_entry_size == 8
