"""
bymlkit Format Tables

Declarative, version-keyed data shared by the decoder and the encoder:
type codes, which codes each version allows, record widths and alignment.
Nothing in here reads or writes bytes.

Layout summary (all versions):

    Header      magic[2] version:u16 keys:u32 strings:u32 root:u32
    Table       0xC2 count:u24 offsets:u32[count + 1] cstrings...
    Array       0xC0 count:u24 types:u8[count] pad(4) values:u32[count]
    Hash        0xC1 count:u24 (key:u24 type:u8 value:u32)[count]
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional

from bymlkit.node import NodeType


class Endian(Enum):
    BIG = "big"
    LITTLE = "little"

    @property
    def magic(self) -> bytes:
        return b"BY" if self is Endian.BIG else b"YB"

    @property
    def prefix(self) -> str:
        """struct format prefix."""
        return ">" if self is Endian.BIG else "<"

    @classmethod
    def from_magic(cls, magic: bytes) -> Optional[Endian]:
        for endian in cls:
            if endian.magic == magic:
                return endian
        return None


class TypeCode(IntEnum):
    STRING = 0xA0
    BINARY = 0xA1
    FILE = 0xA2
    ARRAY = 0xC0
    HASH = 0xC1
    STRING_TABLE = 0xC2
    BOOL = 0xD0
    INT = 0xD1
    FLOAT = 0xD2
    UINT = 0xD3
    INT64 = 0xD4
    UINT64 = 0xD5
    DOUBLE = 0xD6
    NULL = 0xFF


_CODE_TO_TYPE = {
    TypeCode.STRING: NodeType.STRING,
    TypeCode.BINARY: NodeType.BINARY,
    TypeCode.FILE: NodeType.BINARY,
    TypeCode.ARRAY: NodeType.ARRAY,
    TypeCode.HASH: NodeType.HASH,
    TypeCode.BOOL: NodeType.BOOL,
    TypeCode.INT: NodeType.INT,
    TypeCode.FLOAT: NodeType.FLOAT,
    TypeCode.UINT: NodeType.UINT,
    TypeCode.INT64: NodeType.INT64,
    TypeCode.UINT64: NodeType.UINT64,
    TypeCode.DOUBLE: NodeType.DOUBLE,
    TypeCode.NULL: NodeType.NULL,
}

_TYPE_TO_CODE = {
    node_type: code for code, node_type in _CODE_TO_TYPE.items()
    if code is not TypeCode.FILE
}

# Codes whose 4-byte slot holds an absolute offset
OFFSET_CODES = frozenset({
    TypeCode.ARRAY,
    TypeCode.HASH,
    TypeCode.BINARY,
    TypeCode.FILE,
    TypeCode.INT64,
    TypeCode.UINT64,
    TypeCode.DOUBLE,
})

WIDE_CODES = frozenset({TypeCode.INT64, TypeCode.UINT64, TypeCode.DOUBLE})


@dataclass(frozen=True)
class FormatSpec:
    """Everything that may vary with the header version."""
    version: int
    node_codes: frozenset[TypeCode]
    header_size: int = 16
    count_bits: int = 24
    key_index_bits: int = 24
    hash_entry_size: int = 8
    value_size: int = 4
    alignment: int = 4

    @property
    def max_count(self) -> int:
        return (1 << self.count_bits) - 1

    @property
    def max_key_index(self) -> int:
        return (1 << self.key_index_bits) - 1

    def allows(self, code: TypeCode) -> bool:
        return code in self.node_codes


_V2_CODES = frozenset({
    TypeCode.STRING,
    TypeCode.ARRAY,
    TypeCode.HASH,
    TypeCode.BOOL,
    TypeCode.INT,
    TypeCode.FLOAT,
    TypeCode.UINT,
    TypeCode.NULL,
})

_V3_CODES = _V2_CODES | {
    TypeCode.INT64,
    TypeCode.UINT64,
    TypeCode.DOUBLE,
    TypeCode.BINARY,
    TypeCode.FILE,
}

FORMATS: dict[int, FormatSpec] = {
    2: FormatSpec(version=2, node_codes=_V2_CODES),
    3: FormatSpec(version=3, node_codes=_V3_CODES),
    4: FormatSpec(version=4, node_codes=_V3_CODES),
}

SUPPORTED_VERSIONS = tuple(sorted(FORMATS))
DEFAULT_VERSION = 2
HEADER_SIZE = 16

# Nesting limit for decode/encode/emit, kept well under the interpreter's
# recursion limit
MAX_DEPTH = 64

# Decoded nodes allowed per input byte; shared offsets are expanded once
# per reference, so this bounds the tree a small crafted file can produce
NODE_BUDGET_FACTOR = 64


def spec_for(version: int) -> Optional[FormatSpec]:
    return FORMATS.get(version)


def code_for(node_type: NodeType, alignment: Optional[int] = None) -> TypeCode:
    if node_type is NodeType.BINARY and alignment is not None:
        return TypeCode.FILE
    return _TYPE_TO_CODE[node_type]


def node_type_for(code: int) -> Optional[NodeType]:
    try:
        return _CODE_TO_TYPE[TypeCode(code)]
    except (ValueError, KeyError):
        return None


def align(value: int, alignment: int = 4) -> int:
    return (value + alignment - 1) & -alignment
