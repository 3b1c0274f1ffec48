"""
bymlkit Value Model

A BYML document is a tree of Nodes. Each Node carries a NodeType tag and a
Python payload:

    Null     None
    Bool     bool
    Int      int, 32-bit signed
    UInt     int, 32-bit unsigned
    Float    float, rounded to binary32 on construction
    Int64    int, 64-bit signed
    UInt64   int, 64-bit unsigned
    Double   float
    String   str
    Binary   bytes (+ alignment for file-aligned binaries)
    Array    list[Node]
    Hash     dict[str, Node], always sorted by key

Usage:
    root = Node.hash({"Actors": Node.array([Node.string("A")])})
    root["Actors"][0].as_string()        # 'A'
    root["Actors"].append(Node.string("B"))
    root.as_array()                      # raises TypeMismatch
"""

from __future__ import annotations

import math
import struct
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping, Optional, Union

from bymlkit.errors import IndexOutOfBounds, MissingKey, TypeMismatch


class NodeType(Enum):
    NULL = "Null"
    BOOL = "Bool"
    INT = "Int"
    UINT = "UInt"
    FLOAT = "Float"
    INT64 = "Int64"
    UINT64 = "UInt64"
    DOUBLE = "Double"
    STRING = "String"
    BINARY = "Binary"
    ARRAY = "Array"
    HASH = "Hash"


# Values stored directly in the parent's 4-byte slot
INLINE_TYPES = frozenset({
    NodeType.NULL,
    NodeType.BOOL,
    NodeType.INT,
    NodeType.UINT,
    NodeType.FLOAT,
    NodeType.STRING,
})

CONTAINER_TYPES = frozenset({NodeType.ARRAY, NodeType.HASH})

INT_RANGES = {
    NodeType.INT: (-(1 << 31), (1 << 31) - 1),
    NodeType.UINT: (0, (1 << 32) - 1),
    NodeType.INT64: (-(1 << 63), (1 << 63) - 1),
    NodeType.UINT64: (0, (1 << 64) - 1),
}

# Largest file-aligned binary alignment; each one can pad the output by this much
MAX_ALIGNMENT = 0x10000

_F32 = struct.Struct("<f")
_F64 = struct.Struct("<d")


def to_float32(value: float) -> float:
    """Round a Python float to the nearest binary32 value."""
    try:
        return _F32.unpack(_F32.pack(value))[0]
    except OverflowError as e:
        raise ValueError(f"{value!r} is out of range for a 32-bit float") from e


# ============================================================================
# Payload validation
# ============================================================================

def _check_int(node_type: NodeType, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{node_type.value} payload must be int, got {type(value).__name__}")
    low, high = INT_RANGES[node_type]
    if not low <= value <= high:
        raise ValueError(f"{value} is out of range for {node_type.value} [{low}, {high}]")
    return value


def _check_float(node_type: NodeType, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{node_type.value} payload must be float, got {type(value).__name__}")
    if node_type is NodeType.FLOAT:
        return to_float32(float(value))
    return float(value)


def _check_alignment(alignment: Optional[int]) -> Optional[int]:
    if alignment is None:
        return None
    if isinstance(alignment, bool) or not isinstance(alignment, int):
        raise TypeError("Binary alignment must be int or None")
    if alignment <= 0 or alignment & (alignment - 1):
        raise ValueError(f"Binary alignment must be a power of two, got {alignment}")
    if alignment > MAX_ALIGNMENT:
        raise ValueError(f"Binary alignment {alignment:#x} exceeds {MAX_ALIGNMENT:#x}")
    return alignment


def _check_child(child: Any) -> Node:
    if not isinstance(child, Node):
        raise TypeError(f"Container children must be Node, got {type(child).__name__}")
    return child


def _build_hash(entries: Union[Mapping[str, Node], Iterable[tuple[str, Node]]]) -> dict[str, Node]:
    items = entries.items() if isinstance(entries, Mapping) else entries
    result: dict[str, Node] = {}
    for key, child in items:
        if not isinstance(key, str):
            raise TypeError(f"Hash keys must be str, got {type(key).__name__}")
        if key in result:
            raise ValueError(f"Duplicate hash key {key!r}")
        result[key] = _check_child(child)
    return dict(sorted(result.items(), key=lambda kv: kv[0]))


def _validate(node_type: NodeType, value: Any) -> Any:
    if node_type is NodeType.NULL:
        if value is not None:
            raise TypeError("Null payload must be None")
        return None
    if node_type is NodeType.BOOL:
        if not isinstance(value, bool):
            raise TypeError(f"Bool payload must be bool, got {type(value).__name__}")
        return value
    if node_type in INT_RANGES:
        return _check_int(node_type, value)
    if node_type in (NodeType.FLOAT, NodeType.DOUBLE):
        return _check_float(node_type, value)
    if node_type is NodeType.STRING:
        if not isinstance(value, str):
            raise TypeError(f"String payload must be str, got {type(value).__name__}")
        return value
    if node_type is NodeType.BINARY:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise TypeError(f"Binary payload must be bytes, got {type(value).__name__}")
        return bytes(value)
    if node_type is NodeType.ARRAY:
        return [_check_child(child) for child in value]
    if node_type is NodeType.HASH:
        return _build_hash(value)
    raise TypeError(f"Unknown node type {node_type!r}")


# ============================================================================
# Node
# ============================================================================

class Node:
    """One value in a BYML document tree.

    Containers (Array, Hash) own their children exclusively. Hash entries are
    kept sorted by key, which is the order the binary format stores them in,
    so two Hashes built in different insertion orders are equal.
    """

    __slots__ = ("_type", "_value", "_alignment")
    __hash__ = None  # mutable

    def __init__(self, node_type: NodeType, value: Any = None, *, alignment: Optional[int] = None):
        if not isinstance(node_type, NodeType):
            raise TypeError(f"node_type must be NodeType, got {node_type!r}")
        if alignment is not None and node_type is not NodeType.BINARY:
            raise ValueError("Only Binary nodes carry an alignment")
        if node_type is NodeType.ARRAY and value is None:
            value = []
        elif node_type is NodeType.HASH and value is None:
            value = {}
        self._type = node_type
        self._value = _validate(node_type, value)
        self._alignment = _check_alignment(alignment)

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def null(cls) -> Node:
        return cls(NodeType.NULL)

    @classmethod
    def bool(cls, value: bool) -> Node:
        return cls(NodeType.BOOL, value)

    @classmethod
    def int(cls, value: int) -> Node:
        return cls(NodeType.INT, value)

    @classmethod
    def uint(cls, value: int) -> Node:
        return cls(NodeType.UINT, value)

    @classmethod
    def float(cls, value: float) -> Node:
        return cls(NodeType.FLOAT, value)

    @classmethod
    def int64(cls, value: int) -> Node:
        return cls(NodeType.INT64, value)

    @classmethod
    def uint64(cls, value: int) -> Node:
        return cls(NodeType.UINT64, value)

    @classmethod
    def double(cls, value: float) -> Node:
        return cls(NodeType.DOUBLE, value)

    @classmethod
    def string(cls, value: str) -> Node:
        return cls(NodeType.STRING, value)

    @classmethod
    def binary(cls, data: bytes, alignment: Optional[int] = None) -> Node:
        return cls(NodeType.BINARY, data, alignment=alignment)

    @classmethod
    def array(cls, items: Iterable[Node] = ()) -> Node:
        return cls(NodeType.ARRAY, items)

    @classmethod
    def hash(cls, entries: Union[Mapping[str, Node], Iterable[tuple[str, Node]]] = ()) -> Node:
        return cls(NodeType.HASH, entries)

    @classmethod
    def from_python(cls, obj: Any) -> Node:
        """Build a tree from plain Python values.

        Integers pick the narrowest signed width that fits (Int, then Int64,
        then UInt64); floats become Double. Nodes are passed through as-is.
        """
        if isinstance(obj, Node):
            return obj
        if obj is None:
            return cls.null()
        if isinstance(obj, bool):
            return cls.bool(obj)
        if isinstance(obj, int):
            for node_type in (NodeType.INT, NodeType.INT64, NodeType.UINT64):
                low, high = INT_RANGES[node_type]
                if low <= obj <= high:
                    return cls(node_type, obj)
            raise ValueError(f"{obj} does not fit any BYML integer type")
        if isinstance(obj, float):
            return cls.double(obj)
        if isinstance(obj, str):
            return cls.string(obj)
        if isinstance(obj, (bytes, bytearray, memoryview)):
            return cls.binary(obj)
        if isinstance(obj, Mapping):
            return cls.hash({k: cls.from_python(v) for k, v in obj.items()})
        if isinstance(obj, (list, tuple)):
            return cls.array(cls.from_python(v) for v in obj)
        raise TypeError(f"Cannot convert {type(obj).__name__} to a BYML node")

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def type(self) -> NodeType:
        return self._type

    @property
    def alignment(self) -> Optional[int]:
        """Alignment of a file-aligned Binary, None otherwise."""
        return self._alignment

    @property
    def value(self) -> Any:
        """The payload. Containers come back as read-only views."""
        if self._type is NodeType.ARRAY:
            return tuple(self._value)
        if self._type is NodeType.HASH:
            return MappingProxyType(self._value)
        return self._value

    def is_null(self) -> bool:
        return self._type is NodeType.NULL

    def is_container(self) -> bool:
        return self._type in CONTAINER_TYPES

    def is_inline(self) -> bool:
        return self._type in INLINE_TYPES

    # ------------------------------------------------------------------
    # Typed accessors
    # ------------------------------------------------------------------

    def _expect(self, node_type: NodeType) -> Any:
        if self._type is not node_type:
            raise TypeMismatch(node_type.value, self._type.value)
        return self._value

    def as_null(self) -> None:
        return self._expect(NodeType.NULL)

    def as_bool(self) -> bool:
        return self._expect(NodeType.BOOL)

    def as_int(self) -> int:
        return self._expect(NodeType.INT)

    def as_uint(self) -> int:
        return self._expect(NodeType.UINT)

    def as_float(self) -> float:
        return self._expect(NodeType.FLOAT)

    def as_int64(self) -> int:
        return self._expect(NodeType.INT64)

    def as_uint64(self) -> int:
        return self._expect(NodeType.UINT64)

    def as_double(self) -> float:
        return self._expect(NodeType.DOUBLE)

    def as_string(self) -> str:
        return self._expect(NodeType.STRING)

    def as_binary(self) -> bytes:
        return self._expect(NodeType.BINARY)

    def as_array(self) -> tuple[Node, ...]:
        return tuple(self._expect(NodeType.ARRAY))

    def as_hash(self) -> Mapping[str, Node]:
        return MappingProxyType(self._expect(NodeType.HASH))

    # ------------------------------------------------------------------
    # Container access
    # ------------------------------------------------------------------

    def _container(self) -> Union[list, dict]:
        if self._type not in CONTAINER_TYPES:
            raise TypeMismatch("Array or Hash", self._type.value)
        return self._value

    def _index(self, index: int) -> int:
        items = self._expect(NodeType.ARRAY)
        if isinstance(index, bool) or not isinstance(index, int):
            raise TypeError(f"Array indices must be int, got {type(index).__name__}")
        length = len(items)
        resolved = index + length if index < 0 else index
        if not 0 <= resolved < length:
            raise IndexOutOfBounds(index, length)
        return resolved

    def __getitem__(self, key: Union[str, int]) -> Node:
        if self._type is NodeType.HASH:
            if key not in self._value:
                raise MissingKey(key)
            return self._value[key]
        if self._type is NodeType.ARRAY:
            return self._value[self._index(key)]
        raise TypeMismatch("Array or Hash", self._type.value)

    def __setitem__(self, key: Union[str, int], child: Node) -> None:
        if self._type is NodeType.HASH:
            self.insert(key, child)
        elif self._type is NodeType.ARRAY:
            self._value[self._index(key)] = _check_child(child)
        else:
            raise TypeMismatch("Array or Hash", self._type.value)

    def __delitem__(self, key: Union[str, int]) -> None:
        if self._type is NodeType.HASH:
            self.remove(key)
        elif self._type is NodeType.ARRAY:
            del self._value[self._index(key)]
        else:
            raise TypeMismatch("Array or Hash", self._type.value)

    def __contains__(self, item: Any) -> bool:
        return item in self._container()

    def __len__(self) -> int:
        return len(self._container())

    def __iter__(self) -> Iterator:
        return iter(list(self._container()))

    def __bool__(self) -> bool:
        return True

    def get(self, key: str, default: Optional[Node] = None) -> Optional[Node]:
        return self._expect(NodeType.HASH).get(key, default)

    def keys(self) -> list[str]:
        return list(self._expect(NodeType.HASH))

    def values(self) -> list[Node]:
        return list(self._expect(NodeType.HASH).values())

    def items(self) -> list[tuple[str, Node]]:
        return list(self._expect(NodeType.HASH).items())

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def insert(self, key: str, child: Node) -> None:
        """Insert or replace a Hash entry, keeping entries sorted."""
        entries = self._expect(NodeType.HASH)
        if not isinstance(key, str):
            raise TypeError(f"Hash keys must be str, got {type(key).__name__}")
        _check_child(child)
        if key in entries or not entries or key > next(reversed(entries)):
            entries[key] = child
            return
        entries[key] = child
        items = sorted(entries.items(), key=lambda kv: kv[0])
        entries.clear()
        entries.update(items)

    def remove(self, key: str) -> Node:
        entries = self._expect(NodeType.HASH)
        if key not in entries:
            raise MissingKey(key)
        return entries.pop(key)

    def append(self, child: Node) -> None:
        self._expect(NodeType.ARRAY).append(_check_child(child))

    def insert_at(self, index: int, child: Node) -> None:
        self._expect(NodeType.ARRAY).insert(index, _check_child(child))

    def pop(self, index: int = -1) -> Node:
        items = self._expect(NodeType.ARRAY)
        return items.pop(self._index(index))

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def to_python(self) -> Any:
        """Plain Python projection. Numeric widths are not preserved."""
        if self._type is NodeType.ARRAY:
            return [child.to_python() for child in self._value]
        if self._type is NodeType.HASH:
            return {key: child.to_python() for key, child in self._value.items()}
        return self._value

    def copy(self) -> Node:
        if self._type is NodeType.ARRAY:
            return Node.array(child.copy() for child in self._value)
        if self._type is NodeType.HASH:
            return Node.hash({key: child.copy() for key, child in self._value.items()})
        return Node(self._type, self._value, alignment=self._alignment)

    # ------------------------------------------------------------------
    # Equality
    # ------------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Node):
            return NotImplemented
        if self._type is not other._type:
            return False
        if self._type is NodeType.FLOAT:
            return _F32.pack(self._value) == _F32.pack(other._value)
        if self._type is NodeType.DOUBLE:
            return _F64.pack(self._value) == _F64.pack(other._value)
        if self._type is NodeType.HASH:
            return list(self._value.items()) == list(other._value.items())
        if self._type is NodeType.BINARY:
            return self._value == other._value and self._alignment == other._alignment
        return self._value == other._value

    def __repr__(self) -> str:
        if self._type is NodeType.NULL:
            return "Node(Null)"
        if self._type is NodeType.BINARY and self._alignment is not None:
            return f"Node(Binary, {self._value!r}, alignment={self._alignment})"
        if self._type in (NodeType.FLOAT, NodeType.DOUBLE) and math.isnan(self._value):
            return f"Node({self._type.value}, nan)"
        return f"Node({self._type.value}, {self._value!r})"
