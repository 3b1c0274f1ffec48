"""
Scalar rules shared by the text emitter and parser.

Untagged plain scalars resolve as: null words -> Null, true/false -> Bool,
integers -> Int (must fit 32 bits), decimals/exponents/.inf/.nan -> Float,
anything else -> String. Every other variant is written with a tag:

    !u 0x2A          UInt
    !l 123           Int64
    !ul 123          UInt64
    !f64 0.1         Double
    !!binary AAEC    Binary
    !file 16 AAEC    file-aligned Binary (alignment, then base64)
"""

from __future__ import annotations

import base64
import binascii
import math
import re
from typing import Optional

from bymlkit.node import INT_RANGES, Node, NodeType, to_float32

TAG_UINT = "!u"
TAG_INT64 = "!l"
TAG_UINT64 = "!ul"
TAG_DOUBLE = "!f64"
TAG_BINARY = "!!binary"
TAG_FILE = "!file"

NULL_WORDS = frozenset({"~", "null", "Null", "NULL"})
TRUE_WORDS = frozenset({"true", "True", "TRUE"})
FALSE_WORDS = frozenset({"false", "False", "FALSE"})
INF_WORDS = frozenset({".inf", ".Inf", ".INF", "+.inf", "+.Inf", "+.INF"})
NEG_INF_WORDS = frozenset({"-.inf", "-.Inf", "-.INF"})
NAN_WORDS = frozenset({".nan", ".NaN", ".NAN"})

# YAML 1.1 booleans other tools read as bool; always quoted on output
YAML11_WORDS = frozenset({
    "yes", "Yes", "YES", "no", "No", "NO",
    "on", "On", "ON", "off", "Off", "OFF",
})

_INT_RE = re.compile(r"[-+]?[0-9]+")
_HEX_RE = re.compile(r"[-+]?0[xX][0-9a-fA-F]+")
_FLOAT_RE = re.compile(r"[-+]?(\.[0-9]+|[0-9]+(\.[0-9]*)?)([eE][-+]?[0-9]+)?")


def parse_int(text: str) -> Optional[int]:
    if _INT_RE.fullmatch(text):
        return int(text, 10)
    if _HEX_RE.fullmatch(text):
        return int(text, 16)
    return None


def parse_float(text: str) -> Optional[float]:
    if text in INF_WORDS:
        return math.inf
    if text in NEG_INF_WORDS:
        return -math.inf
    if text in NAN_WORDS:
        return math.nan
    if _FLOAT_RE.fullmatch(text):
        return float(text)
    return None


def _fit(node_type: NodeType, value: int, text: str) -> Node:
    low, high = INT_RANGES[node_type]
    if not low <= value <= high:
        hint = " (tag it with !l, !u or !ul)" if node_type is NodeType.INT else ""
        raise ValueError(f"{text} does not fit {node_type.value}{hint}")
    return Node(node_type, value)


def resolve_plain(text: str) -> Node:
    """Resolve an untagged plain scalar."""
    if text == "" or text in NULL_WORDS:
        return Node.null()
    if text in TRUE_WORDS:
        return Node.bool(True)
    if text in FALSE_WORDS:
        return Node.bool(False)
    value = parse_int(text)
    if value is not None:
        return _fit(NodeType.INT, value, text)
    number = parse_float(text)
    if number is not None:
        return Node.float(number)
    return Node.string(text)


def _decode_base64(text: str) -> bytes:
    compact = "".join(text.split())
    compact += "=" * (-len(compact) % 4)
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 data: {e}") from e


def _require_int(text: str) -> int:
    value = parse_int(text)
    if value is None:
        raise ValueError(f"Expected an integer, got {text!r}")
    return value


def _require_float(text: str) -> float:
    value = parse_float(text)
    if value is None:
        raise ValueError(f"Expected a number, got {text!r}")
    return value


def _resolve_file(text: str) -> Node:
    alignment, _, payload = text.strip().partition(" ")
    return Node.binary(_decode_base64(payload), _require_int(alignment))


def _resolve_bool(text: str) -> Node:
    if text in TRUE_WORDS:
        return Node.bool(True)
    if text in FALSE_WORDS:
        return Node.bool(False)
    raise ValueError(f"Expected true or false, got {text!r}")


def _resolve_null(text: str) -> Node:
    if text and text not in NULL_WORDS:
        raise ValueError(f"Expected null, got {text!r}")
    return Node.null()


_TAGGED = {
    TAG_UINT: lambda text: _fit(NodeType.UINT, _require_int(text), text),
    TAG_INT64: lambda text: _fit(NodeType.INT64, _require_int(text), text),
    TAG_UINT64: lambda text: _fit(NodeType.UINT64, _require_int(text), text),
    TAG_DOUBLE: lambda text: Node.double(_require_float(text)),
    TAG_BINARY: lambda text: Node.binary(_decode_base64(text)),
    TAG_FILE: _resolve_file,
    "!!str": Node.string,
    "!!int": lambda text: _fit(NodeType.INT, _require_int(text), text),
    "!!float": lambda text: Node.float(_require_float(text)),
    "!!bool": _resolve_bool,
    "!!null": _resolve_null,
}


def is_known_tag(tag: str) -> bool:
    return tag in _TAGGED


def resolve_tagged(tag: str, text: str) -> Node:
    """Resolve a tagged scalar. Raises LookupError for unknown tags."""
    try:
        resolver = _TAGGED[tag]
    except KeyError:
        raise LookupError(f"Unsupported tag {tag}") from None
    return resolver(text)


# ============================================================================
# Output forms
# ============================================================================

def format_float(value: float, single: bool) -> str:
    """Shortest text that reads back to the same binary32/binary64 value."""
    if math.isnan(value):
        return ".nan"
    if math.isinf(value):
        return ".inf" if value > 0 else "-.inf"
    if single:
        text = f"{value:.9g}"
        for digits in range(1, 10):
            candidate = f"{value:.{digits}g}"
            if to_float32(float(candidate)) == value:
                text = candidate
                break
    else:
        text = repr(value)
    if "." not in text and "e" not in text:
        text += ".0"
    return text


def format_binary(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")
