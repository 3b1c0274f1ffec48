"""
bymlkit Text Emitter

Renders a Node tree as block-style YAML text:

    Actors:
      - Flags: !u 0x10
        Name: Enemy_Guardian
        Position: {X: 1.5, Y: 0.0, Z: -3.25}

Hashes are written in their stored (sorted) order. Short containers that
hold only numbers, bools and nulls are written in flow style; everything
else is a block.
"""

from __future__ import annotations

from bymlkit.errors import TextError
from bymlkit.formats import MAX_DEPTH
from bymlkit.node import Node, NodeType
from bymlkit.text.scalars import (
    TAG_BINARY,
    TAG_DOUBLE,
    TAG_FILE,
    TAG_INT64,
    TAG_UINT,
    TAG_UINT64,
    YAML11_WORDS,
    format_binary,
    format_float,
    parse_int,
    resolve_plain,
)

INDENT = 2
FLOW_MAX_ITEMS = 4

_FLOW_TYPES = frozenset({
    NodeType.NULL,
    NodeType.BOOL,
    NodeType.INT,
    NodeType.UINT,
    NodeType.FLOAT,
    NodeType.INT64,
    NodeType.UINT64,
    NodeType.DOUBLE,
})

_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\0": "\\0",
    "\a": "\\a",
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\v": "\\v",
    "\f": "\\f",
    "\r": "\\r",
    "\x1b": "\\e",
}

_LEADING_INDICATORS = set("&*?|-<>=!%@`'\"[]{},#:.~ ")
_INNER_INDICATORS = set(":{}[],#`\"'\\")
_SPECIAL_CHARS = {"\x7f", "\x85", "\u2028", "\u2029", "\ufeff"}


def _is_special(ch: str) -> bool:
    return ch < " " or ch in _SPECIAL_CHARS


def need_quotes(text: str) -> bool:
    """Whether a string must be double-quoted to read back as the same String."""
    if not text or text != text.strip():
        return True
    if text[0] in _LEADING_INDICATORS or text in YAML11_WORDS:
        return True
    if any(ch in _INNER_INDICATORS or _is_special(ch) for ch in text):
        return True
    if parse_int(text) is not None:
        # includes integers too wide to resolve untagged
        return True
    return resolve_plain(text).type is not NodeType.STRING


def quote(text: str) -> str:
    out = ['"']
    for ch in text:
        if ch in _ESCAPES:
            out.append(_ESCAPES[ch])
        elif _is_special(ch):
            out.append(f"\\u{ord(ch):04x}")
        else:
            out.append(ch)
    out.append('"')
    return "".join(out)


def format_string(text: str) -> str:
    return quote(text) if need_quotes(text) else text


class Emitter:
    """Renders trees as text. One instance can be reused across trees."""

    def __init__(self, indent: int = INDENT, flow_max_items: int = FLOW_MAX_ITEMS):
        if indent < 1:
            raise ValueError("indent must be at least 1")
        self.indent = indent
        self.flow_max_items = flow_max_items

    def dump(self, node: Node) -> str:
        lines: list[str] = []
        if self._is_block(node):
            self._emit_block(node, 0, lines, depth=0)
        else:
            lines.append(self._inline(node))
        return "\n".join(lines) + "\n"

    # ------------------------------------------------------------------
    # Shape decisions
    # ------------------------------------------------------------------

    def _is_flow(self, node: Node) -> bool:
        if not node.is_container() or not 0 < len(node) <= self.flow_max_items:
            return False
        children = node.values() if node.type is NodeType.HASH else list(node)
        return all(child.type in _FLOW_TYPES for child in children)

    def _is_block(self, node: Node) -> bool:
        return node.is_container() and len(node) > 0 and not self._is_flow(node)

    # ------------------------------------------------------------------
    # Block style
    # ------------------------------------------------------------------

    def _emit_block(self, node: Node, level: int, lines: list[str], depth: int) -> None:
        if depth > MAX_DEPTH:
            raise TextError(f"Tree is nested deeper than {MAX_DEPTH} levels")
        pad = " " * level
        if node.type is NodeType.HASH:
            for key, child in node.items():
                prefix = f"{pad}{format_string(key)}:"
                if self._is_block(child):
                    lines.append(prefix)
                    self._emit_block(child, level + self.indent, lines, depth + 1)
                else:
                    lines.append(f"{prefix} {self._inline(child)}")
            return

        for child in node:
            if self._is_block(child):
                # compact form: the child's first line shares the "- " line
                start = len(lines)
                self._emit_block(child, level + 2, lines, depth + 1)
                lines[start] = f"{pad}- {lines[start][level + 2:]}"
            else:
                lines.append(f"{pad}- {self._inline(child)}")

    # ------------------------------------------------------------------
    # Inline forms
    # ------------------------------------------------------------------

    def _inline(self, node: Node) -> str:
        node_type = node.type
        if node_type is NodeType.ARRAY:
            return "[" + ", ".join(self._inline(child) for child in node) + "]"
        if node_type is NodeType.HASH:
            entries = (f"{format_string(k)}: {self._inline(v)}" for k, v in node.items())
            return "{" + ", ".join(entries) + "}"
        return self._scalar(node)

    def _scalar(self, node: Node) -> str:
        node_type = node.type
        value = node.value
        if node_type is NodeType.NULL:
            return "null"
        if node_type is NodeType.BOOL:
            return "true" if value else "false"
        if node_type is NodeType.INT:
            return str(value)
        if node_type is NodeType.UINT:
            return f"{TAG_UINT} {value:#x}"
        if node_type is NodeType.FLOAT:
            return format_float(value, single=True)
        if node_type is NodeType.INT64:
            return f"{TAG_INT64} {value}"
        if node_type is NodeType.UINT64:
            return f"{TAG_UINT64} {value}"
        if node_type is NodeType.DOUBLE:
            return f"{TAG_DOUBLE} {format_float(value, single=False)}"
        if node_type is NodeType.STRING:
            return format_string(value)
        if node_type is NodeType.BINARY:
            if node.alignment is not None:
                return f"{TAG_FILE} {node.alignment} {format_binary(value)}"
            return f"{TAG_BINARY} {format_binary(value)}"
        raise TextError(f"Cannot render {node_type.value} as a scalar")


def to_text(node: Node, indent: int = INDENT, flow_max_items: int = FLOW_MAX_ITEMS) -> str:
    """Render a tree as text that `from_text` reads back to an equal tree."""
    return Emitter(indent=indent, flow_max_items=flow_max_items).dump(node)
