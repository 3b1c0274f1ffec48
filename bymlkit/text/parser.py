"""
bymlkit Text Parser

Reads the text form back into a Node tree. This is a deliberately small
YAML subset reader, not a general YAML processor:

1. Line splitting: strip comments and trailing blanks, measure indentation,
   handle an optional leading "---".
2. Block structure: recursive descent over lines, where mappings and
   sequences are recognised by indentation (compact "- key: value" items
   and "- - x" nesting included).
3. Inline values: a token stream per value, parsed by a small recursive
   descent parser for scalars, tags and flow collections.

Anchors, aliases, directives, extra documents, complex keys, block scalars
and unknown tags raise UnsupportedSyntax; anything else malformed raises
TextSyntaxError. Both carry line and column.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from bymlkit.errors import TextSyntaxError, UnsupportedSyntax
from bymlkit.formats import MAX_DEPTH
from bymlkit.node import Node
from bymlkit.text.scalars import is_known_tag, resolve_plain, resolve_tagged


# ============================================================================
# Quoted scalars
# ============================================================================

_SIMPLE_ESCAPES = {
    "0": "\0",
    "a": "\a",
    "b": "\b",
    "t": "\t",
    "\t": "\t",
    "n": "\n",
    "v": "\v",
    "f": "\f",
    "r": "\r",
    "e": "\x1b",
    " ": " ",
    '"': '"',
    "/": "/",
    "\\": "\\",
    "N": "\x85",
    "_": "\xa0",
    "L": "\u2028",
    "P": "\u2029",
}

_HEX_ESCAPES = {"x": 2, "u": 4, "U": 8}


def scan_quoted(text: str, start: int, line: int, col: int) -> tuple[str, int]:
    """Read the quoted scalar opening at text[start].

    Returns the unescaped value and the index just past the closing quote.
    """
    quote_char = text[start]
    out: list[str] = []
    i = start + 1
    while i < len(text):
        ch = text[i]
        if quote_char == "'":
            if ch == "'":
                if text[i + 1:i + 2] == "'":
                    out.append("'")
                    i += 2
                    continue
                return "".join(out), i + 1
            out.append(ch)
            i += 1
            continue

        if ch == '"':
            return "".join(out), i + 1
        if ch != "\\":
            out.append(ch)
            i += 1
            continue

        code = text[i + 1:i + 2]
        if code in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[code])
            i += 2
        elif code in _HEX_ESCAPES:
            width = _HEX_ESCAPES[code]
            digits = text[i + 2:i + 2 + width]
            if len(digits) != width or not re.fullmatch(r"[0-9a-fA-F]+", digits):
                raise TextSyntaxError(f"Bad \\{code} escape", line, col + i)
            out.append(chr(int(digits, 16)))
            i += 2 + width
        else:
            raise TextSyntaxError(f"Unknown escape \\{code}", line, col + i)

    raise TextSyntaxError("Unterminated quoted scalar", line, col + start)


def _quote_opens(text: str, i: int) -> bool:
    return i == 0 or text[i - 1] in " \t[{,"


def _strip_comment(text: str) -> str:
    """Drop a trailing "# comment" that is not inside a quoted scalar."""
    i = 0
    while i < len(text):
        ch = text[i]
        if ch in "\"'" and _quote_opens(text, i):
            i = _skip_quoted(text, i)
            continue
        if ch == "#" and (i == 0 or text[i - 1] in " \t"):
            return text[:i]
        i += 1
    return text


def _skip_quoted(text: str, start: int) -> int:
    """Index past the quote opened at `start`, or len(text) if unterminated."""
    quote_char = text[start]
    i = start + 1
    while i < len(text):
        ch = text[i]
        if quote_char == '"' and ch == "\\":
            i += 2
            continue
        if ch == quote_char:
            if quote_char == "'" and text[i + 1:i + 2] == "'":
                i += 2
                continue
            return i + 1
        i += 1
    return len(text)


def _flow_depth(text: str) -> int:
    depth = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if ch in "\"'" and _quote_opens(text, i):
            i = _skip_quoted(text, i)
            continue
        if ch in "[{":
            depth += 1
        elif ch in "]}":
            depth -= 1
        i += 1
    return depth


# ============================================================================
# Lines
# ============================================================================

@dataclass
class Line:
    number: int
    indent: int
    text: str

    @property
    def col(self) -> int:
        return self.indent + 1

    def __repr__(self) -> str:
        return f"<Line {self.number} +{self.indent}: {self.text!r}>"


def split_lines(source: str) -> list[Line]:
    lines: list[Line] = []
    document_started = False
    document_ended = False

    for number, raw in enumerate(source.split("\n"), 1):
        raw = raw.rstrip("\r")
        if number == 1 and raw.startswith("\ufeff"):
            raw = raw[1:]
        stripped = raw.lstrip(" ")
        indent = len(raw) - len(stripped)
        content = _strip_comment(stripped).rstrip()
        if not content:
            continue
        if content[0] == "\t":
            raise TextSyntaxError("Tabs are not allowed in indentation", number, indent + 1)

        if document_ended:
            raise UnsupportedSyntax("Multiple documents are not supported", number, indent + 1)
        if indent == 0 and content.startswith("%"):
            raise UnsupportedSyntax("Directives are not supported", number, 1)
        if indent == 0 and (content == "---" or content.startswith("--- ")):
            if lines or document_started:
                raise UnsupportedSyntax("Multiple documents are not supported", number, 1)
            document_started = True
            rest = content[3:].lstrip()
            if rest:
                lines.append(Line(number, len(content) - len(rest), rest))
            continue
        if indent == 0 and (content == "..." or content.startswith("... ")):
            document_ended = True
            continue

        lines.append(Line(number, indent, content))
    return lines


def _is_sequence_item(text: str) -> bool:
    return text == "-" or text.startswith("- ")


# ============================================================================
# Inline tokens
# ============================================================================

class TokenType(Enum):
    TAG = auto()
    SCALAR = auto()      # plain
    QUOTED = auto()      # "..." or '...'
    LBRACKET = auto()
    RBRACKET = auto()
    LBRACE = auto()
    RBRACE = auto()
    COMMA = auto()
    COLON = auto()
    EOF = auto()


@dataclass
class Token:
    type: TokenType
    value: str
    line: int
    col: int

    def __repr__(self) -> str:
        return f"<{self.type.name}:{self.value!r}>"


_PUNCTUATION = {
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    ",": TokenType.COMMA,
}

_FLOW_INDICATORS = ",[]{}"
_TAG_RE = re.compile(r"!!?[^\s,\[\]{}]*")


def _plain_end(text: str, start: int) -> int:
    """End of a plain scalar inside a flow collection."""
    i = start
    while i < len(text):
        ch = text[i]
        if ch in _FLOW_INDICATORS:
            break
        if ch == ":" and (i + 1 == len(text) or text[i + 1] in " " + _FLOW_INDICATORS):
            break
        i += 1
    return i


def tokenize(text: str, line: int, col: int) -> list[Token]:
    """Tokenize one inline value (the text after "key:" or "- ")."""
    tokens: list[Token] = []
    depth = 0
    i = 0

    while i < len(text):
        ch = text[i]
        here = col + i

        if ch in " \t":
            i += 1
            continue

        if ch in _PUNCTUATION:
            if ch in "[{":
                depth += 1
            elif ch in "]}":
                depth -= 1
            tokens.append(Token(_PUNCTUATION[ch], ch, line, here))
            i += 1
            continue

        if ch == ":" and depth > 0 and (i + 1 == len(text) or text[i + 1] in " " + _FLOW_INDICATORS):
            tokens.append(Token(TokenType.COLON, ch, line, here))
            i += 1
            continue

        if ch in "\"'":
            value, end = scan_quoted(text, i, line, col)
            tokens.append(Token(TokenType.QUOTED, value, line, here))
            i = end
            continue

        if ch == "!":
            match = _TAG_RE.match(text, i)
            tokens.append(Token(TokenType.TAG, match.group(), line, here))
            i = match.end()
            continue

        if ch == "&":
            raise UnsupportedSyntax("Anchors are not supported", line, here)
        if ch == "*":
            raise UnsupportedSyntax("Aliases are not supported", line, here)
        if ch in "|>" and depth == 0:
            raise UnsupportedSyntax("Block scalars are not supported", line, here)
        if ch == "?" and text[i + 1:i + 2] in ("", " "):
            raise UnsupportedSyntax("Complex keys are not supported", line, here)
        if ch in "@`":
            raise TextSyntaxError(f"Reserved indicator {ch!r}", line, here)

        if depth == 0:
            # block context: the rest of the line is one scalar
            value = text[i:].rstrip()
            if ": " in value or value.endswith(":"):
                raise TextSyntaxError("Mapping values are not allowed here", line, here)
            tokens.append(Token(TokenType.SCALAR, value, line, here))
            break

        end = _plain_end(text, i)
        tokens.append(Token(TokenType.SCALAR, text[i:end].rstrip(), line, here))
        i = end

    tokens.append(Token(TokenType.EOF, "", line, col + len(text)))
    return tokens


# ============================================================================
# Inline parser
# ============================================================================

class InlineParser:
    """Parses one inline value: scalar, tagged scalar or flow collection."""

    def __init__(self, tokens: list[Token]):
        self._tokens = tokens
        self._pos = 0

    def _peek(self) -> Token:
        return self._tokens[self._pos]

    def _advance(self) -> Token:
        tok = self._tokens[self._pos]
        self._pos += 1
        return tok

    def _at(self, *ttypes: TokenType) -> bool:
        return self._peek().type in ttypes

    def _expect(self, ttype: TokenType) -> Token:
        tok = self._advance()
        if tok.type != ttype:
            raise TextSyntaxError(f"Expected {ttype.name}, got {tok}", tok.line, tok.col)
        return tok

    def parse(self) -> Node:
        node = self._parse_value(depth=0)
        tok = self._peek()
        if tok.type != TokenType.EOF:
            raise TextSyntaxError(f"Unexpected {tok} after value", tok.line, tok.col)
        return node

    def _parse_value(self, depth: int) -> Node:
        if depth > MAX_DEPTH:
            tok = self._peek()
            raise TextSyntaxError(f"Nested deeper than {MAX_DEPTH} levels", tok.line, tok.col)

        tag: Optional[Token] = None
        if self._at(TokenType.TAG):
            tag = self._advance()
            if not is_known_tag(tag.value):
                raise UnsupportedSyntax(f"Unsupported tag {tag.value}", tag.line, tag.col)

        tok = self._peek()
        if tok.type in (TokenType.LBRACKET, TokenType.LBRACE):
            if tag is not None:
                raise UnsupportedSyntax("Tags on collections are not supported", tag.line, tag.col)
            if tok.type == TokenType.LBRACKET:
                return self._parse_flow_sequence(depth)
            return self._parse_flow_mapping(depth)

        if tok.type in (TokenType.SCALAR, TokenType.QUOTED):
            self._advance()
            return self._resolve(tag, tok)

        # empty value: "key:", "[a, ]" style gaps
        if tag is not None:
            return self._resolve(tag, Token(TokenType.SCALAR, "", tok.line, tok.col))
        if tok.type in (TokenType.COMMA, TokenType.RBRACKET, TokenType.RBRACE, TokenType.EOF):
            return Node.null()
        raise TextSyntaxError(f"Unexpected {tok}", tok.line, tok.col)

    def _resolve(self, tag: Optional[Token], tok: Token) -> Node:
        try:
            if tag is not None:
                return resolve_tagged(tag.value, tok.value)
            if tok.type == TokenType.QUOTED:
                return Node.string(tok.value)
            return resolve_plain(tok.value)
        except ValueError as e:
            raise TextSyntaxError(str(e), tok.line, tok.col) from e

    def _parse_flow_sequence(self, depth: int) -> Node:
        self._expect(TokenType.LBRACKET)
        items: list[Node] = []
        while not self._at(TokenType.RBRACKET):
            if self._at(TokenType.EOF):
                tok = self._peek()
                raise TextSyntaxError("Unterminated flow sequence", tok.line, tok.col)
            items.append(self._parse_value(depth + 1))
            if not self._at(TokenType.RBRACKET):
                self._expect(TokenType.COMMA)
        self._advance()
        return Node.array(items)

    def _parse_flow_mapping(self, depth: int) -> Node:
        self._expect(TokenType.LBRACE)
        entries: dict[str, Node] = {}
        while not self._at(TokenType.RBRACE):
            tok = self._advance()
            if tok.type == TokenType.EOF:
                raise TextSyntaxError("Unterminated flow mapping", tok.line, tok.col)
            if tok.type == TokenType.TAG:
                raise UnsupportedSyntax("Tagged keys are not supported", tok.line, tok.col)
            if tok.type not in (TokenType.SCALAR, TokenType.QUOTED):
                raise TextSyntaxError(f"Expected a key, got {tok}", tok.line, tok.col)
            if tok.value in entries:
                raise TextSyntaxError(f"Duplicate key {tok.value!r}", tok.line, tok.col)

            if self._at(TokenType.COLON):
                self._advance()
                entries[tok.value] = self._parse_value(depth + 1)
            else:
                entries[tok.value] = Node.null()
            if not self._at(TokenType.RBRACE):
                self._expect(TokenType.COMMA)
        self._advance()
        return Node.hash(entries)


def parse_inline(text: str, line: int, col: int) -> Node:
    return InlineParser(tokenize(text, line, col)).parse()


# ============================================================================
# Block parser
# ============================================================================

class Parser:
    """Indentation-tracked recursive descent over the split lines."""

    def __init__(self, lines: list[Line]):
        self._lines = lines
        self._pos = 0

    def _peek(self) -> Optional[Line]:
        if self._pos < len(self._lines):
            return self._lines[self._pos]
        return None

    def _advance(self) -> Line:
        line = self._lines[self._pos]
        self._pos += 1
        return line

    def _replace_current(self, line: Line) -> None:
        """Re-queue the rest of a consumed line as a line of its own."""
        self._pos -= 1
        self._lines[self._pos] = line

    def parse(self) -> Node:
        first = self._peek()
        if first is None:
            return Node.null()
        node = self._parse_node(first.indent, depth=0)
        leftover = self._peek()
        if leftover is not None:
            raise TextSyntaxError("Unexpected content", leftover.number, leftover.col)
        return node

    def _parse_node(self, indent: int, depth: int) -> Node:
        if depth > MAX_DEPTH:
            line = self._peek()
            raise TextSyntaxError(f"Nested deeper than {MAX_DEPTH} levels", line.number, line.col)
        line = self._peek()
        if _is_sequence_item(line.text):
            return self._parse_sequence(indent, depth)
        if self._split_key(line) is not None:
            return self._parse_mapping(indent, depth)
        self._advance()
        return self._parse_value_text(line.text, line, line.col)

    def _parse_value_text(self, text: str, line: Line, col: int) -> Node:
        """Parse an inline value, pulling in continuation lines of a flow collection."""
        if text[:1] in ("[", "{"):
            while _flow_depth(text) > 0:
                following = self._peek()
                if following is None:
                    raise TextSyntaxError("Unterminated flow collection", line.number, col)
                self._advance()
                text = f"{text} {following.text}"
        return parse_inline(text, line.number, col)

    def _check_dedent(self, indent: int) -> None:
        line = self._peek()
        if line is not None and line.indent > indent:
            raise TextSyntaxError("Bad indentation", line.number, line.col)

    def _parse_sequence(self, indent: int, depth: int) -> Node:
        items: list[Node] = []
        while True:
            line = self._peek()
            if line is None or line.indent != indent or not _is_sequence_item(line.text):
                break
            self._advance()
            rest = line.text[1:].lstrip(" ")
            if rest:
                offset = len(line.text) - len(rest)
                self._replace_current(Line(line.number, indent + offset, rest))
                items.append(self._parse_node(indent + offset, depth + 1))
            else:
                following = self._peek()
                if following is not None and following.indent > indent:
                    items.append(self._parse_node(following.indent, depth + 1))
                else:
                    items.append(Node.null())
            self._check_dedent(indent)
        return Node.array(items)

    def _parse_mapping(self, indent: int, depth: int) -> Node:
        entries: dict[str, Node] = {}
        while True:
            line = self._peek()
            if line is None or line.indent != indent:
                break
            split = self._split_key(line)
            if split is None:
                raise TextSyntaxError("Expected a mapping key", line.number, line.col)
            key, rest, rest_col = split
            self._advance()
            if key in entries:
                raise TextSyntaxError(f"Duplicate key {key!r}", line.number, line.col)

            if rest:
                entries[key] = self._parse_value_text(rest, line, rest_col)
            else:
                following = self._peek()
                if following is not None and following.indent > indent:
                    entries[key] = self._parse_node(following.indent, depth + 1)
                elif (following is not None and following.indent == indent
                        and _is_sequence_item(following.text)):
                    entries[key] = self._parse_sequence(indent, depth + 1)
                else:
                    entries[key] = Node.null()
            self._check_dedent(indent)
        return Node.hash(entries)

    def _split_key(self, line: Line) -> Optional[tuple[str, str, int]]:
        """Split "key: value" into (key, value text, value column), or None."""
        text = line.text
        first = text[0]
        if first in "\"'":
            key, end = scan_quoted(text, 0, line.number, line.col)
            after = text[end:].lstrip(" ")
            if not after.startswith(":") or after[1:2] not in ("", " "):
                return None
            rest = after[1:]
        else:
            if first in "[{":
                return None
            index = text.find(": ")
            if index < 0:
                if not text.endswith(":"):
                    return None
                index = len(text) - 1
            key = text[:index].rstrip()
            rest = text[index + 1:]
            if first in "&*":
                raise UnsupportedSyntax("Anchors and aliases are not supported", line.number, line.col)
            if first == "!":
                raise UnsupportedSyntax("Tagged keys are not supported", line.number, line.col)
            if first == "?":
                raise UnsupportedSyntax("Complex keys are not supported", line.number, line.col)
            if first in "@`|>%":
                raise TextSyntaxError(f"Reserved indicator {first!r} in key", line.number, line.col)

        value = rest.strip()
        value_col = line.col + len(text) - len(rest.lstrip())
        return key, value, value_col


# ============================================================================
# Public API
# ============================================================================

def from_text(text: str) -> Node:
    """Parse the text form back into a Node tree."""
    return Parser(split_lines(text)).parse()
