"""
bymlkit Errors

Every failure the codec can report is a subclass of BymlError, grouped by
the operation that raises it:

- DecodeError: reading a binary buffer
- EncodeError: writing a tree to a binary buffer
- TextError: parsing the text form (carries line/column)
- AccessError: reading the wrong variant / missing key / bad index

None of these abort a larger operation on their own; callers decide.
"""

from __future__ import annotations

from typing import Optional


class BymlError(Exception):
    """Base class for all bymlkit errors."""


# ============================================================================
# Decode
# ============================================================================

class DecodeError(BymlError):
    """A binary buffer could not be decoded."""


class UnsupportedFormat(DecodeError):
    """Bad magic or a version outside the supported range."""


class MalformedData(DecodeError):
    """Offset or count out of range, truncated buffer, bad UTF-8."""

    def __init__(self, message: str, offset: Optional[int] = None):
        if offset is not None:
            message = f"{message} (at {offset:#x})"
        super().__init__(message)
        self.offset = offset


class DecompressionFailed(DecodeError):
    """The input looked compressed but could not be decompressed."""


# ============================================================================
# Encode
# ============================================================================

class EncodeError(BymlError):
    """A tree could not be encoded."""


class UnsupportedForVersion(EncodeError):
    """The tree holds a variant the target version cannot represent."""


# ============================================================================
# Text
# ============================================================================

class TextError(BymlError):
    def __init__(self, message: str, line: int = 0, col: int = 0):
        if line:
            message = f"Line {line}, Col {col}: {message}"
        super().__init__(message)
        self.line = line
        self.col = col


class TextSyntaxError(TextError):
    """Malformed text: bad indentation, unterminated quote, bad number..."""


class UnsupportedSyntax(TextError):
    """Valid YAML that is outside the subset this format uses."""


# ============================================================================
# Node access
# ============================================================================

class AccessError(BymlError):
    """Base for local lookup failures on a Node."""


class TypeMismatch(AccessError, TypeError):
    def __init__(self, expected: str, actual: str):
        super().__init__(f"Expected {expected} node, found {actual}")
        self.expected = expected
        self.actual = actual


class MissingKey(AccessError, KeyError):
    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Missing key {self.key!r}"


class IndexOutOfBounds(AccessError, IndexError):
    def __init__(self, index: int, length: int):
        super().__init__(f"Index {index} out of bounds for array of length {length}")
        self.index = index
        self.length = length


# ============================================================================
# Collaborators
# ============================================================================

class Yaz0Error(BymlError):
    """Corrupt or truncated Yaz0 stream."""
