"""
bymlkit - BYML (Binary YAML) codec
Reads and writes the BYML container format, versions 2 to 4, in both byte
orders, with an editable typed tree and a human-readable text form.

Binary:   decode / encode / encode_compressed (Yaz0)
Tree:     Node, NodeType
Text:     to_text / from_text
Files:    Document, read_document
"""

__version__ = "0.1.0"

from bymlkit.node import Node, NodeType
from bymlkit.formats import DEFAULT_VERSION, SUPPORTED_VERSIONS, Endian
from bymlkit.errors import (
    AccessError,
    BymlError,
    DecodeError,
    DecompressionFailed,
    EncodeError,
    IndexOutOfBounds,
    MalformedData,
    MissingKey,
    TextError,
    TextSyntaxError,
    TypeMismatch,
    UnsupportedFormat,
    UnsupportedForVersion,
    UnsupportedSyntax,
    Yaz0Error,
)
from bymlkit.decoder import Decoder, decode
from bymlkit.encoder import Encoder, encode, encode_compressed
from bymlkit.text import from_text, to_text
from bymlkit.document import Document, read_document

__all__ = [
    "Node",
    "NodeType",
    "Endian",
    "DEFAULT_VERSION",
    "SUPPORTED_VERSIONS",
    "Decoder",
    "decode",
    "Encoder",
    "encode",
    "encode_compressed",
    "to_text",
    "from_text",
    "Document",
    "read_document",
    "BymlError",
    "DecodeError",
    "UnsupportedFormat",
    "MalformedData",
    "DecompressionFailed",
    "EncodeError",
    "UnsupportedForVersion",
    "TextError",
    "TextSyntaxError",
    "UnsupportedSyntax",
    "AccessError",
    "TypeMismatch",
    "MissingKey",
    "IndexOutOfBounds",
    "Yaz0Error",
]
