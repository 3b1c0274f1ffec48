"""
bymlkit Documents

A Document bundles a root Node with the format version and byte order it
was read with (or will be written with), so a file can be loaded, edited
and saved back in the same shape.

Usage:
    doc = Document.load("ActorInfo.product.sbyml")
    doc.root["Actors"][0]["name"]
    doc.save("ActorInfo.product.sbyml")       # recompressed (.s* extension)

    doc = Document.from_text(Path("map.yml").read_text())
    doc.version = 3
    data = doc.to_bytes(compress=True)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from bymlkit import yaz0
from bymlkit.decoder import Decoder
from bymlkit.encoder import encode, encode_compressed
from bymlkit.formats import DEFAULT_VERSION, Endian
from bymlkit.node import Node
from bymlkit.text import from_text, to_text

logger = logging.getLogger(__name__)


# extensions that take an "s" prefix when Yaz0-compressed (.sbyml, .smubin, ...)
COMPRESSIBLE_SUFFIXES = frozenset({"byml", "bgyml", "mubin", "sarc", "pack", "bactorpack", "blarc"})


def is_compressed_path(path: Union[str, Path]) -> bool:
    suffix = Path(path).suffix.lower()
    return suffix.startswith(".s") and suffix[2:] in COMPRESSIBLE_SUFFIXES


@dataclass
class Document:
    root: Node = field(default_factory=Node.null)
    version: int = DEFAULT_VERSION
    endian: Endian = Endian.LITTLE

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    @classmethod
    def from_bytes(cls, data: bytes) -> Document:
        decoder = Decoder(data)
        return cls(
            root=decoder.decode(),
            version=decoder.header.version,
            endian=decoder.header.endian,
        )

    @classmethod
    def load(cls, source: Union[str, bytes, Path]) -> Document:
        """Load a document from a file path (str/Path) or raw bytes."""
        if isinstance(source, bytes):
            data = source
            origin = "<bytes>"
        elif isinstance(source, (str, Path)):
            path = Path(source)
            data = path.read_bytes()
            origin = str(path)
        else:
            raise TypeError(f"Cannot load from {type(source)}")

        logger.debug("Loading %s (%d bytes%s)", origin, len(data),
                     ", Yaz0" if yaz0.is_compressed(data) else "")
        return cls.from_bytes(data)

    @classmethod
    def from_text(cls, text: str, version: int = DEFAULT_VERSION,
                  endian: Endian = Endian.LITTLE) -> Document:
        return cls(root=from_text(text), version=version, endian=endian)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def to_bytes(self, compress: bool = False) -> bytes:
        if compress:
            return encode_compressed(self.root, self.version, self.endian)
        return encode(self.root, self.version, self.endian)

    def to_text(self) -> str:
        return to_text(self.root)

    def save(self, path: Union[str, Path], compress: Optional[bool] = None) -> Path:
        """Write the binary form. Compression follows the extension unless given."""
        path = Path(path)
        if compress is None:
            compress = is_compressed_path(path)
        data = self.to_bytes(compress=compress)
        path.write_bytes(data)
        logger.debug("Saved %s (%d bytes, v%d %s-endian%s)", path, len(data),
                     self.version, self.endian.value, ", Yaz0" if compress else "")
        return path


def read_document(data: bytes) -> Document:
    """Decode a buffer, keeping the detected version and byte order."""
    return Document.from_bytes(data)
