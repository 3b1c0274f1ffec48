"""
Text form of BYML trees: a small, unambiguous YAML subset.
"""

from bymlkit.text.emitter import Emitter, to_text
from bymlkit.text.parser import from_text

__all__ = [
    "Emitter",
    "to_text",
    "from_text",
]
