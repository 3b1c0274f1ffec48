#!/usr/bin/env python3
"""
bymlkit - BYML (Binary YAML) codec

Command-line interface for inspecting and converting BYML files.

Usage:
    bymlkit info <file>                       Show version, byte order and a tree summary
    bymlkit to-text <file> [-o out.yml]       Binary (optionally Yaz0) -> text
    bymlkit to-binary <file> [-o out.byml]    Text -> binary
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from collections import Counter
from pathlib import Path

from bymlkit import yaz0
from bymlkit.document import Document, is_compressed_path
from bymlkit.errors import BymlError
from bymlkit.formats import DEFAULT_VERSION, SUPPORTED_VERSIONS, Endian
from bymlkit.node import Node, NodeType


# ============================================================================
# Formatting helpers
# ============================================================================

class C:
    """ANSI colors."""
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    CYAN = "\033[36m"
    RESET = "\033[0m"

    @staticmethod
    def off():
        C.BOLD = C.DIM = C.RED = C.GREEN = C.CYAN = C.RESET = ""


def header(text: str) -> str:
    return f"\n{C.BOLD}{C.CYAN}{'─' * 60}{C.RESET}\n{C.BOLD}  {text}{C.RESET}\n{C.BOLD}{C.CYAN}{'─' * 60}{C.RESET}"


def ok(text: str) -> str:
    return f"  {C.GREEN}✓{C.RESET} {text}"


def fail(text: str) -> str:
    return f"  {C.RED}✗{C.RESET} {text}"


def dim(text: str) -> str:
    return f"{C.DIM}{text}{C.RESET}"


def filesize(n: int) -> str:
    if n > 1_000_000:
        return f"{n/1_000_000:.1f} MB"
    if n > 1_000:
        return f"{n/1_000:.1f} KB"
    return f"{n} B"


def count_nodes(root: Node) -> Counter:
    counts: Counter = Counter()
    stack = [root]
    while stack:
        node = stack.pop()
        counts[node.type] += 1
        if node.type is NodeType.ARRAY:
            stack.extend(node)
        elif node.type is NodeType.HASH:
            stack.extend(node.values())
    return counts


# ============================================================================
# Commands
# ============================================================================

def cmd_info(args):
    """Show the header fields and a summary of the tree."""
    data = Path(args.file).read_bytes()
    doc = Document.from_bytes(data)
    root = doc.root

    print(header(f"INFO: {args.file}"))
    print(f"  Size:        {filesize(len(data))}")
    print(f"  Compressed:  {'Yaz0' if yaz0.is_compressed(data) else 'no'}")
    print(f"  Version:     {doc.version}")
    print(f"  Byte order:  {doc.endian.value}-endian")

    if root.is_null():
        print(f"  Root:        {dim('empty (null)')}")
        return
    print(f"  Root:        {root.type.value} ({len(root)} entries)")
    if root.type is NodeType.HASH:
        for key in root.keys()[:10]:
            child = root[key]
            print(f"    {key}: {dim(child.type.value)}")
        if len(root) > 10:
            print(dim(f"    ... and {len(root) - 10} more"))

    print(f"\n  {C.BOLD}Nodes:{C.RESET}")
    for node_type, count in sorted(count_nodes(root).items(), key=lambda kv: -kv[1]):
        print(f"    {node_type.value:<8} {count}")


def cmd_to_text(args):
    """Decode a binary file and write its text form."""
    doc = Document.load(args.file)
    text = doc.to_text()
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        print(ok(f"Wrote {args.output} (v{doc.version}, {doc.endian.value}-endian)"))
    else:
        sys.stdout.write(text)


def cmd_to_binary(args):
    """Parse a text file and write the binary form."""
    source = Path(args.file)
    endian = Endian.BIG if args.big_endian else Endian.LITTLE
    doc = Document.from_text(source.read_text(encoding="utf-8"), args.version, endian)

    if args.output:
        out_path = Path(args.output)
    else:
        out_path = source.with_suffix(".sbyml" if args.compress else ".byml")
    compress = args.compress or is_compressed_path(out_path)
    doc.save(out_path, compress=compress)
    size = out_path.stat().st_size
    print(ok(f"Wrote {out_path} ({filesize(size)}, v{doc.version}, "
             f"{endian.value}-endian{', Yaz0' if compress else ''})"))


# ============================================================================
# CLI setup
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bymlkit",
        description="bymlkit - BYML (Binary YAML) codec",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""
        examples:
          bymlkit info ActorInfo.product.sbyml
          bymlkit to-text ActorInfo.product.sbyml -o ActorInfo.yml
          bymlkit to-binary ActorInfo.yml -o ActorInfo.product.sbyml
          bymlkit to-binary map.yml --version 3 --big-endian --compress
        """),
    )
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log decoder/encoder details")

    sub = parser.add_subparsers(dest="command", help="Command to run")

    # info
    p = sub.add_parser("info", help="Show version, byte order and a tree summary")
    p.add_argument("file", help="BYML file (plain or Yaz0)")

    # to-text
    p = sub.add_parser("to-text", aliases=["yml"], help="Convert a binary file to text")
    p.add_argument("file", help="BYML file (plain or Yaz0)")
    p.add_argument("-o", "--output", help="Output file path (default: stdout)")

    # to-binary
    p = sub.add_parser("to-binary", aliases=["byml"], help="Convert a text file to binary")
    p.add_argument("file", help="Text file")
    p.add_argument("-o", "--output", help="Output file path (default: <file>.byml)")
    p.add_argument("--version", type=int, default=DEFAULT_VERSION, choices=SUPPORTED_VERSIONS,
                   help=f"Format version (default: {DEFAULT_VERSION})")
    p.add_argument("--big-endian", action="store_true", help="Write big-endian (default: little)")
    p.add_argument("--compress", action="store_true",
                   help="Yaz0-compress the output (implied by an .s* extension)")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.no_color:
        C.off()
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    if not args.command:
        parser.print_help()
        return

    # Dispatch
    commands = {
        "info": cmd_info,
        "to-text": cmd_to_text, "yml": cmd_to_text,
        "to-binary": cmd_to_binary, "byml": cmd_to_binary,
    }

    handler = commands[args.command]
    try:
        handler(args)
    except FileNotFoundError as e:
        print(fail(f"File not found: {e.filename}"))
        sys.exit(1)
    except (BymlError, OSError, UnicodeDecodeError) as e:
        print(fail(f"{type(e).__name__}: {e}"))
        sys.exit(1)


if __name__ == "__main__":
    main()
