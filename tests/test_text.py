"""
bymlkit Text Tests

Emitter output shape, parser coverage of the YAML subset, lossless text
round trips and the errors raised for everything outside the subset.
"""

import math
import os
import sys
import textwrap

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from bymlkit import Node, NodeType, TextError, TextSyntaxError, UnsupportedSyntax, from_text, to_text
from bymlkit.text import Emitter


def dedent(text: str) -> str:
    return textwrap.dedent(text).lstrip("\n")


def make_everything_tree() -> Node:
    return Node.hash({
        "Actors": Node.array([
            Node.hash({
                "name": Node.string("Enemy_Guardian"),
                "pos": Node.hash({"X": Node.float(1.5), "Y": Node.float(0.0), "Z": Node.float(-3.25)}),
                "flags": Node.uint(0x10),
            }),
            Node.hash({"name": Node.string("Enemy_Bokoblin"), "links": Node.array()}),
        ]),
        "Wide": Node.array([
            Node.int64(-(1 << 62)),
            Node.uint64((1 << 64) - 1),
            Node.double(0.1),
            Node.double(-math.inf),
        ]),
        "Blob": Node.binary(b"\x00\x01\xfe\xff"),
        "File": Node.binary(b"aligned", alignment=0x20),
        "Null": Node.null(),
        "Bools": Node.array([Node.bool(True), Node.bool(False)]),
        "Nested": Node.array([Node.array([Node.string("deep")]), Node.array([]), Node.hash()]),
        "Floats": Node.array([Node.float(math.nan), Node.float(math.inf), Node.float(1e-30), Node.float(100.0)]),
    })


TRICKY_STRINGS = [
    "",
    " padded ",
    "true",
    "False",
    "null",
    "~",
    "yes",
    "off",
    "123",
    "-7",
    "0x1F",
    "99999999999",
    "12345678901",
    "0x1FFFFFFFF",
    "18446744073709551615",
    "-99999999999999999999",
    "1.5",
    "1e3",
    ".inf",
    ".nan",
    "- dash",
    "-",
    "key: value",
    "a:b",
    "# not a comment",
    "trailing #hash",
    "[flow]",
    "{flow}",
    "a, b",
    "!tag",
    "&anchor",
    "*alias",
    "'single'",
    '"double"',
    "back\\slash",
    "line\nbreak",
    "tab\there",
    "nul\x00byte",
    "bell\x07",
    "del\x7f",
    "ユニコード",
    "emoji \U0001F600",
    "---",
    "...",
    "@at",
    "%percent",
    "|pipe",
    ">fold",
    "?question",
]


# ============================================================================
# Emitter
# ============================================================================

class TestEmitter:

    def test_actor_scenario(self):
        tree = Node.hash({"Actors": Node.array([Node.string("A"), Node.string("B")])})
        text = to_text(tree)
        assert text == "Actors:\n  - A\n  - B\n"
        assert from_text(text) == tree

    def test_compact_sequence_of_mappings(self):
        tree = Node.hash({"Actors": Node.array([
            Node.hash({"name": Node.string("A"), "hp": Node.int(3)}),
        ])})
        assert to_text(tree) == dedent("""
            Actors:
              - hp: 3
                name: A
            """)

    def test_flow_for_short_numeric_containers(self):
        tree = Node.hash({"pos": Node.hash({"X": Node.float(1.5), "Y": Node.float(0.0), "Z": Node.float(-3.25)})})
        assert to_text(tree) == "pos: {X: 1.5, Y: 0.0, Z: -3.25}\n"

    def test_flow_can_be_disabled(self):
        tree = Node.hash({"pos": Node.array([Node.int(1), Node.int(2)])})
        assert to_text(tree, flow_max_items=0) == "pos:\n  - 1\n  - 2\n"

    def test_indent_setting(self):
        tree = Node.hash({"a": Node.hash({"b": Node.string("c")})})
        assert Emitter(indent=4).dump(tree) == "a:\n    b: c\n"

    def test_tags(self):
        tree = Node.hash({
            "u": Node.uint(42),
            "l": Node.int64(-5),
            "ul": Node.uint64(5),
            "d": Node.double(0.5),
            "b": Node.binary(b"\x00\x01\x02"),
            "f": Node.binary(b"\x00\x01\x02", alignment=8),
        })
        lines = to_text(tree).splitlines()
        assert "u: !u 0x2a" in lines
        assert "l: !l -5" in lines
        assert "ul: !ul 5" in lines
        assert "d: !f64 0.5" in lines
        assert "b: !!binary AAEC" in lines
        assert "f: !file 8 AAEC" in lines

    def test_float_shortest_form(self):
        assert to_text(Node.array([Node.float(0.1), Node.float(3.0)])) == "[0.1, 3.0]\n"

    def test_scalars_and_empties(self):
        assert to_text(Node.null()) == "null\n"
        assert to_text(Node.hash()) == "{}\n"
        assert to_text(Node.hash({"a": Node.array()})) == "a: []\n"

    def test_quoting(self):
        text = to_text(Node.hash({"k": Node.string("true"), "1": Node.string("a\tb")}))
        assert text == "\"1\": \"a\\tb\"\nk: \"true\"\n"

    def test_wide_integer_strings_quoted(self):
        tree = Node.hash({"12345678901": Node.string("99999999999")})
        assert to_text(tree) == "\"12345678901\": \"99999999999\"\n"

    def test_bad_indent(self):
        with pytest.raises(ValueError):
            Emitter(indent=0)


# ============================================================================
# Parser
# ============================================================================

class TestParser:

    def test_plain_scalars(self):
        tree = from_text(dedent("""
            int: 42
            neg: -7
            hex: 0x10
            float: 1.5
            exp: 1e3
            inf: -.inf
            bool: true
            null1: null
            null2: ~
            null3:
            str: hello world
            """))
        assert tree["int"] == Node.int(42)
        assert tree["neg"] == Node.int(-7)
        assert tree["hex"] == Node.int(16)
        assert tree["float"] == Node.float(1.5)
        assert tree["exp"] == Node.float(1000.0)
        assert tree["inf"] == Node.float(-math.inf)
        assert tree["bool"] == Node.bool(True)
        assert all(tree[k].is_null() for k in ("null1", "null2", "null3"))
        assert tree["str"] == Node.string("hello world")

    def test_tagged_scalars(self):
        tree = from_text(dedent("""
            - !u 0x2a
            - !u 42
            - !l -5
            - !ul 18446744073709551615
            - !f64 0.1
            - !!binary AAEC
            - !file 16 AAEC
            - !!str 123
            - !!int 5
            - !!float 2
            - !!bool false
            - !!null
            """))
        assert tree.as_array() == (
            Node.uint(42),
            Node.uint(42),
            Node.int64(-5),
            Node.uint64((1 << 64) - 1),
            Node.double(0.1),
            Node.binary(b"\x00\x01\x02"),
            Node.binary(b"\x00\x01\x02", alignment=16),
            Node.string("123"),
            Node.int(5),
            Node.float(2.0),
            Node.bool(False),
            Node.null(),
        )

    def test_quoted_scalars(self):
        tree = from_text(dedent(r"""
            a: "tab\there \u00e9 \x41"
            b: 'it''s # not a comment'
            "quoted key": 1
            'single key': 2
            """))
        assert tree["a"].as_string() == "tab\there é A"
        assert tree["b"].as_string() == "it's # not a comment"
        assert tree["quoted key"].as_int() == 1
        assert tree["single key"].as_int() == 2

    def test_comments_and_blank_lines(self):
        tree = from_text(dedent("""
            # leading comment
            ---
            a: 1  # trailing

            b:
              # inside
              - x
            """))
        assert tree == Node.hash({"a": Node.int(1), "b": Node.array([Node.string("x")])})

    def test_sequence_at_mapping_indent(self):
        tree = from_text("a:\n- 1\n- 2\nb: 3\n")
        assert tree == Node.hash({"a": Node.array([Node.int(1), Node.int(2)]), "b": Node.int(3)})

    def test_nested_sequences(self):
        tree = from_text(dedent("""
            - - 1
              - 2
            -
              - 3
            - []
            """))
        assert tree == Node.array([
            Node.array([Node.int(1), Node.int(2)]),
            Node.array([Node.int(3)]),
            Node.array(),
        ])

    def test_flow_collections(self):
        tree = from_text(dedent("""
            pos: {X: 1.5, Y: !u 0x2, "Z": [1, 2, ]}
            multi: [
              1, 2,
              3]
            bare: {flag}
            """))
        assert tree["pos"]["X"] == Node.float(1.5)
        assert tree["pos"]["Y"] == Node.uint(2)
        assert tree["pos"]["Z"] == Node.array([Node.int(1), Node.int(2)])
        assert tree["multi"] == Node.array([Node.int(1), Node.int(2), Node.int(3)])
        assert tree["bare"]["flag"].is_null()

    def test_empty_document(self):
        assert from_text("").is_null()
        assert from_text("# nothing\n\n").is_null()

    def test_crlf_and_bom(self):
        assert from_text("\ufeffa: 1\r\nb: 2\r\n") == Node.hash({"a": Node.int(1), "b": Node.int(2)})


# ============================================================================
# Round trips
# ============================================================================

class TestRoundTrip:

    def test_everything(self):
        tree = make_everything_tree()
        assert from_text(to_text(tree)) == tree

    @pytest.mark.parametrize("value", TRICKY_STRINGS)
    def test_tricky_string_values(self, value):
        tree = Node.hash({"s": Node.string(value), "list": Node.array([Node.string(value)])})
        assert from_text(to_text(tree)) == tree

    @pytest.mark.parametrize("key", TRICKY_STRINGS)
    def test_tricky_keys(self, key):
        tree = Node.hash({key: Node.int(1)})
        assert from_text(to_text(tree)) == tree

    def test_flow_disabled_round_trip(self):
        tree = make_everything_tree()
        assert from_text(to_text(tree, flow_max_items=0)) == tree

    def test_integer_limits(self):
        tree = Node.array([
            Node.int(-(1 << 31)),
            Node.int((1 << 31) - 1),
            Node.uint((1 << 32) - 1),
            Node.int64(-(1 << 63)),
        ])
        assert from_text(to_text(tree)) == tree


# ============================================================================
# Errors
# ============================================================================

class TestErrors:

    @pytest.mark.parametrize("text", [
        "a: &anchor 1\n",
        "a: *alias\n",
        "&anchor a: 1\n",
        "a: 1\n---\nb: 2\n",
        "a: 1\n...\nb: 2\n",
        "%YAML 1.2\n---\na: 1\n",
        "a: !custom 1\n",
        "a: |\n  text\n",
        "? complex\n",
        "a: !u [1]\n",
    ])
    def test_unsupported(self, text):
        with pytest.raises(UnsupportedSyntax):
            from_text(text)

    @pytest.mark.parametrize("text", [
        "a: 1\na: 2\n",
        "a: \"unterminated\n",
        "a:\n\t- 1\n",
        "a: [1, 2\n",
        "a: 1\n   b: 2\n",
        "- 1\nb: 2\n",
        "a: b: c\n",
        "a: 2147483648\n",
        "a: !u -1\n",
        "a: !u nope\n",
        "a: !!binary A$B\n",
        "a: {x: 1, x: 2}\n",
        "a: [1] trailing\n",
        "a: \"bad \\q escape\"\n",
        "a: !file 2147483648 AA\n",
    ])
    def test_syntax_errors(self, text):
        with pytest.raises(TextSyntaxError):
            from_text(text)

    def test_error_position(self):
        with pytest.raises(TextError) as exc:
            from_text("a: 1\nb: 2\nb: 3\n")
        assert exc.value.line == 3
        assert "Line 3" in str(exc.value)

    def test_integer_overflow_hint(self):
        with pytest.raises(TextSyntaxError) as exc:
            from_text("a: 4294967296\n")
        assert "!l" in str(exc.value)


def test_resolved_types():
    tree = from_text("a: 1\nb: 1.0\nc: '1'\n")
    assert [tree[k].type for k in "abc"] == [NodeType.INT, NodeType.FLOAT, NodeType.STRING]
