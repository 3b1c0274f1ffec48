"""
bymlkit Document and CLI Tests

File-level helpers and the bymlkit command, driven through temporary files.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from bymlkit import Document, Endian, Node, decode, encode, read_document, yaz0
from bymlkit.cli import count_nodes, main
from bymlkit.document import is_compressed_path
from bymlkit.node import NodeType


def make_map_tree() -> Node:
    return Node.hash({
        "Objs": Node.array([
            Node.hash({
                "UnitConfigName": Node.string("Enemy_Guardian"),
                "HashId": Node.uint(0x1234),
                "Translate": Node.array([Node.float(1.0), Node.float(2.0), Node.float(3.0)]),
            }),
        ]),
        "LocationPosX": Node.int(-12),
    })


# ============================================================================
# Document
# ============================================================================

class TestDocument:

    def test_from_bytes_keeps_format(self):
        data = encode(make_map_tree(), 3, Endian.BIG)
        doc = read_document(data)
        assert doc.version == 3
        assert doc.endian is Endian.BIG
        assert doc.root == make_map_tree()
        assert doc.to_bytes() == data

    def test_defaults(self):
        doc = Document()
        assert doc.root.is_null()
        assert doc.version == 2
        assert doc.endian is Endian.LITTLE

    def test_text_round_trip(self):
        doc = Document(make_map_tree())
        assert Document.from_text(doc.to_text()).root == doc.root

    def test_load_from_bytes_and_path(self, tmp_path):
        data = encode(make_map_tree(), 2)
        path = tmp_path / "map.byml"
        path.write_bytes(data)
        assert Document.load(path).root == make_map_tree()
        assert Document.load(str(path)).root == make_map_tree()
        assert Document.load(data).root == make_map_tree()
        with pytest.raises(TypeError):
            Document.load(42)

    def test_save_compresses_by_extension(self, tmp_path):
        doc = Document(make_map_tree(), version=2, endian=Endian.BIG)
        packed = doc.save(tmp_path / "map.sbyml")
        plain = doc.save(tmp_path / "map.byml")
        assert yaz0.is_compressed(packed.read_bytes())
        assert not yaz0.is_compressed(plain.read_bytes())
        assert Document.load(packed).root == doc.root
        forced = doc.save(tmp_path / "forced.byml", compress=True)
        assert yaz0.is_compressed(forced.read_bytes())

    @pytest.mark.parametrize("name, expected", [
        ("a.sbyml", True),
        ("a.smubin", True),
        ("a.SBYML", True),
        ("a.byml", False),
        ("a.sarc", False),
        ("a.yml", False),
    ])
    def test_compressed_path(self, name, expected):
        assert is_compressed_path(name) is expected


# ============================================================================
# CLI
# ============================================================================

class TestCLI:

    def test_info(self, tmp_path, capsys):
        path = tmp_path / "map.sbyml"
        Document(make_map_tree(), version=4).save(path)
        main(["--no-color", "info", str(path)])
        out = capsys.readouterr().out
        assert "Version:     4" in out
        assert "Yaz0" in out
        assert "Hash (2 entries)" in out
        assert "Objs" in out

    def test_to_text_stdout(self, tmp_path, capsys):
        path = tmp_path / "map.byml"
        path.write_bytes(encode(make_map_tree(), 2))
        main(["to-text", str(path)])
        out = capsys.readouterr().out
        assert "UnitConfigName: Enemy_Guardian" in out
        assert "Translate: [1.0, 2.0, 3.0]" in out

    def test_text_to_binary_and_back(self, tmp_path):
        source = tmp_path / "map.byml"
        source.write_bytes(encode(make_map_tree(), 2))
        text_path = tmp_path / "map.yml"
        main(["--no-color", "to-text", str(source), "-o", str(text_path)])

        out_path = tmp_path / "out.byml"
        main(["--no-color", "to-binary", str(text_path), "-o", str(out_path),
              "--version", "3", "--big-endian"])
        doc = Document.load(out_path)
        assert doc.root == make_map_tree()
        assert doc.version == 3
        assert doc.endian is Endian.BIG

    def test_to_binary_default_output(self, tmp_path):
        text_path = tmp_path / "map.yml"
        text_path.write_text("a: 1\n", encoding="utf-8")
        main(["--no-color", "to-binary", str(text_path), "--compress"])
        out_path = tmp_path / "map.sbyml"
        assert yaz0.is_compressed(out_path.read_bytes())
        assert decode(out_path.read_bytes()) == Node.hash({"a": Node.int(1)})

    def test_missing_file(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--no-color", "info", str(tmp_path / "nope.byml")])
        assert exc.value.code == 1
        assert "File not found" in capsys.readouterr().out

    def test_bad_input(self, tmp_path, capsys):
        path = tmp_path / "bad.byml"
        path.write_bytes(b"NOPE" + bytes(12))
        with pytest.raises(SystemExit) as exc:
            main(["--no-color", "to-text", str(path)])
        assert exc.value.code == 1
        assert "UnsupportedFormat" in capsys.readouterr().out

    def test_unsupported_for_version(self, tmp_path, capsys):
        text_path = tmp_path / "wide.yml"
        text_path.write_text("a: !l 5\n", encoding="utf-8")
        with pytest.raises(SystemExit):
            main(["--no-color", "to-binary", str(text_path)])
        assert "UnsupportedForVersion" in capsys.readouterr().out

    def test_count_nodes(self):
        counts = count_nodes(make_map_tree())
        assert counts[NodeType.FLOAT] == 3
        assert counts[NodeType.HASH] == 2
