# Author: PB and Claude
# Date: 2026-10-19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ---
# test/test_upload.py

"""Tests for packing files and directories into CARs."""

import dag_cbor
import pytest

from w3_client import car
from w3_client.upload import pack_directory, pack_file


def _node(result, cid):
    return dag_cbor.decode(next(b.bytes for b in result.blocks if b.cid == cid))


class TestPackFile:
    def test_small_file_is_raw_root(self):
        result = pack_file(b"hello world")
        assert result.root.codec.name == "raw"
        assert len(result.blocks) == 1
        assert result.blocks[0].bytes == b"hello world"

    def test_car_contains_root(self):
        result = pack_file(b"hello world")
        roots, blocks = car.decode(result.car)
        assert roots == [result.root]
        assert blocks[result.root].bytes == b"hello world"
        assert result.size == len(result.car)
        assert result.car_cid.codec.name == "car"

    def test_same_content_same_root(self):
        assert pack_file(b"abc").root == pack_file(b"abc").root
        assert pack_file(b"abc").root != pack_file(b"abd").root

    def test_chunked_file(self):
        data = b"0123456789"
        result = pack_file(data, name="digits.txt", chunk_size=4)
        assert result.root.codec.name == "dag-cbor"
        node = _node(result, result.root)
        assert node["type"] == "file"
        assert node["size"] == 10
        assert node["name"] == "digits.txt"
        assert len(node["parts"]) == 3
        parts = {b.cid: b.bytes for b in result.blocks}
        assert b"".join(parts[p] for p in node["parts"]) == data

    def test_path_input_uses_file_name(self, tmp_path):
        path = tmp_path / "report.csv"
        path.write_bytes(b"a,b\n1,2\n" * 4)
        result = pack_file(path, chunk_size=8)
        assert _node(result, result.root)["name"] == "report.csv"

    def test_empty_file(self):
        result = pack_file(b"")
        assert result.blocks[0].bytes == b""


class TestPackDirectory:
    def test_nested_paths(self):
        result = pack_directory([
            ("readme.txt", b"hi"),
            ("docs/a.md", b"# a"),
            ("docs/deep/b.md", b"# b"),
        ])
        root = _node(result, result.root)
        assert root["type"] == "directory"
        assert set(root["entries"]) == {"readme.txt", "docs"}

        docs = _node(result, root["entries"]["docs"])
        assert set(docs["entries"]) == {"a.md", "deep"}
        deep = _node(result, docs["entries"]["deep"])
        assert deep["entries"]["b.md"] == pack_file(b"# b").root

    def test_car_roots(self):
        result = pack_directory([("x.txt", b"x")])
        roots, blocks = car.decode(result.car)
        assert roots == [result.root]
        assert result.root in blocks

    def test_order_does_not_matter(self):
        a = pack_directory([("a.txt", b"a"), ("b/c.txt", b"c")])
        b = pack_directory([("b/c.txt", b"c"), ("a.txt", b"a")])
        assert a.root == b.root

    def test_from_path(self, tmp_path):
        (tmp_path / "sub").mkdir()
        (tmp_path / "top.txt").write_bytes(b"top")
        (tmp_path / "sub" / "inner.txt").write_bytes(b"inner")
        from_path = pack_directory(tmp_path)
        from_pairs = pack_directory([("top.txt", b"top"), ("sub/inner.txt", b"inner")])
        assert from_path.root == from_pairs.root

    def test_duplicate_content_stored_once(self):
        result = pack_directory([("a.txt", b"same"), ("b.txt", b"same")])
        cids = [b.cid for b in result.blocks]
        assert len(cids) == len(set(cids))

    def test_empty(self):
        with pytest.raises(ValueError, match="empty"):
            pack_directory([])

    @pytest.mark.parametrize("path", ["../escape.txt", "a/../../b", "", "/"])
    def test_invalid_paths(self, path):
        with pytest.raises(ValueError, match="Invalid path"):
            pack_directory([(path, b"x")])

    def test_duplicate_path(self):
        with pytest.raises(ValueError, match="Duplicate"):
            pack_directory([("a.txt", b"1"), ("./a.txt", b"2")])

    def test_file_directory_conflict(self):
        with pytest.raises(ValueError, match="conflicts"):
            pack_directory([("a", b"1"), ("a/b.txt", b"2")])
