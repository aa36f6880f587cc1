# Author: PB and Claude
# Date: 2026-10-19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ---
# test/test_car.py

"""Tests for CARv1 archive encoding."""

import dag_cbor
import pytest
from multiformats import CID, multihash, varint

from w3_client import car
from w3_client.car import CARError
from w3_client.ucan import Block


def _block(data: bytes) -> Block:
    return Block(cid=CID("base32", 1, "raw", multihash.digest(data, "sha2-256")), bytes=data)


def unknown_codec_archive() -> bytes:
    """An archive whose only block claims a codec no table knows."""
    header = dag_cbor.encode({"roots": [], "version": 1})
    section = varint.encode(1) + varint.encode(0x3FFFFF) + bytes(multihash.digest(b"hello", "sha2-256")) + b"hello"
    return varint.encode(len(header)) + header + varint.encode(len(section)) + section


@pytest.fixture
def blocks():
    return [_block(b"first"), _block(b"second"), _block(b"")]


class TestEncode:
    def test_header(self, blocks):
        data = car.encode([blocks[0].cid], blocks)
        header_len = data[0]
        header = dag_cbor.decode(data[1:1 + header_len])
        assert header == {"roots": [blocks[0].cid], "version": 1}

    def test_section_layout(self):
        block = _block(b"abc")
        data = car.encode([block.cid], [block])
        cid_bytes = bytes(block.cid)
        section = varint.encode(len(cid_bytes) + 3) + cid_bytes + b"abc"
        assert data.endswith(section)


class TestDecode:
    def test_returns_roots_and_blocks(self, blocks):
        roots, decoded = car.decode(car.encode([blocks[1].cid], blocks))
        assert roots == [blocks[1].cid]
        assert list(decoded) == [b.cid for b in blocks]
        assert decoded[blocks[0].cid].bytes == b"first"
        assert decoded[blocks[2].cid].bytes == b""

    def test_no_blocks(self):
        roots, decoded = car.decode(car.encode([], []))
        assert roots == []
        assert decoded == {}

    def test_empty_input(self):
        with pytest.raises(CARError, match="Empty"):
            car.decode(b"")

    def test_truncated(self, blocks):
        data = car.encode([blocks[0].cid], blocks)
        with pytest.raises(CARError):
            car.decode(data[:-3])

    def test_corrupted_block(self, blocks):
        data = bytearray(car.encode([blocks[0].cid], blocks[:1]))
        # last byte belongs to the "first" payload
        data[-1] ^= 0xFF
        with pytest.raises(CARError, match="do not match"):
            car.decode(bytes(data))

    def test_wrong_version(self):
        header = dag_cbor.encode({"roots": [], "version": 2})
        with pytest.raises(CARError, match="Unsupported CAR header"):
            car.decode(varint.encode(len(header)) + header)

    def test_cid_v0_rejected(self):
        header = dag_cbor.encode({"roots": [], "version": 1})
        section = b"\x12\x20" + b"\x00" * 32
        data = varint.encode(len(header)) + header + varint.encode(len(section)) + section
        with pytest.raises(CARError, match="CIDv0"):
            car.decode(data)

    def test_unknown_codec_rejected(self):
        data = unknown_codec_archive()
        with pytest.raises(CARError, match="Invalid block CID"):
            car.decode(data)


class TestLink:
    def test_car_codec(self, blocks):
        link = car.link(car.encode([blocks[0].cid], blocks))
        assert link.codec.name == "car"
        assert link.version == 1

    def test_deterministic(self, blocks):
        data = car.encode([blocks[0].cid], blocks)
        assert car.link(data) == car.link(bytes(data))
