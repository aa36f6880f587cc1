# Author: PB and Claude
# Date: 2026-10-19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ---
# src/w3_client/car.py

"""
CARv1 archives (Content Addressable aRchives).

Layout:
    varint(len(header)) || dag-cbor {"roots": [CID...], "version": 1}
    then for every block:
    varint(len(cid) + len(data)) || cid bytes || data
"""

import io
from typing import Iterable

import dag_cbor
from multiformats import CID, multihash, varint

from w3_client.ucan import Block


CAR_VERSION = 1


class CARError(ValueError):
    """Raised when an archive is malformed."""
    pass


def encode(roots: Iterable[CID], blocks: Iterable[Block]) -> bytes:
    """Write roots and blocks into a CARv1 archive."""
    header = dag_cbor.encode({"roots": list(roots), "version": CAR_VERSION})
    out = io.BytesIO()
    out.write(varint.encode(len(header)))
    out.write(header)
    for block in blocks:
        cid_bytes = bytes(block.cid)
        out.write(varint.encode(len(cid_bytes) + len(block.bytes)))
        out.write(cid_bytes)
        out.write(block.bytes)
    return out.getvalue()


def _read_varint(stream: io.BytesIO) -> int:
    try:
        return varint.decode(stream)
    except (ValueError, EOFError) as e:
        raise CARError(f"Truncated or invalid varint at offset {stream.tell()}") from e


def _read_cid(section: bytes) -> tuple[CID, int]:
    """Split a block section into its CID, returning (cid, cid_length)."""
    if len(section) >= 2 and section[0] == 0x12 and section[1] == 0x20:
        raise CARError("CIDv0 blocks are not supported")
    stream = io.BytesIO(section)
    version = _read_varint(stream)
    if version != 1:
        raise CARError(f"Unsupported CID version {version}")
    _read_varint(stream)  # codec
    _read_varint(stream)  # hash function
    digest_size = _read_varint(stream)
    end = stream.tell() + digest_size
    if end > len(section):
        raise CARError("Block section shorter than its CID digest")
    try:
        cid = CID.decode(section[:end])
    except (KeyError, ValueError) as e:
        raise CARError(f"Invalid block CID: {e}") from e
    return cid, end


def decode(data: bytes) -> tuple[list[CID], dict[CID, Block]]:
    """
    Read a CARv1 archive.

    Returns:
        (roots, blocks) where blocks maps CID -> Block in archive order

    Raises:
        CARError: truncated archive, bad header, or a block whose bytes
            don't hash to its CID
    """
    if not data:
        raise CARError("Empty archive")
    stream = io.BytesIO(bytes(data))

    header_len = _read_varint(stream)
    header_bytes = stream.read(header_len)
    if len(header_bytes) != header_len:
        raise CARError("Truncated CAR header")
    try:
        header = dag_cbor.decode(header_bytes)
    except Exception as e:
        raise CARError(f"Invalid CAR header: {e}") from e
    if not isinstance(header, dict) or header.get("version") != CAR_VERSION:
        raise CARError(f"Unsupported CAR header: {header!r}")
    roots = list(header.get("roots") or [])

    blocks = {}
    total = len(stream.getbuffer())
    while stream.tell() < total:
        section_len = _read_varint(stream)
        section = stream.read(section_len)
        if len(section) != section_len:
            raise CARError("Truncated block section")
        cid, cid_len = _read_cid(section)
        payload = section[cid_len:]
        if cid.hashfun.name != "sha2-256":
            raise CARError(f"Unsupported hash function {cid.hashfun.name} in {cid}")
        if multihash.digest(payload, "sha2-256") != cid.digest:
            raise CARError(f"Block bytes do not match CID {cid}")
        blocks[cid] = Block(cid=cid, bytes=payload)

    return roots, blocks


def link(car_bytes: bytes) -> CID:
    """CID of a whole archive (car codec, sha2-256)."""
    return CID("base32", 1, "car", multihash.digest(car_bytes, "sha2-256"))
