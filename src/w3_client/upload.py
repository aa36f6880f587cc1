# Author: PB and Claude
# Date: 2026-10-19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ---
# src/w3_client/upload.py

"""
Pack local files into a CAR for upload.

Files up to chunk_size become a single raw block, which is also their root.
Larger files are split into raw chunks linked from a DAG-CBOR file node.
Directories become DAG-CBOR directory nodes mapping entry names to CIDs,
nested along the path components of every file.

These nodes are plain DAG-CBOR, not UnixFS. The service stores and lists
them by root CID, but IPFS gateways will not render a multi-chunk root as a
file or a directory root as a listing. Single-chunk files are raw blocks and
do resolve as their bytes.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Union

import dag_cbor
from multiformats import CID, multihash

from w3_client import car
from w3_client.ucan import Block


logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024


@dataclass
class PackResult:
    """A packed DAG: its root, the CAR bytes and the blocks inside."""
    root: CID
    car: bytes
    blocks: list[Block]

    @property
    def car_cid(self) -> CID:
        return car.link(self.car)

    @property
    def size(self) -> int:
        return len(self.car)


def _raw_block(data: bytes) -> Block:
    return Block(cid=CID("base32", 1, "raw", multihash.digest(data, "sha2-256")), bytes=data)


def _cbor_block(node: dict) -> Block:
    data = dag_cbor.encode(node)
    return Block(cid=CID("base32", 1, "dag-cbor", multihash.digest(data, "sha2-256")), bytes=data)


def _read(data: Union[bytes, bytearray, Path]) -> bytes:
    if isinstance(data, Path):
        return data.read_bytes()
    return bytes(data)


def _file_blocks(data: bytes, name: Optional[str], chunk_size: int) -> list[Block]:
    """Blocks for one file, root block last."""
    if len(data) <= chunk_size:
        return [_raw_block(data)]

    chunks = [_raw_block(data[i:i + chunk_size]) for i in range(0, len(data), chunk_size)]
    node = {"type": "file", "size": len(data), "parts": [c.cid for c in chunks]}
    if name:
        node["name"] = name
    return chunks + [_cbor_block(node)]


def pack_file(
    data: Union[bytes, bytearray, Path],
    name: Optional[str] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> PackResult:
    """
    Pack a single file.

    Args:
        data: File contents, or a Path to read them from
        name: Optional name recorded in the file node (multi-chunk files only)
        chunk_size: Maximum raw block size

    Returns:
        PackResult whose root is the file's CID
    """
    if isinstance(data, Path) and name is None:
        name = data.name
    blocks = _file_blocks(_read(data), name, chunk_size)
    root = blocks[-1].cid
    logger.debug(f"pack_file: {name or '(unnamed)'} -> {root} in {len(blocks)} blocks")
    return PackResult(root=root, car=car.encode([root], blocks), blocks=blocks)


def _collect_files(path: Path) -> list[tuple[str, Path]]:
    """All files under a directory with their paths relative to it."""
    files = []
    for file_path in sorted(path.rglob("*")):
        if file_path.is_file():
            files.append((file_path.relative_to(path).as_posix(), file_path))
    return files


def pack_directory(
    files: Union[Path, Iterable[tuple[str, Union[bytes, Path]]]],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> PackResult:
    """
    Pack a set of files under a container directory, preserving paths.

    Args:
        files: A directory Path, or (relative_path, contents) pairs where
            contents is bytes or a Path
        chunk_size: Maximum raw block size

    Returns:
        PackResult whose root is the container directory's CID

    Raises:
        ValueError: no files, or a path that escapes the container
    """
    if isinstance(files, Path):
        files = _collect_files(files)
    files = list(files)
    if not files:
        raise ValueError("Cannot pack an empty directory")

    blocks: dict[CID, Block] = {}
    tree: dict = {}

    for rel_path, contents in files:
        parts = [p for p in str(rel_path).replace("\\", "/").split("/") if p not in ("", ".")]
        if not parts or ".." in parts:
            raise ValueError(f"Invalid path in directory upload: {rel_path!r}")

        file_blocks = _file_blocks(_read(contents), parts[-1], chunk_size)
        for block in file_blocks:
            blocks[block.cid] = block

        node = tree
        for part in parts[:-1]:
            node = node.setdefault(part, {})
            if not isinstance(node, dict):
                raise ValueError(f"Path conflicts with a file: {rel_path!r}")
        if parts[-1] in node:
            raise ValueError(f"Duplicate path in directory upload: {rel_path!r}")
        node[parts[-1]] = file_blocks[-1].cid

    def build(subtree: dict) -> CID:
        entries = {}
        for entry_name in sorted(subtree):
            value = subtree[entry_name]
            entries[entry_name] = build(value) if isinstance(value, dict) else value
        block = _cbor_block({"type": "directory", "entries": entries})
        blocks[block.cid] = block
        return block.cid

    root = build(tree)
    ordered = list(blocks.values())
    logger.debug(f"pack_directory: {len(files)} files -> {root} in {len(ordered)} blocks")
    return PackResult(root=root, car=car.encode([root], ordered), blocks=ordered)
