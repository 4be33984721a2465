"""Logic for splitting payloads into storage blocks."""

import base64
from typing import Iterator, List, Tuple

from ..common.constants import BLOCK_ID_WIDTH, DEFAULT_BLOCK_SIZE


def get_block_id(index: int) -> str:
    """
    Build the block identifier for a block index.

    Args:
        index: Zero-based block index

    Returns:
        Base64 of the index zero-padded to six digits
    """
    return base64.b64encode(str(index).zfill(BLOCK_ID_WIDTH).encode("ascii")).decode("ascii")


def iter_blocks(payload: bytes, block_size: int = DEFAULT_BLOCK_SIZE) -> Iterator[Tuple[str, bytes]]:
    """
    Yield (block_id, block) pairs in index order.

    Args:
        payload: Bytes to split
        block_size: Maximum block size in bytes
    """
    if block_size <= 0:
        raise ValueError("Block size must be greater than 0.")
    view = memoryview(payload)
    for index, start in enumerate(range(0, len(payload), block_size)):
        yield get_block_id(index), bytes(view[start:start + block_size])


def count_blocks(size: int, block_size: int = DEFAULT_BLOCK_SIZE) -> int:
    """Number of blocks needed for size bytes."""
    return -(-size // block_size)


def build_block_list(block_ids: List[str]) -> str:
    """
    Build the Put Block List XML body.

    Args:
        block_ids: Block identifiers in upload order

    Returns:
        XML document naming every block as Latest
    """
    lines = ['<?xml version="1.0" encoding="utf-8"?>', "<BlockList>"]
    lines.extend(f"  <Latest>{block_id}</Latest>" for block_id in block_ids)
    lines.append("</BlockList>")
    return "\n".join(lines)
