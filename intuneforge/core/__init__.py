"""Core packaging logic (pure Python, no network code)."""

from .chunking import build_block_list, count_blocks, get_block_id, iter_blocks
from .compression import build_container, compress_data, decompress_data, open_container
from .crypto import (
    build_payload,
    decrypt_data,
    encrypt_data,
    file_digest,
    generate_encryption_material,
    split_payload,
)
from .manifest import create_manifest, parse_manifest

__all__ = [
    "build_block_list",
    "count_blocks",
    "get_block_id",
    "iter_blocks",
    "build_container",
    "compress_data",
    "decompress_data",
    "open_container",
    "build_payload",
    "decrypt_data",
    "encrypt_data",
    "file_digest",
    "generate_encryption_material",
    "split_payload",
    "create_manifest",
    "parse_manifest",
]
