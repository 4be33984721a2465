"""Azure block blob upload of encrypted payloads."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional
from urllib.parse import quote

import aiohttp

from .common.constants import DEFAULT_BLOCK_SIZE
from .core.chunking import build_block_list, count_blocks, iter_blocks
from .utils import PayloadUnavailableError, RemoteRequestError, format_bytes


logger = logging.getLogger(__name__)

UploadProgressCallback = Callable[[int], None]

# Put Block List rejects x-ms-blob-type, so only block PUTs carry it
BLOCK_HEADERS = {"x-ms-blob-type": "BlockBlob"}


def _with_params(storage_uri: str, params: str) -> str:
    separator = "&" if "?" in storage_uri else "?"
    return f"{storage_uri}{separator}{params}"


def route_through_proxy(target_url: str, proxy_url: Optional[str]) -> str:
    """
    Wrap a storage URL for a forwarding proxy (<proxy>?url=<target>).

    Without a proxy the target is returned unchanged.
    """
    if not proxy_url:
        return target_url
    return f"{proxy_url}?url={quote(target_url, safe='')}"


async def _put(
    session: aiohttp.ClientSession,
    url: str,
    data: bytes,
    action: str,
    headers: Optional[dict] = None,
) -> None:
    try:
        async with session.put(url, data=data, headers=headers) as resp:
            if resp.status >= 400:
                body = await resp.text()
                logger.error("Azure Storage %s failed: %s", action, body)
                raise RemoteRequestError(
                    f"Failed to {action}: {body}", status=resp.status, body=body
                )
    except aiohttp.ClientError as exc:
        raise RemoteRequestError(f"Failed to {action}: {exc}") from exc


async def upload_blocks(
    session: aiohttp.ClientSession,
    storage_uri: str,
    payload: bytes,
    block_size: int = DEFAULT_BLOCK_SIZE,
    proxy_url: Optional[str] = None,
    progress_callback: Optional[UploadProgressCallback] = None,
) -> List[str]:
    """
    Upload a payload as sequential blocks, then commit the block list.

    Args:
        session: HTTP session.
        storage_uri: SAS URI handed out by Graph.
        payload: Encrypted payload (MAC || IV || ciphertext).
        block_size: Block size in bytes.
        proxy_url: Optional forwarding proxy.
        progress_callback: Receives percent complete after each block.

    Returns:
        Block ids in commit order.

    Raises:
        PayloadUnavailableError: If the payload is empty.
        RemoteRequestError: If any block or the block list commit fails.
    """
    if not payload:
        raise PayloadUnavailableError("Encrypted payload is empty; refusing to upload.")

    total_blocks = count_blocks(len(payload), block_size)
    logger.info(
        "Uploading %s in %s block(s)", format_bytes(len(payload)), total_blocks
    )
    block_ids: List[str] = []
    for index, (block_id, block) in enumerate(iter_blocks(payload, block_size)):
        block_url = _with_params(
            storage_uri, f"comp=block&blockid={quote(block_id, safe='')}"
        )
        await _put(
            session,
            route_through_proxy(block_url, proxy_url),
            block,
            f"upload block {index + 1}/{total_blocks}",
            headers=BLOCK_HEADERS,
        )
        block_ids.append(block_id)
        if progress_callback:
            progress_callback(round((index + 1) / total_blocks * 100))

    commit_url = _with_params(storage_uri, "comp=blocklist")
    await _put(
        session,
        route_through_proxy(commit_url, proxy_url),
        build_block_list(block_ids).encode("utf-8"),
        "commit blocks",
        headers={"Content-Type": "application/xml"},
    )
    return block_ids
