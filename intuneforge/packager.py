"""Build, read and verify .intunewin containers."""

from __future__ import annotations

import asyncio
import base64
import logging
import uuid
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

import aiofiles

from .common.constants import MAC_SIZE
from .common.types import ContainerMetadata, EncryptionInfo, PackageInfo, PackageResult
from .core.compression import build_container, compress_data, decompress_data, open_container
from .core.crypto import (
    b64,
    build_payload,
    constant_time_equal,
    decrypt_data,
    encrypt_data,
    file_digest,
    generate_encryption_material,
    split_payload,
    verify_mac,
)
from .core.manifest import create_manifest, parse_manifest
from .utils import IntegrityError, PackageFormatError, SourceReadError, package_filename

logger = logging.getLogger(__name__)

BuildProgressCallback = Callable[[str, int], None]


def _notify(callback: Optional[BuildProgressCallback], message: str, percent: int) -> None:
    if callback:
        callback(message, percent)


def read_source(path: Path) -> bytes:
    """
    Read the whole installer into memory.

    Raises:
        SourceReadError: If the file cannot be read
    """
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise SourceReadError(f"Cannot read source file {path}: {exc}") from exc


def build_from_bytes(
    info: PackageInfo,
    data: bytes,
    progress_callback: Optional[BuildProgressCallback] = None,
) -> PackageResult:
    """
    Turn installer bytes into an encrypted .intunewin container.

    Args:
        info: Package metadata
        data: Raw installer bytes
        progress_callback: Optional (message, percent) observer

    Returns:
        PackageResult holding the container, the upload payload and metadata
    """
    _notify(progress_callback, "Creating inner ZIP...", 10)
    inner_zip = compress_data(data, info.setup_file)
    unencrypted_size = len(inner_zip)

    _notify(progress_callback, "Generating encryption keys...", 30)
    material = generate_encryption_material()

    _notify(progress_callback, "Encrypting content...", 50)
    ciphertext = encrypt_data(inner_zip, material.encryption_key, material.iv)
    digest = file_digest(inner_zip)

    _notify(progress_callback, "Creating package structure...", 80)
    _notify(progress_callback, "Computing HMAC...", 85)
    payload = build_payload(ciphertext, material.iv, material.mac_key)

    metadata = ContainerMetadata(
        name=info.name,
        unencrypted_content_size=unencrypted_size,
        file_name=f"{uuid.uuid4()}.bin",
        setup_file=info.setup_file,
        encryption_info=EncryptionInfo(
            encryption_key=b64(material.encryption_key),
            mac_key=b64(material.mac_key),
            initialization_vector=b64(material.iv),
            mac=b64(payload[:MAC_SIZE]),
            file_digest=digest,
        ),
    )

    _notify(progress_callback, "Building .intunewin file...", 90)
    container = build_container(metadata.file_name, payload, create_manifest(metadata))

    _notify(progress_callback, "Complete!", 100)
    logger.info(
        "Created package %s: unencrypted %s bytes, payload %s bytes",
        info.name,
        unencrypted_size,
        len(payload),
    )
    return PackageResult(intunewin=container, encrypted_payload=payload, metadata=metadata)


def build_package(
    info: PackageInfo, progress_callback: Optional[BuildProgressCallback] = None
) -> PackageResult:
    """
    Read info.source_path and build its container.

    Raises:
        SourceReadError: If the source cannot be read
        CryptoError: If key generation or encryption fails
    """
    _notify(progress_callback, "Reading file...", 0)
    return build_from_bytes(info, read_source(info.source_path), progress_callback)


async def create_package(
    info: PackageInfo, progress_callback: Optional[BuildProgressCallback] = None
) -> PackageResult:
    """
    Async variant of build_package.

    The source is read with aiofiles and the CPU-bound build runs in a worker thread.
    """
    _notify(progress_callback, "Reading file...", 0)
    try:
        async with aiofiles.open(info.source_path, "rb") as infile:
            data = await infile.read()
    except OSError as exc:
        raise SourceReadError(
            f"Cannot read source file {info.source_path}: {exc}"
        ) from exc
    return await asyncio.to_thread(build_from_bytes, info, data, progress_callback)


def write_package(result: PackageResult, output_dir: Path, display_name: str, version: str) -> Path:
    """
    Write the container to output_dir.

    Returns:
        Path of the written .intunewin file
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / package_filename(display_name, version)
    output_path.write_bytes(result.intunewin)
    return output_path


def read_package(source: Union[Path, bytes]) -> Tuple[ContainerMetadata, bytes]:
    """
    Open an existing container.

    Args:
        source: Path to a .intunewin file or its bytes

    Returns:
        Tuple of (metadata, encrypted payload)

    Raises:
        PackageFormatError: If the container is malformed
    """
    if isinstance(source, bytes):
        data = source
    else:
        data = read_source(Path(source))
    regions = open_container(data)
    metadata = parse_manifest(regions["descriptor"])
    contents = regions["contents"]
    if metadata.file_name not in contents:
        raise PackageFormatError(
            f"Payload {metadata.file_name} named in Detection.xml is not in Contents."
        )
    return metadata, contents[metadata.file_name]


def verify_package(metadata: ContainerMetadata, payload: bytes) -> bytes:
    """
    Check a payload against its metadata and decrypt it.

    Returns:
        The inner zip bytes

    Raises:
        IntegrityError: If the MAC, the decryption or the digest check fails
    """
    info = metadata.encryption_info
    try:
        key = base64.b64decode(info.encryption_key, validate=True)
        mac_key = base64.b64decode(info.mac_key, validate=True)
        iv = base64.b64decode(info.initialization_vector, validate=True)
    except ValueError as exc:
        raise IntegrityError("Encryption parameters are not valid base64.") from exc

    mac, payload_iv, ciphertext = split_payload(payload)
    if not constant_time_equal(b64(mac), info.mac):
        raise IntegrityError("Payload MAC does not match the metadata MAC.")
    verify_mac(mac_key, payload[MAC_SIZE:], mac)
    if payload_iv != iv:
        raise IntegrityError("Payload IV does not match the metadata IV.")

    inner_zip = decrypt_data(ciphertext, key, payload_iv)
    if len(inner_zip) != metadata.unencrypted_content_size:
        raise IntegrityError("Decrypted size does not match UnencryptedContentSize.")
    if not constant_time_equal(file_digest(inner_zip), info.file_digest):
        raise IntegrityError("Decrypted content digest does not match FileDigest.")
    decompress_data(inner_zip)
    return inner_zip
