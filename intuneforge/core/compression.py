"""Deflate zip logic for the inner archive and the outer container."""

import io
import time
import zipfile
from typing import Dict, Tuple

from ..common.constants import (
    COMPRESSION_LEVEL,
    CONTENTS_DIR,
    DETECTION_XML,
    METADATA_DIR,
    PACKAGE_ROOT,
)
from ..utils import PackageFormatError


def _zip_info(name: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=time.localtime()[:6])
    info.compress_type = zipfile.ZIP_DEFLATED
    return info


def compress_data(data: bytes, filename: str, compresslevel: int = COMPRESSION_LEVEL) -> bytes:
    """
    Build a single-entry deflate zip holding data under filename.

    Args:
        data: File contents
        filename: Entry name inside the archive
        compresslevel: Deflate level (9 is maximum compression)

    Returns:
        Zip archive bytes
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED, compresslevel=compresslevel) as archive:
        archive.writestr(_zip_info(filename), data, compresslevel=compresslevel)
    return buffer.getvalue()


def decompress_data(data: bytes) -> Tuple[str, bytes]:
    """
    Read the single entry of an inner zip.

    Returns:
        Tuple of (entry name, entry bytes)

    Raises:
        PackageFormatError: If the archive is unreadable or has other than one entry
    """
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            names = [name for name in archive.namelist() if not name.endswith("/")]
            if len(names) != 1:
                raise PackageFormatError(
                    f"Expected one entry in inner archive, found {len(names)}."
                )
            return names[0], archive.read(names[0])
    except zipfile.BadZipFile as exc:
        raise PackageFormatError(
            "Decompression failed. Data may be corrupted."
        ) from exc


def build_container(payload_name: str, payload: bytes, descriptor: str) -> bytes:
    """
    Assemble the outer .intunewin archive.

    Layout:
        IntuneWinPackage/Contents/<payload_name>
        IntuneWinPackage/Metadata/Detection.xml
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(
        buffer, "w", zipfile.ZIP_DEFLATED, compresslevel=COMPRESSION_LEVEL
    ) as archive:
        for folder in (PACKAGE_ROOT, CONTENTS_DIR, METADATA_DIR):
            archive.writestr(zipfile.ZipInfo(f"{folder}/", date_time=time.localtime()[:6]), b"")
        archive.writestr(
            _zip_info(f"{CONTENTS_DIR}/{payload_name}"),
            payload,
            compresslevel=COMPRESSION_LEVEL,
        )
        archive.writestr(
            _zip_info(f"{METADATA_DIR}/{DETECTION_XML}"),
            descriptor.encode("utf-8"),
            compresslevel=COMPRESSION_LEVEL,
        )
    return buffer.getvalue()


def open_container(data: bytes) -> Dict[str, bytes]:
    """
    Read the regions of an outer .intunewin archive.

    Returns:
        Dict with "descriptor" (Detection.xml bytes) and "contents"
        (mapping of payload filename to bytes)

    Raises:
        PackageFormatError: If a region is missing
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise PackageFormatError("Not a valid .intunewin archive.") from exc

    with archive:
        descriptor_name = f"{METADATA_DIR}/{DETECTION_XML}"
        if descriptor_name not in archive.namelist():
            raise PackageFormatError("Container has no Metadata/Detection.xml.")
        prefix = f"{CONTENTS_DIR}/"
        contents = {
            name[len(prefix):]: archive.read(name)
            for name in archive.namelist()
            if name.startswith(prefix) and not name.endswith("/")
        }
        if len(contents) != 1:
            raise PackageFormatError(
                f"Expected one file in Contents, found {len(contents)}."
            )
        return {"descriptor": archive.read(descriptor_name), "contents": contents}
