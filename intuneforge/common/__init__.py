"""Common constants and shared types."""

from .constants import (
    CONTENTS_DIR,
    DEFAULT_BLOCK_SIZE,
    DETECTION_XML,
    METADATA_DIR,
    PACKAGE_ROOT,
)
from .types import (
    ContainerMetadata,
    EncryptionInfo,
    EncryptionMaterial,
    PackageInfo,
    PackageResult,
)

__all__ = [
    "CONTENTS_DIR",
    "DEFAULT_BLOCK_SIZE",
    "DETECTION_XML",
    "METADATA_DIR",
    "PACKAGE_ROOT",
    "ContainerMetadata",
    "EncryptionInfo",
    "EncryptionMaterial",
    "PackageInfo",
    "PackageResult",
]
