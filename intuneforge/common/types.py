"""Type definitions and data models for packaging."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

from .constants import FILE_DIGEST_ALGORITHM, PROFILE_IDENTIFIER


@dataclass(frozen=True)
class PackageInfo:
    """Input for a single package build."""
    name: str
    version: str
    publisher: str
    setup_file: str
    source_path: Path


@dataclass(frozen=True)
class EncryptionMaterial:
    """Per-build key material. Fields are hidden from repr."""
    encryption_key: bytes = field(repr=False)
    mac_key: bytes = field(repr=False)
    iv: bytes = field(repr=False)


@dataclass(frozen=True)
class EncryptionInfo:
    """Base64 encryption parameters shared by Detection.xml and the commit call."""
    encryption_key: str = field(repr=False)
    mac_key: str = field(repr=False)
    initialization_vector: str = field(repr=False)
    mac: str
    file_digest: str
    profile_identifier: str = PROFILE_IDENTIFIER
    file_digest_algorithm: str = FILE_DIGEST_ALGORITHM

    def to_dict(self) -> Dict[str, str]:
        """Convert to the Graph fileEncryptionInfo shape."""
        return {
            "encryptionKey": self.encryption_key,
            "macKey": self.mac_key,
            "initializationVector": self.initialization_vector,
            "mac": self.mac,
            "profileIdentifier": self.profile_identifier,
            "fileDigest": self.file_digest,
            "fileDigestAlgorithm": self.file_digest_algorithm,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptionInfo":
        """Create from dictionary."""
        return cls(
            encryption_key=data["encryptionKey"],
            mac_key=data["macKey"],
            initialization_vector=data["initializationVector"],
            mac=data["mac"],
            file_digest=data["fileDigest"],
            profile_identifier=data.get("profileIdentifier", PROFILE_IDENTIFIER),
            file_digest_algorithm=data.get(
                "fileDigestAlgorithm", FILE_DIGEST_ALGORITHM),
        )


@dataclass(frozen=True)
class ContainerMetadata:
    """ApplicationInfo record embedded in the container."""
    name: str
    unencrypted_content_size: int
    file_name: str
    setup_file: str
    encryption_info: EncryptionInfo

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "unencryptedContentSize": self.unencrypted_content_size,
            "fileName": self.file_name,
            "setupFile": self.setup_file,
            "encryptionInfo": self.encryption_info.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContainerMetadata":
        """Create from dictionary."""
        return cls(
            name=data["name"],
            unencrypted_content_size=int(data["unencryptedContentSize"]),
            file_name=data["fileName"],
            setup_file=data["setupFile"],
            encryption_info=EncryptionInfo.from_dict(data["encryptionInfo"]),
        )


@dataclass(frozen=True)
class PackageResult:
    """Build artifact: outer container, raw encrypted payload and metadata."""
    intunewin: bytes = field(repr=False)
    encrypted_payload: bytes = field(repr=False)
    metadata: ContainerMetadata
