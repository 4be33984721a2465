"""Shared utilities for IntuneForge."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Optional


class IntuneForgeError(Exception):
    """Base exception for IntuneForge errors."""

    def __init__(self, message: str = "", *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.stage = stage


class ConfigError(IntuneForgeError):
    """Raised when configuration is invalid or missing."""


class SourceReadError(IntuneForgeError, OSError):
    """Raised when the installer source cannot be read."""


class CryptoError(IntuneForgeError):
    """Raised when key generation or encryption fails."""


class PackageFormatError(IntuneForgeError):
    """Raised when an .intunewin container is malformed."""


class IntegrityError(IntuneForgeError):
    """Raised when a payload MAC or digest does not match its metadata."""


class DetectionRuleError(IntuneForgeError):
    """Raised when a detection rule cannot be mapped to the Graph vocabulary."""


class PayloadUnavailableError(IntuneForgeError):
    """Raised when a deployment is attempted without an encrypted payload."""


class RemoteRequestError(IntuneForgeError):
    """Raised when a remote call returns a non-success status."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        body: str = "",
        stage: Optional[str] = None,
    ) -> None:
        super().__init__(message, stage=stage)
        self.status = status
        self.body = body


class RemoteTimeoutError(IntuneForgeError, TimeoutError):
    """Raised when a bounded poll exceeds its attempt budget."""


class RemoteStateError(IntuneForgeError):
    """Raised when the remote side reports an explicit failure status."""

    def __init__(
        self, message: str, *, payload: Any = None, stage: Optional[str] = None
    ) -> None:
        super().__init__(message, stage=stage)
        self.payload = payload


def setup_logging(log_level: int = logging.INFO) -> None:
    """
    Configure global logging.

    Args:
        log_level: Logging verbosity level.
    """
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )


def format_bytes(size: int) -> str:
    """
    Convert bytes to a human-readable string.

    Args:
        size: Size in bytes.

    Returns:
        Human-readable size string.
    """
    if size < 0:
        raise ValueError("Size must be non-negative.")

    units = ["B", "KB", "MB", "GB", "TB", "PB"]
    value = float(size)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            return f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} PB"


def safe_stem(value: str) -> str:
    """Replace every non-alphanumeric character with an underscore."""
    return re.sub(r"[^a-zA-Z0-9]", "_", value)


def package_filename(display_name: str, version: str) -> str:
    """
    Build the download filename for a container.

    Args:
        display_name: Application display name.
        version: Application version.

    Returns:
        Filename ending in .intunewin.
    """
    version = re.sub(r"[^a-zA-Z0-9._-]", "_", version)
    name = f"{safe_stem(display_name)}_{version}"
    return name if name.endswith(".intunewin") else f"{name}.intunewin"


def atomic_write(path: Path, data: str, mode: str = "w") -> None:
    """
    Write data atomically to a file.

    Args:
        path: Destination path.
        data: Data to write.
        mode: File mode.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(path.suffix + ".tmp")
    with open(temp_path, mode, encoding="utf-8") as file_handle:
        file_handle.write(data)
        file_handle.flush()
        os.fsync(file_handle.fileno())
    temp_path.replace(path)
