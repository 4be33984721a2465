"""Configuration management for IntuneForge."""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, Optional

from dotenv import load_dotenv

from .common.constants import DEFAULT_BLOCK_SIZE, DEFAULT_GRAPH_BASE_URL, DEFAULT_GROUPS_URL
from .utils import ConfigError

ENV_TOKEN = "GRAPH_ACCESS_TOKEN"
ENV_GRAPH_BASE_URL = "GRAPH_BASE_URL"
ENV_GROUPS_URL = "GRAPH_GROUPS_URL"
ENV_STORAGE_PROXY = "STORAGE_PROXY_URL"
ENV_BLOCK_SIZE = "UPLOAD_BLOCK_SIZE"
ENV_STORAGE_POLL_INTERVAL = "STORAGE_URI_POLL_INTERVAL"
ENV_STORAGE_POLL_ATTEMPTS = "STORAGE_URI_POLL_ATTEMPTS"
ENV_COMMIT_POLL_INTERVAL = "COMMIT_POLL_INTERVAL"
ENV_COMMIT_POLL_ATTEMPTS = "COMMIT_POLL_ATTEMPTS"
ENV_FINALIZE_ATTEMPTS = "FINALIZE_MAX_ATTEMPTS"
ENV_FINALIZE_BACKOFF = "FINALIZE_BACKOFF"
ENV_CONFIG_STORE = "CONFIG_STORE_PATH"
ENV_OUTPUT_DIR = "OUTPUT_DIR"
# Azure rejects Put Block bodies above 100 MiB (service version 2016-05-31+)
MAX_BLOCK_SIZE_CAP = 100 * 1024 * 1024


def _base_dir() -> Path:
    return Path(__file__).resolve().parents[1]


def _env_path() -> Path:
    return _base_dir() / ".env"


def validate_token(token: str) -> bool:
    """
    Validate bearer token format.

    Args:
        token: Access token string.

    Returns:
        True if the token looks like a JWT.
    """
    if not token or token.count(".") != 2:
        return False
    pattern = re.compile(
        r"^[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]*$")
    return bool(pattern.match(token))


@dataclass(frozen=True)
class DeploySettings:
    """Remote endpoints and polling bounds used by a deployment."""

    graph_base_url: str = DEFAULT_GRAPH_BASE_URL
    groups_url: str = DEFAULT_GROUPS_URL
    storage_proxy_url: Optional[str] = None
    block_size: int = DEFAULT_BLOCK_SIZE
    storage_poll_interval: float = 2.0
    storage_poll_attempts: int = 30
    commit_poll_interval: float = 2.0
    commit_poll_attempts: int = 60
    finalize_max_attempts: int = 3
    finalize_backoff: float = 2.0

    def __post_init__(self) -> None:
        for name in (
            "block_size",
            "storage_poll_attempts",
            "commit_poll_attempts",
            "finalize_max_attempts",
        ):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be greater than 0.")
        for name in ("storage_poll_interval", "commit_poll_interval", "finalize_backoff"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative.")


@dataclass(frozen=True)
class Config:
    """Singleton configuration object."""

    access_token: str
    settings: DeploySettings
    config_store_path: Path
    output_dir: Path

    _instance: ClassVar[Optional["Config"]] = None

    @classmethod
    def get_instance(cls) -> "Config":
        """
        Retrieve a singleton instance of Config.

        Returns:
            Config singleton instance.
        """
        if cls._instance is None:
            cls._instance = load_config()
        return cls._instance

    def require_token(self) -> str:
        """
        Return the bearer token, failing if it is missing or malformed.
        """
        if not self.access_token:
            raise ConfigError(
                f"{ENV_TOKEN} is required. Set it in .env or pass --token.")
        if not validate_token(self.access_token):
            raise ConfigError(f"{ENV_TOKEN} format is invalid.")
        return self.access_token


def _parse_int(value: str, name: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ConfigError(f"Invalid integer for {name}.") from exc
    if parsed <= 0:
        raise ConfigError(f"{name} must be greater than 0.")
    return parsed


def _parse_float(value: str, name: str) -> float:
    try:
        parsed = float(value)
    except ValueError as exc:
        raise ConfigError(f"Invalid number for {name}.") from exc
    if parsed < 0:
        raise ConfigError(f"{name} must not be negative.")
    return parsed


def _parse_block_size(value: str) -> int:
    parsed = _parse_int(value, ENV_BLOCK_SIZE)
    if parsed > MAX_BLOCK_SIZE_CAP:
        warnings.warn(
            f"{ENV_BLOCK_SIZE} capped at {MAX_BLOCK_SIZE_CAP} bytes.",
            RuntimeWarning,
        )
        return MAX_BLOCK_SIZE_CAP
    return parsed


def _env(name: str, default: str) -> str:
    return os.getenv(name, default).strip() or default


def load_settings() -> DeploySettings:
    """
    Build DeploySettings from the environment.

    Returns:
        DeploySettings instance.
    """
    defaults = DeploySettings()
    proxy = os.getenv(ENV_STORAGE_PROXY, "").strip()
    return DeploySettings(
        graph_base_url=_env(ENV_GRAPH_BASE_URL, defaults.graph_base_url).rstrip("/"),
        groups_url=_env(ENV_GROUPS_URL, defaults.groups_url),
        storage_proxy_url=proxy or None,
        block_size=_parse_block_size(_env(ENV_BLOCK_SIZE, str(defaults.block_size))),
        storage_poll_interval=_parse_float(
            _env(ENV_STORAGE_POLL_INTERVAL, str(defaults.storage_poll_interval)),
            ENV_STORAGE_POLL_INTERVAL,
        ),
        storage_poll_attempts=_parse_int(
            _env(ENV_STORAGE_POLL_ATTEMPTS, str(defaults.storage_poll_attempts)),
            ENV_STORAGE_POLL_ATTEMPTS,
        ),
        commit_poll_interval=_parse_float(
            _env(ENV_COMMIT_POLL_INTERVAL, str(defaults.commit_poll_interval)),
            ENV_COMMIT_POLL_INTERVAL,
        ),
        commit_poll_attempts=_parse_int(
            _env(ENV_COMMIT_POLL_ATTEMPTS, str(defaults.commit_poll_attempts)),
            ENV_COMMIT_POLL_ATTEMPTS,
        ),
        finalize_max_attempts=_parse_int(
            _env(ENV_FINALIZE_ATTEMPTS, str(defaults.finalize_max_attempts)),
            ENV_FINALIZE_ATTEMPTS,
        ),
        finalize_backoff=_parse_float(
            _env(ENV_FINALIZE_BACKOFF, str(defaults.finalize_backoff)),
            ENV_FINALIZE_BACKOFF,
        ),
    )


def load_config() -> Config:
    """
    Load and validate configuration from the .env file.

    Returns:
        Config instance.
    """
    env_file = _env_path()
    if env_file.exists():
        load_dotenv(env_file)

    store_path = os.getenv(ENV_CONFIG_STORE, "").strip()
    output_dir = os.getenv(ENV_OUTPUT_DIR, "").strip()
    return Config(
        access_token=os.getenv(ENV_TOKEN, "").strip(),
        settings=load_settings(),
        config_store_path=(
            Path(store_path).expanduser() if store_path
            else _base_dir() / "package_configs.json"
        ),
        output_dir=Path(output_dir).expanduser() if output_dir else _base_dir() / "output",
    )
