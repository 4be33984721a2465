"""Persistence of package configurations behind an injected key-value store."""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from pydantic import ValidationError

from .models import PackageConfig
from .utils import ConfigError, atomic_write, safe_stem

logger = logging.getLogger(__name__)

CONFIGS_KEY = "intuneforge-configs"


class KeyValueStore(Protocol):
    """Minimal string store with explicit load and save."""

    def load(self, key: str) -> Optional[str]:
        ...

    def save(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryStore:
    """In-process store, mostly for tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def load(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def save(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """Store backed by a single JSON object on disk, written atomically."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigError(f"Failed to read config store {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Config store {self.path} is not a JSON object.")
        return data

    def load(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def save(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        atomic_write(self.path, json.dumps(data, indent=2))

    def remove(self, key: str) -> None:
        data = self._read_all()
        if data.pop(key, None) is not None:
            atomic_write(self.path, json.dumps(data, indent=2))


class PackageConfigRepository:
    """List, save, delete, import and export package configurations."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def load_all(self) -> List[PackageConfig]:
        """
        Load every saved configuration.

        Unreadable entries are skipped with a warning.
        """
        raw = self.store.load(CONFIGS_KEY)
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Saved configurations are not valid JSON; ignoring them.")
            return []
        if not isinstance(items, list):
            logger.warning("Saved configurations are not a JSON list; ignoring them.")
            return []
        configs: List[PackageConfig] = []
        for item in items:
            try:
                configs.append(PackageConfig.model_validate(item))
            except ValidationError as exc:
                logger.warning("Skipping invalid saved configuration: %s", exc)
        return configs

    def save_all(self, configs: List[PackageConfig]) -> None:
        payload = [config.model_dump(mode="json", by_alias=True) for config in configs]
        self.store.save(CONFIGS_KEY, json.dumps(payload))

    def get(self, config_id: str) -> Optional[PackageConfig]:
        for config in self.load_all():
            if config.id == config_id:
                return config
        return None

    def save(self, config: PackageConfig) -> PackageConfig:
        """Insert or replace a configuration by id."""
        config = config.touch()
        configs = [item for item in self.load_all() if item.id != config.id]
        configs.append(config)
        self.save_all(configs)
        return config

    def delete(self, config_id: str) -> bool:
        configs = self.load_all()
        remaining = [item for item in configs if item.id != config_id]
        if len(remaining) == len(configs):
            return False
        self.save_all(remaining)
        return True

    def export_config(self, config: PackageConfig, output_dir: Path) -> Path:
        """Write a configuration to <name>-config.json."""
        path = output_dir / f"{safe_stem(config.name) or 'package'}-config.json"
        atomic_write(path, config.to_json())
        return path

    def import_config(self, path: Path) -> PackageConfig:
        """
        Read a configuration file and save it under a new id.

        Raises:
            ConfigError: If the file is unreadable or invalid
        """
        config = load_config_file(path)
        return self.save(config.model_copy(update={"id": str(uuid.uuid4())}))


def load_config_file(path: Path) -> PackageConfig:
    """
    Parse a package configuration JSON file.

    Raises:
        ConfigError: If the file is unreadable or invalid
    """
    try:
        return PackageConfig.model_validate_json(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Cannot read configuration {path}: {exc}") from exc
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration {path}: {exc}") from exc
