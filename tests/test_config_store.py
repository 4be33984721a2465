"""Tests for saved package configurations."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from intuneforge.config_store import (
    CONFIGS_KEY,
    JsonFileStore,
    MemoryStore,
    PackageConfigRepository,
    load_config_file,
)
from intuneforge.models import PackageConfig
from intuneforge.utils import ConfigError


class TestConfigStore(unittest.TestCase):
    def setUp(self) -> None:
        self.repository = PackageConfigRepository(MemoryStore())

    def test_save_get_delete(self) -> None:
        config = self.repository.save(PackageConfig(name="7zip", display_name="7-Zip"))
        self.assertEqual(self.repository.get(config.id).display_name, "7-Zip")
        self.assertTrue(self.repository.delete(config.id))
        self.assertIsNone(self.repository.get(config.id))
        self.assertFalse(self.repository.delete(config.id))

    def test_save_replaces_by_id(self) -> None:
        config = self.repository.save(PackageConfig(name="7zip", version="1.0.0"))
        self.repository.save(config.model_copy(update={"version": "2.0.0"}))
        configs = self.repository.load_all()
        self.assertEqual(len(configs), 1)
        self.assertEqual(configs[0].version, "2.0.0")

    def test_invalid_entries_are_skipped(self) -> None:
        valid = PackageConfig(name="ok").model_dump(mode="json", by_alias=True)
        store = MemoryStore({CONFIGS_KEY: json.dumps([valid, {"packageType": "DMG"}])})
        configs = PackageConfigRepository(store).load_all()
        self.assertEqual([config.name for config in configs], ["ok"])

    def test_corrupt_store_loads_empty(self) -> None:
        store = MemoryStore({CONFIGS_KEY: "{not json"})
        self.assertEqual(PackageConfigRepository(store).load_all(), [])

    def test_export_and_import(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            original = PackageConfig(name="7zip", display_name="7-Zip")
            path = self.repository.export_config(original, Path(temp_dir))
            self.assertEqual(path.name, "7zip-config.json")
            imported = self.repository.import_config(path)
        self.assertNotEqual(imported.id, original.id)
        self.assertEqual(imported.display_name, "7-Zip")
        self.assertEqual(len(self.repository.load_all()), 1)

    def test_stored_scalar_is_ignored(self) -> None:
        repository = PackageConfigRepository(MemoryStore({CONFIGS_KEY: "5"}))
        with self.assertLogs("intuneforge", level="WARNING"):
            self.assertEqual(repository.load_all(), [])
        saved = repository.save(PackageConfig(name="a"))
        self.assertEqual([config.id for config in repository.load_all()], [saved.id])

    def test_export_keeps_name_inside_output_dir(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            output_dir = Path(temp_dir)
            path = self.repository.export_config(PackageConfig(name="../evil/x"), output_dir)
            self.assertEqual(path.parent, output_dir)
            self.assertEqual(path.name, "___evil_x-config.json")
            self.assertTrue(path.is_file())

    def test_json_file_store_persists(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "configs.json"
            config = PackageConfigRepository(JsonFileStore(path)).save(PackageConfig(name="a"))
            reloaded = PackageConfigRepository(JsonFileStore(path)).get(config.id)
            self.assertEqual(reloaded.name, "a")

    def test_load_config_file_errors(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            missing = Path(temp_dir) / "missing.json"
            with self.assertRaises(ConfigError):
                load_config_file(missing)
            invalid = Path(temp_dir) / "invalid.json"
            invalid.write_text('{"packageType": "DMG"}', encoding="utf-8")
            with self.assertRaises(ConfigError):
                load_config_file(invalid)


if __name__ == "__main__":
    unittest.main()
