"""Tests for building, reading and verifying .intunewin containers."""

from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import io
import tempfile
import unittest
import zipfile
from pathlib import Path
from unittest import mock

from intuneforge.common.types import PackageInfo
from intuneforge.core.compression import decompress_data
from intuneforge.core.crypto import decrypt_data
from intuneforge.core.manifest import parse_manifest
from intuneforge.packager import (
    build_from_bytes,
    build_package,
    create_package,
    read_package,
    verify_package,
    write_package,
)
from intuneforge.utils import CryptoError, IntegrityError, PackageFormatError, SourceReadError


def _info(path: Path = Path("setup.exe")) -> PackageInfo:
    return PackageInfo(
        name="7-Zip",
        version="23.01",
        publisher="Igor Pavlov",
        setup_file="setup.exe",
        source_path=path,
    )


class TestPackager(unittest.TestCase):
    def setUp(self) -> None:
        self.data = b"MZ" + bytes(range(256)) * 400
        self.result = build_from_bytes(_info(), self.data)

    def test_unencrypted_size_is_inner_zip_length(self) -> None:
        metadata = self.result.metadata
        info = metadata.encryption_info
        ciphertext = self.result.encrypted_payload[48:]
        inner_zip = decrypt_data(
            ciphertext,
            base64.b64decode(info.encryption_key),
            base64.b64decode(info.initialization_vector),
        )
        self.assertEqual(metadata.unencrypted_content_size, len(inner_zip))
        self.assertEqual(decompress_data(inner_zip), ("setup.exe", self.data))

    def test_payload_layout_and_mac(self) -> None:
        payload = self.result.encrypted_payload
        info = self.result.metadata.encryption_info
        self.assertEqual((len(payload) - 48) % 16, 0)
        self.assertEqual(payload[32:48], base64.b64decode(info.initialization_vector))
        expected = hmac.new(base64.b64decode(info.mac_key), payload[32:], hashlib.sha256).digest()
        self.assertEqual(payload[:32], expected)
        self.assertEqual(base64.b64encode(payload[:32]).decode("ascii"), info.mac)

    def test_digest_matches_decrypted_content(self) -> None:
        inner_zip = verify_package(self.result.metadata, self.result.encrypted_payload)
        digest = base64.b64encode(hashlib.sha256(inner_zip).digest()).decode("ascii")
        self.assertEqual(digest, self.result.metadata.encryption_info.file_digest)

    def test_builds_never_share_material(self) -> None:
        other = build_from_bytes(_info(), self.data)
        first = self.result.metadata.encryption_info
        second = other.metadata.encryption_info
        self.assertNotEqual(first.encryption_key, second.encryption_key)
        self.assertNotEqual(first.mac_key, second.mac_key)
        self.assertNotEqual(first.initialization_vector, second.initialization_vector)
        self.assertNotEqual(self.result.metadata.file_name, other.metadata.file_name)
        self.assertNotEqual(self.result.encrypted_payload, other.encrypted_payload)

    def test_container_layout(self) -> None:
        with zipfile.ZipFile(io.BytesIO(self.result.intunewin)) as archive:
            names = archive.namelist()
            payload_name = f"IntuneWinPackage/Contents/{self.result.metadata.file_name}"
            self.assertIn("IntuneWinPackage/Metadata/Detection.xml", names)
            self.assertIn(payload_name, names)
            self.assertEqual(archive.read(payload_name), self.result.encrypted_payload)
            descriptor = archive.read("IntuneWinPackage/Metadata/Detection.xml")
        self.assertIn(b'ToolVersion="1.8.5.0"', descriptor)
        self.assertEqual(parse_manifest(descriptor), self.result.metadata)
        self.assertTrue(self.result.metadata.file_name.endswith(".bin"))

    def test_zero_byte_source(self) -> None:
        result = build_from_bytes(_info(), b"")
        self.assertGreater(result.metadata.unencrypted_content_size, 0)
        self.assertEqual(len(result.encrypted_payload) % 16, 0)
        inner_zip = verify_package(result.metadata, result.encrypted_payload)
        self.assertEqual(decompress_data(inner_zip), ("setup.exe", b""))

    def test_progress_messages(self) -> None:
        events = []
        with tempfile.TemporaryDirectory() as temp_dir:
            source = Path(temp_dir) / "setup.exe"
            source.write_bytes(self.data)
            build_package(_info(source), lambda message, percent: events.append((message, percent)))
        self.assertEqual(events[0], ("Reading file...", 0))
        self.assertEqual(events[-1], ("Complete!", 100))
        percents = [percent for _, percent in events]
        self.assertEqual(percents, sorted(percents))

    def test_unreadable_source(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            with self.assertRaises(SourceReadError):
                build_package(_info(Path(temp_dir) / "missing.exe"))

    def test_create_package_async(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            source = Path(temp_dir) / "setup.exe"
            source.write_bytes(self.data)
            result = asyncio.run(create_package(_info(source)))
        inner_zip = verify_package(result.metadata, result.encrypted_payload)
        self.assertEqual(decompress_data(inner_zip)[1], self.data)

    def test_write_and_read_package(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = write_package(self.result, Path(temp_dir), "7-Zip", "23.01")
            self.assertEqual(path.name, "7_Zip_23.01.intunewin")
            metadata, payload = read_package(path)
        self.assertEqual(metadata, self.result.metadata)
        self.assertEqual(payload, self.result.encrypted_payload)

    def test_verify_detects_tampering(self) -> None:
        payload = bytearray(self.result.encrypted_payload)
        payload[60] ^= 0x01
        with self.assertRaises(IntegrityError):
            verify_package(self.result.metadata, bytes(payload))

    def test_verify_rejects_foreign_payload(self) -> None:
        other = build_from_bytes(_info(), self.data)
        with self.assertRaises(IntegrityError):
            verify_package(self.result.metadata, other.encrypted_payload)

    def test_read_rejects_non_zip(self) -> None:
        with self.assertRaises(PackageFormatError):
            read_package(b"not a zip file")

    def test_random_source_failure_is_not_retried(self) -> None:
        with mock.patch(
            "intuneforge.core.crypto.secrets.token_bytes",
            side_effect=OSError("no entropy"),
        ) as token_bytes:
            with self.assertRaises(CryptoError):
                build_from_bytes(_info(), self.data)
        token_bytes.assert_called_once()


if __name__ == "__main__":
    unittest.main()
