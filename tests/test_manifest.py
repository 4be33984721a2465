"""Tests for Detection.xml creation and parsing."""

from __future__ import annotations

import unittest

from intuneforge.common.types import ContainerMetadata, EncryptionInfo
from intuneforge.core.manifest import create_manifest, escape_xml, parse_manifest
from intuneforge.utils import PackageFormatError


def _metadata(name: str = "Contoso & <Friends> \"Tools\" 'Pro'") -> ContainerMetadata:
    return ContainerMetadata(
        name=name,
        unencrypted_content_size=1234,
        file_name="0b6c5e0e-1111-4a3b-9c2d-000000000000.bin",
        setup_file="setup.exe",
        encryption_info=EncryptionInfo(
            encryption_key="a2V5",
            mac_key="bWFj",
            initialization_vector="aXY=",
            mac="bWFjdmFsdWU=",
            file_digest="ZGlnZXN0",
        ),
    )


class TestManifest(unittest.TestCase):
    def test_escape_xml(self) -> None:
        self.assertEqual(
            escape_xml("a & b < c > d \" e ' f"),
            "a &amp; b &lt; c &gt; d &quot; e &apos; f",
        )

    def test_document_layout(self) -> None:
        document = create_manifest(_metadata("Plain"))
        lines = document.split("\n")
        self.assertEqual(lines[0], '<?xml version="1.0" encoding="utf-8"?>')
        self.assertIn('ToolVersion="1.8.5.0"', lines[1])
        self.assertEqual(lines[2], "  <Name>Plain</Name>")
        self.assertIn("    <ProfileIdentifier>ProfileVersion1</ProfileIdentifier>", lines)
        self.assertIn("    <FileDigestAlgorithm>SHA256</FileDigestAlgorithm>", lines)
        self.assertEqual(lines[-1], "</ApplicationInfo>")

    def test_special_characters_survive_parsing(self) -> None:
        metadata = _metadata()
        document = create_manifest(metadata)
        self.assertIn("Contoso &amp; &lt;Friends&gt; &quot;Tools&quot; &apos;Pro&apos;", document)
        self.assertEqual(parse_manifest(document), metadata)

    def test_missing_element(self) -> None:
        document = create_manifest(_metadata("Plain")).replace("  <SetupFile>setup.exe</SetupFile>\n", "")
        with self.assertRaises(PackageFormatError):
            parse_manifest(document)

    def test_malformed_document(self) -> None:
        with self.assertRaises(PackageFormatError):
            parse_manifest("<ApplicationInfo>")


if __name__ == "__main__":
    unittest.main()
