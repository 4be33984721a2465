"""Detection.xml descriptor creation and parsing logic."""

import xml.etree.ElementTree as ElementTree
from typing import Union
from xml.sax.saxutils import escape

from ..common.constants import TOOL_VERSION
from ..common.types import ContainerMetadata, EncryptionInfo
from ..utils import PackageFormatError

_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def escape_xml(value: str) -> str:
    """Escape &, <, >, double and single quotes."""
    return escape(value, _XML_ENTITIES)


def create_manifest(metadata: ContainerMetadata) -> str:
    """
    Serialize ContainerMetadata into the Detection.xml document.

    Args:
        metadata: Container metadata

    Returns:
        XML document text
    """
    info = metadata.encryption_info
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        '<ApplicationInfo xmlns:xsd="http://www.w3.org/2001/XMLSchema" '
        'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
        f'ToolVersion="{TOOL_VERSION}">\n'
        f"  <Name>{escape_xml(metadata.name)}</Name>\n"
        f"  <UnencryptedContentSize>{metadata.unencrypted_content_size}</UnencryptedContentSize>\n"
        f"  <FileName>{escape_xml(metadata.file_name)}</FileName>\n"
        f"  <SetupFile>{escape_xml(metadata.setup_file)}</SetupFile>\n"
        "  <EncryptionInfo>\n"
        f"    <EncryptionKey>{escape_xml(info.encryption_key)}</EncryptionKey>\n"
        f"    <MacKey>{escape_xml(info.mac_key)}</MacKey>\n"
        f"    <InitializationVector>{escape_xml(info.initialization_vector)}</InitializationVector>\n"
        f"    <Mac>{escape_xml(info.mac)}</Mac>\n"
        f"    <ProfileIdentifier>{escape_xml(info.profile_identifier)}</ProfileIdentifier>\n"
        f"    <FileDigest>{escape_xml(info.file_digest)}</FileDigest>\n"
        f"    <FileDigestAlgorithm>{escape_xml(info.file_digest_algorithm)}</FileDigestAlgorithm>\n"
        "  </EncryptionInfo>\n"
        "</ApplicationInfo>"
    )


def _text(parent: ElementTree.Element, tag: str) -> str:
    node = parent.find(tag)
    if node is None:
        raise PackageFormatError(f"Detection.xml is missing <{tag}>.")
    return node.text or ""


def parse_manifest(document: Union[str, bytes]) -> ContainerMetadata:
    """
    Parse a Detection.xml document.

    Args:
        document: XML text or bytes

    Returns:
        ContainerMetadata

    Raises:
        PackageFormatError: If the document is malformed or incomplete
    """
    try:
        root = ElementTree.fromstring(document)
    except ElementTree.ParseError as exc:
        raise PackageFormatError(f"Failed to parse Detection.xml: {exc}") from exc

    if root.tag != "ApplicationInfo":
        raise PackageFormatError(f"Unexpected root element <{root.tag}>.")
    encryption = root.find("EncryptionInfo")
    if encryption is None:
        raise PackageFormatError("Detection.xml is missing <EncryptionInfo>.")

    try:
        size = int(_text(root, "UnencryptedContentSize"))
    except ValueError as exc:
        raise PackageFormatError("UnencryptedContentSize is not an integer.") from exc

    return ContainerMetadata(
        name=_text(root, "Name"),
        unencrypted_content_size=size,
        file_name=_text(root, "FileName"),
        setup_file=_text(root, "SetupFile"),
        encryption_info=EncryptionInfo(
            encryption_key=_text(encryption, "EncryptionKey"),
            mac_key=_text(encryption, "MacKey"),
            initialization_vector=_text(encryption, "InitializationVector"),
            mac=_text(encryption, "Mac"),
            profile_identifier=_text(encryption, "ProfileIdentifier"),
            file_digest=_text(encryption, "FileDigest"),
            file_digest_algorithm=_text(encryption, "FileDigestAlgorithm"),
        ),
    )
