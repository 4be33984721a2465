"""Package configuration records.

Detection rules and assignment targets are closed sets of tagged variants:
an unknown ``type`` or ``kind`` is rejected when the record is constructed.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .utils import ConfigError


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


ComparisonOperator = Literal[
    "equals", "notEquals", "greaterThan", "lessThan", "greaterThanOrEqual", "lessThanOrEqual"
]


class RegistryDetectionRule(_Record):
    """Detect by registry key or value."""

    type: Literal["registry"] = "registry"
    key_path: str
    value_name: str = ""
    operator: Literal["exists", "notExists", "equals", "notEquals", "greaterThan", "lessThan"]
    expected_value: Optional[str] = None
    check_32bit_on_64system: bool = Field(False, alias="check32BitOn64System")


class FileDetectionRule(_Record):
    """Detect by file or folder."""

    type: Literal["file"] = "file"
    path: str
    file_or_folder_name: str
    detection_type: Literal["exists", "notExists", "version", "size", "dateModified"]
    operator: Optional[Literal["equals", "notEquals", "greaterThan", "lessThan"]] = None
    expected_value: Optional[str] = None
    check_32bit_on_64system: bool = Field(False, alias="check32BitOn64System")


class ScriptDetectionRule(_Record):
    """Detect with a PowerShell script."""

    type: Literal["script"] = "script"
    script_content: str
    enforce_signature_check: bool = False
    run_as_32bit: bool = Field(False, alias="runAs32Bit")


class MsiDetectionRule(_Record):
    """Detect by MSI product code."""

    type: Literal["msi"] = "msi"
    product_code: str
    product_version: Optional[str] = None
    product_version_operator: Optional[ComparisonOperator] = None


DetectionRule = Annotated[
    Union[RegistryDetectionRule, FileDetectionRule, ScriptDetectionRule, MsiDetectionRule],
    Field(discriminator="type"),
]


class AllUsersTarget(_Record):
    kind: Literal["all-users"] = "all-users"


class AllDevicesTarget(_Record):
    kind: Literal["all-devices"] = "all-devices"


class GroupTarget(_Record):
    kind: Literal["group"] = "group"
    group_id: str = Field(min_length=1)
    group_name: Optional[str] = None


AssignmentTarget = Annotated[
    Union[AllUsersTarget, AllDevicesTarget, GroupTarget],
    Field(discriminator="kind"),
]


class PackageAssignment(_Record):
    """Audience, intent and notification policy for one assignment."""

    target: AssignmentTarget
    intent: Literal["required", "available", "uninstall"] = "required"
    notifications: Literal["showAll", "showReboot", "hideAll"] = "showAll"

    @model_validator(mode="before")
    @classmethod
    def _accept_flat_target(cls, data: Any) -> Any:
        # Saved configurations use {"target": "group", "groupId": ..., "groupName": ...}
        if isinstance(data, dict) and isinstance(data.get("target"), str):
            data = dict(data)
            target = {"kind": data.pop("target")}
            for key in ("groupId", "group_id", "groupName", "group_name"):
                if key in data:
                    target[key] = data.pop(key)
            data["target"] = target
        return data


class PackageConfig(_Record):
    """Everything needed to build and deploy one Win32 app."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    display_name: str = ""
    publisher: str = ""
    version: str = "1.0.0"
    description: str = ""
    package_type: Literal["EXE", "MSI"] = "EXE"
    source_type: Literal["local", "url"] = "local"
    source_url: Optional[str] = None
    setup_file_name: str = ""
    install_command_line: str = ""
    uninstall_command_line: str = ""
    install_behavior: Literal["system", "user"] = "system"
    restart_behavior: Literal["suppress", "allow", "force"] = "suppress"
    detection_rules: List[DetectionRule] = Field(default_factory=list)
    assignments: List[PackageAssignment] = Field(default_factory=list)
    created_at: str = Field(default_factory=_now)
    updated_at: str = Field(default_factory=_now)

    def default_install_command(self) -> str:
        """Suggested silent install command for the package type."""
        file_name = self.setup_file_name or "installer.exe"
        if self.package_type == "MSI":
            return f'msiexec /i "{file_name}" /qn /norestart'
        return f'"{file_name}" /S /ALLUSERS'

    def default_uninstall_command(self) -> str:
        """Suggested silent uninstall command for the package type."""
        file_name = self.setup_file_name or "installer.exe"
        if self.package_type == "MSI":
            return 'msiexec /x "{ProductCode}" /qn /norestart'
        return f'"{file_name}" /S /uninstall'

    def validation_errors(self) -> List[str]:
        """List the problems that block a build."""
        errors: List[str] = []
        if not self.display_name:
            errors.append("Display name is required")
        if not self.publisher:
            errors.append("Publisher is required")
        if not self.version:
            errors.append("Version is required")
        if not self.setup_file_name:
            errors.append("Setup file name is required")
        if not self.install_command_line:
            errors.append("Install command is required")
        if not self.uninstall_command_line:
            errors.append("Uninstall command is required")
        if not self.detection_rules:
            errors.append("At least one detection rule is required")
        return errors

    def to_json(self) -> str:
        """Serialize with the camelCase keys used by saved configurations."""
        return self.model_dump_json(by_alias=True, indent=2)

    def with_setup_file(self, setup_file: str) -> "PackageConfig":
        """
        Bind the configuration to the setup file stored in a package.

        An empty setup_file_name is filled in; a different one is rejected so
        the deployed setupFilePath always names the file inside the container.

        Raises:
            ConfigError: If setup_file_name names another file
        """
        if not self.setup_file_name:
            return self.model_copy(update={"setup_file_name": setup_file})
        if self.setup_file_name != setup_file:
            raise ConfigError(
                f"Configured setup file {self.setup_file_name} does not match "
                f"the package setup file {setup_file}."
            )
        return self

    def touch(self) -> "PackageConfig":
        """Copy with a fresh updated_at timestamp."""
        return self.model_copy(update={"updated_at": _now()})
