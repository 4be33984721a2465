"""Translate detection rules into the Graph win32LobApp rule vocabulary."""

from __future__ import annotations

import base64
from typing import Any, Dict, Iterable, List, Mapping, Union

from pydantic import TypeAdapter, ValidationError

from .models import (
    DetectionRule,
    FileDetectionRule,
    MsiDetectionRule,
    RegistryDetectionRule,
    ScriptDetectionRule,
)
from .utils import DetectionRuleError

OPERATOR_NAMES: Dict[str, str] = {
    "equals": "equal",
    "notEquals": "notEqual",
    "greaterThan": "greaterThan",
    "greaterThanOrEqual": "greaterThanOrEqual",
    "lessThan": "lessThan",
    "lessThanOrEqual": "lessThanOrEqual",
}

FILE_OPERATION_TYPES: Dict[str, str] = {
    "exists": "exists",
    "notExists": "doesNotExist",
    "version": "version",
    "size": "sizeInMB",
    "dateModified": "modifiedDate",
}

_EXISTENCE_CHECKS = ("exists", "notExists")
_RULE_ADAPTER: TypeAdapter = TypeAdapter(DetectionRule)


def map_operator(operator: str) -> str:
    """Translate a comparison operator name."""
    try:
        return OPERATOR_NAMES[operator]
    except KeyError:
        raise DetectionRuleError(f"Unsupported comparison operator: {operator}") from None


def map_file_operation_type(detection_type: str) -> str:
    """Translate a file detection type."""
    try:
        return FILE_OPERATION_TYPES[detection_type]
    except KeyError:
        raise DetectionRuleError(f"Unsupported file detection type: {detection_type}") from None


def _registry_rule(rule: RegistryDetectionRule) -> Dict[str, Any]:
    existence = rule.operator in _EXISTENCE_CHECKS
    if rule.operator == "notExists":
        operation_type = "doesNotExist"
    elif existence:
        operation_type = "exists"
    else:
        operation_type = "string"
    return {
        "@odata.type": "microsoft.graph.win32LobAppRegistryRule",
        "ruleType": "detection",
        "keyPath": rule.key_path,
        "valueName": rule.value_name,
        "check32BitOn64System": rule.check_32bit_on_64system,
        "comparisonValue": None if existence else (rule.expected_value or None),
        "operationType": operation_type,
        "operator": "notConfigured" if existence else map_operator(rule.operator),
    }


def _file_rule(rule: FileDetectionRule) -> Dict[str, Any]:
    existence = rule.detection_type in _EXISTENCE_CHECKS
    return {
        "@odata.type": "microsoft.graph.win32LobAppFileSystemRule",
        "ruleType": "detection",
        "path": rule.path,
        "fileOrFolderName": rule.file_or_folder_name,
        "check32BitOn64System": rule.check_32bit_on_64system,
        "operationType": map_file_operation_type(rule.detection_type),
        "operator": "notConfigured" if existence else map_operator(rule.operator or "equals"),
        "comparisonValue": None if existence else (rule.expected_value or None),
    }


def _script_rule(rule: ScriptDetectionRule) -> Dict[str, Any]:
    return {
        "@odata.type": "microsoft.graph.win32LobAppPowerShellScriptRule",
        "ruleType": "detection",
        "scriptContent": base64.b64encode(rule.script_content.encode("utf-8")).decode("ascii"),
        "enforceSignatureCheck": rule.enforce_signature_check,
        "runAs32Bit": rule.run_as_32bit,
    }


def _msi_rule(rule: MsiDetectionRule) -> Dict[str, Any]:
    return {
        "@odata.type": "microsoft.graph.win32LobAppProductCodeRule",
        "ruleType": "detection",
        "productCode": rule.product_code,
        "productVersion": rule.product_version or None,
        "productVersionOperator": map_operator(
            rule.product_version_operator or "greaterThanOrEqual"
        ),
    }


def map_detection_rule(rule: Union[DetectionRule, Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Translate one rule.

    Args:
        rule: A rule model or its camelCase dictionary form

    Returns:
        Graph rule dictionary

    Raises:
        DetectionRuleError: If the rule kind is unknown or the rule is invalid
    """
    if isinstance(rule, Mapping):
        try:
            rule = _RULE_ADAPTER.validate_python(dict(rule))
        except ValidationError as exc:
            raise DetectionRuleError(f"Invalid detection rule: {exc}") from exc

    if isinstance(rule, RegistryDetectionRule):
        return _registry_rule(rule)
    if isinstance(rule, FileDetectionRule):
        return _file_rule(rule)
    if isinstance(rule, ScriptDetectionRule):
        return _script_rule(rule)
    if isinstance(rule, MsiDetectionRule):
        return _msi_rule(rule)
    raise DetectionRuleError(f"Unsupported detection rule type: {type(rule).__name__}")


def map_detection_rules(rules: Iterable[Union[DetectionRule, Mapping[str, Any]]]) -> List[Dict[str, Any]]:
    """Translate every rule, in order. Any unmappable rule aborts the mapping."""
    return [map_detection_rule(rule) for rule in rules]
