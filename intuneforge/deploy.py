"""Deployment workflow: push a built package to Intune through Microsoft Graph."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .common.constants import (
    APPLICABLE_ARCHITECTURES,
    DEFAULT_RETURN_CODES,
    MAC_SIZE,
    IV_SIZE,
    MINIMUM_WINDOWS_RELEASE,
    WIN32_APP_TYPE,
)
from .common.types import ContainerMetadata, PackageResult
from .config import DeploySettings
from .core.crypto import b64
from .detection_rules import map_detection_rules
from .graph_client import GraphClient
from .models import AllDevicesTarget, AllUsersTarget, GroupTarget, PackageAssignment, PackageConfig
from .storage import upload_blocks
from .utils import IntegrityError, IntuneForgeError, PayloadUnavailableError


logger = logging.getLogger(__name__)


class DeploymentStage(str, Enum):
    CREATING_APP = "creating_app"
    CREATING_CONTENT = "creating_content"
    CREATING_FILE = "creating_file"
    GETTING_STORAGE_URI = "getting_storage_uri"
    UPLOADING = "uploading"
    COMMITTING = "committing"
    WAITING_FOR_COMMIT = "waiting_for_commit"
    FINALIZING = "finalizing"
    ASSIGNING = "assigning"
    COMPLETE = "complete"
    ERROR = "error"


STAGE_PROGRESS: Dict[DeploymentStage, float] = {
    DeploymentStage.CREATING_APP: 0,
    DeploymentStage.CREATING_CONTENT: 10,
    DeploymentStage.CREATING_FILE: 20,
    DeploymentStage.GETTING_STORAGE_URI: 30,
    DeploymentStage.UPLOADING: 40,
    DeploymentStage.COMMITTING: 80,
    DeploymentStage.WAITING_FOR_COMMIT: 85,
    DeploymentStage.FINALIZING: 90,
    DeploymentStage.ASSIGNING: 95,
    DeploymentStage.COMPLETE: 100,
    DeploymentStage.ERROR: 0,
}

DeployProgressCallback = Callable[[str, float], None]

ASSIGNMENT_TARGET_TYPES = {
    AllUsersTarget: "#microsoft.graph.allLicensedUsersAssignmentTarget",
    AllDevicesTarget: "#microsoft.graph.allDevicesAssignmentTarget",
    GroupTarget: "#microsoft.graph.groupAssignmentTarget",
}


@dataclass
class DeployRequest:
    """Inputs of one deployment attempt.

    ``intunewin`` is the downloadable container and is never uploaded; storage
    receives ``encrypted_payload`` only.
    """

    config: PackageConfig
    metadata: ContainerMetadata
    encrypted_payload: Optional[bytes]
    intunewin: Optional[bytes] = None

    @classmethod
    def from_result(cls, config: PackageConfig, result: PackageResult) -> "DeployRequest":
        return cls(
            config=config,
            metadata=result.metadata,
            encrypted_payload=result.encrypted_payload,
            intunewin=result.intunewin,
        )


@dataclass
class DeploymentSession:
    """Ephemeral state of one deployment attempt."""

    stage: Optional[DeploymentStage] = None
    app_id: Optional[str] = None
    content_version_id: Optional[str] = None
    file_id: Optional[str] = None
    storage_uri: Optional[str] = field(default=None, repr=False)
    block_ids: List[str] = field(default_factory=list)
    assignments_created: int = 0
    history: List[DeploymentStage] = field(default_factory=list)


def build_app_payload(config: PackageConfig) -> Dict[str, Any]:
    """
    Build the win32LobApp creation body.

    Raises:
        DetectionRuleError: If a detection rule cannot be mapped.
    """
    return {
        "@odata.type": WIN32_APP_TYPE,
        "displayName": config.display_name,
        "description": config.description or config.display_name,
        "publisher": config.publisher,
        "fileName": f"{config.setup_file_name}.intunewin",
        "setupFilePath": config.setup_file_name,
        "installCommandLine": config.install_command_line,
        "uninstallCommandLine": config.uninstall_command_line,
        "installExperience": {
            "@odata.type": "microsoft.graph.win32LobAppInstallExperience",
            "runAsAccount": config.install_behavior,
            "deviceRestartBehavior": config.restart_behavior,
        },
        "rules": map_detection_rules(config.detection_rules),
        "returnCodes": [dict(code) for code in DEFAULT_RETURN_CODES],
        "applicableArchitectures": APPLICABLE_ARCHITECTURES,
        "minimumSupportedWindowsRelease": MINIMUM_WINDOWS_RELEASE,
    }


def build_assignment_payload(assignment: PackageAssignment) -> Dict[str, Any]:
    """Build the mobileAppAssignment body for one assignment."""
    target: Dict[str, Any] = {
        "@odata.type": ASSIGNMENT_TARGET_TYPES[type(assignment.target)],
    }
    if isinstance(assignment.target, GroupTarget):
        target["groupId"] = assignment.target.group_id
    return {
        "target": target,
        "intent": assignment.intent,
        "settings": {
            "@odata.type": "#microsoft.graph.win32LobAppAssignmentSettings",
            "notifications": assignment.notifications,
        },
    }


def check_payload(request: DeployRequest) -> bytes:
    """
    Make sure the encrypted payload is present and matches the metadata.

    Raises:
        PayloadUnavailableError: If the payload is missing or truncated.
        IntegrityError: If the payload MAC differs from the metadata MAC.
    """
    payload = request.encrypted_payload
    if not payload:
        raise PayloadUnavailableError(
            "Encrypted payload is unavailable; the container is never uploaded in its place."
        )
    if len(payload) < MAC_SIZE + IV_SIZE:
        raise PayloadUnavailableError("Encrypted payload is truncated.")
    if b64(payload[:MAC_SIZE]) != request.metadata.encryption_info.mac:
        raise IntegrityError("Encrypted payload does not belong to the given metadata.")
    return payload


class IntuneDeployer:
    """Runs the linear create/upload/commit/finalize/assign sequence."""

    def __init__(
        self,
        graph: GraphClient,
        settings: Optional[DeploySettings] = None,
        progress_callback: Optional[DeployProgressCallback] = None,
    ) -> None:
        self.graph = graph
        self.settings = settings or graph.settings
        self.progress_callback = progress_callback
        self.session = DeploymentSession()

    def _report(self, stage: DeploymentStage, percent: Optional[float] = None) -> None:
        if self.progress_callback:
            self.progress_callback(
                stage.value, STAGE_PROGRESS[stage] if percent is None else percent
            )

    def _enter(self, stage: DeploymentStage) -> None:
        self.session.stage = stage
        self.session.history.append(stage)
        logger.info("Deployment stage: %s", stage.value)
        self._report(stage)

    async def deploy(self, request: DeployRequest) -> str:
        """
        Deploy a built package.

        Args:
            request: Configuration, metadata and encrypted payload.

        Returns:
            The Graph id of the created app.

        Raises:
            IntuneForgeError: Any failure; ``stage`` names the failing stage.
        """
        self.session = DeploymentSession()
        session = self.session
        try:
            payload = check_payload(request)
            await self._run(request, payload)
        except IntuneForgeError as exc:
            if exc.stage is None and session.stage is not None:
                exc.stage = session.stage.value
            self._fail(exc)
            raise
        except Exception as exc:
            failed = session.stage.value if session.stage else None
            self._fail(exc)
            raise IntuneForgeError(
                f"Unexpected failure during {failed}: {exc}", stage=failed
            ) from exc
        return session.app_id

    def _fail(self, exc: BaseException) -> None:
        failed = self.session.stage.value if self.session.stage else "start"
        logger.error("Deployment failed during %s: %s", failed, exc)
        self._enter(DeploymentStage.ERROR)

    async def _run(self, request: DeployRequest, payload: bytes) -> None:
        session = self.session
        config = request.config
        metadata = request.metadata

        self._enter(DeploymentStage.CREATING_APP)
        app = await self.graph.create_win32_app(build_app_payload(config))
        session.app_id = app["id"]

        self._enter(DeploymentStage.CREATING_CONTENT)
        content_version = await self.graph.create_content_version(session.app_id)
        session.content_version_id = content_version["id"]

        self._enter(DeploymentStage.CREATING_FILE)
        content_file = await self.graph.create_content_file(
            session.app_id,
            session.content_version_id,
            f"{config.setup_file_name}.intunewin",
            metadata.unencrypted_content_size,
            len(payload),
        )
        session.file_id = content_file["id"]

        self._enter(DeploymentStage.GETTING_STORAGE_URI)
        session.storage_uri = await self.graph.wait_for_storage_uri(
            session.app_id, session.content_version_id, session.file_id
        )

        self._enter(DeploymentStage.UPLOADING)
        logger.info("Uploading encrypted payload (%s bytes)", len(payload))
        session.block_ids = await upload_blocks(
            self.graph.session,
            session.storage_uri,
            payload,
            block_size=self.settings.block_size,
            proxy_url=self.settings.storage_proxy_url,
            progress_callback=lambda percent: self._report(
                DeploymentStage.UPLOADING, 40 + percent * 0.4
            ),
        )

        self._enter(DeploymentStage.COMMITTING)
        await self.graph.commit_file(
            session.app_id,
            session.content_version_id,
            session.file_id,
            metadata.encryption_info,
        )

        self._enter(DeploymentStage.WAITING_FOR_COMMIT)
        await self.graph.wait_for_commit(
            session.app_id, session.content_version_id, session.file_id
        )

        self._enter(DeploymentStage.FINALIZING)
        await self.graph.update_app_content_version(
            session.app_id, session.content_version_id
        )

        if config.assignments:
            # Best-effort: assignments already created stay in place if a later one fails.
            self._enter(DeploymentStage.ASSIGNING)
            for assignment in config.assignments:
                await self.graph.create_app_assignment(
                    session.app_id, build_assignment_payload(assignment)
                )
                session.assignments_created += 1

        self._enter(DeploymentStage.COMPLETE)


async def deploy_to_intune(
    access_token: str,
    request: DeployRequest,
    settings: Optional[DeploySettings] = None,
    progress_callback: Optional[DeployProgressCallback] = None,
) -> str:
    """
    Open a Graph session and deploy one package.

    Returns:
        The Graph id of the created app.
    """
    async with GraphClient(access_token, settings) as graph:
        deployer = IntuneDeployer(graph, settings, progress_callback)
        return await deployer.deploy(request)
