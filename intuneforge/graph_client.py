"""Microsoft Graph client for Intune Win32 app operations."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from .common.constants import (
    MOBILE_APPS_PATH,
    UPLOAD_STATE_COMMIT_FAILED,
    UPLOAD_STATE_COMMIT_SUCCESS,
    WIN32_APP_TYPE,
)
from .common.types import EncryptionInfo
from .config import DeploySettings
from .utils import RemoteRequestError, RemoteStateError, RemoteTimeoutError


logger = logging.getLogger(__name__)


class GraphClient:
    """Thin async wrapper around the deviceAppManagement/mobileApps endpoints."""

    def __init__(
        self,
        access_token: str,
        settings: Optional[DeploySettings] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.settings = settings or DeploySettings()
        self._access_token = access_token
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "GraphClient":
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("GraphClient used outside of 'async with'.")
        return self._session

    def __repr__(self) -> str:
        return f"GraphClient(base_url={self.settings.graph_base_url!r})"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }

    def _apps_url(self, *parts: str) -> str:
        return "/".join([f"{self.settings.graph_base_url}{MOBILE_APPS_PATH}", *parts])

    def _files_url(self, app_id: str, content_version_id: str, *parts: str) -> str:
        return self._apps_url(
            app_id,
            "microsoft.graph.win32LobApp",
            "contentVersions",
            content_version_id,
            "files",
            *parts,
        )

    async def request(
        self,
        method: str,
        url: str,
        action: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Issue one JSON request.

        Args:
            method: HTTP method.
            url: Absolute URL.
            action: Human description used in error messages.
            payload: Optional JSON body.
            params: Optional query parameters.

        Returns:
            Decoded JSON body, or an empty dict for empty bodies.

        Raises:
            RemoteRequestError: On transport failure or non-success status.
        """
        try:
            async with self.session.request(
                method, url, json=payload, params=params, headers=self._headers()
            ) as resp:
                body = await resp.text()
                if resp.status >= 400:
                    raise RemoteRequestError(
                        f"Failed to {action} (Status {resp.status}): {body}",
                        status=resp.status,
                        body=body,
                    )
        except aiohttp.ClientError as exc:
            raise RemoteRequestError(f"Failed to {action}: {exc}") from exc
        if not body:
            return {}
        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise RemoteRequestError(
                f"Failed to {action}: response is not JSON", status=resp.status, body=body
            ) from exc

    async def create_win32_app(self, app: Dict[str, Any]) -> Dict[str, Any]:
        """Create the Win32 app record."""
        return await self.request("POST", self._apps_url(), "create Win32 app", app)

    async def create_content_version(self, app_id: str) -> Dict[str, Any]:
        """Create a content version slot for the app."""
        url = self._apps_url(app_id, "microsoft.graph.win32LobApp", "contentVersions")
        return await self.request("POST", url, "create content version", {})

    async def create_content_file(
        self,
        app_id: str,
        content_version_id: str,
        file_name: str,
        size: int,
        size_encrypted: int,
    ) -> Dict[str, Any]:
        """
        Register a file slot.

        Args:
            size: Unencrypted (inner zip) size.
            size_encrypted: Exact byte length of the payload that will be uploaded.
        """
        return await self.request(
            "POST",
            self._files_url(app_id, content_version_id),
            "create content file",
            {
                "@odata.type": "#microsoft.graph.mobileAppContentFile",
                "name": file_name,
                "size": size,
                "sizeEncrypted": size_encrypted,
                "isDependency": False,
            },
        )

    async def get_content_file(
        self, app_id: str, content_version_id: str, file_id: str
    ) -> Dict[str, Any]:
        return await self.request(
            "GET", self._files_url(app_id, content_version_id, file_id), "get file info"
        )

    async def wait_for_storage_uri(
        self, app_id: str, content_version_id: str, file_id: str
    ) -> str:
        """
        Poll the file slot until Graph hands out an Azure Storage SAS URI.

        Raises:
            RemoteTimeoutError: If no URI arrives within the attempt budget.
        """
        attempts = self.settings.storage_poll_attempts
        for attempt in range(1, attempts + 1):
            content_file = await self.get_content_file(app_id, content_version_id, file_id)
            storage_uri = content_file.get("azureStorageUri")
            if storage_uri:
                return storage_uri
            logger.debug("Storage URI not ready (attempt %s/%s)", attempt, attempts)
            if attempt < attempts:
                await asyncio.sleep(self.settings.storage_poll_interval)
        raise RemoteTimeoutError(
            f"Timeout waiting for Azure Storage URI after {attempts} attempts.")

    async def commit_file(
        self,
        app_id: str,
        content_version_id: str,
        file_id: str,
        encryption_info: EncryptionInfo,
    ) -> None:
        """Commit the uploaded file with its encryption parameters."""
        await self.request(
            "POST",
            self._files_url(app_id, content_version_id, file_id, "commit"),
            "commit file",
            {"fileEncryptionInfo": encryption_info.to_dict()},
        )

    async def wait_for_commit(
        self, app_id: str, content_version_id: str, file_id: str
    ) -> Dict[str, Any]:
        """
        Poll the file slot until the commit succeeds or fails.

        Raises:
            RemoteStateError: If Graph reports commitFileFailed.
            RemoteTimeoutError: If neither state arrives within the attempt budget.
        """
        attempts = self.settings.commit_poll_attempts
        for attempt in range(1, attempts + 1):
            content_file = await self.get_content_file(app_id, content_version_id, file_id)
            state = content_file.get("uploadState")
            if state == UPLOAD_STATE_COMMIT_SUCCESS:
                return content_file
            if state == UPLOAD_STATE_COMMIT_FAILED:
                logger.error("Commit failed: %s", content_file)
                raise RemoteStateError(
                    f"File commit failed. Status: {json.dumps(content_file)}",
                    payload=content_file,
                )
            logger.debug("Commit state %s (attempt %s/%s)", state, attempt, attempts)
            if attempt < attempts:
                await asyncio.sleep(self.settings.commit_poll_interval)
        raise RemoteTimeoutError(
            f"Timeout waiting for file commit after {attempts} attempts.")

    async def update_app_content_version(self, app_id: str, content_version_id: str) -> None:
        """
        Point the app at the committed content version.

        Server errors (5xx) are retried with a growing delay; client errors fail at once.
        """
        attempts = self.settings.finalize_max_attempts
        body = {
            "@odata.type": WIN32_APP_TYPE,
            "committedContentVersion": content_version_id,
        }
        for attempt in range(1, attempts + 1):
            try:
                await self.request("PATCH", self._apps_url(app_id), "update app", body)
                return
            except RemoteRequestError as exc:
                if exc.status is None or exc.status < 500:
                    raise
                if attempt >= attempts:
                    raise RemoteRequestError(
                        f"Failed to update app after {attempts} attempts "
                        f"(Status {exc.status}): {exc.body}",
                        status=exc.status,
                        body=exc.body,
                    ) from exc
                logger.warning(
                    "Update app failed with %s. Retrying (attempt %s/%s)...",
                    exc.status,
                    attempt,
                    attempts,
                )
                await asyncio.sleep(self.settings.finalize_backoff * attempt)

    async def create_app_assignment(self, app_id: str, assignment: Dict[str, Any]) -> Dict[str, Any]:
        """Create one app assignment."""
        return await self.request(
            "POST", self._apps_url(app_id, "assignments"), "create assignment", assignment
        )

    async def list_groups(self, prefix: Optional[str] = None) -> List[Dict[str, str]]:
        """
        List directory groups, optionally filtered by display-name prefix.

        Returns:
            List of {"id", "displayName"} dictionaries.
        """
        params = {"$select": "id,displayName", "$top": "50"}
        if prefix:
            escaped = prefix.replace("'", "''")
            params["$filter"] = f"startswith(displayName,'{escaped}')"
        data = await self.request("GET", self.settings.groups_url, "get groups", params=params)
        return data.get("value", [])
