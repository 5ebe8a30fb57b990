# services/drive_service.py
import asyncio
import logging
import weakref
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from core.config import settings
from core.errors import Conflict, ProjectNotFound, RemoteStoreError
from models.models import utc_now
from schemas.project_data_schema import ProjectData, ProjectDoc
from services.project_data_manager import ProjectDataManager, new_id

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
DOCUMENT_NAME = "project-data.json"
CONTAINER_PREFIX = "PM_"


def container_name(project_name: str, project_id: str) -> str:
    return f"{CONTAINER_PREFIX}{project_name}_{project_id}"


# ============================================================
# ✅ Per-container writer locks
# ============================================================
class ContainerLocks:
    """
    One asyncio.Lock per container id, shared by every store in the process.
    A lock is dropped once no writer holds or waits on it.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def for_container(self, container_id: str) -> asyncio.Lock:
        lock = self._locks.get(container_id)
        if lock is None:
            lock = self._locks[container_id] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._locks)


container_locks = ContainerLocks()


# ============================================================
# ✅ Drive-backed project document store
# ============================================================
class DriveDocumentStore:
    """
    Durable project persistence on Google Drive (REST v3).

    Each project is a folder named `PM_{name}_{id}` holding a single
    `project-data.json` document with the whole ProjectData snapshot.
    Every write replaces the document; the snapshot's `version` field is the
    optimistic-concurrency token checked by `update_project_data`.
    """

    def __init__(
        self,
        access_token: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        locks: Optional[ContainerLocks] = None,
        timeout: Optional[float] = None,
    ):
        self.access_token = access_token
        self.transport = transport
        self.locks = locks or container_locks
        self.timeout = timeout or settings.REMOTE_TIMEOUT_SECONDS
        self.api_url = settings.DRIVE_API_BASE_URL.rstrip("/")
        self.upload_url = settings.DRIVE_UPLOAD_BASE_URL.rstrip("/")
        self.max_write_attempts = max(1, settings.REMOTE_WRITE_MAX_ATTEMPTS)
        # Number of HTTP calls made through this store, reported as usage.
        self.request_count = 0

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self.transport,
            headers={"Authorization": f"Bearer {self.access_token}"},
        )

    async def _request(self, client: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
        self.request_count += 1
        try:
            response = await client.request(method, url, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            logger.warning("Drive %s %s failed with status %s", method, url, e.response.status_code)
            raise RemoteStoreError(f"Drive request failed with status {e.response.status_code}.") from e
        except httpx.TransportError as e:
            logger.warning("Drive %s %s could not be completed: %s", method, url, e)
            raise RemoteStoreError("Could not reach Google Drive.") from e

    # -----------------------
    # Document helpers
    # -----------------------
    async def _find_document_id(self, client: httpx.AsyncClient, container_id: str) -> Optional[str]:
        response = await self._request(
            client,
            "GET",
            f"{self.api_url}/files",
            params={
                "q": f"'{container_id}' in parents and name='{DOCUMENT_NAME}' and trashed=false",
                "fields": "files(id, name)",
            },
        )
        files = response.json().get("files") or []
        return files[0]["id"] if files else None

    async def _read_document(
        self, client: httpx.AsyncClient, container_id: str
    ) -> Tuple[Optional[str], Optional[ProjectData]]:
        file_id = await self._find_document_id(client, container_id)
        if file_id is None:
            return None, None
        response = await self._request(client, "GET", f"{self.api_url}/files/{file_id}", params={"alt": "media"})
        try:
            return file_id, ProjectData.from_json(response.text)
        except ValidationError as e:
            logger.error("Project document in container %s is not valid: %s", container_id, e)
            raise RemoteStoreError("The stored project document could not be read.") from e

    async def _write_document(self, client: httpx.AsyncClient, file_id: str, snapshot: ProjectData) -> None:
        await self._request(
            client,
            "PATCH",
            f"{self.upload_url}/files/{file_id}",
            params={"uploadType": "media"},
            content=snapshot.to_json().encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )

    # ============================================================
    # ✅ Create project
    # ============================================================
    async def create_project(self, fields: Dict[str, Any]) -> ProjectData:
        """
        Create the project folder, then its initial document (owner membership
        included). If the document cannot be written the project does not exist
        as far as callers are concerned; the empty folder is left behind.
        """
        project_id = new_id()
        name = fields["name"]

        async with self._client() as client:
            folder = await self._request(
                client,
                "POST",
                f"{self.api_url}/files",
                params={"fields": "id, name"},
                json={
                    "name": container_name(name, project_id),
                    "mimeType": FOLDER_MIME_TYPE,
                    "description": f"Project Management Data for: {name}",
                },
            )
            folder_id = folder.json()["id"]

            now = utc_now()
            project = ProjectDoc.model_validate(
                {
                    **fields,
                    "id": project_id,
                    "drive_file_id": folder_id,
                    "created_at": now,
                    "updated_at": now,
                }
            )
            snapshot = ProjectDataManager.initial_snapshot(project).model_copy(update={"version": 1})

            try:
                document = await self._request(
                    client,
                    "POST",
                    f"{self.api_url}/files",
                    params={"fields": "id"},
                    json={"name": DOCUMENT_NAME, "parents": [folder_id], "mimeType": "application/json"},
                )
                await self._write_document(client, document.json()["id"], snapshot)
            except RemoteStoreError:
                logger.error("Project document write failed; folder %s is orphaned", folder_id)
                raise

        logger.info("Project %s created in Drive folder %s", project_id, folder_id)
        return snapshot

    # ============================================================
    # ✅ Read / write the project document
    # ============================================================
    async def get_project_data(self, container_id: str) -> Optional[ProjectData]:
        """Current snapshot of the container, or None when it holds no document."""
        async with self._client() as client:
            _, snapshot = await self._read_document(client, container_id)
        return snapshot

    async def update_project_data(
        self,
        container_id: str,
        snapshot: ProjectData,
        expected_version: Optional[int] = None,
    ) -> ProjectData:
        """
        Replace the whole document with `snapshot` and return what was stored.

        Without `expected_version` the write is unconditional (last writer wins).
        With it, the write fails with Conflict unless the stored version still
        matches. Writers in this process are serialised per container.
        """
        async with self.locks.for_container(container_id):
            async with self._client() as client:
                file_id, current = await self._read_document(client, container_id)
                if file_id is None:
                    raise ProjectNotFound(f"No project document found in container {container_id}.")

                stored_version = current.version if current is not None else 0
                if expected_version is not None and expected_version != stored_version:
                    logger.info(
                        "Version conflict on container %s: expected %s, stored %s",
                        container_id,
                        expected_version,
                        stored_version,
                    )
                    raise Conflict()

                stored = snapshot.model_copy(update={"version": stored_version + 1})
                await self._write_document(client, file_id, stored)
        return stored

    async def mutate_project_data(
        self,
        container_id: str,
        change: Callable[[ProjectData], ProjectData],
    ) -> ProjectData:
        """
        Read the current snapshot, apply `change` and write it back on the
        version just read. A concurrent write makes the attempt fail; the
        change is then re-applied to a fresh read, up to the configured limit.
        """
        for attempt in range(1, self.max_write_attempts + 1):
            current = await self.get_project_data(container_id)
            if current is None:
                raise ProjectNotFound(f"No project document found in container {container_id}.")
            updated = change(current)
            try:
                return await self.update_project_data(container_id, updated, expected_version=current.version)
            except Conflict:
                logger.warning(
                    "Concurrent write on container %s (attempt %s/%s)",
                    container_id,
                    attempt,
                    self.max_write_attempts,
                )
        raise Conflict(
            f"The project kept changing during {self.max_write_attempts} attempts to save it."
        )

    # ============================================================
    # ✅ Project index
    # ============================================================
    async def list_projects(self) -> List[ProjectDoc]:
        """Projects of every readable `PM_` folder; unreadable folders are skipped."""
        folders: List[Dict[str, Any]] = []
        async with self._client() as client:
            page_token: Optional[str] = None
            while True:
                params = {
                    "q": f"mimeType='{FOLDER_MIME_TYPE}' and name contains '{CONTAINER_PREFIX}' and trashed=false",
                    "fields": "nextPageToken, files(id, name, createdTime, modifiedTime)",
                }
                if page_token:
                    params["pageToken"] = page_token
                body = (await self._request(client, "GET", f"{self.api_url}/files", params=params)).json()
                folders.extend(body.get("files") or [])
                page_token = body.get("nextPageToken")
                if not page_token:
                    break

            projects: List[ProjectDoc] = []
            for folder in folders:
                try:
                    _, snapshot = await self._read_document(client, folder["id"])
                except RemoteStoreError as e:
                    logger.warning("Skipping project folder %s: %s", folder["id"], e.message)
                    continue
                if snapshot is not None:
                    projects.append(snapshot.project)
        return projects

    # ============================================================
    # ✅ Sharing
    # ============================================================
    async def share_project(self, container_id: str, emails: List[str]) -> None:
        async with self._client() as client:
            for email in emails:
                await self._request(
                    client,
                    "POST",
                    f"{self.api_url}/files/{container_id}/permissions",
                    params={"sendNotificationEmail": "false"},
                    json={"role": "writer", "type": "user", "emailAddress": email},
                )
        logger.info("Container %s shared with %s identities", container_id, len(emails))

    async def create_shareable_link(self, container_id: str) -> str:
        async with self._client() as client:
            await self._request(
                client,
                "POST",
                f"{self.api_url}/files/{container_id}/permissions",
                json={"role": "reader", "type": "anyone"},
            )
            response = await self._request(
                client,
                "GET",
                f"{self.api_url}/files/{container_id}",
                params={"fields": "webViewLink"},
            )
        return response.json().get("webViewLink") or ""

    async def has_project_access(self, container_id: str, email: str) -> bool:
        """Whether `email` holds a permission on the container. Errors count as no."""
        try:
            async with self._client() as client:
                response = await self._request(
                    client,
                    "GET",
                    f"{self.api_url}/files/{container_id}/permissions",
                    params={"fields": "permissions(emailAddress, role)"},
                )
        except RemoteStoreError:
            logger.exception("Could not check access to container %s", container_id)
            return False
        wanted = email.strip().lower()
        return any(
            (permission.get("emailAddress") or "").lower() == wanted
            for permission in response.json().get("permissions") or []
        )
