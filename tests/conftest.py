import json
import re
import uuid
from typing import Any, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

import models.models  # noqa: F401
from core.database import build_engine, get_session
from core.dependencies import get_ai_transport, get_drive_transport, get_email_service, get_oauth_transport
from core.security import get_session_registry
from main import app
from schemas.project_data_schema import CredentialSet, ProjectData
from services.drive_service import ContainerLocks, DriveDocumentStore
from services.invitation_service import InvitationWorkflow
from services.mirror_store import MirrorStore
from services.project_service import ProjectService
from services.session_service import SessionRegistry, TokenBundle

OWNER_EMAIL = "alice@gmail.com"
CLIENT_ID = "client-123.apps.googleusercontent.com"

_PARENT_QUERY = re.compile(r"'([^']+)' in parents and name='([^']+)'")


# ============================================================
# Fake Google Drive (REST v3 subset)
# ============================================================
class FakeDrive:
    """In-memory Drive answering the calls DriveDocumentStore makes."""

    def __init__(self, page_size: int = 2):
        self.files: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self.page_size = page_size
        self.fail_uploads = False
        self.fail_permissions = False
        self.transport = httpx.MockTransport(self.handle)

    # -----------------------
    # helpers for tests
    # -----------------------
    def folders(self) -> List[Dict[str, Any]]:
        return [f for f in self.files.values() if f["mimeType"] == "application/vnd.google-apps.folder"]

    def document_for(self, container_id: str) -> Optional[Dict[str, Any]]:
        return next(
            (f for f in self.files.values() if container_id in f["parents"] and f["name"] == "project-data.json"),
            None,
        )

    def snapshot(self, container_id: str) -> ProjectData:
        return ProjectData.from_json(self.document_for(container_id)["content"])

    def put_snapshot(self, container_id: str, snapshot: ProjectData) -> None:
        self.document_for(container_id)["content"] = snapshot.to_json()

    def permissions(self, container_id: str) -> List[Dict[str, Any]]:
        return self.files[container_id]["permissions"]

    # -----------------------
    # request handling
    # -----------------------
    def _new_file(self, name: str, mime_type: str, parents: Optional[List[str]] = None) -> Dict[str, Any]:
        file_id = uuid.uuid4().hex
        self.files[file_id] = {
            "id": file_id,
            "name": name,
            "mimeType": mime_type,
            "parents": parents or [],
            "content": None,
            "permissions": [],
        }
        return self.files[file_id]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        params = request.url.params

        if request.method == "PATCH" and path.startswith("/upload/drive/v3/files/"):
            if self.fail_uploads:
                return httpx.Response(500, json={"error": "backend error"})
            file_id = path.rsplit("/", 1)[1]
            self.files[file_id]["content"] = request.content.decode("utf-8")
            return httpx.Response(200, json={"id": file_id})

        if path == "/drive/v3/files" and request.method == "POST":
            body = json.loads(request.content)
            created = self._new_file(body["name"], body.get("mimeType", ""), body.get("parents"))
            return httpx.Response(200, json={"id": created["id"], "name": created["name"]})

        if path == "/drive/v3/files" and request.method == "GET":
            return self._list(params)

        match = re.fullmatch(r"/drive/v3/files/([^/]+)/permissions", path)
        if match:
            file_id = match.group(1)
            if self.fail_permissions:
                return httpx.Response(403, json={"error": "forbidden"})
            if request.method == "POST":
                self.files[file_id]["permissions"].append(json.loads(request.content))
                return httpx.Response(200, json={"id": uuid.uuid4().hex})
            return httpx.Response(200, json={"permissions": self.files[file_id]["permissions"]})

        match = re.fullmatch(r"/drive/v3/files/([^/]+)", path)
        if match and request.method == "GET":
            file = self.files.get(match.group(1))
            if file is None:
                return httpx.Response(404, json={"error": "not found"})
            if params.get("alt") == "media":
                return httpx.Response(200, text=file["content"] or "")
            return httpx.Response(200, json={"webViewLink": f"https://drive.google.com/drive/folders/{file['id']}"})

        return httpx.Response(400, json={"error": f"unexpected {request.method} {path}"})

    def _list(self, params: httpx.QueryParams) -> httpx.Response:
        query = params.get("q", "")
        match = _PARENT_QUERY.search(query)
        if match:
            parent, name = match.groups()
            files = [
                {"id": f["id"], "name": f["name"]}
                for f in self.files.values()
                if parent in f["parents"] and f["name"] == name
            ]
            return httpx.Response(200, json={"files": files})

        folders = [{"id": f["id"], "name": f["name"]} for f in self.folders() if "PM_" in f["name"]]
        start = int(params.get("pageToken") or 0)
        page = folders[start:start + self.page_size]
        body: Dict[str, Any] = {"files": page}
        if start + self.page_size < len(folders):
            body["nextPageToken"] = str(start + self.page_size)
        return httpx.Response(200, json=body)


# ============================================================
# Fake notifier and Google OAuth / Gemini endpoints
# ============================================================
class FakeNotifier:
    def __init__(self, result: bool = True, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.sent: List[Dict[str, Any]] = []

    def send_invitation_email(self, to_email, project_name, inviter_name, role, invite_link, project_id=None):
        if self.error is not None:
            raise self.error
        self.sent.append(
            {
                "to": to_email,
                "project_name": project_name,
                "inviter_name": inviter_name,
                "role": role,
                "invite_link": invite_link,
                "project_id": project_id,
            }
        )
        return self.result


def oauth_handler(email: str = OWNER_EMAIL, scope: str = "openid https://www.googleapis.com/auth/drive"):
    def handle(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/token":
            return httpx.Response(
                200,
                json={
                    "access_token": "drive-access-token",
                    "refresh_token": "refresh-token",
                    "expires_in": 3600,
                    "scope": scope,
                    "id_token": "id-token",
                },
            )
        if request.url.path == "/tokeninfo":
            return httpx.Response(
                200,
                json={"aud": CLIENT_ID, "email": email, "given_name": "Alice", "family_name": "Owner"},
            )
        return httpx.Response(404)

    return handle


def gemini_reply(text: str) -> Dict[str, Any]:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


# ============================================================
# Fixtures
# ============================================================
@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def mirror(session):
    return MirrorStore(session)


@pytest.fixture
def drive():
    return FakeDrive()


@pytest.fixture
def store(drive):
    return DriveDocumentStore("drive-access-token", transport=drive.transport, locks=ContainerLocks())


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def credentials():
    return CredentialSet(
        api_key="api-key",
        client_id=CLIENT_ID,
        client_secret="secret",
        gemini_api_key="gemini-key",
        email=OWNER_EMAIL,
    )


@pytest.fixture
def projects(mirror, store):
    return ProjectService(mirror, store)


@pytest.fixture
def workflow(mirror, projects, registry, notifier):
    return InvitationWorkflow(mirror, projects, registry, notifier=notifier)


@pytest.fixture
def owner(workflow, credentials):
    """Owner session holding its own credential set and a Drive token."""
    context = workflow.setup_owner(OWNER_EMAIL, credentials, {"first_name": "Alice"})
    context.attach_tokens(TokenBundle(access_token="drive-access-token", scope="https://www.googleapis.com/auth/drive"))
    return context


@pytest.fixture
def client(engine, drive, registry, notifier):
    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_session_registry] = lambda: registry
    app.dependency_overrides[get_drive_transport] = lambda: drive.transport
    app.dependency_overrides[get_oauth_transport] = lambda: httpx.MockTransport(oauth_handler())
    app.dependency_overrides[get_email_service] = lambda: notifier
    app.dependency_overrides[get_ai_transport] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()
