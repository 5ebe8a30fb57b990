import pytest

from tests.conftest import CLIENT_ID, OWNER_EMAIL


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def owner_token(client):
    response = client.post(
        "/auth/google-config",
        json={
            "email": OWNER_EMAIL,
            "first_name": "Alice",
            "api_key": "api-key",
            "client_id": CLIENT_ID,
            "client_secret": "secret",
            "gemini_api_key": "gemini-key",
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert CLIENT_ID in body["auth_url"] and "state=" in body["auth_url"]

    token = body["access_token"]
    exchanged = client.post("/auth/oauth/exchange", json={"code": "auth-code"}, headers=_auth(token))
    assert exchanged.status_code == 200
    assert exchanged.json()["has_valid_token"] is True
    return token


@pytest.fixture
def project_id(client, owner_token):
    response = client.post("/projects/", json={"name": "Website"}, headers=_auth(owner_token))
    assert response.status_code == 201
    return response.json()["id"]


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"


def test_requests_without_session_are_rejected(client):
    assert client.get("/projects/").status_code == 401
    assert client.get("/auth/status").json() == {
        "authenticated": False,
        "has_credentials": False,
        "has_inherited_config": False,
        "has_valid_token": False,
        "gmail_enabled": False,
        "granted_features": [],
        "client_id": None,
        "user": None,
    }


def test_owner_setup_rejects_non_gmail(client):
    response = client.post(
        "/auth/google-config",
        json={"email": "alice@company.com", "api_key": "k", "client_id": "c", "client_secret": "s"},
    )
    assert response.status_code == 400
    assert response.json()["errorType"] == "gmail_required_for_owner"


def test_project_is_stored_in_drive(client, owner_token, project_id, drive):
    project = client.get(f"/projects/{project_id}", headers=_auth(owner_token)).json()

    assert project["has_credentials"] is True
    assert project["drive_file_id"] in drive.files
    assert drive.snapshot(project["drive_file_id"]).project.id == project_id
    assert client.get("/auth/usage", headers=_auth(owner_token)).json()["projects_created"] == 1


def test_task_lifecycle_updates_feed_and_stats(client, owner_token, project_id):
    headers = _auth(owner_token)
    task = client.post(f"/projects/{project_id}/tasks", json={"title": "Design", "priority": "high"}, headers=headers)
    assert task.status_code == 201
    task_id = task.json()["id"]

    updated = client.put(f"/tasks/{task_id}", json={"status": "done"}, headers=headers)
    assert updated.json()["status"] == "done"

    comment = client.post(f"/tasks/{task_id}/comments", json={"content": "Shipped"}, headers=headers)
    assert comment.status_code == 201
    assert [c["content"] for c in client.get(f"/tasks/{task_id}/comments", headers=headers).json()] == ["Shipped"]

    stats = client.get(f"/projects/{project_id}/stats", headers=headers).json()
    assert stats["total_tasks"] == 1
    assert stats["completed_tasks"] == 1
    assert stats["high_priority_tasks"] == 1
    assert stats["team_members"] == 1

    feed = client.get(f"/projects/{project_id}/activities", headers=headers).json()
    status_change = next(a for a in feed if a["type"] == "task_status_changed")
    assert status_change["metadata"] == {"oldStatus": "todo", "newStatus": "done"}

    assert client.delete(f"/tasks/{task_id}", headers=headers).status_code == 200
    assert client.get(f"/tasks/{task_id}/comments", headers=headers).status_code == 404


def test_unknown_task_is_not_found(client, owner_token):
    response = client.get("/tasks/does-not-exist", headers=_auth(owner_token))
    assert response.status_code == 404
    assert response.json()["errorType"] == "task_not_found"


def test_invited_member_logs_in_by_email(client, owner_token, project_id, notifier):
    invited = client.post(
        f"/projects/{project_id}/invitations",
        json={"email": "bob@y.com", "role": "member"},
        headers=_auth(owner_token),
    )
    assert invited.status_code == 201
    assert notifier.sent[0]["to"] == "bob@y.com"

    members = client.get(f"/projects/{project_id}/members", headers=_auth(owner_token)).json()
    assert next(m for m in members if m["user_id"] == "bob@y.com")["provisional"] is True

    login = client.post("/auth/email-login", json={"email": "bob@y.com"})
    assert login.status_code == 200
    assert login.json()["has_inherited_config"] is True
    bob = _auth(login.json()["access_token"])

    assert [p["id"] for p in client.get("/projects/", headers=bob).json()] == [project_id]
    denied = client.delete(f"/projects/{project_id}", headers=bob)
    assert denied.status_code == 403
    assert denied.json()["errorType"] == "access_denied"

    status = client.get("/auth/status", headers=bob).json()
    assert status["has_inherited_config"] is True
    assert status["client_id"] == CLIENT_ID


def test_invitation_link_accept_and_reuse(client, owner_token, project_id):
    invitation = client.post(
        f"/projects/{project_id}/invitations",
        json={"email": "carol@z.com", "role": "admin"},
        headers=_auth(owner_token),
    ).json()

    details = client.get(f"/invitations/{invitation['id']}").json()
    assert details["project_name"] == "Website"
    assert details["status"] == "pending"

    accepted = client.post(f"/invitations/{invitation['id']}/accept")
    assert accepted.status_code == 200
    assert accepted.json()["project_id"] == project_id
    carol = _auth(accepted.json()["access_token"])
    assert client.get(f"/projects/{project_id}", headers=carol).status_code == 200

    again = client.post(f"/invitations/{invitation['id']}/accept")
    assert again.status_code == 400
    assert again.json()["errorType"] == "already_processed"


def test_unknown_email_login_explains_what_to_do(client):
    response = client.post("/auth/email-login", json={"email": "stranger@z.com"})

    assert response.status_code == 403
    body = response.json()
    assert body["ok"] is False
    assert body["errorType"] == "no_invitation"
    assert body["helpText"] and body["suggestions"]


def test_owner_cannot_remove_themselves(client, owner_token, project_id):
    response = client.delete(f"/projects/{project_id}/members/{OWNER_EMAIL}", headers=_auth(owner_token))
    assert response.status_code == 400
    assert response.json()["errorType"] == "owner_membership_required"


def test_logout_ends_session(client, owner_token):
    assert client.post("/auth/logout", headers=_auth(owner_token)).json() == {"success": True}
    assert client.get("/auth/user", headers=_auth(owner_token)).status_code == 401


def test_member_without_drive_token_cannot_write(client, owner_token, project_id):
    client.post(
        f"/projects/{project_id}/invitations",
        json={"email": "bob@y.com", "role": "member"},
        headers=_auth(owner_token),
    )
    bob = _auth(client.post("/auth/email-login", json={"email": "bob@y.com"}).json()["access_token"])

    denied = client.post(f"/projects/{project_id}/tasks", json={"title": "Bob task"}, headers=bob)
    assert denied.status_code == 401
    assert denied.json()["errorType"] == "authentication_required"

    client.post(f"/projects/{project_id}/tasks", json={"title": "Alice task"}, headers=_auth(owner_token))
    tasks = client.get(f"/projects/{project_id}/tasks", headers=bob).json()
    assert [t["title"] for t in tasks] == ["Alice task"]


def test_rejected_invitation_stays_rejected_after_owner_write(client, owner_token, project_id, drive):
    invitation = client.post(
        f"/projects/{project_id}/invitations",
        json={"email": "bob@y.com", "role": "member"},
        headers=_auth(owner_token),
    ).json()

    assert client.post(f"/invitations/{invitation['id']}/reject").json()["status"] == "rejected"
    client.post(f"/projects/{project_id}/tasks", json={"title": "Alice task"}, headers=_auth(owner_token))

    members = client.get(f"/projects/{project_id}/members", headers=_auth(owner_token)).json()
    assert [m["user_id"] for m in members] == [OWNER_EMAIL]
    project = client.get(f"/projects/{project_id}", headers=_auth(owner_token)).json()
    assert drive.snapshot(project["drive_file_id"]).find_member("bob@y.com") is None
    assert client.post("/auth/email-login", json={"email": "bob@y.com"}).status_code == 403


def test_sync_brings_back_projects_after_mirror_loss(client, owner_token, project_id, mirror):
    mirror.delete_project(project_id)
    assert client.get("/projects/", headers=_auth(owner_token)).json() == []

    synced = client.post("/projects/sync", headers=_auth(owner_token))

    assert synced.status_code == 200
    assert [p["id"] for p in synced.json()] == [project_id]
    assert client.get(f"/projects/{project_id}", headers=_auth(owner_token)).status_code == 200
