# tests/test_api.py

from __future__ import annotations

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

API = "/api/v1"


@pytest.fixture()
def household(client: TestClient, register):
    alice = register("alice")
    bob = register("bob")
    response = client.post(f"{API}/calendars/", json={"name": "Home"}, headers=alice)
    assert response.status_code == 201, response.text
    calendar = response.json()
    assert calendar["current_user_role"] == "owner"
    return alice, bob, calendar["id"]


def share(client: TestClient, alice, bob, calendar_id: str) -> str:
    response = client.post(f"{API}/calendars/{calendar_id}/invites", json={"username": "bob"}, headers=alice)
    assert response.status_code == 201, response.text
    membership_id = response.json()["id"]
    response = client.post(f"{API}/calendars/memberships/{membership_id}/approve", headers=bob)
    assert response.status_code == 200, response.text
    return membership_id


def test_health(client: TestClient) -> None:
    assert client.get(f"{API}/health/").json() == {"status": "ok"}
    ready = client.get(f"{API}/health/ready")
    assert ready.status_code == 200
    assert ready.json()["realtime_relay"] == "local"


def test_auth_and_profile(client: TestClient, register) -> None:
    headers = register("alice")

    me = client.get(f"{API}/profiles/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["username"] == "alice"

    renamed = client.patch(f"{API}/profiles/me", json={"username": "alice.w"}, headers=headers)
    assert renamed.json()["username"] == "alice.w"

    register("bob")
    taken = client.patch(f"{API}/profiles/me", json={"username": "bob"}, headers=headers)
    assert taken.status_code == 409

    invalid = client.patch(f"{API}/profiles/me", json={"username": "no spaces"}, headers=headers)
    assert invalid.status_code == 422

    assert client.get(f"{API}/profiles/me").status_code == 401
    bad = client.get(f"{API}/profiles/me", headers={"Authorization": "Bearer nope"})
    assert bad.status_code == 401


def test_register_rejects_duplicates(client: TestClient, register) -> None:
    register("alice")
    again = client.post(
        f"{API}/auth/register",
        json={"email": "alice@example.com", "password": "correct-horse"},
    )
    assert again.status_code == 400

    same_name = client.post(
        f"{API}/auth/register",
        json={"email": "other@example.com", "password": "correct-horse", "username": "alice"},
    )
    assert same_name.status_code == 409


def test_calendar_list_provisions_personal_calendar(client: TestClient, register) -> None:
    headers = register("carol")

    calendars = client.get(f"{API}/calendars/", headers=headers).json()
    assert [c["name"] for c in calendars] == ["Personal calendar"]

    bootstrap = client.get(f"{API}/calendars/bootstrap", headers=headers).json()
    assert bootstrap["state"] == "ready"
    assert bootstrap["attempts"] == 1
    assert [c["id"] for c in bootstrap["calendars"]] == [calendars[0]["id"]]


def test_bootstrap_provisions_when_empty(client: TestClient, register) -> None:
    headers = register("dave")

    bootstrap = client.get(f"{API}/calendars/bootstrap", headers=headers).json()

    assert bootstrap["state"] == "ready"
    assert bootstrap["attempts"] == 2
    assert [c["name"] for c in bootstrap["calendars"]] == ["Personal calendar"]


def test_invite_flow(client: TestClient, household) -> None:
    alice, bob, calendar_id = household

    response = client.post(f"{API}/calendars/{calendar_id}/invites", json={"username": "bob"}, headers=alice)
    assert response.status_code == 201
    membership_id = response.json()["id"]
    assert response.json()["status"] == "pending"

    duplicate = client.post(f"{API}/calendars/{calendar_id}/invites", json={"username": "bob"}, headers=alice)
    assert duplicate.status_code == 409
    assert client.post(
        f"{API}/calendars/{calendar_id}/invites", json={"username": "alice"}, headers=alice
    ).status_code == 400
    assert client.post(
        f"{API}/calendars/{calendar_id}/invites", json={"username": "ghost"}, headers=alice
    ).status_code == 404

    sent = client.get(f"{API}/calendars/{calendar_id}/invites/sent", headers=alice).json()
    assert [m["username"] for m in sent] == ["bob"]

    pending = client.get(f"{API}/calendars/invites/pending", headers=bob).json()
    assert [(p["calendar_name"], p["inviter_username"]) for p in pending] == [("Home", "alice")]

    # Not a member yet
    assert client.get(f"{API}/calendars/{calendar_id}/tasks", headers=bob).status_code == 403
    assert client.post(f"{API}/calendars/memberships/{membership_id}/approve", headers=alice).status_code == 403

    approved = client.post(f"{API}/calendars/memberships/{membership_id}/approve", headers=bob)
    assert approved.json()["status"] == "active"

    members = client.get(f"{API}/calendars/{calendar_id}/members", headers=alice).json()
    assert [m["username"] for m in members] == ["bob"]

    assert client.delete(f"{API}/calendars/memberships/{membership_id}", headers=bob).status_code == 204
    assert client.get(f"{API}/calendars/{calendar_id}/tasks", headers=bob).status_code == 403


def test_reject_invite(client: TestClient, household) -> None:
    alice, bob, calendar_id = household
    membership_id = client.post(
        f"{API}/calendars/{calendar_id}/invites", json={"username": "bob"}, headers=alice
    ).json()["id"]

    assert client.post(f"{API}/calendars/memberships/{membership_id}/reject", headers=bob).status_code == 204
    assert client.get(f"{API}/calendars/invites/pending", headers=bob).json() == []
    assert client.post(f"{API}/calendars/memberships/{membership_id}/approve", headers=bob).status_code == 404


def test_task_lifecycle(client: TestClient, household) -> None:
    alice, bob, calendar_id = household
    share(client, alice, bob, calendar_id)
    today = date.today()

    created = client.post(
        f"{API}/calendars/{calendar_id}/tasks",
        json={"title": "Laundry", "date": today.isoformat(), "priority": "low"},
        headers=alice,
    )
    assert created.status_code == 201, created.text
    laundry = created.json()
    assert laundry["position"] == 0
    assert laundry["created_by_username"] == "alice"

    urgent = client.post(
        f"{API}/calendars/{calendar_id}/tasks",
        json={
            "title": "Fix sink",
            "date": today.isoformat(),
            "priority": "high",
            "reminder": {"kind": "time", "time": "18:00:00"},
        },
        headers=bob,
    ).json()
    assert urgent["reminder_time"] == "18:00:00"

    day = client.get(f"{API}/calendars/{calendar_id}/views/day", params={"date": today.isoformat()}, headers=alice)
    assert [t["title"] for t in day.json()] == ["Fix sink", "Laundry"]

    colors = client.get(f"{API}/calendars/{calendar_id}/views/colors", headers=alice).json()
    assert set(colors["colors"]) == {"alice", "bob"}

    counts = client.get(f"{API}/calendars/{calendar_id}/views/counts", headers=alice).json()
    assert counts == {today.isoformat(): 2}

    toggled = client.post(f"{API}/tasks/{laundry['id']}/toggle", headers=bob).json()
    assert toggled["task"]["completed"] is True
    assert toggled["spawned"] is None

    report = client.get(f"{API}/calendars/{calendar_id}/views/weekly-report", headers=alice).json()
    assert report["total"] == 1
    assert report["by_priority"] == {"high": 0, "medium": 0, "low": 1}
    assert "- Laundry [low]" in report["text"]

    patched = client.patch(f"{API}/tasks/{urgent['id']}", json={"priority": "medium"}, headers=alice)
    assert patched.json()["priority"] == "medium"

    reorder = client.post(
        f"{API}/calendars/{calendar_id}/tasks/reorder",
        json={"date": today.isoformat(), "task_ids": [urgent["id"], laundry["id"]]},
        headers=alice,
    ).json()
    assert reorder == {"persisted": [laundry["id"]], "skipped": [urgent["id"]]}

    assert client.delete(f"{API}/tasks/{laundry['id']}", headers=bob).status_code == 204
    assert client.delete(f"{API}/tasks/{laundry['id']}", headers=bob).status_code == 404

    notifications = client.get(f"{API}/notifications/", headers=alice).json()
    messages = [n["message"] for n in notifications]
    assert any("bob completed “Laundry”" in m for m in messages)
    assert any("bob deleted “Laundry”" in m for m in messages)

    unread = client.get(f"{API}/notifications/unread-count", headers=alice).json()["count"]
    assert unread == len(notifications)
    first = notifications[0]["id"]
    assert client.patch(f"{API}/notifications/{first}", json={"is_read": True}, headers=alice).json()["is_read"]
    assert client.patch(f"{API}/notifications/{first}", json={"is_read": True}, headers=bob).status_code == 403
    assert client.patch(f"{API}/notifications/mark-all-read", headers=alice).json() == {"marked": unread - 1}
    assert client.get(f"{API}/notifications/unread-count", headers=alice).json() == {"count": 0}


def test_monthly_task_and_reminder_list(client: TestClient, household) -> None:
    alice, _, calendar_id = household

    created = client.post(
        f"{API}/calendars/{calendar_id}/tasks",
        json={"title": "Pay rent", "reminder": {"kind": "monthly", "day": 0}},
        headers=alice,
    )
    assert created.status_code == 201, created.text
    rent = created.json()
    assert rent["is_monthly_recurring"] is True
    assert date.fromisoformat(rent["date"]) > date.today()

    toggled = client.post(f"{API}/tasks/{rent['id']}/toggle", headers=alice).json()
    spawned = toggled["spawned"]
    assert spawned is not None
    assert date.fromisoformat(spawned["date"]) - date.fromisoformat(rent["date"]) >= timedelta(days=28)

    reminders = client.get(f"{API}/calendars/{calendar_id}/views/reminders", headers=alice).json()
    assert [r["id"] for r in reminders] == [spawned["id"]]


def test_create_task_validation(client: TestClient, household) -> None:
    alice, _, calendar_id = household
    url = f"{API}/calendars/{calendar_id}/tasks"

    assert client.post(url, json={"title": "No date"}, headers=alice).status_code == 422
    assert client.post(url, json={"title": "  ", "date": "2025-03-14"}, headers=alice).status_code == 422
    assert client.post(
        url, json={"title": "Bad", "date": "2025-03-14", "priority": "urgent"}, headers=alice
    ).status_code == 422


def test_workspace_websocket(client: TestClient, household) -> None:
    alice, _, calendar_id = household
    token = alice["Authorization"].split()[1]

    with client.websocket_connect(f"{API}/ws/calendars/{calendar_id}?token={token}") as websocket:
        first = websocket.receive_json()
        assert first["type"] == "tasks"
        assert first["tasks"] == []

        websocket.send_json({"type": "ping"})
        seen = []
        while not seen or seen[-1] != "pong":
            seen.append(websocket.receive_json()["type"])
        assert "pong" in seen


def test_workspace_websocket_rejects_bad_token(client: TestClient, household) -> None:
    _, _, calendar_id = household

    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(f"{API}/ws/calendars/{calendar_id}?token=nope") as websocket:
            websocket.receive_json()


def test_workspace_websocket_requires_membership(client: TestClient, household) -> None:
    _, bob, calendar_id = household
    token = bob["Authorization"].split()[1]

    with client.websocket_connect(f"{API}/ws/calendars/{calendar_id}?token={token}") as websocket:
        message = websocket.receive_json()
        assert message == {"type": "error", "status": 403, "detail": message["detail"]}
