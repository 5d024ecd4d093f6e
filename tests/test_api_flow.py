from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

from fastapi.testclient import TestClient

from app import create_app
from backend.repository.data_repository import DataRepository, StoreError
from backend.utils.clock import utc_now
from backend.utils.config import get_settings


ADMIN_EMAIL = "warden@itbhu.ac.in"
ADMIN_PASSWORD = "warden-pass"


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        seed_demo_data=True,
        demo_floors=1,
        demo_rooms_per_floor=3,
        demo_room_capacity=1,
        otp_debug_echo=True,
        admin_email=ADMIN_EMAIL,
        admin_password=ADMIN_PASSWORD,
        verify_base_url="https://hostel.example",
    )


def _student_login(client: TestClient, email: str) -> dict[str, str]:
    sent = client.post("/auth/send-otp", json={"email": email})
    assert sent.status_code == 200
    code = sent.json()["debug_code"]
    verified = client.post("/auth/verify-otp", json={"email": email, "otp": code})
    assert verified.status_code == 200
    return {"Authorization": f"Bearer {verified.json()['access_token']}"}


def _admin_login(client: TestClient) -> dict[str, str]:
    response = client.post("/auth/admin-login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    assert response.json()["user"]["role"] == "admin"
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def _open_window(client: TestClient, admin: dict[str, str]) -> None:
    now = utc_now()
    response = client.post(
        "/admin/window",
        json={
            "title": "Room change week",
            "open_at": (now - timedelta(hours=1)).isoformat(),
            "close_at": (now + timedelta(hours=1)).isoformat(),
        },
        headers=admin,
    )
    assert response.status_code == 201


def test_student_allotment_end_to_end_flow(tmp_path):
    app = create_app(_build_test_settings(tmp_path, "api_flow.db"))

    with TestClient(app) as client:
        assert client.get("/health").json()["status"] == "ok"
        assert client.get("/hostels").status_code == 401

        student = _student_login(client, "rahul.sharma.cse22@itbhu.ac.in")
        admin = _admin_login(client)

        hostels = client.get("/hostels", headers=student).json()["hostels"]
        assert len(hostels) == 1
        assert hostels[0]["total_rooms"] == 3
        rooms = client.get(f"/rooms/{hostels[0]['hostel_id']}", headers=student).json()["rooms"]
        first_room, second_room, third_room = (room["room_id"] for room in rooms)

        window = client.get("/allot/window", headers=student).json()
        assert window == {"open": False, "active_window": None}

        closed = client.post("/allot", json={"room_id": first_room}, headers=student)
        assert closed.status_code == 409
        assert "window is closed" in closed.json()["detail"]

        _open_window(client, admin)
        assert client.get("/allot/window", headers=student).json()["open"] is True

        allotted = client.post("/allot", json={"room_id": first_room}, headers=student)
        assert allotted.status_code == 201
        assert allotted.json()["message"] == "Room allotted successfully!"
        allotment_id = allotted.json()["allotment"]["allotment_id"]

        same = client.post("/allot", json={"room_id": first_room}, headers=student)
        assert same.status_code == 409
        assert same.json()["detail"] == "You are already in this room."

        switched = client.post("/allot", json={"room_id": second_room}, headers=student)
        assert switched.status_code == 201
        assert switched.json()["action"] == "switched"
        assert switched.json()["previous_room_id"] == first_room
        allotment_id = switched.json()["allotment"]["allotment_id"]

        mine = client.get("/allot/mine", headers=student).json()["allotment"]
        assert mine["room_id"] == second_room

        profile = client.get("/profile", headers=student).json()
        assert profile["name"] == "Rahul Sharma"
        assert profile["allotment"]["room_id"] == second_room
        assert [entry["new_room_id"] for entry in profile["room_history"]] == [second_room, first_room]

        slip = client.get(f"/allot/{allotment_id}/slip", headers=student)
        assert slip.status_code == 200
        assert slip.json()["verify_url"] == f"https://hostel.example/verify/{allotment_id}"

        verified = client.get(f"/verify/{allotment_id}")
        assert verified.status_code == 200
        assert verified.json()["valid"] is True
        assert verified.json()["allotment"]["student_name"] == "Rahul Sharma"

        missing = client.get("/verify/does-not-exist")
        assert missing.status_code == 404
        assert missing.json()["valid"] is False

        other = _student_login(client, "priya.verma.ece23@itbhu.ac.in")
        assert client.get(f"/allot/{allotment_id}/slip", headers=other).status_code == 403
        full = client.post("/allot", json={"room_id": second_room}, headers=other)
        assert full.status_code == 409
        assert full.json()["detail"].endswith("is full.")

        client.post("/admin/block-room", json={"room_id": third_room, "reason": "Repairs"}, headers=admin)
        blocked = client.post("/allot", json={"room_id": third_room}, headers=other)
        assert blocked.status_code == 409
        assert blocked.json()["detail"].endswith("is blocked: Repairs")

        assert client.post("/allot", json={"room_id": 0}, headers=student).status_code == 400
        assert client.post("/allot", json={"room_id": "abc"}, headers=student).status_code == 400
        assert client.post("/allot", json={"room_id": first_room}, headers=admin).status_code == 403


def test_admin_dashboard_flow(tmp_path):
    app = create_app(_build_test_settings(tmp_path, "admin_flow.db"))

    with TestClient(app) as client:
        student = _student_login(client, "rahul.sharma.cse22@itbhu.ac.in")
        admin = _admin_login(client)

        assert client.get("/admin/stats", headers=student).status_code == 403
        assert client.get("/admin/stats").status_code == 401

        stats = client.get("/admin/stats", headers=admin).json()
        assert stats["total_students"] == 1
        assert stats["total_rooms"] == 3
        assert stats["total_allotments"] == 0

        students = client.get("/admin/students", params={"search": "rahul"}, headers=admin).json()["students"]
        assert len(students) == 1
        student_id = students[0]["user_id"]

        room_ids = [row["room_id"] for row in client.get("/admin/rooms", headers=admin).json()["rooms"]]

        # No window is open, but the warden may still assign.
        assigned = client.post(
            "/admin/assign",
            json={"student_id": student_id, "room_id": room_ids[0]},
            headers=admin,
        )
        assert assigned.status_code == 201
        assert assigned.json()["action"] == "allotted"

        ghost = client.post("/admin/assign", json={"student_id": "ghost", "room_id": room_ids[0]}, headers=admin)
        assert ghost.status_code == 404

        block = client.post("/admin/block-room", json={"room_id": room_ids[1]}, headers=admin)
        assert block.status_code == 200
        assert block.json()["block_reason"] == "Blocked by admin"
        refused = client.post(
            "/admin/assign",
            json={"student_id": student_id, "room_id": room_ids[1]},
            headers=admin,
        )
        assert refused.status_code == 409
        unblock = client.post("/admin/unblock-room", json={"room_id": room_ids[1]}, headers=admin)
        assert unblock.json()["is_blocked"] is False
        assert client.post("/admin/block-room", json={"room_id": 999}, headers=admin).status_code == 404

        vacancy = client.get("/admin/vacancy-map", headers=admin).json()["rooms"]
        assert [row["status"] for row in vacancy] == ["full", "empty", "empty"]

        allotments = client.get("/admin/allotments", headers=admin).json()["allotments"]
        assert allotments[0]["student_name"] == "Rahul Sharma"

        admin_slip = client.get(f"/allot/{allotments[0]['allotment_id']}/slip", headers=admin)
        assert admin_slip.status_code == 200

        unassigned = client.post("/admin/unassign", json={"student_id": student_id}, headers=admin)
        assert unassigned.json()["removed_room_id"] == room_ids[0]
        again = client.post("/admin/unassign", json={"student_id": student_id}, headers=admin)
        assert again.status_code == 200
        assert again.json()["removed_room_id"] is None

        bad_window = client.post(
            "/admin/window",
            json={
                "title": "Backwards",
                "open_at": "2026-08-03T12:00:00+00:00",
                "close_at": "2026-08-03T11:00:00+00:00",
            },
            headers=admin,
        )
        assert bad_window.status_code == 400

        _open_window(client, admin)
        windows = client.get("/admin/window", headers=admin).json()
        assert windows["active"]["title"] == "Room change week"
        assert windows["active"]["created_by"] is not None

        assert client.get("/admin/incidents", headers=admin).json() == {"incidents": []}

        assert client.post("/auth/logout", headers=admin).status_code == 200
        assert client.get("/admin/stats", headers=admin).status_code == 401


def test_store_failure_during_switch_returns_generic_error(monkeypatch, tmp_path):
    app = create_app(_build_test_settings(tmp_path, "store_failure.db"))

    with TestClient(app) as client:
        student = _student_login(client, "rahul.sharma.cse22@itbhu.ac.in")
        admin = _admin_login(client)
        _open_window(client, admin)
        rooms = client.get("/admin/rooms", headers=admin).json()["rooms"]
        first_room, second_room = rooms[0]["room_id"], rooms[1]["room_id"]
        assert client.post("/allot", json={"room_id": first_room}, headers=student).status_code == 201

        repository: DataRepository = app.state.repository

        def broken_insert(**kwargs):
            raise StoreError("Allotment insert failed: disk I/O error")

        def broken_restore(allotment):
            raise StoreError("Allotment restore failed: disk I/O error")

        monkeypatch.setattr(repository, "insert_allotment", broken_insert)
        monkeypatch.setattr(repository, "restore_allotment", broken_restore)

        response = client.post("/allot", json={"room_id": second_room}, headers=student)
        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to allot room. Try again."

        incidents = client.get("/admin/incidents", headers=admin).json()["incidents"]
        assert len(incidents) == 1
        assert incidents[0]["target_room_id"] == second_room


def test_otp_errors_map_to_http_status(tmp_path):
    app = create_app(_build_test_settings(tmp_path, "otp_errors.db"))

    with TestClient(app) as client:
        assert client.post("/auth/send-otp", json={"email": "x@gmail.com"}).status_code == 403
        client.post("/auth/send-otp", json={"email": "a.b.cse22@itbhu.ac.in"})
        wrong = client.post("/auth/verify-otp", json={"email": "a.b.cse22@itbhu.ac.in", "otp": "not-it"})
        assert wrong.status_code == 401
        bad_admin = client.post("/auth/admin-login", json={"email": ADMIN_EMAIL, "password": "nope"})
        assert bad_admin.status_code == 401


def test_non_ascii_credentials_are_rejected_with_401(tmp_path):
    app = create_app(_build_test_settings(tmp_path, "non_ascii_auth.db"))

    with TestClient(app) as client:
        client.post("/auth/send-otp", json={"email": "a.b.cse22@itbhu.ac.in"})
        otp = client.post("/auth/verify-otp", json={"email": "a.b.cse22@itbhu.ac.in", "otp": "é"})
        assert otp.status_code == 401
        admin = client.post("/auth/admin-login", json={"email": ADMIN_EMAIL, "password": "päss"})
        assert admin.status_code == 401
