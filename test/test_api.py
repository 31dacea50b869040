import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

import config
from app import app
from database.models import UserRole
from services.auth_service import AuthService
from support import PASSWORD

SLOT = "2035-03-01T10:00:00"


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_email(client):
    with config.db.get_session() as db:
        AuthService.create_user(
            db, email="admin@example.edu", password=PASSWORD, role=UserRole.ADMIN,
            first_name="Ada", last_name="Admin"
        )
    return "admin@example.edu"


def login(client, email, password=PASSWORD):
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def register(client, email, student_id="2024-0001", **extra):
    payload = {
        "firstName": "Sam",
        "lastName": "Student",
        "email": email,
        "password": PASSWORD,
        "studentId": student_id,
        "termsAgreed": True,
    }
    payload.update(extra)
    return client.post("/api/auth/register", json=payload)


def create_counselor(client, admin_token, email="counselor@example.edu"):
    response = client.post(
        "/api/users",
        json={
            "email": email,
            "password": PASSWORD,
            "role": "counselor",
            "firstName": "Dana",
            "lastName": "Reyes",
        },
        headers=auth(admin_token),
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def actors(client, admin_email):
    """Logged-in admin, counselor and student tokens plus their ids."""
    admin_token = login(client, admin_email)["access_token"]
    counselor = create_counselor(client, admin_token)
    student = register(client, "sam@example.edu").json()
    return {
        "admin": admin_token,
        "counselor": login(client, counselor["email"])["access_token"],
        "counselor_id": counselor["id"],
        "student": login(client, student["email"])["access_token"],
        "student_id": student["id"],
    }


def book(client, actors, slot=SLOT, token=None):
    return client.post(
        "/api/appointments",
        json={"counselorId": actors["counselor_id"], "dateTime": slot, "reason": "Exam anxiety"},
        headers=auth(token or actors["student"]),
    )


def test_root_and_health(client):
    assert client.get("/").json()["message"] == config.APP_NAME

    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["checks"]["database"]["status"] == "ok"


def test_register_student(client):
    response = register(client, "New@Example.edu")

    assert response.status_code == 201
    body = response.json()
    assert body["email"] == "new@example.edu"
    assert body["role"] == "student"
    assert body["studentId"] == "2024-0001"


def test_register_rejects_duplicates_and_bad_input(client):
    assert register(client, "dup@example.edu").status_code == 201
    duplicate = register(client, "dup@example.edu")
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "An account with this email already exists."

    assert register(client, "terms@example.edu", termsAgreed=False).status_code == 400
    assert register(client, "weak@example.edu", password="weak").status_code == 400


def test_register_cannot_choose_role(client):
    response = register(client, "sneaky@example.edu", role="admin")
    assert response.json()["role"] == "student"


def test_login_failures_do_not_reveal_which_part_was_wrong(client):
    register(client, "sam@example.edu")

    unknown = client.post("/api/auth/login", json={"email": "ghost@example.edu", "password": PASSWORD})
    wrong = client.post("/api/auth/login", json={"email": "sam@example.edu", "password": "Wrong-passw0rd"})

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json() == {"detail": "Invalid email or password."}


def test_repeated_failures_throttle_login(client):
    register(client, "sam@example.edu")
    for _ in range(3):
        client.post("/api/auth/login", json={"email": "sam@example.edu", "password": "Wrong-passw0rd"})

    response = client.post("/api/auth/login", json={"email": "sam@example.edu", "password": PASSWORD})

    assert response.status_code == 429
    assert 0 < int(response.headers["Retry-After"]) <= 30


def test_me_and_profile(client, actors):
    me = client.get("/api/auth/me", headers=auth(actors["student"]))
    assert me.json()["id"] == actors["student_id"]

    updated = client.put(
        "/api/profile",
        json={"firstName": "Samantha", "gender": "female"},
        headers=auth(actors["student"]),
    )
    assert updated.status_code == 200
    assert updated.json()["firstName"] == "Samantha"
    assert updated.json()["gender"] == "female"


def test_change_password(client, actors):
    response = client.post(
        "/api/profile/password",
        json={"currentPassword": PASSWORD, "newPassword": "Fresh-Passw0rd", "confirmPassword": "Fresh-Passw0rd"},
        headers=auth(actors["student"]),
    )
    assert response.json() == {"success": True, "message": "Password changed successfully."}
    login(client, "sam@example.edu", "Fresh-Passw0rd")


def test_full_appointment_flow(client, actors):
    counselors = client.get("/api/appointments/counselors", headers=auth(actors["student"])).json()
    assert [c["id"] for c in counselors] == [actors["counselor_id"]]

    booked = book(client, actors)
    assert booked.status_code == 201, booked.text
    appointment = booked.json()
    assert appointment["status"] == "pending"
    assert appointment["counselorName"] == "Dana Reyes"

    inbox = client.get("/api/notifications", headers=auth(actors["counselor"])).json()
    assert inbox["unreadCount"] == 1
    assert inbox["data"][0]["message"] == "You have a new appointment request from Sam Student."

    appointment_id = appointment["id"]
    approved = client.post(f"/api/appointments/{appointment_id}/approve", headers=auth(actors["counselor"]))
    assert approved.json()["status"] == "approved"
    completed = client.post(f"/api/appointments/{appointment_id}/complete", headers=auth(actors["counselor"]))
    assert completed.json()["status"] == "completed"

    feedback = client.post(
        f"/api/appointments/{appointment_id}/feedback",
        json={"rating": 5, "comment": "Helpful"},
        headers=auth(actors["student"]),
    )
    assert feedback.status_code == 201
    again = client.post(
        f"/api/appointments/{appointment_id}/feedback", json={"rating": 4}, headers=auth(actors["student"])
    )
    assert again.status_code == 409

    saved = client.put(
        f"/api/records/{appointment_id}",
        json={"sessionNotes": "Breathing exercises", "progressTracking": "Keep journaling"},
        headers=auth(actors["counselor"]),
    )
    assert saved.status_code == 200
    assert saved.json()["sessionNotes"] == "Breathing exercises"
    assert saved.json()["appointment"]["hasRecord"] is True

    assert client.get(f"/api/records/{appointment_id}", headers=auth(actors["student"])).status_code == 403
    admin_view = client.get(f"/api/records/{appointment_id}", headers=auth(actors["admin"]))
    assert admin_view.json()["sessionNotes"] == "Breathing exercises"

    mine = client.get("/api/feedback/mine", headers=auth(actors["counselor"])).json()
    assert mine["total"] == 1
    assert mine["averageRating"] == 5.0

    student_inbox = client.get("/api/notifications", headers=auth(actors["student"])).json()
    assert [n["message"] for n in student_inbox["data"]] == [
        'Your counselor left a progress note: "Keep journaling"',
        "Your appointment for 2035-03-01 10:00 has been completed. You can now leave feedback.",
        "Your appointment for 2035-03-01 10:00 has been approved.",
    ]
    marked = client.post("/api/notifications/mark-read", headers=auth(actors["student"])).json()
    assert marked == {"success": True, "updated": 3}
    assert client.get("/api/notifications", headers=auth(actors["student"])).json()["unreadCount"] == 0

    listed = client.get("/api/appointments", headers=auth(actors["student"])).json()
    assert listed["total"] == 1
    assert listed["data"][0]["hasFeedback"] is True


def test_double_booking_returns_conflict(client, actors):
    assert book(client, actors).status_code == 201

    register(client, "other@example.edu", student_id="2024-0002")
    other_token = login(client, "other@example.edu")["access_token"]
    conflict = book(client, actors, token=other_token)

    assert conflict.status_code == 409
    assert conflict.json()["detail"] == "This time slot is unavailable. Please choose a different time."


def test_booking_validation_errors(client, actors):
    past = book(client, actors, slot="2001-01-01T10:00:00")
    assert past.status_code == 400
    assert past.json()["detail"] == "You cannot book an appointment in the past."

    missing = client.post("/api/appointments", json={"reason": "x"}, headers=auth(actors["student"]))
    assert missing.status_code == 400
    assert missing.json()["detail"] == "Please fill out all fields."


def test_status_filter(client, actors):
    book(client, actors)
    assert client.get("/api/appointments?status=approved", headers=auth(actors["student"])).json()["total"] == 0
    assert client.get("/api/appointments?status=pending", headers=auth(actors["student"])).json()["total"] == 1
    assert client.get("/api/appointments?status=bogus", headers=auth(actors["student"])).status_code == 400


def test_cancel_through_api(client, actors):
    appointment_id = book(client, actors).json()["id"]

    canceled = client.post(f"/api/appointments/{appointment_id}/cancel", headers=auth(actors["student"]))
    assert canceled.json()["status"] == "canceled"

    again = client.post(f"/api/appointments/{appointment_id}/cancel", headers=auth(actors["student"]))
    assert again.status_code == 404


def test_role_gating(client, actors):
    assert client.get("/api/users", headers=auth(actors["student"])).status_code == 403
    assert client.get("/api/users", headers=auth(actors["counselor"])).status_code == 403
    assert book(client, actors, token=actors["counselor"]).status_code == 403

    appointment_id = book(client, actors).json()["id"]
    student_approve = client.post(f"/api/appointments/{appointment_id}/approve", headers=auth(actors["student"]))
    assert student_approve.status_code == 403

    assert client.get("/api/appointments").status_code in (401, 403)
    assert client.get("/api/appointments", headers=auth("garbage")).status_code == 401


def test_admin_user_management(client, actors):
    users = client.get("/api/users", headers=auth(actors["admin"])).json()
    assert {u["role"] for u in users["data"]} == {"student", "counselor"}

    student_id = actors["student_id"]
    deactivated = client.post(f"/api/users/{student_id}/deactivate", headers=auth(actors["admin"]))
    assert deactivated.json()["message"] == "User account for sam@example.edu has been deactivated."

    blocked = client.post("/api/auth/login", json={"email": "sam@example.edu", "password": PASSWORD})
    assert blocked.status_code == 403
    assert client.get("/api/auth/me", headers=auth(actors["student"])).status_code == 403

    client.post(f"/api/users/{student_id}/reactivate", headers=auth(actors["admin"]))
    login(client, "sam@example.edu")


def test_admin_unlocks_locked_account(client, actors):
    for _ in range(9):
        with config.db.get_session() as db:
            # Clear the throttle window so every attempt is counted
            user = AuthService.get_user_by_email(db, "sam@example.edu")
            user.lockout_until = None
        client.post("/api/auth/login", json={"email": "sam@example.edu", "password": "Wrong-passw0rd"})

    locked = client.post("/api/auth/login", json={"email": "sam@example.edu", "password": PASSWORD})
    assert locked.status_code == 423

    admin_inbox = client.get("/api/notifications", headers=auth(actors["admin"])).json()
    assert admin_inbox["data"][0]["message"] == (
        "User account for sam@example.edu has been locked due to multiple failed login attempts."
    )

    unlocked = client.post(f"/api/users/{actors['student_id']}/unlock", headers=auth(actors["admin"]))
    assert unlocked.json()["message"] == "User account for sam@example.edu has been unlocked."
    login(client, "sam@example.edu")


def test_admin_accounts_cannot_be_modified(client, actors):
    admin_id = client.get("/api/auth/me", headers=auth(actors["admin"])).json()["id"]

    response = client.post(f"/api/users/{admin_id}/deactivate", headers=auth(actors["admin"]))
    assert response.status_code == 403
    assert response.json()["detail"] == "Cannot modify admin accounts."


def test_admin_cannot_create_admins(client, actors):
    response = client.post(
        "/api/users",
        json={"email": "boss@example.edu", "password": PASSWORD, "role": "admin"},
        headers=auth(actors["admin"]),
    )
    assert response.status_code == 400


def test_delete_user(client, actors):
    book(client, actors)
    response = client.delete(f"/api/users/{actors['student_id']}", headers=auth(actors["admin"]))
    assert response.json()["message"] == "User sam@example.edu has been deleted."
    assert client.get("/api/appointments", headers=auth(actors["counselor"])).json()["total"] == 0


def test_websocket_receives_pushed_notifications(client, actors):
    with client.websocket_connect(f"/ws/notifications?token={actors['counselor']}") as websocket:
        websocket.send_text("ping")
        assert websocket.receive_json() == {"event": "pong"}

        assert book(client, actors).status_code == 201

        assert websocket.receive_json() == {
            "event": "new-notification",
            "message": "You have a new appointment request from Sam Student.",
        }


def test_websocket_rejects_bad_token(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/notifications?token=garbage") as websocket:
            websocket.receive_json()


def test_admin_feedback_overview(client, actors):
    appointment_id = book(client, actors).json()["id"]
    client.post(f"/api/appointments/{appointment_id}/approve", headers=auth(actors["counselor"]))
    client.post(f"/api/appointments/{appointment_id}/complete", headers=auth(actors["counselor"]))
    client.post(f"/api/appointments/{appointment_id}/feedback", json={"rating": 4}, headers=auth(actors["student"]))

    overview = client.get("/api/feedback/overview", headers=auth(actors["admin"])).json()
    assert overview["total"] == 1
    assert overview["data"][0]["counselorName"] == "Dana Reyes"
    assert overview["data"][0]["averageRating"] == 4.0
    assert overview["data"][0]["totalRatings"] == 1

    assert client.get("/api/feedback/overview", headers=auth(actors["counselor"])).status_code == 403


def test_over_long_password_login_is_rejected_not_crashed(client, actors):
    response = client.post("/api/auth/login", json={"email": "sam@example.edu", "password": "A1" + "x" * 100})
    assert response.status_code == 401
    assert response.json() == {"detail": "Invalid email or password."}
