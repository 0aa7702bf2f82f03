import asyncio

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

import main
from routers import attendance as attendance_router
from routers import dashboard as dashboard_router
from utils.app_utils import get_current_user


def run(coroutine):
    return asyncio.run(coroutine)


@pytest.fixture
def people(users_collection):
    employee = {"_id": ObjectId(), "full_name": "Ada Lovelace", "email": "ada@example.com",
                "role": "employee", "department": "Engineering", "status": "active"}
    manager = {"_id": ObjectId(), "full_name": "Grace Hopper", "email": "grace@example.com",
               "role": "manager", "department": "Engineering", "status": "active"}
    designer = {"_id": ObjectId(), "full_name": "Dieter Rams", "email": "dieter@example.com",
                "role": "employee", "department": "Design", "status": "active"}
    run(users_collection.insert_many([employee, manager, designer]))
    return {"employee": employee, "manager": manager, "designer": designer}


@pytest.fixture
def client(monkeypatch, attendance_collection, users_collection, audit_logs_collection, people):
    for module in (attendance_router, dashboard_router):
        monkeypatch.setattr(module, "attendance_collection", attendance_collection)
        monkeypatch.setattr(module, "users_collection", users_collection)
    monkeypatch.setattr(attendance_router, "audit_logs_collection", audit_logs_collection)

    current = {"user": people["employee"]}
    main.app.dependency_overrides[get_current_user] = lambda: current["user"]

    test_client = TestClient(main.app)
    test_client.act_as = lambda role: current.update(user=people[role])
    yield test_client

    main.app.dependency_overrides.clear()


def test_clock_flow_over_http(client):
    response = client.post("/attendance/clock-in")
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "clocked-in"

    response = client.post("/attendance/clock-in")
    assert response.status_code == 400
    assert response.json()["detail"] == "You are already clocked in. Please clock out first."

    assert client.post("/attendance/away").json()["data"]["status"] == "away"
    assert client.post("/attendance/resume").json()["data"]["status"] == "clocked-in"

    response = client.post("/attendance/clock-out", json={"daily_report": "  "})
    assert response.status_code == 400
    assert response.json()["detail"] == "Daily report is required when clocking out"

    response = client.post("/attendance/clock-out", json={"daily_report": "Shipped the release"})
    assert response.status_code == 200
    body = response.json()["data"]
    assert body["daily_report"] == "Shipped the release"
    assert body["total_break_seconds"] >= 0

    today = client.get("/attendance/today").json()["data"]
    assert today["status"] == "clocked-out"
    assert today["breaks_count"] == 1


def test_resume_without_break_is_a_bad_request(client):
    response = client.post("/attendance/resume")

    assert response.status_code == 400
    assert response.json()["detail"] == "You are not on a break"


def test_history_validates_the_month(client):
    assert client.get("/attendance/history", params={"month": 13, "year": 2026}).status_code == 422

    response = client.get("/attendance/history", params={"month": 3, "year": 2026})
    assert response.status_code == 200
    assert response.json()["data"]["stats"]["days_present"] == 0


def test_admin_routes_require_a_management_role(client):
    assert client.get("/attendance/admin/status").status_code == 403
    response = client.post(f"/attendance/admin/{ObjectId()}/override", json={"date": "2026-03-02", "status": "present"})
    assert response.status_code == 403


def test_admin_status_lists_everyone(client, people):
    client.post("/attendance/clock-in")
    client.act_as("manager")

    response = client.get("/attendance/admin/status")

    assert response.status_code == 200
    payload = response.json()
    assert payload["count"] == 3
    statuses = {entry["full_name"]: entry["status"] for entry in payload["data"]}
    assert statuses == {"Ada Lovelace": "clocked-in", "Grace Hopper": "absent", "Dieter Rams": "absent"}


def test_admin_override_is_audited(client, people, audit_logs_collection):
    client.act_as("manager")
    target_id = str(people["employee"]["_id"])

    response = client.post(f"/attendance/admin/{target_id}/override", json={"date": "2026-03-02", "status": "present"})

    assert response.status_code == 200
    assert response.json()["message"] == "Attendance marked as present."
    assert response.json()["data"]["active_seconds"] == 28800
    entry = run(audit_logs_collection.find_one({"target_user_id": target_id}))
    assert entry["action"] == "ATTENDANCE_OVERRIDE"
    assert entry["performed_by"] == str(people["manager"]["_id"])

    history = client.get(f"/attendance/admin/{target_id}/history", params={"month": 3, "year": 2026}).json()["data"]
    assert history["user"]["email"] == "ada@example.com"
    assert history["stats"] == {"days_present": 1, "days_absent": 0, "total_records": 1,
                                "total_active_seconds": 28800, "total_working_hours": 8.0}


def test_admin_override_validation(client):
    client.act_as("manager")

    bad_date = client.post(f"/attendance/admin/{ObjectId()}/override", json={"date": "2026-02-30", "status": "present"})
    bad_status = client.post(f"/attendance/admin/{ObjectId()}/override", json={"date": "2026-03-02", "status": "late"})
    unknown_user = client.post(f"/attendance/admin/{ObjectId()}/override", json={"date": "2026-03-02", "status": "absent"})

    assert bad_date.status_code == 422
    assert bad_status.status_code == 422
    assert unknown_user.status_code == 404
    assert unknown_user.json()["detail"] == "User not found"


def test_team_overview_is_scoped_to_the_managers_department(client):
    client.post("/attendance/clock-in")
    client.act_as("designer")
    client.post("/attendance/clock-in")
    client.act_as("manager")

    overview = client.get("/dashboard/team-attendance").json()["team_overview"]

    assert overview["total_employees"] == 2
    assert overview["on_duty_count"] == 1
    assert overview["on_duty_employees"][0]["full_name"] == "Ada Lovelace"


def test_personal_dashboard_widget(client):
    client.post("/attendance/clock-in")

    response = client.get("/dashboard/attendance")

    assert response.status_code == 200
    body = response.json()
    assert body["user"]["full_name"] == "Ada Lovelace"
    assert body["attendance"]["today"]["status"] == "clocked-in"
    assert body["attendance"]["monthly_stats"]["days_present"] == 1


class UnavailableUsers:
    def find(self, *args, **kwargs):
        raise ServerSelectionTimeoutError("no servers available")

    async def find_one(self, *args, **kwargs):
        raise ServerSelectionTimeoutError("no servers available")


def test_directory_outage_is_service_unavailable(client, monkeypatch):
    monkeypatch.setattr(attendance_router, "users_collection", UnavailableUsers())
    client.act_as("manager")

    status = client.get("/attendance/admin/status")
    override = client.post(f"/attendance/admin/{ObjectId()}/override", json={"date": "2026-03-02", "status": "present"})
    history = client.get(f"/attendance/admin/{ObjectId()}/history")

    assert status.status_code == 503
    assert override.status_code == 503
    assert history.status_code == 503
    assert status.json()["detail"] == "Attendance store unavailable"
