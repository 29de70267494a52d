"""
HTTP tests for /api/lecturer and the admin delete endpoint.
"""

import pytest

from ta_recruitment.api.routes import lecturer_routes


@pytest.fixture
def sent(monkeypatch):
    """Captures acceptance emails instead of sending them."""
    outbox = []
    monkeypatch.setattr(lecturer_routes, "send_acceptance_email",
                        lambda *args: outbox.append(args) or True)
    return outbox


@pytest.fixture
def application(client, setup):
    body = {
        "userId": str(setup["student"]["_id"]),
        "userRole": "undergraduate",
        "moduleId": str(setup["module"]["_id"]),
        "recSeriesId": str(setup["series"]["_id"]),
    }
    return client.post("/api/ta/apply", json=body).json()["application"]


def _accept(client, application, headers):
    return client.patch(f"/api/lecturer/applications/{application['_id']}/accept", headers=headers)


def test_missing_token_is_unauthorized(client, application):
    response = client.patch(f"/api/lecturer/applications/{application['_id']}/accept")
    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated"}


def test_garbage_token_is_unauthorized(client, application):
    response = _accept(client, application, {"Authorization": "Bearer not.a.jwt"})
    assert response.status_code == 401


def test_students_cannot_use_lecturer_routes(client, setup, application, auth_header):
    response = _accept(client, application, auth_header(setup["student"]))
    assert response.status_code == 403


def test_accept_sends_email_in_background(client, db, setup, application, auth_header, sent):
    response = _accept(client, application, auth_header(setup["lecturer"]))

    assert response.status_code == 200
    assert response.json()["message"] == "Application accepted successfully"
    assert response.json()["application"]["status"] == "accepted"
    assert sent == [(setup["student"]["email"], "Nimal", "CS1010", "Module CS1010")]
    counts = db.moduledetails.find_one({"_id": setup["module"]["_id"]})["undergraduateCounts"]
    assert counts["accepted"] == 1


def test_second_accept_is_refused(client, setup, application, auth_header, sent):
    headers = auth_header(setup["lecturer"])
    _accept(client, application, headers)

    response = _accept(client, application, headers)

    assert response.status_code == 400
    assert response.json() == {"error": "Application has already been accepted"}
    assert len(sent) == 1


def test_non_coordinator_lecturer_is_forbidden(client, seed, application, auth_header, sent):
    outsider = seed.user(role="lecturer", name="Dr Silva")

    response = _accept(client, application, auth_header(outsider))

    assert response.status_code == 403
    assert response.json() == {"error": "You are not a coordinator of this module"}
    assert sent == []


def test_reject_with_reason(client, db, setup, application, auth_header):
    response = client.patch(
        f"/api/lecturer/applications/{application['_id']}/reject",
        json={"reason": "Timetable clash"},
        headers=auth_header(setup["lecturer"])
    )

    assert response.status_code == 200
    assert response.json()["application"]["rejectionReason"] == "Timetable clash"
    ledger = db.appliedmodules.find_one({"userId": setup["student"]["_id"]})
    assert ledger["availableHoursPerWeek"] == 6


def test_reject_without_body(client, setup, application, auth_header):
    response = client.patch(
        f"/api/lecturer/applications/{application['_id']}/reject",
        headers=auth_header(setup["lecturer"])
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Application rejected successfully"


def test_decision_on_unknown_application(client, setup, auth_header):
    response = _accept(client, {"_id": "0" * 24}, auth_header(setup["lecturer"]))
    assert response.status_code == 404


def test_my_modules(client, seed, setup, auth_header):
    seed.module(setup["series"], coordinators=[seed.user(role="lecturer", name="Dr Silva")], code="CS9090")

    response = client.get("/api/lecturer/modules", headers=auth_header(setup["lecturer"]))

    assert response.status_code == 200
    assert [m["moduleCode"] for m in response.json()] == ["CS1010"]


def test_handle_requests_groups_applications_by_module(client, setup, application, auth_header):
    response = client.get("/api/lecturer/handle-requests", headers=auth_header(setup["lecturer"]))

    assert response.status_code == 200
    [entry] = response.json()
    assert entry["module"]["moduleCode"] == "CS1010"
    assert len(entry["applications"]) == 1
    assert entry["applications"][0]["applicant"] == {
        "name": "Nimal", "email": setup["student"]["email"], "role": "undergraduate"
    }


def test_edit_module_requirements(client, setup, auth_header):
    response = client.patch(
        f"/api/lecturer/modules/{setup['module']['_id']}",
        json={"requiredUndergraduateTACount": 3, "requirements": "Good at C"},
        headers=auth_header(setup["lecturer"])
    )

    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Module updated successfully"
    assert data["removedApplications"] == 0
    module = data["module"]
    assert module["undergraduateCounts"]["required"] == 3
    assert module["undergraduateCounts"]["remaining"] == 3
    assert module["requirements"] == "Good at C"


def test_lowering_count_asks_for_confirmation_then_removes(client, db, seed, setup, application,
                                                           auth_header, monkeypatch):
    outbox = []
    monkeypatch.setattr(lecturer_routes, "send_removal_email", lambda *args: outbox.append(args) or True)
    saman = seed.user(name="Saman", group="ug-2025")
    client.post("/api/ta/apply", json={
        "userId": str(saman["_id"]), "userRole": "undergraduate",
        "moduleId": str(setup["module"]["_id"]), "recSeriesId": str(setup["series"]["_id"]),
    })
    url = f"/api/lecturer/modules/{setup['module']['_id']}"
    headers = auth_header(setup["lecturer"])

    response = client.patch(url, json={"requiredUndergraduateTACount": 1}, headers=headers)

    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "Reducing TA counts will remove 1 recent applications"
    assert [a["userName"] for a in body["details"]] == ["Saman"]
    assert db.taapplications.count_documents({}) == 2
    assert outbox == []

    response = client.patch(url, json={"requiredUndergraduateTACount": 1, "confirmRemoval": True},
                            headers=headers)

    assert response.status_code == 200
    assert response.json()["removedApplications"] == 1
    assert db.taapplications.count_documents({}) == 1
    assert outbox == [(saman["email"], "Saman", "CS1010", "Module CS1010", 3)]


def test_edit_module_rejects_negative_count(client, setup, auth_header):
    response = client.patch(
        f"/api/lecturer/modules/{setup['module']['_id']}",
        json={"requiredUndergraduateTACount": -1},
        headers=auth_header(setup["lecturer"])
    )
    assert response.status_code == 400


def test_admin_deletes_application(client, db, seed, setup, application, auth_header):
    admin = seed.user(role="admin", name="Admin")

    response = client.delete(f"/api/applications/{application['_id']}", headers=auth_header(admin))

    assert response.status_code == 200
    assert response.json()["message"] == "Application deleted successfully"
    assert db.taapplications.count_documents({}) == 0
    assert db.appliedmodules.find_one({"userId": setup["student"]["_id"]})["availableHoursPerWeek"] == 6


def test_lecturer_cannot_delete(client, db, setup, application, auth_header):
    response = client.delete(f"/api/applications/{application['_id']}", headers=auth_header(setup["lecturer"]))

    assert response.status_code == 403
    assert db.taapplications.count_documents({}) == 1


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "mongodb": "connected"}
