"""
Shared fixtures.

MongoDB is replaced by mongomock. mongomock has no sessions, so the
transaction helper is swapped for one that calls the callback directly with
session=None; every workflow write still goes through the same code path.
"""

from datetime import datetime, timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

from ta_recruitment.core.auth import create_access_token
from ta_recruitment.db import mongodb


def _counts(required):
    return {
        "required": required, "remaining": required, "applied": 0, "reviewed": 0,
        "accepted": 0, "docSubmitted": 0, "appointed": 0
    }


class Seed:
    """Inserts reference documents the way the admin side of the system stores them."""

    def __init__(self, db):
        self.db = db

    def user(self, role="undergraduate", name="Student", email=None, group=None):
        doc = {
            "name": name,
            "displayName": name,
            "email": email or f"{name.lower().replace(' ', '.')}@uni.test",
            "role": role,
            "userGroup": group,
        }
        doc["_id"] = self.db.users.insert_one(doc).inserted_id
        return doc

    def series(self, ug_limit=6, pg_limit=10, ug_groups=(), pg_groups=(), status="active"):
        doc = {
            "name": "Semester 1 Recruitment",
            "status": status,
            "undergradMailingList": list(ug_groups),
            "postgradMailingList": list(pg_groups),
            "applicationDueDate": datetime.utcnow() + timedelta(days=7),
            "documentDueDate": datetime.utcnow() + timedelta(days=14),
        }
        if ug_limit is not None:
            doc["undergradHourLimit"] = ug_limit
        if pg_limit is not None:
            doc["postgradHourLimit"] = pg_limit
        doc["_id"] = self.db.recruitmentseries.insert_one(doc).inserted_id
        return doc

    def module(self, series, coordinators=(), hours=3, ug_required=2, pg_required=1,
               code="CS1010", status="advertised", due=None, open_ug=True, open_pg=True):
        doc = {
            "moduleCode": code,
            "moduleName": f"Module {code}",
            "recruitmentSeriesId": series["_id"],
            "coordinators": [c["_id"] for c in coordinators],
            "moduleStatus": status,
            "applicationDueDate": due or datetime.utcnow() + timedelta(days=7),
            "requiredTAHours": hours,
            "requiredUndergraduateTACount": ug_required,
            "requiredPostgraduateTACount": pg_required,
            "appliedUndergraduateCount": 0,
            "appliedPostgraduateCount": 0,
            "openForUndergraduates": open_ug,
            "openForPostgraduates": open_pg,
            "undergraduateCounts": _counts(ug_required),
            "postgraduateCounts": _counts(pg_required),
            "createdAt": datetime.utcnow(),
        }
        doc["_id"] = self.db.moduledetails.insert_one(doc).inserted_id
        return doc


@pytest.fixture
def db(monkeypatch):
    monkeypatch.setattr(mongodb, "_client", mongomock.MongoClient())
    monkeypatch.setattr(mongodb, "_db", None)
    monkeypatch.setattr(mongodb, "run_in_transaction", lambda callback: callback(None))
    mongodb.init_mongo_indexes()
    return mongodb.get_mongo_db()


@pytest.fixture
def seed(db):
    return Seed(db)


@pytest.fixture
def setup(seed):
    """A lecturer coordinating one advertised module in an active series, and two students."""
    lecturer = seed.user(role="lecturer", name="Dr Perera")
    series = seed.series(ug_groups=["ug-2025"], pg_groups=["pg-2025"])
    module = seed.module(series, coordinators=[lecturer])
    student = seed.user(role="undergraduate", name="Nimal", group="ug-2025")
    postgrad = seed.user(role="postgraduate", name="Kamala", group="pg-2025")
    return {
        "lecturer": lecturer,
        "series": series,
        "module": module,
        "student": student,
        "postgrad": postgrad,
    }


@pytest.fixture
def client(db):
    from ta_recruitment.main import app
    return TestClient(app)


@pytest.fixture
def auth_header():
    """Bearer header for a seeded user."""
    def _header(user):
        token = create_access_token({"sub": str(user["_id"]), "role": user["role"]})
        return {"Authorization": f"Bearer {token}"}
    return _header
