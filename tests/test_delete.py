"""
Deleting applications reverses their ledger and counter effects according to
the status the application had when it was deleted.
"""

import pytest
from bson import ObjectId

from ta_recruitment.core.errors import ApplicationNotFound
from ta_recruitment.services.application_workflow import ApplicationWorkflowService


@pytest.fixture
def service():
    return ApplicationWorkflowService()


@pytest.fixture
def pending(db, setup, service):
    return service.apply(str(setup["student"]["_id"]), "undergraduate",
                         str(setup["module"]["_id"]), str(setup["series"]["_id"]), 3)


def _module(db, setup):
    return db.moduledetails.find_one({"_id": setup["module"]["_id"]})


def _ledger(db, setup):
    return db.appliedmodules.find_one({"userId": setup["student"]["_id"]})


def test_delete_pending_restores_everything(db, setup, service, pending):
    assert service.delete(str(pending["_id"])) is True

    assert db.taapplications.find_one({"_id": pending["_id"]}) is None
    ledger = _ledger(db, setup)
    assert ledger["availableHoursPerWeek"] == 6
    assert ledger["appliedModules"] == []
    module = _module(db, setup)
    assert module["appliedUndergraduateCount"] == 0
    assert module["undergraduateCounts"]["applied"] == 0
    assert module["undergraduateCounts"]["remaining"] == 2


def test_delete_accepted_reverses_acceptance(db, setup, service, pending):
    service.accept(str(pending["_id"]), str(setup["lecturer"]["_id"]))
    before = _module(db, setup)["undergraduateCounts"]

    service.delete(str(pending["_id"]))

    after = _module(db, setup)["undergraduateCounts"]
    assert after["accepted"] == before["accepted"] - 1
    assert after["reviewed"] == before["reviewed"] - 1
    assert after["remaining"] == before["remaining"] + 1
    assert after["applied"] == before["applied"] - 1
    ledger = _ledger(db, setup)
    assert ledger["availableHoursPerWeek"] == 6
    assert ledger["appliedModules"] == []


def test_delete_rejected_does_not_refund_twice(db, setup, service, pending):
    service.reject(str(pending["_id"]), str(setup["lecturer"]["_id"]))
    assert _ledger(db, setup)["availableHoursPerWeek"] == 6

    service.delete(str(pending["_id"]))

    ledger = _ledger(db, setup)
    assert ledger["availableHoursPerWeek"] == 6
    assert ledger["appliedModules"] == []
    counts = _module(db, setup)["undergraduateCounts"]
    assert counts["reviewed"] == 0
    assert counts["applied"] == 0
    assert counts["remaining"] == 2


def test_delete_without_module_only_removes_document(db, setup, service, pending):
    db.moduledetails.delete_one({"_id": setup["module"]["_id"]})

    assert service.delete(str(pending["_id"])) is False

    assert db.taapplications.count_documents({}) == 0
    assert _ledger(db, setup)["availableHoursPerWeek"] == 3


def test_delete_without_ledger_only_removes_document(db, setup, service, pending):
    db.appliedmodules.delete_many({})

    assert service.delete(str(pending["_id"])) is False

    assert db.taapplications.count_documents({}) == 0
    assert _module(db, setup)["appliedUndergraduateCount"] == 1


def test_delete_missing_application(db, service):
    with pytest.raises(ApplicationNotFound):
        service.delete(str(ObjectId()))


def test_apply_again_after_delete(db, setup, service, pending):
    service.delete(str(pending["_id"]))

    again = service.apply(str(setup["student"]["_id"]), "undergraduate",
                          str(setup["module"]["_id"]), str(setup["series"]["_id"]), 3)

    assert again["status"] == "pending"
    assert _ledger(db, setup)["availableHoursPerWeek"] == 3
