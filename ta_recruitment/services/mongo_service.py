"""
MongoDB Service - data access for the recruitment collections.

Collections in this database:
1. users              - people using the system (students, lecturers, admins)
2. recruitmentseries  - TA hiring rounds with per-role hour limits
3. moduledetails      - modules needing TAs, with capacity counters
4. taapplications     - one document per (user, module) application
5. appliedmodules     - ledger of remaining weekly hours per (user, series)

Every write method takes an optional `session` so the workflow service can
group writes into one transaction. Counter mutations only happen through the
workflow service (services/application_workflow.py).
"""

from datetime import datetime
from typing import Optional, List, Dict, Any
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.client_session import ClientSession
from pymongo.collection import Collection

from ta_recruitment.core.errors import ValidationFailed
from ta_recruitment.db.mongodb import get_collection, COLLECTIONS
from ta_recruitment.schemas.schemas import ApplicationStatus, ModuleStatus, RecruitmentSeriesStatus


# ============================================================
# HELPERS: ObjectId conversion and JSON serialization
# ============================================================

def to_object_id(value: Any, field: str = "id") -> ObjectId:
    """Parse an id coming from the API; malformed ids are a validation error."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationFailed(f"Invalid {field}: {value}")


def _serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: _serialize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value


def serialize_doc(doc: dict) -> dict:
    """Convert MongoDB document to JSON-serializable dict (ObjectIds become strings)."""
    if doc is None:
        return None
    return _serialize_value(doc)


def serialize_docs(docs: list) -> list:
    """Convert list of MongoDB documents to JSON-serializable list."""
    return [serialize_doc(doc) for doc in docs]


# ============================================================
# USERS COLLECTION
# ============================================================

class UserService:
    """Read access to users. Users are managed by the admin side of the system."""

    PUBLIC_FIELDS = {"name": 1, "displayName": 1, "email": 1, "role": 1}

    def __init__(self):
        self.collection: Collection = get_collection(COLLECTIONS["users"])

    def get(self, user_id: ObjectId, session: ClientSession = None) -> Optional[dict]:
        return self.collection.find_one({"_id": user_id}, session=session)

    def get_many(self, user_ids: List[ObjectId]) -> Dict[ObjectId, dict]:
        """Fetch several users at once, keyed by _id."""
        if not user_ids:
            return {}
        cursor = self.collection.find({"_id": {"$in": list(user_ids)}}, self.PUBLIC_FIELDS)
        return {doc["_id"]: doc for doc in cursor}


# ============================================================
# RECRUITMENT SERIES COLLECTION
# ============================================================

class RecruitmentSeriesService:

    def __init__(self):
        self.collection: Collection = get_collection(COLLECTIONS["recruitment_series"])

    def get(self, series_id: ObjectId, session: ClientSession = None) -> Optional[dict]:
        return self.collection.find_one({"_id": series_id}, session=session)

    def find_active_for_group(self, mailing_list_field: str, group_id: Any) -> Optional[dict]:
        """Active series whose role-specific mailing list includes the user group."""
        if group_id is None:
            return None
        return self.collection.find_one({
            "status": RecruitmentSeriesStatus.active.value,
            mailing_list_field: group_id
        })


# ============================================================
# MODULE DETAILS COLLECTION
# ============================================================

class ModuleService:
    """
    Module documents and their capacity counters.

    Counter layout per role:
        appliedUndergraduateCount / requiredUndergraduateTACount   (ceiling guard)
        undergraduateCounts.{required, remaining, applied, reviewed,
                             accepted, docSubmitted, appointed}
    and the same for postgraduates.
    """

    def __init__(self):
        self.collection: Collection = get_collection(COLLECTIONS["modules"])

    def get(self, module_id: ObjectId, session: ClientSession = None) -> Optional[dict]:
        return self.collection.find_one({"_id": module_id}, session=session)

    def get_many(self, module_ids: List[ObjectId]) -> Dict[ObjectId, dict]:
        if not module_ids:
            return {}
        cursor = self.collection.find({"_id": {"$in": list(module_ids)}})
        return {doc["_id"]: doc for doc in cursor}

    def find_advertised(self, series_id: ObjectId, open_flag_field: str) -> List[dict]:
        """Advertised modules of a series that are open for one role."""
        cursor = self.collection.find({
            "recruitmentSeriesId": series_id,
            "moduleStatus": ModuleStatus.advertised.value,
            open_flag_field: True
        }, sort=[("moduleCode", 1)])
        return list(cursor)

    def find_by_coordinator(self, user_id: ObjectId) -> List[dict]:
        """Modules where the user is listed as coordinator, newest first."""
        cursor = self.collection.find(
            {"coordinators": user_id},
            sort=[("createdAt", -1)]
        )
        return list(cursor)

    def claim_position(
        self,
        module_id: ObjectId,
        applied_field: str,
        required_field: str,
        counts_field: str,
        session: ClientSession = None
    ) -> Optional[dict]:
        """
        Atomic compare-and-increment of the role's applied count.

        Only matches while applied < required, so two concurrent applicants
        can never push the count past the ceiling. Returns the updated module,
        or None when the positions are already filled.
        """
        return self.collection.find_one_and_update(
            {
                "_id": module_id,
                "$expr": {"$lt": [f"${applied_field}", f"${required_field}"]}
            },
            {"$inc": {
                applied_field: 1,
                f"{counts_field}.applied": 1,
                f"{counts_field}.remaining": -1
            }},
            return_document=ReturnDocument.AFTER,
            session=session
        )

    def adjust_counters(self, module_id: ObjectId, increments: Dict[str, int],
                        session: ClientSession = None) -> bool:
        """Apply a set of $inc deltas to one module."""
        increments = {field: delta for field, delta in increments.items() if delta}
        if not increments:
            return False
        result = self.collection.update_one(
            {"_id": module_id},
            {"$inc": increments, "$set": {"updatedAt": datetime.utcnow()}},
            session=session
        )
        return result.modified_count > 0

    def update_fields(self, module_id: ObjectId, fields: dict, increments: Dict[str, int] = None,
                      session: ClientSession = None) -> Optional[dict]:
        """Set plain fields (and optionally $inc counters); returns the updated module."""
        update = {"$set": {**fields, "updatedAt": datetime.utcnow()}}
        increments = {field: delta for field, delta in (increments or {}).items() if delta}
        if increments:
            update["$inc"] = increments
        return self.collection.find_one_and_update(
            {"_id": module_id},
            update,
            return_document=ReturnDocument.AFTER,
            session=session
        )


# ============================================================
# TA APPLICATIONS COLLECTION
# ============================================================

class TaApplicationService:

    def __init__(self):
        self.collection: Collection = get_collection(COLLECTIONS["applications"])

    def get(self, application_id: ObjectId, session: ClientSession = None) -> Optional[dict]:
        return self.collection.find_one({"_id": application_id}, session=session)

    def find_for_user_module(self, user_id: ObjectId, module_id: ObjectId,
                             session: ClientSession = None) -> Optional[dict]:
        return self.collection.find_one({"userId": user_id, "moduleId": module_id}, session=session)

    def find_by_user(self, user_id: ObjectId, status: str = None) -> List[dict]:
        """A user's applications, newest first."""
        query = {"userId": user_id}
        if status:
            query["status"] = status
        return list(self.collection.find(query, sort=[("createdAt", -1)]))

    def find_by_modules(self, module_ids: List[ObjectId]) -> List[dict]:
        if not module_ids:
            return []
        cursor = self.collection.find(
            {"moduleId": {"$in": list(module_ids)}},
            sort=[("createdAt", 1)]
        )
        return list(cursor)

    def find_recent_pending(self, module_id: ObjectId, user_role: str, limit: int,
                            session: ClientSession = None) -> List[dict]:
        """The newest pending applications of one role for a module."""
        cursor = self.collection.find(
            {"moduleId": module_id, "userRole": user_role, "status": ApplicationStatus.pending.value},
            sort=[("createdAt", -1), ("_id", -1)],
            limit=limit,
            session=session
        )
        return list(cursor)

    def applied_module_ids(self, user_id: ObjectId) -> set:
        cursor = self.collection.find({"userId": user_id}, {"moduleId": 1})
        return {doc["moduleId"] for doc in cursor}

    def insert(self, user_id: ObjectId, user_role: str, module_id: ObjectId,
               rec_series_id: ObjectId, ta_hours: float, session: ClientSession = None) -> dict:
        """Insert a new pending application and return the stored document."""
        now = datetime.utcnow()
        doc = {
            "userId": user_id,
            "userRole": user_role,
            "moduleId": module_id,
            "recSeriesId": rec_series_id,
            "taHours": ta_hours,
            "status": ApplicationStatus.pending.value,
            "createdAt": now,
            "updatedAt": now
        }
        result = self.collection.insert_one(doc, session=session)
        doc["_id"] = result.inserted_id
        return doc

    def transition(self, application_id: ObjectId, from_status: str, to_status: str,
                   extra: dict = None, session: ClientSession = None) -> Optional[dict]:
        """
        Move an application from one status to another.

        The current status is part of the filter, so a concurrent decision on
        the same application makes this return None instead of overwriting.
        """
        update = {"status": to_status, "updatedAt": datetime.utcnow()}
        update.update(extra or {})
        return self.collection.find_one_and_update(
            {"_id": application_id, "status": from_status},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
            session=session
        )

    def delete(self, application_id: ObjectId, session: ClientSession = None) -> bool:
        result = self.collection.delete_one({"_id": application_id}, session=session)
        return result.deleted_count > 0


# ============================================================
# APPLIED MODULES COLLECTION (hour ledger)
# ============================================================

class AppliedModulesService:
    """
    Per (user, recruitment series) ledger.

    availableHoursPerWeek is the remaining weekly budget; appliedModules lists
    the application ids charged against it.
    """

    def __init__(self):
        self.collection: Collection = get_collection(COLLECTIONS["applied_modules"])

    def find(self, user_id: ObjectId, rec_series_id: ObjectId,
             session: ClientSession = None) -> Optional[dict]:
        return self.collection.find_one({"userId": user_id, "recSeriesId": rec_series_id}, session=session)

    def find_by_user(self, user_id: ObjectId) -> List[dict]:
        return list(self.collection.find({"userId": user_id}))

    def create(self, user_id: ObjectId, rec_series_id: ObjectId, available_hours: float,
               application_ids: List[ObjectId], session: ClientSession = None) -> dict:
        doc = {
            "userId": user_id,
            "recSeriesId": rec_series_id,
            "availableHoursPerWeek": available_hours,
            "appliedModules": list(application_ids),
            "isDocSubmitted": False,
            "Documents": []
        }
        result = self.collection.insert_one(doc, session=session)
        doc["_id"] = result.inserted_id
        return doc

    def debit(self, ledger_id: ObjectId, hours: float, application_id: ObjectId,
              session: ClientSession = None) -> bool:
        """
        Charge hours for a new application.
        Fails (returns False) instead of letting the budget go negative.
        """
        result = self.collection.update_one(
            {"_id": ledger_id, "availableHoursPerWeek": {"$gte": hours}},
            {
                "$inc": {"availableHoursPerWeek": -hours},
                "$push": {"appliedModules": application_id}
            },
            session=session
        )
        return result.modified_count > 0

    def credit(self, ledger_id: ObjectId, hours: float, session: ClientSession = None) -> bool:
        """Give hours back (rejected application); the application stays listed."""
        result = self.collection.update_one(
            {"_id": ledger_id},
            {"$inc": {"availableHoursPerWeek": hours}},
            session=session
        )
        return result.modified_count > 0

    def release(self, ledger_id: ObjectId, hours: float, application_id: ObjectId,
                session: ClientSession = None) -> bool:
        """Give hours back and drop the application from the ledger (deleted application)."""
        result = self.collection.update_one(
            {"_id": ledger_id},
            {
                "$inc": {"availableHoursPerWeek": hours},
                "$pull": {"appliedModules": application_id}
            },
            session=session
        )
        return result.modified_count > 0
