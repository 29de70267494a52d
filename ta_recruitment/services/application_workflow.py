"""
Application Workflow Service - apply, accept, reject and delete TA applications.

This is the only place that writes the cross-entity bookkeeping:
    module counters  <->  application status  <->  ledger hours

Each operation runs inside one MongoDB transaction (db.mongodb.run_in_transaction),
so a failure at any step leaves all three collections untouched.

Status machine:
    pending -> accepted
    pending -> rejected
accepted and rejected are terminal.
"""

import logging
from datetime import datetime
from typing import NamedTuple, Optional, Dict, List

from bson import ObjectId
from pymongo.client_session import ClientSession
from pymongo.errors import DuplicateKeyError

from ta_recruitment.core.config import Settings, get_settings
from ta_recruitment.core.errors import (
    AlreadyProcessed, ApplicationNotFound, DuplicateApplication, InsufficientHours,
    InvalidRole, ModuleNotFound, NotCoordinator, PositionsFilled, RemovalNeedsConfirmation,
    ValidationFailed
)
from ta_recruitment.db import mongodb
from ta_recruitment.schemas.schemas import ApplicationStatus, ModuleStatus, UserRole
from ta_recruitment.services.mongo_service import (
    AppliedModulesService, ModuleService, RecruitmentSeriesService,
    TaApplicationService, UserService, to_object_id
)

logger = logging.getLogger(__name__)


# ============================================================
# ROLE-SPECIFIC FIELD NAMES
# ============================================================

class RoleFields(NamedTuple):
    applied: str
    required: str
    counts: str
    open_flag: str
    hour_limit: str
    mailing_list: str


ROLE_FIELDS = {
    UserRole.undergraduate: RoleFields(
        applied="appliedUndergraduateCount",
        required="requiredUndergraduateTACount",
        counts="undergraduateCounts",
        open_flag="openForUndergraduates",
        hour_limit="undergradHourLimit",
        mailing_list="undergradMailingList",
    ),
    UserRole.postgraduate: RoleFields(
        applied="appliedPostgraduateCount",
        required="requiredPostgraduateTACount",
        counts="postgraduateCounts",
        open_flag="openForPostgraduates",
        hour_limit="postgradHourLimit",
        mailing_list="postgradMailingList",
    ),
}


def role_fields(role) -> RoleFields:
    """Field names for an applicant role; anything but a student role is refused."""
    try:
        return ROLE_FIELDS[UserRole(role)]
    except (ValueError, KeyError):
        raise InvalidRole()


# ============================================================
# STATUS MACHINE
# ============================================================

ALLOWED_TRANSITIONS = {
    ApplicationStatus.pending: {ApplicationStatus.accepted, ApplicationStatus.rejected},
    ApplicationStatus.accepted: set(),
    ApplicationStatus.rejected: set(),
}

# Counter corrections when an application is deleted, by its status at that time.
# The role's applied counters are always decremented on top of these.
DELETE_ADJUSTMENTS = {
    ApplicationStatus.pending: {"remaining": 1},
    ApplicationStatus.accepted: {"reviewed": -1, "accepted": -1, "remaining": 1},
    ApplicationStatus.rejected: {"reviewed": -1},
}

COUNTER_NAMES = ("required", "remaining", "applied", "reviewed", "accepted", "docSubmitted", "appointed")


def ensure_transition(current, target: ApplicationStatus) -> None:
    try:
        current = ApplicationStatus(current)
    except ValueError:
        raise AlreadyProcessed(f"Application has an unknown status: {current}")
    if target not in ALLOWED_TRANSITIONS[current]:
        raise AlreadyProcessed(f"Application has already been {current.value}")


class DecisionOutcome(NamedTuple):
    application: dict
    module: dict
    applicant: Optional[dict]


class RequirementsOutcome(NamedTuple):
    module: dict
    removed: List[dict]


# ============================================================
# WORKFLOW SERVICE
# ============================================================

class ApplicationWorkflowService:
    """
    Orchestrates the TA application lifecycle.

    Usage:
        service = ApplicationWorkflowService()
        application = service.apply(user_id, "undergraduate", module_id, series_id, 3)
        service.accept(str(application["_id"]), lecturer_id)
    """

    def __init__(self, settings: Settings = None):
        self.settings = settings or get_settings()
        self.users = UserService()
        self.series = RecruitmentSeriesService()
        self.modules = ModuleService()
        self.applications = TaApplicationService()
        self.ledgers = AppliedModulesService()

    # ----------------------------------------------------------
    # Apply
    # ----------------------------------------------------------

    def apply(self, user_id: str, user_role: str, module_id: str,
              rec_series_id: str, ta_hours: float = None) -> dict:
        """
        Apply for a TA position.

        Claims one of the module's positions for the role, records a pending
        application and charges the hours to the user's ledger for the series
        (creating the ledger on the first application).
        """
        fields = role_fields(user_role)
        user_oid = to_object_id(user_id, "userId")
        module_oid = to_object_id(module_id, "moduleId")
        series_oid = to_object_id(rec_series_id, "recSeriesId")
        role = UserRole(user_role).value

        def _apply(session: ClientSession) -> dict:
            module = self.modules.get(module_oid, session=session)
            if not module:
                raise ModuleNotFound()
            hours = self._validate_apply(module, fields, series_oid, ta_hours)

            if self.applications.find_for_user_module(user_oid, module_oid, session=session):
                raise DuplicateApplication()

            ledger = self.ledgers.find(user_oid, series_oid, session=session)
            if ledger:
                if ledger["availableHoursPerWeek"] < hours:
                    raise InsufficientHours()
            else:
                budget = self.initial_budget(fields, series_oid, session=session)
                if budget < hours:
                    raise InsufficientHours()

            if not self.modules.claim_position(module_oid, fields.applied, fields.required,
                                               fields.counts, session=session):
                raise PositionsFilled()

            try:
                application = self.applications.insert(
                    user_oid, role, module_oid, series_oid, hours, session=session
                )
            except DuplicateKeyError:
                raise DuplicateApplication()

            if ledger:
                if not self.ledgers.debit(ledger["_id"], hours, application["_id"], session=session):
                    raise InsufficientHours()
            else:
                self.ledgers.create(user_oid, series_oid, budget - hours,
                                    [application["_id"]], session=session)
            return application

        try:
            application = mongodb.run_in_transaction(_apply)
        except (DuplicateApplication, InsufficientHours, PositionsFilled) as e:
            logger.warning("Apply refused for user %s on module %s: %s", user_id, module_id, e.message)
            raise
        logger.info("User %s applied for module %s (%s hours)", user_id, module_id, application["taHours"])
        return application

    def _validate_apply(self, module: dict, fields: RoleFields,
                        series_oid: ObjectId, ta_hours: Optional[float]) -> float:
        if module.get("recruitmentSeriesId") != series_oid:
            raise ValidationFailed("Module does not belong to this recruitment series")
        if not module.get(fields.open_flag, True):
            raise ValidationFailed("Module is not open for applications from your role")

        due = module.get("applicationDueDate")
        if due and due < datetime.utcnow():
            raise ValidationFailed("Application deadline for this module has passed")

        required_hours = module.get("requiredTAHours")
        if ta_hours is None:
            ta_hours = required_hours
        elif required_hours is not None and ta_hours != required_hours:
            raise ValidationFailed("taHours does not match the module's required TA hours")
        if not ta_hours or ta_hours <= 0:
            raise ValidationFailed("Module has no TA hour requirement set")
        return ta_hours

    def initial_budget(self, fields: RoleFields, series_oid: ObjectId,
                       session: ClientSession = None) -> float:
        """Weekly hour budget for a user's first application in a series."""
        series = self.series.get(series_oid, session=session)
        if series and series.get(fields.hour_limit) is not None:
            return series[fields.hour_limit]
        if fields == ROLE_FIELDS[UserRole.undergraduate]:
            return self.settings.default_undergraduate_hours
        return self.settings.default_postgraduate_hours

    # ----------------------------------------------------------
    # Accept / Reject
    # ----------------------------------------------------------

    def accept(self, application_id: str, actor_id: str) -> DecisionOutcome:
        """Accept a pending application (coordinators only)."""
        outcome = self._decide(application_id, actor_id, ApplicationStatus.accepted)
        logger.info("Application %s accepted by %s", application_id, actor_id)
        return outcome

    def reject(self, application_id: str, actor_id: str, reason: str = None) -> DecisionOutcome:
        """Reject a pending application and give the applicant's hours back."""
        outcome = self._decide(application_id, actor_id, ApplicationStatus.rejected, reason)
        logger.info("Application %s rejected by %s", application_id, actor_id)
        return outcome

    def _decide(self, application_id: str, actor_id: str, target: ApplicationStatus,
                reason: str = None) -> DecisionOutcome:
        app_oid = to_object_id(application_id, "applicationId")
        actor_oid = to_object_id(actor_id, "userId")

        def _work(session: ClientSession) -> DecisionOutcome:
            application = self.applications.get(app_oid, session=session)
            if not application:
                raise ApplicationNotFound()
            module = self.modules.get(application["moduleId"], session=session)
            if not module:
                raise ModuleNotFound()
            if actor_oid not in module.get("coordinators", []):
                raise NotCoordinator()
            ensure_transition(application["status"], target)

            applicant = self.users.get(application["userId"], session=session)
            fields = role_fields(self._applicant_role(application, applicant))

            extra = {}
            if target is ApplicationStatus.rejected and reason:
                extra["rejectionReason"] = reason
            updated = self.applications.transition(
                app_oid, ApplicationStatus.pending.value, target.value, extra, session=session
            )
            if not updated:
                raise AlreadyProcessed()

            if target is ApplicationStatus.accepted:
                deltas = {"reviewed": 1, "accepted": 1}
            else:
                deltas = {"reviewed": 1, "remaining": 1}
                ledger = self.ledgers.find(application["userId"], module["recruitmentSeriesId"],
                                           session=session)
                if ledger:
                    self.ledgers.credit(ledger["_id"], self._charged_hours(application, module),
                                        session=session)
                else:
                    logger.warning("No ledger found for user %s, hours not refunded", application["userId"])
            self.modules.adjust_counters(
                module["_id"], self._counter_deltas(fields, deltas), session=session
            )
            return DecisionOutcome(updated, module, applicant)

        try:
            return mongodb.run_in_transaction(_work)
        except (AlreadyProcessed, NotCoordinator) as e:
            logger.warning("Decision on application %s refused: %s", application_id, e.message)
            raise

    # ----------------------------------------------------------
    # Delete
    # ----------------------------------------------------------

    def delete(self, application_id: str) -> bool:
        """
        Delete an application and undo its effects on the ledger and module.

        When the owning user, module or ledger cannot be found the document is
        removed on its own, with no counter reversal. Returns True when the
        counters were reversed.
        """
        app_oid = to_object_id(application_id, "applicationId")

        def _delete(session: ClientSession) -> bool:
            application = self.applications.get(app_oid, session=session)
            if not application:
                raise ApplicationNotFound()

            user = self.users.get(application["userId"], session=session)
            module = self.modules.get(application["moduleId"], session=session)
            ledger = None
            if module:
                ledger = self.ledgers.find(application["userId"], module["recruitmentSeriesId"],
                                           session=session)
            try:
                fields = role_fields(self._applicant_role(application, user))
                status = ApplicationStatus(application["status"])
            except (InvalidRole, ValueError):
                fields = status = None

            reversed_counts = bool(user and module and ledger and fields)
            if reversed_counts:
                # Rejection already refunded the hours
                hours = 0 if status is ApplicationStatus.rejected else self._charged_hours(application, module)
                self.ledgers.release(ledger["_id"], hours, app_oid, session=session)

                deltas = {"applied": -1, **DELETE_ADJUSTMENTS[status]}
                increments = self._counter_deltas(fields, deltas)
                increments[fields.applied] = -1
                self.modules.adjust_counters(module["_id"], increments, session=session)

            self.applications.delete(app_oid, session=session)
            return reversed_counts

        reversed_counts = mongodb.run_in_transaction(_delete)
        if reversed_counts:
            logger.info("Application %s deleted and counters reversed", application_id)
        else:
            logger.warning("Application %s deleted without counter reversal", application_id)
        return reversed_counts

    # ----------------------------------------------------------
    # Module requirements (lecturer edit)
    # ----------------------------------------------------------

    def update_requirements(self, module_id: str, actor_id: str, required_ta_hours: float = None,
                            undergraduate_count: int = None, postgraduate_count: int = None,
                            requirements: str = None, confirm_removal: bool = False) -> RequirementsOutcome:
        """
        Change a module's TA requirements (coordinators only).

        A role is open for applications exactly when its count is above zero.
        A count below the number of already accepted TAs is refused. A count
        below accepted + pending removes the most recent pending applications
        of that role, refunding their hours. Without confirm_removal that
        raises RemovalNeedsConfirmation listing the applications instead.
        """
        module_oid = to_object_id(module_id, "moduleId")
        actor_oid = to_object_id(actor_id, "userId")
        requested = {
            UserRole.undergraduate: undergraduate_count,
            UserRole.postgraduate: postgraduate_count,
        }

        def _update(session: ClientSession) -> RequirementsOutcome:
            module = self.modules.get(module_oid, session=session)
            if not module:
                raise ModuleNotFound()
            if actor_oid not in module.get("coordinators", []):
                raise NotCoordinator()

            updates = {"moduleStatus": ModuleStatus.changes_submitted.value, "updatedBy": actor_oid}
            if required_ta_hours is not None:
                updates["requiredTAHours"] = required_ta_hours
            if requirements is not None:
                updates["requirements"] = requirements

            plans = []
            for role, new_count in requested.items():
                if new_count is None:
                    continue
                fields = ROLE_FIELDS[role]
                counts = {name: 0 for name in COUNTER_NAMES}
                counts.update(module.get(fields.counts) or {})
                if new_count < counts["accepted"]:
                    raise ValidationFailed(
                        f"New {role.value} TA count cannot be less than the number of "
                        f"already accepted {role.value} TAs"
                    )
                pending = counts["applied"] - counts["reviewed"]
                excess = counts["accepted"] + pending - new_count
                dropped = []
                if excess > 0:
                    dropped = self.applications.find_recent_pending(
                        module_oid, role.value, excess, session=session
                    )
                plans.append((role, fields, counts, new_count, pending, dropped))

            to_remove = [application for plan in plans for application in plan[5]]
            if to_remove and not confirm_removal:
                raise RemovalNeedsConfirmation(
                    f"Reducing TA counts will remove {len(to_remove)} recent applications",
                    details=self._removal_summary(to_remove, module, session)
                )

            removed = []
            for role, fields, counts, new_count, pending, dropped in plans:
                for application in dropped:
                    removed.append(self._remove_for_capacity(application, module, session))
                pending -= len(dropped)
                counts["applied"] -= len(dropped)
                counts["required"] = new_count
                counts["remaining"] = max(0, new_count - counts["accepted"] - pending)
                updates[fields.counts] = counts
                updates[fields.required] = new_count
                updates[fields.applied] = (module.get(fields.applied) or 0) - len(dropped)
                updates[fields.open_flag] = new_count > 0

            updated = self.modules.update_fields(module_oid, updates, session=session)
            return RequirementsOutcome(updated, removed)

        outcome = mongodb.run_in_transaction(_update)
        logger.info("Module %s requirements updated by %s (%d applications removed)",
                    module_id, actor_id, len(outcome.removed))
        return outcome

    def _removal_summary(self, applications: List[dict], module: dict,
                         session: ClientSession = None) -> List[dict]:
        summary = []
        for application in applications:
            applicant = self.users.get(application["userId"], session=session) or {}
            summary.append({
                "applicationId": str(application["_id"]),
                "userName": applicant.get("name", "Unknown"),
                "userEmail": applicant.get("email", "Unknown"),
                "studentType": application.get("userRole"),
                "appliedAt": application.get("createdAt"),
                "hoursAllocated": self._charged_hours(application, module),
            })
        return summary

    def _remove_for_capacity(self, application: dict, module: dict, session: ClientSession) -> dict:
        """Delete one pending application dropped by a lower TA count and refund its hours."""
        hours = self._charged_hours(application, module)
        ledger = self.ledgers.find(application["userId"], module["recruitmentSeriesId"], session=session)
        if ledger:
            self.ledgers.release(ledger["_id"], hours, application["_id"], session=session)
        else:
            logger.warning("No ledger found for user %s, hours not refunded", application["userId"])
        self.applications.delete(application["_id"], session=session)
        applicant = self.users.get(application["userId"], session=session)
        return {"application": application, "applicant": applicant, "hoursReturned": hours if ledger else 0}

    # ----------------------------------------------------------
    # Helpers
    # ----------------------------------------------------------

    @staticmethod
    def _applicant_role(application: dict, user: Optional[dict]) -> Optional[str]:
        return application.get("userRole") or (user or {}).get("role")

    @staticmethod
    def _charged_hours(application: dict, module: dict) -> float:
        """Hours charged at apply time; older documents fall back to the module's requirement."""
        hours = application.get("taHours")
        if hours is None:
            hours = module.get("requiredTAHours") or 0
        return hours

    @staticmethod
    def _counter_deltas(fields: RoleFields, deltas: Dict[str, int]) -> Dict[str, int]:
        return {f"{fields.counts}.{name}": delta for name, delta in deltas.items()}
