"""
TA (Student) Routes

GET /ta/requests?userId= - Advertised modules the user can still apply for
POST /ta/apply - Apply for a TA position
GET /ta/applied-modules?userId= - User's applications with module details
GET /ta/accepted-modules?userId= - User's accepted applications
"""

from fastapi import APIRouter, Query

from ta_recruitment.core.errors import UserNotFound
from ta_recruitment.services.application_workflow import (
    ApplicationWorkflowService, role_fields
)
from ta_recruitment.services.mongo_service import (
    AppliedModulesService, ModuleService, RecruitmentSeriesService,
    TaApplicationService, UserService, serialize_doc, serialize_docs, to_object_id
)
from ta_recruitment.schemas.schemas import (
    ApplyRequest, ApplyResponse, AvailableModulesResponse,
    AppliedModulesResponse, AcceptedModulesResponse
)

router = APIRouter(prefix="/ta", tags=["TA"])


def _populate_modules(applications: list) -> list:
    """Attach each application's module, with coordinators expanded to name/email."""
    modules = ModuleService().get_many([a["moduleId"] for a in applications])
    coordinator_ids = {c for m in modules.values() for c in m.get("coordinators", [])}
    coordinators = UserService().get_many(list(coordinator_ids))

    populated = []
    for application in applications:
        module = modules.get(application["moduleId"])
        if module:
            module = dict(module)
            module["coordinators"] = [
                {
                    "id": c,
                    "displayName": coordinators[c].get("displayName") or coordinators[c].get("name"),
                    "email": coordinators[c].get("email")
                }
                for c in module.get("coordinators", []) if c in coordinators
            ]
        populated.append({**application, "moduleId": module or application["moduleId"]})
    return serialize_docs(populated)


@router.get("/requests", response_model=AvailableModulesResponse)
async def get_all_requests(userId: str = Query(..., description="Applicant user id")):
    """
    Advertised modules of the user's active recruitment series that are open
    for the user's role, not applied for yet, and fit the remaining hours.
    """
    user_oid = to_object_id(userId, "userId")
    user = UserService().get(user_oid)
    if not user:
        raise UserNotFound()
    fields = role_fields(user.get("role"))

    series = RecruitmentSeriesService().find_active_for_group(fields.mailing_list, user.get("userGroup"))
    if not series:
        return AvailableModulesResponse()

    ledger = AppliedModulesService().find(user_oid, series["_id"])
    if ledger:
        available_hours = ledger["availableHoursPerWeek"]
    else:
        available_hours = ApplicationWorkflowService().initial_budget(fields, series["_id"])

    applied = TaApplicationService().applied_module_ids(user_oid)
    modules = [
        m for m in ModuleService().find_advertised(series["_id"], fields.open_flag)
        if m["_id"] not in applied and (m.get("requiredTAHours") or 0) <= available_hours
    ]

    coordinator_ids = {c for m in modules for c in m.get("coordinators", [])}
    names = UserService().get_many(list(coordinator_ids))
    for m in modules:
        m["coordinators"] = [
            names[c].get("displayName") or names[c].get("name") if c in names else "-"
            for c in m.get("coordinators", [])
        ]

    return AvailableModulesResponse(
        updatedModules=serialize_docs(modules),
        availableHoursPerWeek=available_hours,
        recSeriesId=str(series["_id"])
    )


@router.post("/apply", response_model=ApplyResponse, status_code=201)
async def apply_for_ta(request: ApplyRequest):
    """Apply for a TA position. Claims a position and charges the hours in one transaction."""
    application = ApplicationWorkflowService().apply(
        request.userId, request.userRole, request.moduleId, request.recSeriesId, request.taHours
    )
    return ApplyResponse(
        message="Application submitted successfully",
        application=serialize_doc(application)
    )


@router.get("/applied-modules", response_model=AppliedModulesResponse)
async def get_applied_modules(userId: str = Query(...)):
    """All of a user's applications, newest first, with module and coordinator details."""
    applications = TaApplicationService().find_by_user(to_object_id(userId, "userId"))
    return AppliedModulesResponse(applications=_populate_modules(applications))


@router.get("/accepted-modules", response_model=AcceptedModulesResponse)
async def get_accepted_modules(userId: str = Query(...)):
    """Accepted applications plus the document-submission state of each ledger."""
    user_oid = to_object_id(userId, "userId")
    accepted = TaApplicationService().find_by_user(user_oid, status="accepted")
    ledgers = AppliedModulesService().find_by_user(user_oid)

    document_status = [
        {
            "recSeriesId": ledger["recSeriesId"],
            "isDocSubmitted": ledger.get("isDocSubmitted", False),
            "Documents": ledger.get("Documents", [])
        }
        for ledger in ledgers
    ]
    return AcceptedModulesResponse(
        acceptedApplications=_populate_modules(accepted),
        documentStatus=serialize_docs(document_status)
    )
