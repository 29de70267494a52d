"""
Lecturer Routes

GET /lecturer/modules - Modules the lecturer coordinates
GET /lecturer/handle-requests - Applications for the lecturer's modules
PATCH /lecturer/modules/{module_id} - Edit TA requirements of a module
PATCH /lecturer/applications/{application_id}/accept - Accept an application
PATCH /lecturer/applications/{application_id}/reject - Reject an application
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends

from ta_recruitment.core.auth import require_roles
from ta_recruitment.services.application_workflow import ApplicationWorkflowService
from ta_recruitment.services.email_service import send_acceptance_email, send_removal_email
from ta_recruitment.services.mongo_service import (
    ModuleService, TaApplicationService, UserService, serialize_doc, serialize_docs, to_object_id
)
from ta_recruitment.schemas.schemas import (
    ApplicationDecisionResponse, ModuleRequirementsUpdate, ModuleUpdateResponse, RejectRequest
)

router = APIRouter(prefix="/lecturer", tags=["Lecturer"])
logger = logging.getLogger(__name__)

lecturer_only = require_roles("lecturer")


@router.get("/modules", response_model=List[dict])
async def get_my_modules(user: dict = Depends(lecturer_only)):
    """Modules where the logged-in lecturer is listed as coordinator."""
    modules = ModuleService().find_by_coordinator(to_object_id(user["user_id"]))
    logger.debug("Lecturer %s coordinates %d modules", user["user_id"], len(modules))
    return serialize_docs(modules)


@router.get("/handle-requests", response_model=List[dict])
async def handle_requests(user: dict = Depends(lecturer_only)):
    """Each coordinated module with its applications and applicant details."""
    modules = ModuleService().find_by_coordinator(to_object_id(user["user_id"]))
    applications = TaApplicationService().find_by_modules([m["_id"] for m in modules])
    applicants = UserService().get_many(list({a["userId"] for a in applications}))

    by_module = {m["_id"]: [] for m in modules}
    for application in applications:
        applicant = applicants.get(application["userId"], {})
        by_module[application["moduleId"]].append({
            **application,
            "applicant": {
                "name": applicant.get("name"),
                "email": applicant.get("email"),
                "role": applicant.get("role")
            }
        })

    return serialize_docs([
        {"module": module, "applications": by_module[module["_id"]]}
        for module in modules
    ])


@router.patch("/modules/{module_id}", response_model=ModuleUpdateResponse)
async def edit_module_requirements(
    module_id: str,
    update: ModuleRequirementsUpdate,
    background_tasks: BackgroundTasks,
    user: dict = Depends(lecturer_only)
):
    """
    Update TA hours, TA counts and requirements text of a coordinated module.

    Lowering a count below the live applications answers 409 with the
    applications that would be removed, unless confirmRemoval is set.
    Applicants whose applications are removed are emailed.
    """
    outcome = ApplicationWorkflowService().update_requirements(
        module_id,
        user["user_id"],
        required_ta_hours=update.requiredTAHours,
        undergraduate_count=update.requiredUndergraduateTACount,
        postgraduate_count=update.requiredPostgraduateTACount,
        requirements=update.requirements,
        confirm_removal=update.confirmRemoval
    )

    module = outcome.module
    for removed in outcome.removed:
        applicant = removed["applicant"] or {}
        if applicant.get("email"):
            background_tasks.add_task(
                send_removal_email,
                applicant["email"],
                applicant.get("name", ""),
                module.get("moduleCode", ""),
                module.get("moduleName", ""),
                removed["hoursReturned"]
            )

    return ModuleUpdateResponse(
        message="Module updated successfully",
        module=serialize_doc(module),
        removedApplications=len(outcome.removed)
    )


@router.patch("/applications/{application_id}/accept", response_model=ApplicationDecisionResponse)
async def accept_application(
    application_id: str,
    background_tasks: BackgroundTasks,
    user: dict = Depends(lecturer_only)
):
    """Accept a pending application. The applicant is emailed after the response is sent."""
    outcome = ApplicationWorkflowService().accept(application_id, user["user_id"])

    applicant = outcome.applicant
    if applicant and applicant.get("email"):
        background_tasks.add_task(
            send_acceptance_email,
            applicant["email"],
            applicant.get("name", ""),
            outcome.module.get("moduleCode", ""),
            outcome.module.get("moduleName", "")
        )
    else:
        logger.warning("Application %s accepted but applicant has no email", application_id)

    return ApplicationDecisionResponse(
        message="Application accepted successfully",
        application=serialize_doc(outcome.application)
    )


@router.patch("/applications/{application_id}/reject", response_model=ApplicationDecisionResponse)
async def reject_application(
    application_id: str,
    body: Optional[RejectRequest] = None,
    user: dict = Depends(lecturer_only)
):
    """Reject a pending application, optionally with a reason."""
    reason = body.reason if body else None
    outcome = ApplicationWorkflowService().reject(application_id, user["user_id"], reason)
    return ApplicationDecisionResponse(
        message="Application rejected successfully",
        application=serialize_doc(outcome.application)
    )
