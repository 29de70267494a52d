"""
Application Routes

DELETE /applications/{application_id} - Delete an application (admin only)
"""

from fastapi import APIRouter, Depends

from ta_recruitment.core.auth import require_roles
from ta_recruitment.services.application_workflow import ApplicationWorkflowService
from ta_recruitment.schemas.schemas import MessageResponse

router = APIRouter(prefix="/applications", tags=["Applications"])


@router.delete("/{application_id}", response_model=MessageResponse)
async def delete_application(application_id: str, user: dict = Depends(require_roles("admin"))):
    """Delete an application and reverse its hour and counter effects."""
    ApplicationWorkflowService().delete(application_id)
    return MessageResponse(message="Application deleted successfully")
