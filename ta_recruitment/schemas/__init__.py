"""
Schemas module - Request/Response schemas for API endpoints.
"""
from ta_recruitment.schemas.schemas import (
    UserRole,
    ApplicationStatus,
    ModuleStatus,
    RecruitmentSeriesStatus,
    ApplyRequest,
    RejectRequest,
    ModuleRequirementsUpdate,
    MessageResponse,
    ErrorResponse
)

__all__ = [
    "UserRole",
    "ApplicationStatus",
    "ModuleStatus",
    "RecruitmentSeriesStatus",
    "ApplyRequest",
    "RejectRequest",
    "ModuleRequirementsUpdate",
    "MessageResponse",
    "ErrorResponse"
]
