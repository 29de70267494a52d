"""
Pydantic Schemas - Request/Response Validation

All API request and response schemas in one file for simplicity.
Field names follow the MongoDB documents (camelCase) so the frontend can use
the same keys for what it sends and what it receives.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Any
from enum import Enum


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, Enum):
    admin = "admin"
    undergraduate = "undergraduate"
    postgraduate = "postgraduate"
    lecturer = "lecturer"
    cse_office = "cse-office"
    hod = "hod"


class ApplicationStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"


class ModuleStatus(str, Enum):
    initialised = "initialised"
    pending_changes = "pending changes"
    changes_submitted = "changes submitted"
    advertised = "advertised"
    full = "full"


class RecruitmentSeriesStatus(str, Enum):
    initialised = "initialised"
    active = "active"
    archived = "archived"


# ============================================================
# TA (STUDENT) SCHEMAS
# ============================================================

class ApplyRequest(BaseModel):
    userId: str = Field(..., min_length=1)
    userRole: str = Field(..., min_length=1)
    moduleId: str = Field(..., min_length=1)
    recSeriesId: str = Field(..., min_length=1)
    # Defaults to the module's requiredTAHours when omitted
    taHours: Optional[float] = Field(None, gt=0)


class ApplyResponse(BaseModel):
    message: str
    application: dict


class AvailableModulesResponse(BaseModel):
    updatedModules: List[dict] = []
    availableHoursPerWeek: float = 0
    recSeriesId: Optional[str] = None


class AppliedModulesResponse(BaseModel):
    applications: List[dict] = []


class AcceptedModulesResponse(BaseModel):
    acceptedApplications: List[dict] = []
    documentStatus: List[dict] = []


# ============================================================
# LECTURER SCHEMAS
# ============================================================

class RejectRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class ModuleRequirementsUpdate(BaseModel):
    requiredTAHours: Optional[float] = Field(None, gt=0)
    requiredUndergraduateTACount: Optional[int] = Field(None, ge=0)
    requiredPostgraduateTACount: Optional[int] = Field(None, ge=0)
    requirements: Optional[str] = None
    # Must be true to drop pending applications that no longer fit the new counts
    confirmRemoval: bool = False


class ModuleUpdateResponse(BaseModel):
    message: str
    module: dict
    removedApplications: int = 0


class ApplicationDecisionResponse(BaseModel):
    message: str
    application: dict


# ============================================================
# GENERIC SCHEMAS
# ============================================================

class MessageResponse(BaseModel):
    message: str
    success: bool = True


class ErrorResponse(BaseModel):
    error: str
    details: Optional[Any] = None
