from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from ranaojobs.schemas.moderation import ModerationStatus

UserRole = Literal["guest", "jobseeker", "employer", "multi-role", "multi", "admin"]
RegistrableRole = Literal["jobseeker", "employer"]
ActiveRole = Literal["jobseeker", "employer"]


class UserOut(BaseModel):
    id: str
    email: str | None = None
    first_name: str
    last_name: str
    company_name: str | None = None
    role: UserRole
    active_role: ActiveRole | None = None
    profile: dict[str, Any] = Field(default_factory=dict)
    employer_verification_status: ModerationStatus | None = None
    multi_role_status: ModerationStatus | None = None
    average_rating: float = 0.0
    review_count: int = 0
    rating_distribution: dict[int, int] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class UserRegisterRequest(BaseModel):
    role: RegistrableRole
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str | None = None
    company_name: str | None = None


class UserPatchRequest(BaseModel):
    email: str | None = None
    first_name: str | None = Field(default=None, min_length=1)
    last_name: str | None = Field(default=None, min_length=1)
    company_name: str | None = None
    profile: dict[str, Any] | None = None


class ActiveRolePatchRequest(BaseModel):
    active_role: ActiveRole


class EmployerVerificationRequest(BaseModel):
    business_name: str | None = None
    business_address: str | None = None
    registration_number: str | None = None
    documents: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)


class MultiRoleRequest(BaseModel):
    jobseeker_profile: dict[str, Any] = Field(default_factory=dict)
