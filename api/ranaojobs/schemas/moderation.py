from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

SubjectType = Literal["employer", "job", "multi_role"]
ModerationStatus = Literal["pending", "approved", "rejected"]


class ModerationSubjectOut(BaseModel):
    id: str
    subject_type: SubjectType
    subject_id: str
    owner_id: str
    label: str
    status: ModerationStatus
    payload: dict[str, Any] = Field(default_factory=dict)
    submitted_at: datetime
    decided_at: datetime | None = None
    decided_by: str | None = None
    rejection_reason: str | None = None
    updated_at: datetime


class RejectRequest(BaseModel):
    reason: str | None = None
