from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

ReviewStatus = Literal["active", "flagged", "removed"]


class ReviewOut(BaseModel):
    id: str
    job_id: str
    job_title: str
    jobseeker_id: str | None = None
    employer_id: str
    rating: int
    review: str
    applied_to_job: bool
    worked_at_company: bool
    anonymous: bool
    status: ReviewStatus
    helpful: int = 0
    not_helpful: int = 0
    created_at: datetime
    updated_at: datetime

    @classmethod
    def public(cls, row: dict[str, Any]) -> "ReviewOut":
        """Public listing view; anonymous reviews hide their author."""
        if row.get("anonymous"):
            row = {**row, "jobseeker_id": None}
        return cls(**row)


class ReviewCreateRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    review: str = ""
    worked_at_company: bool = False
    anonymous: bool = False


class ReviewPatchRequest(BaseModel):
    rating: int | None = Field(default=None, ge=1, le=5)
    review: str | None = None
    worked_at_company: bool | None = None
    anonymous: bool | None = None


class ReviewStatusPatchRequest(BaseModel):
    status: ReviewStatus


class HelpfulnessRequest(BaseModel):
    is_helpful: bool


class FlagRequest(BaseModel):
    reason: str | None = None


class FlagOut(BaseModel):
    id: str
    review_id: str
    job_id: str
    user_id: str
    reason: str
    status: str
    created_at: datetime
