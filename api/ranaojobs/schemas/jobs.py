from datetime import datetime

from pydantic import BaseModel, Field

from ranaojobs.schemas.moderation import ModerationStatus


class RatingSummaryOut(BaseModel):
    average_rating: float
    review_count: int
    rating_distribution: dict[int, int] = Field(default_factory=dict)


class JobOut(BaseModel):
    id: str
    employer_id: str
    title: str
    description: str
    category: str | None = None
    job_type: str | None = None
    location: str | None = None
    salary: str | None = None
    company_name: str | None = None
    active: bool
    verification_status: ModerationStatus
    verified_at: datetime | None = None
    rejection_reason: str | None = None
    average_rating: float = 0.0
    review_count: int = 0
    rating_distribution: dict[int, int] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class JobCreateRequest(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    category: str | None = None
    job_type: str | None = None
    location: str | None = None
    salary: str | None = None


class JobActivePatchRequest(BaseModel):
    active: bool
