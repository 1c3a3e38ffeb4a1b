from datetime import datetime
from typing import Literal

from pydantic import BaseModel

ApplicationStatus = Literal["pending", "reviewed", "shortlisted", "interview", "hired", "rejected"]


class ApplicationOut(BaseModel):
    id: str
    job_id: str
    job_title: str
    employer_id: str
    jobseeker_id: str
    applicant_name: str
    cover_letter: str
    phone_number: str | None = None
    status: ApplicationStatus
    created_at: datetime
    updated_at: datetime


class ApplicationCreateRequest(BaseModel):
    cover_letter: str = ""
    phone_number: str | None = None


class ApplicationStatusPatchRequest(BaseModel):
    status: Literal["reviewed", "shortlisted", "interview", "hired", "rejected"]
