from datetime import datetime
from typing import Literal

from pydantic import BaseModel

NotificationAudience = Literal["employer", "jobseeker", "admin"]


class NotificationOut(BaseModel):
    id: str
    audience: NotificationAudience
    recipient_id: str
    title: str
    message: str
    type: str
    is_read: bool
    link: str | None = None
    related_job_id: str | None = None
    application_id: str | None = None
    created_at: datetime


class CountOut(BaseModel):
    count: int
