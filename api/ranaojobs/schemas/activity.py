from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ActivityOut(BaseModel):
    id: int
    user_id: str
    type: str
    description: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
