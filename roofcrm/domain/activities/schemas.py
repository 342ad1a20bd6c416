"""Activity domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ActivityResponse(BaseModel):
    id: str
    type: str
    title: str
    description: Optional[str] = None
    userId: Optional[str] = None
    leadId: Optional[str] = None
    createdAt: Optional[datetime] = None
