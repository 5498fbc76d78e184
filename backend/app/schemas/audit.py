from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class AuditLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    timestamp: Optional[datetime] = None
    username: Optional[str] = None
    action_type: str
    target_type: str
    target_id: Optional[str] = None
    details: Optional[str] = None
