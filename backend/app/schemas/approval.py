from typing import Literal, Optional

from pydantic import BaseModel

ApprovalItemType = Literal["equipment", "license"]


class PendingApprovalItemOut(BaseModel):
    id: int
    name: str
    type: ApprovalItemType
    created_by_id: Optional[int] = None


class ApprovalActionIn(BaseModel):
    type: ApprovalItemType
    id: int
    reason: Optional[str] = None
