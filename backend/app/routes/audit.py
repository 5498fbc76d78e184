from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.auth import get_current_admin
from app.database.deps import get_db
from app.models.audit_log import AuditLog
from app.models.user import User
from app.schemas.audit import AuditLogOut

router = APIRouter(prefix="/audit-log", tags=["Audit"])
AUDIT_PAGE_LIMIT = 500


@router.get("/", response_model=list[AuditLogOut])
def list_audit_log(
    action_type: str = Query(default=""),
    target_type: str = Query(default=""),
    username: str = Query(default=""),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    query = db.query(AuditLog)
    if action_type.strip():
        query = query.filter(AuditLog.action_type == action_type.strip().upper())
    if target_type.strip():
        query = query.filter(AuditLog.target_type == target_type.strip().upper())
    if username.strip():
        query = query.filter(AuditLog.username == username.strip())
    return query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(AUDIT_PAGE_LIMIT).all()
