from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.auth import get_current_admin
from app.database.deps import get_db
from app.models.user import User
from app.schemas.approval import ApprovalActionIn, PendingApprovalItemOut
from app.services.approval import (
    ApprovalPermissionError,
    TransitionError,
    change_approval,
    list_pending,
)

router = APIRouter(prefix="/approvals", tags=["Approvals"])


@router.get("/pending", response_model=list[PendingApprovalItemOut])
def pending_approvals(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    return list_pending(db)


def _run_transition(db: Session, payload: ApprovalActionIn, current_user: User, action: str) -> dict:
    try:
        changed = change_approval(db, payload.type, payload.id, current_user, action, payload.reason)
        db.commit()
    except LookupError as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ApprovalPermissionError as exc:
        db.rollback()
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except TransitionError as exc:
        db.rollback()
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {"success": True, "changed": changed}


@router.post("/approve")
def approve_item(
    payload: ApprovalActionIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    return _run_transition(db, payload, current_user, "approve")


@router.post("/reject")
def reject_item(
    payload: ApprovalActionIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    return _run_transition(db, payload, current_user, "reject")
