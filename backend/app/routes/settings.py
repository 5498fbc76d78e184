import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.auth import get_current_admin, get_current_user
from app.core.config import ADMIN_USERNAME
from app.core.permissions import is_admin
from app.database.deps import get_db
from app.models.app_config import AppConfig
from app.models.audit_log import AuditLog
from app.models.equipment import Equipment, EquipmentHistory
from app.models.license import License
from app.models.user import User
from app.schemas.settings import AppSettings, AppSettingsUpdate, ConfirmIn, TermoTemplatesOut
from app.services.app_settings import ensure_default_settings, load_settings, update_settings
from app.services.audit import log_action
from app.services.termo import DEFAULT_TERMO_DEVOLUCAO, DEFAULT_TERMO_ENTREGA

router = APIRouter(tags=["Settings"])
logger = logging.getLogger("uvicorn.error")


@router.get("/settings", response_model=AppSettings)
def get_settings(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    settings = load_settings(db)
    if not is_admin(current_user):
        settings.sso_certificate = None
    return settings


@router.put("/settings", response_model=AppSettings)
def save_settings(
    payload: AppSettingsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    changes = payload.model_dump(exclude_unset=True)
    try:
        settings = update_settings(db, **changes)
    except ValidationError as exc:
        db.rollback()
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    log_action(
        db,
        current_user.username,
        "SETTINGS_UPDATE",
        "SETTINGS",
        None,
        f"Configurações alteradas: {', '.join(sorted(changes)) or 'nenhuma'}",
    )
    db.commit()
    return settings


@router.get("/settings/termo-templates", response_model=TermoTemplatesOut)
def get_termo_templates(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    settings = load_settings(db)
    return TermoTemplatesOut(
        entrega=settings.termo_entrega_template or DEFAULT_TERMO_ENTREGA,
        devolucao=settings.termo_devolucao_template or DEFAULT_TERMO_DEVOLUCAO,
    )


@router.post("/database/clear")
def clear_database(
    payload: ConfirmIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    if not payload.confirm:
        raise HTTPException(
            status_code=422,
            detail="Esta ação apagará todos os dados do sistema e é irreversível. Envie confirm=true para continuar.",
        )
    actor = current_user.username
    try:
        db.query(EquipmentHistory).delete()
        db.query(License).delete()
        db.query(Equipment).delete()
        db.query(AuditLog).delete()
        db.query(AppConfig).delete()
        db.query(User).filter(User.username != ADMIN_USERNAME).delete()
        ensure_default_settings(db)
        log_action(db, actor, "DELETE", "DATABASE", "ALL", "Banco de dados limpo.")
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Falha ao limpar o banco de dados")
        return {"success": False, "message": "Falha ao limpar o banco de dados. Nenhuma alteração foi aplicada."}
    return {"success": True, "message": "Banco de dados limpo com sucesso."}
