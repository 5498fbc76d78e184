from typing import Optional

from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog

ACTION_TYPES = {
    "CREATE",
    "UPDATE",
    "DELETE",
    "LOGIN",
    "LOGOUT",
    "2FA_ENABLE",
    "2FA_DISABLE",
    "SETTINGS_UPDATE",
}
TARGET_TYPES = {"EQUIPMENT", "LICENSE", "USER", "SETTINGS", "PRODUCT", "TOTALS", "DATABASE"}


def log_action(
    db: Session,
    username: Optional[str],
    action_type: str,
    target_type: str,
    target_id=None,
    details: Optional[str] = None,
) -> AuditLog:
    # Sem commit: a entrada entra na mesma transação da operação auditada.
    if action_type not in ACTION_TYPES:
        raise ValueError(f"Tipo de ação de auditoria inválido: {action_type}")
    if target_type not in TARGET_TYPES:
        raise ValueError(f"Tipo de alvo de auditoria inválido: {target_type}")
    entry = AuditLog(
        username=username,
        action_type=action_type,
        target_type=target_type,
        target_id=None if target_id is None else str(target_id),
        details=details,
    )
    db.add(entry)
    return entry
