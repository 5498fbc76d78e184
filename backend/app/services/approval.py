from __future__ import annotations

from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.permissions import is_admin, is_privileged
from app.models.equipment import Equipment
from app.models.license import License
from app.models.user import User
from app.services.audit import log_action

STATUS_APPROVED = "approved"
STATUS_PENDING = "pending_approval"
STATUS_REJECTED = "rejected"

ITEM_MODELS = {"equipment": Equipment, "license": License}
AUDIT_TARGETS = {"equipment": "EQUIPMENT", "license": "LICENSE"}


class TransitionError(ValueError):
    pass


class ApprovalPermissionError(PermissionError):
    pass


def initial_status(user: Optional[User]) -> str:
    return STATUS_APPROVED if is_privileged(user) else STATUS_PENDING


def _is_owner(user: Optional[User], item) -> bool:
    return bool(user) and item.created_by_id is not None and item.created_by_id == user.id


def can_edit(user: Optional[User], item) -> bool:
    if is_privileged(user):
        return item.approval_status != STATUS_REJECTED
    return _is_owner(user, item) and item.approval_status == STATUS_PENDING


def can_delete(user: Optional[User], item) -> bool:
    if is_privileged(user):
        return True
    return _is_owner(user, item) and item.approval_status == STATUS_PENDING


def ensure_can_edit(user: Optional[User], item) -> None:
    if not can_edit(user, item):
        raise ApprovalPermissionError("Sem permissão para editar este item.")


def ensure_can_delete(user: Optional[User], item) -> None:
    if not can_delete(user, item):
        raise ApprovalPermissionError("Sem permissão para excluir este item.")


def apply_visibility(query, model, user: Optional[User]):
    if is_privileged(user):
        return query
    if not user:
        return query.filter(model.approval_status == STATUS_APPROVED)
    return query.filter(
        or_(model.approval_status == STATUS_APPROVED, model.created_by_id == user.id)
    )


def approve(item, actor: Optional[User]) -> bool:
    """Aprova um item pendente. Retorna False quando ele já estava aprovado."""
    if not is_admin(actor):
        raise ApprovalPermissionError("Apenas administradores podem aprovar itens.")
    if item.approval_status == STATUS_APPROVED:
        return False
    if item.approval_status != STATUS_PENDING:
        raise TransitionError("Somente itens pendentes podem ser aprovados.")
    item.approval_status = STATUS_APPROVED
    item.rejection_reason = None
    return True


def reject(item, actor: Optional[User], reason: Optional[str]) -> bool:
    if not is_admin(actor):
        raise ApprovalPermissionError("Apenas administradores podem rejeitar itens.")
    cleaned = str(reason or "").strip()
    if not cleaned:
        raise TransitionError("Informe o motivo da rejeição.")
    if item.approval_status != STATUS_PENDING:
        raise TransitionError("Somente itens pendentes podem ser rejeitados.")
    item.approval_status = STATUS_REJECTED
    item.rejection_reason = cleaned
    return True


def lock_item(db: Session, item_type: str, item_id: int):
    model = ITEM_MODELS.get(item_type)
    if model is None:
        raise ValueError(f"Tipo de item inválido: {item_type}")
    item = db.query(model).filter(model.id == item_id).with_for_update().first()
    if item is None:
        raise LookupError("Item não encontrado.")
    return item


def change_approval(
    db: Session,
    item_type: str,
    item_id: int,
    actor: User,
    action: str,
    reason: Optional[str] = None,
) -> bool:
    """Aplica aprovação/rejeição com lock de linha e registra auditoria (sem commit)."""
    item = lock_item(db, item_type, item_id)
    if action == "approve":
        changed = approve(item, actor)
        details = f"Item aprovado: {item_label(item_type, item)}"
    elif action == "reject":
        changed = reject(item, actor, reason)
        details = f"Item rejeitado: {item_label(item_type, item)}. Motivo: {item.rejection_reason}"
    else:
        raise ValueError(f"Ação inválida: {action}")

    if changed:
        log_action(db, actor.username, "UPDATE", AUDIT_TARGETS[item_type], item.id, details)
    return changed


def item_label(item_type: str, item) -> str:
    if item_type == "license":
        return f"{item.produto} - {item.usuario}"
    return item.equipamento or ""


def list_pending(db: Session) -> list[dict]:
    items = []
    for item_type, model in ITEM_MODELS.items():
        rows = db.query(model).filter(model.approval_status == STATUS_PENDING).order_by(model.id.asc()).all()
        for row in rows:
            items.append(
                {
                    "id": row.id,
                    "name": item_label(item_type, row),
                    "type": item_type,
                    "created_by_id": row.created_by_id,
                }
            )
    return items
