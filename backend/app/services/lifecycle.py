from __future__ import annotations

import json
from datetime import date
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.models.equipment import Equipment
from app.services.approval import TransitionError
from app.services.history import compute_changes, record_history

STATUS_STOCK = "Estoque"
STATUS_IN_USE = "Em Uso"
TERMO_DELIVERY = "Assinado - Entrega"
TERMO_RETURN = "Assinado - Devolução"


def build_qr_code(item: Equipment) -> str:
    return json.dumps(
        {"id": item.id, "serial": item.serial, "type": "equipment"},
        separators=(",", ":"),
    )


def plan_delivery(
    item: Equipment,
    usuario_atual: str,
    email_colaborador: Optional[str] = None,
    today: Optional[date] = None,
) -> dict[str, Any]:
    if (item.status or "") != STATUS_STOCK:
        raise TransitionError(f"Apenas equipamentos em '{STATUS_STOCK}' podem ser entregues.")
    recipient = str(usuario_atual or "").strip()
    if not recipient:
        raise TransitionError("Informe o nome do colaborador que recebe o equipamento.")
    today = today or date.today()
    return {
        "usuario_atual": recipient,
        "email_colaborador": str(email_colaborador or "").strip(),
        "status": STATUS_IN_USE,
        "data_entrega_usuario": today.isoformat(),
        "data_devolucao": "",
        "condicao_termo": TERMO_DELIVERY,
    }


def plan_return(item: Equipment, today: Optional[date] = None) -> dict[str, Any]:
    if (item.status or "") != STATUS_IN_USE:
        raise TransitionError(f"Apenas equipamentos '{STATUS_IN_USE}' podem ser devolvidos.")
    today = today or date.today()
    return {
        "usuario_anterior": item.usuario_atual or "",
        "usuario_atual": "",
        "email_colaborador": "",
        "status": STATUS_STOCK,
        "data_devolucao": today.isoformat(),
        "condicao_termo": TERMO_RETURN,
    }


def apply_changes(db: Session, item: Equipment, updates: dict[str, Any], changed_by: Optional[str]):
    """Aplica o change-set no registro e grava o histórico na mesma transação."""
    changes = compute_changes(item, updates)
    for field_name, _before, after in changes:
        setattr(item, field_name, after)
    record_history(db, item.id, changed_by, changes)
    return changes
