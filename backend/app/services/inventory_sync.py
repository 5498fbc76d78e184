from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from app.models.equipment import Equipment, EquipmentHistory
from app.models.user import User
from app.schemas.equipment import EQUIPMENT_DATA_FIELDS
from app.services.app_settings import update_settings
from app.services.approval import STATUS_APPROVED
from app.services.audit import log_action
from app.services.inventory_csv import CsvImportError, serial_key
from app.services.lifecycle import apply_changes, build_qr_code

logger = logging.getLogger("uvicorn.error")


@dataclass
class PeriodicUpdateResult:
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0


def _clean_record(item: dict[str, Any]) -> dict[str, Any]:
    # colunas ausentes no CSV chegam como None e não devem sobrescrever valores
    record = {
        key: value for key, value in item.items() if key in EQUIPMENT_DATA_FIELDS and value is not None
    }
    record["serial"] = str(record.get("serial") or "").strip()
    return record


def _now_iso(now: Optional[datetime]) -> str:
    return (now or datetime.now(timezone.utc)).isoformat()


def _new_equipment(record: dict[str, Any], actor: User) -> Equipment:
    row = Equipment(**record)
    row.equipamento = row.equipamento or ""
    row.approval_status = STATUS_APPROVED
    row.created_by_id = actor.id
    return row


def validate_serials(records: Iterable[dict[str, Any]]) -> None:
    seen: set[str] = set()
    for position, record in enumerate(records, start=1):
        serial = record.get("serial") or ""
        if not serial:
            raise CsvImportError(f"Item {position}: número de série vazio.")
        key = serial_key(serial)
        if key in seen:
            raise CsvImportError(f"Item {position}: número de série duplicado ({serial}).")
        seen.add(key)


def replace_inventory(db: Session, items: list[dict[str, Any]], actor: User, now: Optional[datetime] = None) -> int:
    """Substitui todo o inventário pelos itens consolidados (sem commit)."""
    records = [_clean_record(item) for item in items]
    validate_serials(records)

    db.query(EquipmentHistory).delete()
    db.query(Equipment).delete()

    rows = [_new_equipment(record, actor) for record in records]
    db.add_all(rows)
    db.flush()
    for row in rows:
        row.qr_code = build_qr_code(row)

    update_settings(
        db,
        has_initial_consolidation_run=True,
        last_absolute_update_timestamp=_now_iso(now),
    )
    log_action(
        db,
        actor.username,
        "UPDATE",
        "EQUIPMENT",
        "ALL",
        f"Inventário substituído por {len(rows)} itens consolidados.",
    )
    logger.info("Inventario substituido: %s itens (usuario=%s)", len(rows), actor.username)
    return len(rows)


def periodic_update(
    db: Session,
    items: list[dict[str, Any]],
    actor: User,
    now: Optional[datetime] = None,
) -> PeriodicUpdateResult:
    """Atualiza por serial e insere os novos; nunca remove (sem commit)."""
    result = PeriodicUpdateResult()
    for item in items:
        record = _clean_record(item)
        if not record["serial"]:
            result.skipped += 1
            continue

        existing = db.query(Equipment).filter(Equipment.serial == record["serial"]).first()
        if existing is None:
            row = _new_equipment(record, actor)
            db.add(row)
            db.flush()
            row.qr_code = build_qr_code(row)
            log_action(
                db,
                actor.username,
                "CREATE",
                "EQUIPMENT",
                row.id,
                f"Equipamento {row.serial} criado via atualização periódica.",
            )
            result.created += 1
            continue

        changes = apply_changes(db, existing, record, actor.username)
        if not changes:
            result.unchanged += 1
            continue
        log_action(
            db,
            actor.username,
            "UPDATE",
            "EQUIPMENT",
            existing.id,
            "Campos atualizados via atualização periódica: " + ", ".join(name for name, _b, _a in changes),
        )
        result.updated += 1

    update_settings(db, last_absolute_update_timestamp=_now_iso(now))
    logger.info(
        "Atualizacao periodica: criados=%s atualizados=%s inalterados=%s ignorados=%s",
        result.created,
        result.updated,
        result.unchanged,
        result.skipped,
    )
    return result
