from typing import Any, Iterable, Mapping, Optional

from sqlalchemy.orm import Session

from app.models.equipment import EquipmentHistory


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


def compute_changes(current: Any, updates: Mapping[str, Any], fields: Optional[Iterable[str]] = None):
    """Retorna [(campo, antes, depois)] para os campos cujo valor textual mudou."""
    names = list(fields) if fields is not None else list(updates.keys())
    changes = []
    for name in names:
        if name == "id" or name not in updates:
            continue
        before = getattr(current, name, None) if not isinstance(current, Mapping) else current.get(name)
        after = updates[name]
        if _as_text(before) != _as_text(after):
            changes.append((name, before, after))
    return changes


def record_history(db: Session, equipment_id: int, changed_by: Optional[str], changes) -> list[EquipmentHistory]:
    entries = []
    for field_name, before, after in changes:
        entry = EquipmentHistory(
            equipment_id=equipment_id,
            changed_by=changed_by,
            change_type=field_name,
            from_value=_as_text(before),
            to_value=_as_text(after),
        )
        db.add(entry)
        entries.append(entry)
    return entries
