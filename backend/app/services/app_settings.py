from __future__ import annotations

import json
from typing import Any

from sqlalchemy.orm import Session

from app.core.config import DEFAULT_COMPANY_NAME
from app.models.app_config import AppConfig
from app.schemas.settings import SETTINGS_KEY_MAP, AppSettings
from app.services.termo import DEFAULT_TERMO_DEVOLUCAO, DEFAULT_TERMO_ENTREGA

FIELD_TO_KEY = {field_name: key for key, field_name in SETTINGS_KEY_MAP.items()}


def _serialize(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def load_settings(db: Session) -> AppSettings:
    data: dict[str, Any] = {}
    for row in db.query(AppConfig).all():
        field_name = SETTINGS_KEY_MAP.get(row.config_key)
        if not field_name or row.config_value in (None, ""):
            continue
        data[field_name] = row.config_value
    return AppSettings.model_validate(data)


def save_settings(db: Session, settings: AppSettings, fields=None) -> None:
    """Grava os campos do AppSettings em app_config, sem commit."""
    values = settings.model_dump()
    names = list(fields) if fields is not None else list(values.keys())
    existing = {row.config_key: row for row in db.query(AppConfig).all()}
    for field_name in names:
        key = FIELD_TO_KEY[field_name]
        text = _serialize(values[field_name])
        row = existing.get(key)
        if row is None:
            db.add(AppConfig(config_key=key, config_value=text))
        else:
            row.config_value = text
    db.flush()


def update_settings(db: Session, **changes) -> AppSettings:
    current = load_settings(db)
    updated = AppSettings.model_validate({**current.model_dump(), **changes})
    save_settings(db, updated, fields=changes.keys())
    return updated


def default_settings() -> AppSettings:
    return AppSettings(
        company_name=DEFAULT_COMPANY_NAME,
        termo_entrega_template=DEFAULT_TERMO_ENTREGA,
        termo_devolucao_template=DEFAULT_TERMO_DEVOLUCAO,
    )


def ensure_default_settings(db: Session) -> None:
    existing = {key for (key,) in db.query(AppConfig.config_key).all()}
    missing = [
        field_name for field_name, key in FIELD_TO_KEY.items()
        if key not in existing
    ]
    if missing:
        save_settings(db, default_settings(), fields=missing)
