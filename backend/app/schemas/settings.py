import json
from typing import Optional

from pydantic import BaseModel, Field, field_validator

# config_key gravado em app_config -> campo do AppSettings
SETTINGS_KEY_MAP = {
    "companyName": "company_name",
    "isSsoEnabled": "is_sso_enabled",
    "ssoUrl": "sso_url",
    "ssoEntityId": "sso_entity_id",
    "ssoCertificate": "sso_certificate",
    "is2faEnabled": "is_2fa_enabled",
    "require2fa": "require_2fa",
    "termo_entrega_template": "termo_entrega_template",
    "termo_devolucao_template": "termo_devolucao_template",
    "hasInitialConsolidationRun": "has_initial_consolidation_run",
    "lastAbsoluteUpdateTimestamp": "last_absolute_update_timestamp",
    "license_totals": "license_totals",
}


class AppSettings(BaseModel):
    company_name: str = ""
    is_sso_enabled: bool = False
    sso_url: Optional[str] = None
    sso_entity_id: Optional[str] = None
    sso_certificate: Optional[str] = None
    is_2fa_enabled: bool = False
    require_2fa: bool = False
    termo_entrega_template: Optional[str] = None
    termo_devolucao_template: Optional[str] = None
    has_initial_consolidation_run: bool = False
    last_absolute_update_timestamp: Optional[str] = None
    license_totals: dict[str, int] = Field(default_factory=dict)

    @field_validator("license_totals", mode="before")
    @classmethod
    def parse_license_totals(cls, value):
        if value is None or value == "":
            return {}
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError as exc:
                raise ValueError("license_totals não é um JSON válido") from exc
        if not isinstance(value, dict):
            raise ValueError("license_totals deve ser um objeto produto -> total")
        return value

    @field_validator("license_totals")
    @classmethod
    def check_non_negative(cls, value: dict[str, int]) -> dict[str, int]:
        for product, total in value.items():
            if total < 0:
                raise ValueError(f"Total de licenças negativo para {product}")
        return value


class AppSettingsUpdate(BaseModel):
    company_name: Optional[str] = None
    is_sso_enabled: Optional[bool] = None
    sso_url: Optional[str] = None
    sso_entity_id: Optional[str] = None
    sso_certificate: Optional[str] = None
    is_2fa_enabled: Optional[bool] = None
    require_2fa: Optional[bool] = None
    termo_entrega_template: Optional[str] = None
    termo_devolucao_template: Optional[str] = None


class TermoTemplatesOut(BaseModel):
    entrega: str
    devolucao: str


class ConfirmIn(BaseModel):
    confirm: bool = False
