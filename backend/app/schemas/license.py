from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class LicenseData(BaseModel):
    produto: Optional[str] = None
    tipo_licenca: Optional[str] = None
    chave_serial: Optional[str] = None
    data_expiracao: Optional[str] = None
    usuario: Optional[str] = None
    cargo: Optional[str] = None
    setor: Optional[str] = None
    gestor: Optional[str] = None
    centro_custo: Optional[str] = None
    conta_razao: Optional[str] = None
    nome_computador: Optional[str] = None
    numero_chamado: Optional[str] = None
    observacoes: Optional[str] = None


LICENSE_DATA_FIELDS = tuple(LicenseData.model_fields.keys())


class LicenseCreate(LicenseData):
    produto: str = Field(min_length=1, max_length=255)
    chave_serial: str = Field(min_length=1, max_length=255)
    usuario: str = Field(min_length=1, max_length=255)


class LicenseUpdate(LicenseData):
    pass


class LicenseOut(LicenseData):
    id: int
    produto: str
    chave_serial: str
    usuario: str
    approval_status: str
    rejection_reason: Optional[str] = None
    created_by_id: Optional[int] = None
    expiration_status: str = "perpetua"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LicenseProductUsageOut(BaseModel):
    produto: str
    total: int
    used: int
    available: int
    pending: int


class LicenseTotalsIn(BaseModel):
    totals: dict[str, int]


class LicenseProductCatalogIn(BaseModel):
    products: list[str]
    renames: dict[str, str] = Field(default_factory=dict)


class LicenseImportResultOut(BaseModel):
    success: bool
    message: str
    imported_count: int = 0
