from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class EquipmentData(BaseModel):
    equipamento: Optional[str] = None
    garantia: Optional[str] = None
    patrimonio: Optional[str] = None
    serial: Optional[str] = None
    usuario_atual: Optional[str] = None
    usuario_anterior: Optional[str] = None
    local: Optional[str] = None
    setor: Optional[str] = None
    data_entrega_usuario: Optional[str] = None
    status: Optional[str] = None
    data_devolucao: Optional[str] = None
    tipo: Optional[str] = None
    nota_compra: Optional[str] = None
    nota_pl_km: Optional[str] = None
    termo_responsabilidade: Optional[str] = None
    foto: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    observacoes: Optional[str] = None
    email_colaborador: Optional[str] = None
    identificador: Optional[str] = None
    nome_so: Optional[str] = None
    memoria_fisica_total: Optional[str] = None
    grupo_politicas: Optional[str] = None
    pais: Optional[str] = None
    cidade: Optional[str] = None
    estado_provincia: Optional[str] = None
    condicao_termo: Optional[str] = None


EQUIPMENT_DATA_FIELDS = tuple(EquipmentData.model_fields.keys())


class EquipmentCreate(EquipmentData):
    equipamento: str = Field(min_length=1, max_length=255)
    serial: str = Field(min_length=1, max_length=255)


class EquipmentUpdate(EquipmentData):
    pass


class EquipmentImportItem(EquipmentData):
    serial: str = Field(default="", max_length=255)


class EquipmentOut(EquipmentData):
    id: int
    equipamento: str
    serial: str
    qr_code: Optional[str] = None
    approval_status: str
    rejection_reason: Optional[str] = None
    created_by_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EquipmentHistoryOut(BaseModel):
    id: int
    equipment_id: int
    changed_by: Optional[str] = None
    change_type: str
    from_value: Optional[str] = None
    to_value: Optional[str] = None
    timestamp: Optional[datetime] = None

    class Config:
        from_attributes = True


class EquipmentDeliverIn(BaseModel):
    usuario_atual: str = Field(min_length=1, max_length=255)
    email_colaborador: Optional[str] = Field(default=None, max_length=255)


class EquipmentTermoOut(BaseModel):
    tipo: Literal["entrega", "devolucao"]
    title: str
    content: str


class EquipmentImportStatsOut(BaseModel):
    base_rows: int = 0
    absolute_rows: int = 0
    skipped_base_rows: int = 0
    skipped_absolute_rows: int = 0
    merged_serials: int = 0
    total: int = 0


class EquipmentConsolidationPreviewOut(BaseModel):
    items: list[EquipmentImportItem]
    stats: EquipmentImportStatsOut


class EquipmentPeriodicPreviewOut(BaseModel):
    items: list[EquipmentImportItem]
    total_rows: int
    skipped_rows: int


class EquipmentBulkSaveIn(BaseModel):
    items: list[EquipmentImportItem]
    confirm: bool = False


class EquipmentBulkResultOut(BaseModel):
    success: bool
    message: str
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
