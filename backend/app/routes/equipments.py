import logging
from io import BytesIO
from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.auth import get_current_admin, get_current_user, require_roles
from app.core.permissions import ROLE_ADMIN, ROLE_USER_MANAGER
from app.database.deps import get_db
from app.models.equipment import Equipment, EquipmentHistory
from app.models.user import User
from app.schemas.equipment import (
    EquipmentBulkResultOut,
    EquipmentBulkSaveIn,
    EquipmentConsolidationPreviewOut,
    EquipmentCreate,
    EquipmentDeliverIn,
    EquipmentHistoryOut,
    EquipmentImportItem,
    EquipmentOut,
    EquipmentPeriodicPreviewOut,
    EquipmentTermoOut,
    EquipmentUpdate,
)
from app.services.app_settings import load_settings
from app.services.approval import (
    ApprovalPermissionError,
    TransitionError,
    apply_visibility,
    ensure_can_delete,
    ensure_can_edit,
    initial_status,
)
from app.services.audit import log_action
from app.services.inventory_csv import (
    ABSOLUTE_COLUMNS,
    CsvImportError,
    consolidate,
    decode_csv_bytes,
    parse_equipment_csv,
)
from app.services.inventory_sync import periodic_update, replace_inventory
from app.services.lifecycle import apply_changes, build_qr_code, plan_delivery, plan_return
from app.services.termo import TERMO_DEVOLUCAO, TERMO_TITLES, build_termo_pdf, render_termo

router = APIRouter(prefix="/equipment", tags=["Equipment"])
logger = logging.getLogger("uvicorn.error")
get_inventory_manager = require_roles(ROLE_ADMIN, ROLE_USER_MANAGER)

REPLACE_CONFIRM_MESSAGE = (
    "Esta ação substituirá TODO o inventário de equipamentos e é irreversível. "
    "Envie confirm=true para continuar."
)
PERIODIC_CONFIRM_MESSAGE = (
    "Confirme a atualização periódica (confirm=true). Itens existentes serão atualizados "
    "e novos serão adicionados; nenhum item será removido."
)


def _get_visible_or_404(db: Session, equipment_id: int, current_user: User) -> Equipment:
    query = db.query(Equipment).filter(Equipment.id == equipment_id)
    row = apply_visibility(query, Equipment, current_user).first()
    if not row:
        raise HTTPException(status_code=404, detail="Equipamento não encontrado.")
    return row


def _ensure_unique_serial(db: Session, serial: str, current_id: Optional[int] = None) -> None:
    query = db.query(Equipment.id).filter(Equipment.serial == serial)
    if current_id is not None:
        query = query.filter(Equipment.id != current_id)
    if query.first():
        raise HTTPException(status_code=409, detail="Já existe um equipamento com este número de série.")


def _commit_or_conflict(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="Já existe um equipamento com este número de série.") from exc


async def _read_upload(upload: UploadFile) -> str:
    raw_bytes = await upload.read()
    if not raw_bytes:
        raise HTTPException(status_code=400, detail="Arquivo CSV vazio.")
    try:
        return decode_csv_bytes(raw_bytes)
    except CsvImportError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("/", response_model=list[EquipmentOut])
def list_equipment(
    search: str = Query(default=""),
    status_filter: str = Query(default="", alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = apply_visibility(db.query(Equipment), Equipment, current_user)
    if status_filter.strip():
        query = query.filter(Equipment.status == status_filter.strip())
    term = search.strip()
    if term:
        like = f"%{term}%"
        query = query.filter(
            or_(
                Equipment.equipamento.ilike(like),
                Equipment.serial.ilike(like),
                Equipment.patrimonio.ilike(like),
                Equipment.usuario_atual.ilike(like),
                Equipment.setor.ilike(like),
            )
        )
    return query.order_by(Equipment.equipamento.asc(), Equipment.id.asc()).all()


@router.post(
    "/consolidation/preview",
    response_model=EquipmentConsolidationPreviewOut,
    response_model_exclude_none=True,
)
async def preview_consolidation(
    base_file: UploadFile = File(...),
    absolute_file: UploadFile = File(...),
    current_user: User = Depends(get_current_admin),
):
    base_text = await _read_upload(base_file)
    absolute_text = await _read_upload(absolute_file)
    try:
        result = consolidate(base_text, absolute_text)
    except CsvImportError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    if result.skipped_base_rows or result.skipped_absolute_rows:
        logger.info(
            "Consolidacao: linhas sem serial ignoradas (base=%s, absolute=%s)",
            result.skipped_base_rows,
            result.skipped_absolute_rows,
        )
    return EquipmentConsolidationPreviewOut(
        items=[EquipmentImportItem(**item) for item in result.records],
        stats=result.stats,
    )


@router.post("/consolidation/import", response_model=EquipmentBulkResultOut)
def import_consolidation(
    payload: EquipmentBulkSaveIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    if not payload.confirm:
        raise HTTPException(status_code=422, detail=REPLACE_CONFIRM_MESSAGE)
    items = [item.model_dump(exclude_unset=True, exclude_none=True) for item in payload.items]
    try:
        total = replace_inventory(db, items, current_user)
        db.commit()
    except CsvImportError as exc:
        db.rollback()
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Falha ao substituir o inventario de equipamentos")
        return EquipmentBulkResultOut(success=False, message="Falha ao salvar o inventário. Nenhuma alteração foi aplicada.")
    return EquipmentBulkResultOut(
        success=True,
        message=f"Inventário substituído por {total} itens consolidados.",
        created=total,
    )


@router.post(
    "/periodic-update/preview",
    response_model=EquipmentPeriodicPreviewOut,
    response_model_exclude_none=True,
)
async def preview_periodic_update(
    absolute_file: UploadFile = File(...),
    current_user: User = Depends(get_current_admin),
):
    text = await _read_upload(absolute_file)
    try:
        parsed = parse_equipment_csv(text, ABSOLUTE_COLUMNS)
    except CsvImportError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return EquipmentPeriodicPreviewOut(
        items=[EquipmentImportItem(**item) for item in parsed.records],
        total_rows=parsed.total_rows,
        skipped_rows=parsed.skipped_rows,
    )


@router.post("/periodic-update", response_model=EquipmentBulkResultOut)
def run_periodic_update(
    payload: EquipmentBulkSaveIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    if not payload.confirm:
        raise HTTPException(status_code=422, detail=PERIODIC_CONFIRM_MESSAGE)
    items = [item.model_dump(exclude_unset=True, exclude_none=True) for item in payload.items]
    try:
        result = periodic_update(db, items, current_user)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Falha na atualizacao periodica de equipamentos")
        return EquipmentBulkResultOut(success=False, message="Falha na atualização periódica. Nenhuma alteração foi aplicada.")
    return EquipmentBulkResultOut(
        success=True,
        message=(
            f"Atualização concluída: {result.created} criados, {result.updated} atualizados, "
            f"{result.unchanged} sem alteração, {result.skipped} ignorados."
        ),
        created=result.created,
        updated=result.updated,
        unchanged=result.unchanged,
        skipped=result.skipped,
    )


@router.get("/{equipment_id}", response_model=EquipmentOut)
def get_equipment(
    equipment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _get_visible_or_404(db, equipment_id, current_user)


@router.post("/", response_model=EquipmentOut, status_code=status.HTTP_201_CREATED)
def create_equipment(
    payload: EquipmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    data = payload.model_dump(exclude_unset=True)
    serial = data["serial"].strip()
    if not serial:
        raise HTTPException(status_code=422, detail="Número de série é obrigatório.")
    data["serial"] = serial
    _ensure_unique_serial(db, serial)

    row = Equipment(**data)
    row.approval_status = initial_status(current_user)
    row.created_by_id = current_user.id
    try:
        db.add(row)
        db.flush()
        row.qr_code = build_qr_code(row)
        log_action(db, current_user.username, "CREATE", "EQUIPMENT", row.id, f"Equipamento {row.equipamento} ({serial}) criado.")
        db.commit()
        db.refresh(row)
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="Já existe um equipamento com este número de série.") from exc
    return row


@router.put("/{equipment_id}", response_model=EquipmentOut)
def update_equipment(
    equipment_id: int,
    payload: EquipmentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    row = _get_visible_or_404(db, equipment_id, current_user)
    try:
        ensure_can_edit(current_user, row)
    except ApprovalPermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc

    data = payload.model_dump(exclude_unset=True)
    if not data:
        return row
    if "serial" in data:
        serial = str(data["serial"] or "").strip()
        if not serial:
            raise HTTPException(status_code=422, detail="Número de série é obrigatório.")
        data["serial"] = serial
        _ensure_unique_serial(db, serial, current_id=row.id)
    if "equipamento" in data and not str(data["equipamento"] or "").strip():
        raise HTTPException(status_code=422, detail="Nome do equipamento é obrigatório.")

    changes = apply_changes(db, row, data, current_user.username)
    if changes:
        if any(name == "serial" for name, _before, _after in changes):
            row.qr_code = build_qr_code(row)
        fields = ", ".join(name for name, _before, _after in changes)
        log_action(db, current_user.username, "UPDATE", "EQUIPMENT", row.id, f"Campos alterados: {fields}")
    _commit_or_conflict(db)
    db.refresh(row)
    return row


@router.delete("/{equipment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_equipment(
    equipment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    row = _get_visible_or_404(db, equipment_id, current_user)
    try:
        ensure_can_delete(current_user, row)
    except ApprovalPermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc

    log_action(db, current_user.username, "DELETE", "EQUIPMENT", row.id, f"Equipamento {row.equipamento} ({row.serial}) excluído.")
    db.delete(row)
    db.commit()
    return None


@router.get("/{equipment_id}/history", response_model=list[EquipmentHistoryOut])
def equipment_history(
    equipment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _get_visible_or_404(db, equipment_id, current_user)
    return (
        db.query(EquipmentHistory)
        .filter(EquipmentHistory.equipment_id == equipment_id)
        .order_by(EquipmentHistory.timestamp.desc(), EquipmentHistory.id.desc())
        .all()
    )


def _lock_equipment(db: Session, equipment_id: int) -> Equipment:
    row = db.query(Equipment).filter(Equipment.id == equipment_id).with_for_update().first()
    if not row:
        raise HTTPException(status_code=404, detail="Equipamento não encontrado.")
    return row


@router.post("/{equipment_id}/deliver", response_model=EquipmentOut)
def deliver_equipment(
    equipment_id: int,
    payload: EquipmentDeliverIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_inventory_manager),
):
    row = _lock_equipment(db, equipment_id)
    try:
        updates = plan_delivery(row, payload.usuario_atual, payload.email_colaborador)
    except TransitionError as exc:
        db.rollback()
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    apply_changes(db, row, updates, current_user.username)
    log_action(db, current_user.username, "UPDATE", "EQUIPMENT", row.id, f"Equipamento entregue para {row.usuario_atual}.")
    db.commit()
    db.refresh(row)
    return row


@router.post("/{equipment_id}/return", response_model=EquipmentOut)
def return_equipment(
    equipment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_inventory_manager),
):
    row = _lock_equipment(db, equipment_id)
    try:
        updates = plan_return(row)
    except TransitionError as exc:
        db.rollback()
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    apply_changes(db, row, updates, current_user.username)
    log_action(db, current_user.username, "UPDATE", "EQUIPMENT", row.id, f"Equipamento devolvido por {row.usuario_anterior}.")
    db.commit()
    db.refresh(row)
    return row


@router.get("/{equipment_id}/termo")
def equipment_termo(
    equipment_id: int,
    tipo: Literal["entrega", "devolucao"] = Query(default="entrega"),
    formato: Literal["pdf", "html"] = Query(default="pdf"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    row = _get_visible_or_404(db, equipment_id, current_user)
    settings = load_settings(db)
    template = settings.termo_devolucao_template if tipo == TERMO_DEVOLUCAO else settings.termo_entrega_template
    content = render_termo(template, row, tipo, settings.company_name, current_user.real_name)
    title = TERMO_TITLES[tipo]
    if formato == "html":
        return EquipmentTermoOut(tipo=tipo, title=title, content=content)

    pdf_bytes = build_termo_pdf(title, content)
    filename = f"termo_{tipo}_{row.serial}.pdf"
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return StreamingResponse(BytesIO(pdf_bytes), media_type="application/pdf", headers=headers)
