import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.auth import get_current_admin, get_current_user
from app.database.deps import get_db
from app.models.license import License
from app.models.user import User
from app.schemas.license import (
    LicenseCreate,
    LicenseImportResultOut,
    LicenseOut,
    LicenseProductCatalogIn,
    LicenseProductUsageOut,
    LicenseTotalsIn,
    LicenseUpdate,
)
from app.services.app_settings import load_settings, update_settings
from app.services.approval import (
    ApprovalPermissionError,
    apply_visibility,
    ensure_can_delete,
    ensure_can_edit,
    initial_status,
)
from app.services.audit import log_action
from app.services.inventory_csv import CsvImportError, decode_csv_bytes
from app.services.license_catalog import list_products, replace_product_licenses, update_product_catalog
from app.services.license_csv import parse_license_csv
from app.services.seat_accounting import ProductCatalogError, classify_expiry, product_usage

router = APIRouter(prefix="/licenses", tags=["Licenses"])
logger = logging.getLogger("uvicorn.error")

REQUIRED_FIELDS = {"produto": "Produto", "chave_serial": "Chave serial", "usuario": "Usuário"}


def build_license_out(row: License) -> LicenseOut:
    out = LicenseOut.model_validate(row)
    out.expiration_status = classify_expiry(row.data_expiracao)
    return out


def _get_visible_or_404(db: Session, license_id: int, current_user: User) -> License:
    query = db.query(License).filter(License.id == license_id)
    row = apply_visibility(query, License, current_user).first()
    if not row:
        raise HTTPException(status_code=404, detail="Licença não encontrada.")
    return row


@router.get("/", response_model=list[LicenseOut])
def list_licenses(
    produto: str = Query(default=""),
    search: str = Query(default=""),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = apply_visibility(db.query(License), License, current_user)
    if produto.strip():
        query = query.filter(License.produto == produto.strip())
    term = search.strip()
    if term:
        like = f"%{term}%"
        query = query.filter(
            or_(License.usuario.ilike(like), License.chave_serial.ilike(like), License.setor.ilike(like))
        )
    rows = query.order_by(License.produto.asc(), License.usuario.asc()).all()
    return [build_license_out(row) for row in rows]


@router.get("/summary", response_model=list[LicenseProductUsageOut])
def license_summary(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    totals = load_settings(db).license_totals
    rows = db.query(License).all()
    return [LicenseProductUsageOut(**asdict(usage)) for usage in product_usage(rows, totals)]


@router.get("/totals", response_model=dict[str, int])
def get_license_totals(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return load_settings(db).license_totals


@router.put("/totals", response_model=dict[str, int])
def save_license_totals(
    payload: LicenseTotalsIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    invalid = sorted(name for name, total in payload.totals.items() if total < 0)
    if invalid:
        raise HTTPException(status_code=422, detail=f"Totais não podem ser negativos: {', '.join(invalid)}")
    settings = update_settings(db, license_totals=payload.totals)
    log_action(db, current_user.username, "UPDATE", "TOTALS", None, "Totais de licenças atualizados.")
    db.commit()
    return settings.license_totals


@router.get("/products", response_model=list[str])
def get_products(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return list_products(db)


@router.put("/products", response_model=dict[str, int])
def save_products(
    payload: LicenseProductCatalogIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    try:
        totals = update_product_catalog(db, payload.products, payload.renames, current_user)
        db.commit()
    except ProductCatalogError as exc:
        db.rollback()
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return totals


@router.post("/import", response_model=LicenseImportResultOut)
async def import_licenses(
    produto: str = Form(...),
    confirm: bool = Form(False),
    csv_file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin),
):
    if not confirm:
        raise HTTPException(
            status_code=422,
            detail=f'Esta ação substituirá TODAS as licenças do produto "{produto}". Envie confirm=true para continuar.',
        )
    raw_bytes = await csv_file.read()
    if not raw_bytes:
        raise HTTPException(status_code=400, detail="Arquivo CSV vazio.")
    try:
        rows = parse_license_csv(decode_csv_bytes(raw_bytes), produto)
    except CsvImportError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _persist_license_import(db, produto.strip(), rows, current_user)


def _persist_license_import(db: Session, product: str, rows: list[dict], current_user: User) -> LicenseImportResultOut:
    try:
        imported = replace_product_licenses(db, product, rows, current_user)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Falha ao importar licencas do produto %s", product)
        return LicenseImportResultOut(success=False, message="Falha ao importar licenças. Nenhuma alteração foi aplicada.")
    return LicenseImportResultOut(
        success=True,
        message=f'{imported} licenças importadas para o produto "{product}".',
        imported_count=imported,
    )


@router.get("/{license_id}", response_model=LicenseOut)
def get_license(
    license_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return build_license_out(_get_visible_or_404(db, license_id, current_user))


@router.post("/", response_model=LicenseOut, status_code=status.HTTP_201_CREATED)
def create_license(
    payload: LicenseCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    data = payload.model_dump(exclude_unset=True)
    for field_name, label in REQUIRED_FIELDS.items():
        data[field_name] = str(data.get(field_name) or "").strip()
        if not data[field_name]:
            raise HTTPException(status_code=422, detail=f"{label} é obrigatório.")

    row = License(**data)
    row.approval_status = initial_status(current_user)
    row.created_by_id = current_user.id
    db.add(row)
    db.flush()
    log_action(db, current_user.username, "CREATE", "LICENSE", row.id, f"Licença {row.produto} criada para {row.usuario}.")
    db.commit()
    db.refresh(row)
    return build_license_out(row)


@router.put("/{license_id}", response_model=LicenseOut)
def update_license(
    license_id: int,
    payload: LicenseUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    row = _get_visible_or_404(db, license_id, current_user)
    try:
        ensure_can_edit(current_user, row)
    except ApprovalPermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc

    data = payload.model_dump(exclude_unset=True)
    changed: list[str] = []
    for field_name, value in data.items():
        if field_name in REQUIRED_FIELDS:
            value = str(value or "").strip()
            if not value:
                raise HTTPException(status_code=422, detail=f"{REQUIRED_FIELDS[field_name]} é obrigatório.")
        if (getattr(row, field_name) or "") != (value or ""):
            setattr(row, field_name, value)
            changed.append(field_name)
    if changed:
        log_action(db, current_user.username, "UPDATE", "LICENSE", row.id, f"Campos alterados: {', '.join(changed)}")
        db.commit()
        db.refresh(row)
    return build_license_out(row)


@router.delete("/{license_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_license(
    license_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    row = _get_visible_or_404(db, license_id, current_user)
    try:
        ensure_can_delete(current_user, row)
    except ApprovalPermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc

    log_action(db, current_user.username, "DELETE", "LICENSE", row.id, f"Licença {row.produto} de {row.usuario} excluída.")
    db.delete(row)
    db.commit()
    return None
