from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.license import License
from app.models.user import User
from app.services.app_settings import load_settings, update_settings
from app.services.approval import STATUS_APPROVED
from app.services.audit import log_action
from app.services.seat_accounting import plan_catalog_update

logger = logging.getLogger("uvicorn.error")


def license_counts(db: Session) -> dict[str, int]:
    rows = db.query(License.produto, func.count(License.id)).group_by(License.produto).all()
    return {produto: int(total) for produto, total in rows}


def list_products(db: Session) -> list[str]:
    totals = load_settings(db).license_totals
    return sorted(set(license_counts(db)) | set(totals), key=str.lower)


def update_product_catalog(
    db: Session,
    new_products: list[str],
    renames: Mapping[str, str],
    actor: User,
) -> dict[str, int]:
    """Renomeia/remove produtos e reconstrói os totais (sem commit)."""
    settings = load_settings(db)
    counts = license_counts(db)
    current = set(counts) | set(settings.license_totals)
    new_totals = plan_catalog_update(current, new_products, renames, counts, settings.license_totals)

    targets = {
        str(old).strip(): str(new).strip()
        for old, new in renames.items()
        if str(old).strip() != str(new).strip()
    }
    # trocas (A->B, B->A) e cadeias usam sempre o produto original de cada licença
    if targets:
        for row in db.query(License).filter(License.produto.in_(list(targets))).all():
            row.produto = targets[row.produto]
    for old, new in targets.items():
        log_action(db, actor.username, "UPDATE", "PRODUCT", new, f"Produto renomeado de '{old}' para '{new}'.")

    update_settings(db, license_totals=new_totals)
    return new_totals


def replace_product_licenses(
    db: Session,
    product: str,
    rows: list[dict[str, Any]],
    actor: User,
) -> int:
    """Remove as licenças do produto e insere as linhas importadas (sem commit)."""
    removed = db.query(License).filter(License.produto == product).delete()
    for row in rows:
        db.add(
            License(
                **{**row, "produto": product},
                approval_status=STATUS_APPROVED,
                created_by_id=actor.id,
            )
        )
    log_action(
        db,
        actor.username,
        "UPDATE",
        "LICENSE",
        product,
        f"Importação substituiu {removed} licenças do produto '{product}' por {len(rows)} novas.",
    )
    logger.info("Importacao de licencas: produto=%s removidas=%s inseridas=%s", product, removed, len(rows))
    return len(rows)
