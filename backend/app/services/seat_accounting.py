from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Mapping, Optional

from app.services.approval import STATUS_PENDING, STATUS_REJECTED

EXPIRY_PERPETUAL = "perpetua"
EXPIRY_INVALID = "invalida"
EXPIRY_EXPIRED = "expirada"
EXPIRY_EXPIRING = "expirando"
EXPIRY_ACTIVE = "ativa"
EXPIRING_WINDOW_DAYS = 30
EXPIRY_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y")


class ProductCatalogError(ValueError):
    pass


@dataclass
class ProductUsage:
    produto: str
    total: int
    used: int
    available: int
    pending: int


def product_usage(licenses: Iterable, totals: Mapping[str, int]) -> list[ProductUsage]:
    rows = list(licenses)
    products = {row.produto for row in rows if row.produto} | set(totals.keys())
    usage = []
    for product in sorted(products, key=str.lower):
        product_rows = [row for row in rows if row.produto == product]
        total = int(totals.get(product, 0) or 0)
        used = sum(1 for row in product_rows if row.approval_status != STATUS_REJECTED)
        pending = sum(1 for row in product_rows if row.approval_status == STATUS_PENDING)
        usage.append(ProductUsage(product, total, used, total - used, pending))
    return usage


def parse_expiry_date(value: Optional[str]) -> Optional[date]:
    text = str(value or "").strip()
    for fmt in EXPIRY_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def classify_expiry(value: Optional[str], today: Optional[date] = None) -> str:
    text = str(value or "").strip()
    if not text or text.upper() == "N/A":
        return EXPIRY_PERPETUAL
    expires_on = parse_expiry_date(text)
    if expires_on is None:
        return EXPIRY_INVALID
    today = today or date.today()
    if expires_on < today:
        return EXPIRY_EXPIRED
    if expires_on <= today + timedelta(days=EXPIRING_WINDOW_DAYS):
        return EXPIRY_EXPIRING
    return EXPIRY_ACTIVE


def plan_catalog_update(
    current_products: Iterable[str],
    new_products: Iterable[str],
    renames: Mapping[str, str],
    license_counts: Mapping[str, int],
    totals: Mapping[str, int],
) -> dict[str, int]:
    """Valida a nova lista de produtos e devolve os totais reconstruídos."""
    cleaned = [str(name or "").strip() for name in new_products]
    if any(not name for name in cleaned):
        raise ProductCatalogError("Nomes de produto não podem ser vazios.")
    lowered = [name.lower() for name in cleaned]
    if len(set(lowered)) != len(lowered):
        raise ProductCatalogError("Existem produtos duplicados na lista.")

    renames = {str(old).strip(): str(new).strip() for old, new in renames.items() if str(old).strip() != str(new).strip()}
    current = {str(name) for name in current_products}
    new_set = set(cleaned)
    for old, new in renames.items():
        if old not in current:
            raise ProductCatalogError(f"Produto a renomear não existe: {old}")
        if new not in new_set:
            raise ProductCatalogError(f"Novo nome '{new}' precisa estar na lista de produtos.")
        if new in current and new not in renames:
            raise ProductCatalogError(f"Já existe um produto chamado '{new}'.")

    removed_in_use = sorted(
        name for name in current
        if name not in new_set and name not in renames and license_counts.get(name, 0) > 0
    )
    if removed_in_use:
        raise ProductCatalogError(
            "Não é possível remover produtos com licenças cadastradas: " + ", ".join(removed_in_use)
        )

    moved = {name: value for name, value in totals.items() if name not in renames}
    for old, new in renames.items():
        if old in totals:
            moved[new] = totals[old]
    return {name: int(moved.get(name, 0) or 0) for name in cleaned}
