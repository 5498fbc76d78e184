from datetime import date
from types import SimpleNamespace

import pytest

from app.services.seat_accounting import (
    ProductCatalogError,
    classify_expiry,
    plan_catalog_update,
    product_usage,
)

TODAY = date(2026, 10, 19)


def lic(produto: str, status: str = "approved"):
    return SimpleNamespace(produto=produto, approval_status=status)


def test_usage_counts_non_rejected_and_allows_negative_available():
    licenses = [
        lic("Office"),
        lic("Office", "pending_approval"),
        lic("Office", "rejected"),
        lic("Windows"),
    ]
    usage = {row.produto: row for row in product_usage(licenses, {"Office": 1, "Adobe": 5})}

    assert set(usage) == {"Office", "Windows", "Adobe"}
    assert (usage["Office"].used, usage["Office"].available, usage["Office"].pending) == (2, -1, 1)
    assert (usage["Windows"].total, usage["Windows"].available) == (0, -1)
    assert (usage["Adobe"].used, usage["Adobe"].available) == (0, 5)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("", "perpetua"),
        ("N/A", "perpetua"),
        ("31/13/2026", "invalida"),
        ("2026-10-18", "expirada"),
        ("2026-11-18", "expirando"),
        ("19/12/2026", "ativa"),
    ],
)
def test_classify_expiry(value, expected):
    assert classify_expiry(value, today=TODAY) == expected


def test_catalog_rename_moves_totals_and_defaults_new_products():
    totals = plan_catalog_update(
        current_products=["Office", "Windows"],
        new_products=["Microsoft 365", "Windows", "Adobe"],
        renames={"Office": "Microsoft 365"},
        license_counts={"Office": 3, "Windows": 1},
        totals={"Office": 10, "Windows": 4},
    )
    assert totals == {"Microsoft 365": 10, "Windows": 4, "Adobe": 0}


def test_catalog_refuses_removing_product_in_use():
    with pytest.raises(ProductCatalogError, match="Windows"):
        plan_catalog_update(["Office", "Windows"], ["Office"], {}, {"Windows": 2}, {})


def test_catalog_allows_removing_unused_product():
    assert plan_catalog_update(["Office", "Visio"], ["Office"], {}, {"Office": 1}, {"Visio": 2}) == {"Office": 0}


def test_catalog_rejects_duplicates_and_blank_names():
    with pytest.raises(ProductCatalogError):
        plan_catalog_update([], ["Office", "office"], {}, {}, {})
    with pytest.raises(ProductCatalogError):
        plan_catalog_update([], ["Office", "  "], {}, {}, {})


def test_catalog_rejects_rename_onto_existing_product():
    with pytest.raises(ProductCatalogError):
        plan_catalog_update(["Office", "Windows"], ["Windows"], {"Office": "Windows"}, {"Office": 1}, {})
