import pytest

from app.services.inventory_csv import CsvImportError
from app.services.license_csv import parse_license_csv


def test_parses_semicolon_file_with_bom_and_spaced_headers():
    text = (
        "\ufeffProduto;Tipo Licenca;Chave Serial;Data Expiracao;Usuario;Setor\n"
        "office 365;Assinatura;KEY-1;2027-01-31;Ana;TI\n"
        "\n"
        "Office 365;Assinatura;KEY-2;N/A;Bruno;RH\n"
    )
    rows = parse_license_csv(text, "Office 365")

    assert len(rows) == 2
    assert rows[0] == {
        "produto": "Office 365",
        "tipo_licenca": "Assinatura",
        "chave_serial": "KEY-1",
        "data_expiracao": "2027-01-31",
        "usuario": "Ana",
        "setor": "TI",
    }
    assert rows[1]["usuario"] == "Bruno"


def test_rejects_header_without_known_columns():
    with pytest.raises(CsvImportError, match="Cabeçalho"):
        parse_license_csv("a,b,c\n1,2,3", "Office 365")


def test_product_mismatch_reports_file_line_number():
    text = (
        "produto;chaveserial;usuario\n"
        "Office 365;K1;Ana\n"
        "\n"
        "Windows;K2;Bruno\n"
    )
    with pytest.raises(CsvImportError, match="Erro na linha 4"):
        parse_license_csv(text, "Office 365")


def test_missing_key_or_user_fails_whole_import():
    text = "produto;chaveserial;usuario\nOffice 365;;Ana\n"
    with pytest.raises(CsvImportError, match="Erro na linha 2"):
        parse_license_csv(text, "Office 365")


def test_product_column_is_required():
    text = "chaveserial;usuario\nK1;Ana\n"
    with pytest.raises(CsvImportError, match="produto"):
        parse_license_csv(text, "Office 365")


def test_quoted_semicolon_does_not_shift_columns():
    text = (
        'produto;cargo;chaveserial;usuario\n'
        'Office 365;"Analista; Sênior";KEY-9;Carla\n'
    )
    rows = parse_license_csv(text, "Office 365")
    assert rows == [
        {"produto": "Office 365", "cargo": "Analista; Sênior", "chave_serial": "KEY-9", "usuario": "Carla"}
    ]
