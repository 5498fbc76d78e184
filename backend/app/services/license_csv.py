from __future__ import annotations

import csv
import io
import re

from app.services.inventory_csv import CsvImportError

LICENSE_COLUMNS = {
    "produto": "produto",
    "tipolicenca": "tipo_licenca",
    "chaveserial": "chave_serial",
    "dataexpiracao": "data_expiracao",
    "usuario": "usuario",
    "cargo": "cargo",
    "setor": "setor",
    "gestor": "gestor",
    "centrocusto": "centro_custo",
    "contarazao": "conta_razao",
    "nomecomputador": "nome_computador",
    "numerochamado": "numero_chamado",
}


def parse_license_csv(text: str, selected_product: str) -> list[dict[str, str]]:
    """Lê o CSV de licenças (separado por ponto e vírgula) de um único produto.

    Qualquer linha inválida aborta a importação inteira com o número da linha
    no arquivo (cabeçalho = linha 1).
    """
    product = str(selected_product or "").strip()
    if not product:
        raise CsvImportError("Selecione um produto para importar.")

    reader = csv.reader(io.StringIO(str(text or "").strip().lstrip("\ufeff")), delimiter=";")
    lines = [(reader.line_num, values) for values in reader]
    if len(lines) < 2:
        raise CsvImportError("O arquivo CSV deve conter um cabeçalho e pelo menos uma linha de dados.")

    header = [re.sub(r"\s+", "", cell.strip().lower()) for cell in lines[0][1]]
    if not any(col in LICENSE_COLUMNS for col in header):
        raise CsvImportError(
            "Cabeçalho do CSV inválido. Certifique-se que o delimitador é ponto e vírgula (;) "
            "e que as colunas esperadas estão presentes."
        )

    rows: list[dict[str, str]] = []
    for line_number, values in lines[1:]:
        if not any(value.strip() for value in values):
            continue
        entry: dict[str, str] = {}
        for index, col in enumerate(header):
            field_name = LICENSE_COLUMNS.get(col)
            if field_name and index < len(values):
                entry[field_name] = values[index].strip()

        if "produto" not in entry:
            raise CsvImportError(
                "A coluna 'produto' é obrigatória no arquivo CSV, mas não foi encontrada. "
                "Verifique o cabeçalho do arquivo."
            )
        if entry["produto"].lower() != product.lower():
            raise CsvImportError(
                f'Erro na linha {line_number}: o produto "{entry["produto"]}" no arquivo '
                f'não corresponde ao produto selecionado "{product}".'
            )
        if not entry.get("chave_serial") or not entry.get("usuario"):
            raise CsvImportError(
                f"Erro na linha {line_number}: 'chaveSerial' e 'usuario' são campos obrigatórios."
            )

        entry["produto"] = product
        rows.append(entry)
    return rows
