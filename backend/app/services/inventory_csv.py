from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any


class CsvImportError(ValueError):
    pass


# Cabeçalho da planilha base -> campo do equipamento
BASE_COLUMNS = (
    ("EQUIPAMENTO", "equipamento"),
    ("GARANTIA", "garantia"),
    ("PATRIMONIO", "patrimonio"),
    ("SERIAL", "serial"),
    ("USUÁRIO ATUAL", "usuario_atual"),
    ("USUÁRIO ANTERIOR", "usuario_anterior"),
    ("LOCAL", "local"),
    ("SETOR", "setor"),
    ("DATA ENTREGA O USUÁRIO", "data_entrega_usuario"),
    ("STATUS", "status"),
    ("DATA DE DEVOLUÇÃO", "data_devolucao"),
    ("TIPO", "tipo"),
    ("NOTA DE COMPRA", "nota_compra"),
    ("NOTA / PL K&M", "nota_pl_km"),
    ("TERMO DE RESPONSABILIDADE", "termo_responsabilidade"),
    ("FOTO", "foto"),
    ("QR CODE", "qr_code"),
    ("MARCA", "brand"),
    ("MODELO", "model"),
    ("EMAIL COLABORADOR", "email_colaborador"),
    ("IDENTIFICADOR", "identificador"),
    ("NOME DO SO", "nome_so"),
    ("MEMÓRIA FÍSICA TOTAL", "memoria_fisica_total"),
    ("GRUPO DE POLÍTICAS", "grupo_politicas"),
    ("PAÍS", "pais"),
    ("CIDADE", "cidade"),
    ("ESTADO/PROVÍNCIA", "estado_provincia"),
)

# Relatório do agente Absolute
ABSOLUTE_COLUMNS = (
    ("NOMEDODISPOSITIVO", "equipamento"),
    ("NÚMERODESÉRIE", "serial"),
    ("NOMEDOUSUÁRIOATUAL", "usuario_atual"),
    ("MARCA", "brand"),
    ("MODELO", "model"),
    ("EMAIL DO COLABORADOR", "email_colaborador"),
    ("IDENTIFICADOR", "identificador"),
    ("NOME DO SO", "nome_so"),
    ("MEMÓRIA FÍSICA TOTAL", "memoria_fisica_total"),
    ("GRUPO DE POLÍTICAS", "grupo_politicas"),
    ("PAÍS", "pais"),
    ("CIDADE", "cidade"),
    ("ESTADO/PROVÍNCIA", "estado_provincia"),
)

STATUS_IN_USE = "Em Uso"


@dataclass
class ParsedCsv:
    records: list[dict[str, str]] = field(default_factory=list)
    total_rows: int = 0
    skipped_rows: int = 0


@dataclass
class ConsolidationResult:
    records: list[dict[str, Any]]
    base_rows: int
    absolute_rows: int
    skipped_base_rows: int
    skipped_absolute_rows: int
    merged_serials: int

    @property
    def stats(self) -> dict[str, int]:
        return {
            "base_rows": self.base_rows,
            "absolute_rows": self.absolute_rows,
            "skipped_base_rows": self.skipped_base_rows,
            "skipped_absolute_rows": self.skipped_absolute_rows,
            "merged_serials": self.merged_serials,
            "total": len(self.records),
        }


def decode_csv_bytes(raw_bytes: bytes) -> str:
    for encoding in ("utf-8-sig", "utf-8", "cp1252", "latin-1"):
        try:
            return raw_bytes.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise CsvImportError("Nao foi possivel ler o CSV enviado.")


def split_csv_line(line: str, separator: str = ",") -> list[str]:
    """Divide uma linha respeitando aspas; a aspa apenas alterna o modo e nao e copiada."""
    result: list[str] = []
    current: list[str] = []
    in_quote = False
    for char in line:
        if char == '"':
            in_quote = not in_quote
        elif char == separator and not in_quote:
            result.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    result.append("".join(current).strip())
    return result


def _normalize_header(value: str) -> str:
    return re.sub(r"[\s/]+", "", value)


def serial_key(serial: str) -> str:
    return str(serial or "").upper().replace(" ", "")


def parse_equipment_csv(text: str, columns: tuple[tuple[str, str], ...]) -> ParsedCsv:
    lines = re.split(r"\r\n|\n", str(text or "").strip())
    if len(lines) < 2:
        raise CsvImportError("O arquivo CSV deve conter um cabeçalho e pelo menos uma linha de dados.")

    mapping = dict(columns)
    header_line = lines[0][:-1] if lines[0].endswith(",") else lines[0]
    header = [cell.strip().upper() for cell in split_csv_line(header_line)]
    resolved = [mapping.get(_normalize_header(col)) or mapping.get(col) for col in header]
    if "serial" not in resolved:
        raise CsvImportError("Coluna de número de série não encontrada no cabeçalho do CSV.")

    parsed = ParsedCsv()
    for row in lines[1:]:
        if not row.strip():
            continue
        parsed.total_rows += 1
        values = split_csv_line(row)
        entry: dict[str, str] = {}
        for index, field_name in enumerate(resolved):
            if field_name and index < len(values):
                entry[field_name] = values[index].strip()

        if not entry.get("serial", "").strip():
            parsed.skipped_rows += 1
            continue
        parsed.records.append(entry)
    return parsed


def consolidate(base_text: str, absolute_text: str) -> ConsolidationResult:
    base = parse_equipment_csv(base_text, BASE_COLUMNS)
    absolute = parse_equipment_csv(absolute_text, ABSOLUTE_COLUMNS)

    merged: dict[str, dict[str, Any]] = {}
    for item in base.records:
        merged[serial_key(item["serial"])] = item

    base_keys = set(merged)
    overlapping: set[str] = set()
    for item in absolute.records:
        key = serial_key(item["serial"])
        existing = merged.get(key)
        if key in base_keys:
            overlapping.add(key)
        merged[key] = {**(existing or {}), **item}

    records = []
    for item in merged.values():
        if str(item.get("usuario_atual") or "").strip():
            item = {**item, "status": STATUS_IN_USE}
        records.append(item)

    return ConsolidationResult(
        records=records,
        base_rows=len(base.records),
        absolute_rows=len(absolute.records),
        skipped_base_rows=base.skipped_rows,
        skipped_absolute_rows=absolute.skipped_rows,
        merged_serials=len(overlapping),
    )
