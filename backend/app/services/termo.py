from __future__ import annotations

import html
import re
from datetime import date, datetime
from io import BytesIO
from typing import Any, Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

TERMO_ENTREGA = "entrega"
TERMO_DEVOLUCAO = "devolucao"
TERMO_TITLES = {
    TERMO_ENTREGA: "Termo de Responsabilidade",
    TERMO_DEVOLUCAO: "Termo de Devolução de Equipamento",
}
UNKNOWN_USER = "Usuário não especificado"
MONTHS_PT = (
    "janeiro",
    "fevereiro",
    "março",
    "abril",
    "maio",
    "junho",
    "julho",
    "agosto",
    "setembro",
    "outubro",
    "novembro",
    "dezembro",
)

DEFAULT_TERMO_ENTREGA = """TERMO DE RESPONSABILIDADE
Utilização de Equipamento de Propriedade da Empresa

Empresa: {{EMPRESA}}
Colaborador(a): {{USUARIO}}

Detalhes do Equipamento:
Equipamento: {{EQUIPAMENTO}}
Patrimônio: {{PATRIMONIO}}
Serial: {{SERIAL}}

Declaro, para todos os fins, ter recebido da empresa {{EMPRESA}} o equipamento descrito acima, em perfeitas condições de uso e funcionamento, para meu uso exclusivo no desempenho de minhas funções profissionais.

Comprometo-me a zelar pela guarda, conservação e bom uso do equipamento, utilizando-o de acordo com as políticas de segurança e normas da empresa. Estou ciente de que o equipamento é uma ferramenta de trabalho e não deve ser utilizado para fins pessoais não autorizados.

Em caso de dano, perda, roubo ou qualquer outro sinistro, comunicarei imediatamente meu gestor direto e o departamento de TI. Comprometo-me a devolver o equipamento nas mesmas condições em que o recebi, ressalvado o desgaste natural pelo uso normal, quando solicitado pela empresa ou ao término do meu contrato de trabalho.

________________________________________________
{{USUARIO}}

Local e Data: {{DATA}}
"""

DEFAULT_TERMO_DEVOLUCAO = """TERMO DE DEVOLUÇÃO DE EQUIPAMENTO
Devolução de Equipamento de Propriedade da Empresa

Empresa: {{EMPRESA}}
Colaborador(a): {{USUARIO}}

Detalhes do Equipamento:
Equipamento: {{EQUIPAMENTO}}
Patrimônio: {{PATRIMONIO}}
Serial: {{SERIAL}}

Declaro, para todos os fins, ter devolvido à empresa {{EMPRESA}} o equipamento descrito acima, que estava sob minha responsabilidade para uso profissional.

O equipamento foi devolvido nas mesmas condições em que o recebi, ressalvado o desgaste natural pelo uso normal, na data de {{DATA_DEVOLUCAO}}.

________________________________________________
{{USUARIO}}

Local e Data: {{DATA}}
"""

PLACEHOLDER_PATTERN = re.compile(r"\{\{([A-Z_]+)\}\}")


def long_date_pt(value: date) -> str:
    return f"{value.day:02d} de {MONTHS_PT[value.month - 1]} de {value.year}"


def short_date_pt(value: Optional[str]) -> str:
    text = str(value or "").strip()
    if not text:
        return "N/A"
    try:
        return datetime.fromisoformat(text).strftime("%d/%m/%Y")
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%d/%m/%Y").strftime("%d/%m/%Y")
    except ValueError:
        return text


def termo_recipient(equipment: Any, tipo: str, requester_name: str = "") -> str:
    if tipo == TERMO_DEVOLUCAO:
        return equipment.usuario_anterior or UNKNOWN_USER
    return equipment.usuario_atual or requester_name or UNKNOWN_USER


def render_termo(
    template: Optional[str],
    equipment: Any,
    tipo: str,
    company_name: str,
    requester_name: str = "",
    today: Optional[date] = None,
) -> str:
    if tipo not in TERMO_TITLES:
        raise ValueError(f"Tipo de termo inválido: {tipo}")
    if not template:
        template = DEFAULT_TERMO_DEVOLUCAO if tipo == TERMO_DEVOLUCAO else DEFAULT_TERMO_ENTREGA
    values = {
        "USUARIO": termo_recipient(equipment, tipo, requester_name),
        "EQUIPAMENTO": equipment.equipamento or "N/A",
        "SERIAL": equipment.serial or "N/A",
        "PATRIMONIO": equipment.patrimonio or "N/A",
        "EMPRESA": company_name or "",
        "DATA": long_date_pt(today or date.today()),
        "DATA_ENTREGA": short_date_pt(equipment.data_entrega_usuario),
        "DATA_DEVOLUCAO": short_date_pt(equipment.data_devolucao),
    }
    # Placeholders desconhecidos ficam como estão.
    return PLACEHOLDER_PATTERN.sub(lambda match: values.get(match.group(1), match.group(0)), template)


def _html_to_text(content: str) -> str:
    text = re.sub(r"(?i)<br\s*/?>|</(p|div|li|h[1-6])>", "\n", content)
    text = re.sub(r"<[^>]+>", "", text)
    text = html.unescape(text)
    return re.sub(r"\n\s*\n\s*\n+", "\n\n", text).strip()


def _styles() -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    return {
        "title": ParagraphStyle(
            "title",
            parent=base["Title"],
            fontName="Helvetica-Bold",
            fontSize=16,
            leading=20,
            alignment=1,
            spaceAfter=8,
        ),
        "normal": ParagraphStyle(
            "normal",
            parent=base["Normal"],
            fontName="Helvetica",
            fontSize=10,
            leading=14,
            alignment=4,
        ),
    }


def build_termo_pdf(title: str, content: str) -> bytes:
    output = BytesIO()
    document = SimpleDocTemplate(
        output,
        pagesize=A4,
        leftMargin=20 * mm,
        rightMargin=20 * mm,
        topMargin=18 * mm,
        bottomMargin=18 * mm,
        title=title,
    )
    styles = _styles()
    story: list[Any] = [Paragraph(html.escape(title), styles["title"]), Spacer(1, 6)]
    for block in re.split(r"\n\s*\n", _html_to_text(content)):
        lines = [html.escape(line.strip()) for line in block.splitlines() if line.strip()]
        if not lines:
            continue
        story.append(Paragraph("<br/>".join(lines), styles["normal"]))
        story.append(Spacer(1, 6))
    document.build(story)
    return output.getvalue()
