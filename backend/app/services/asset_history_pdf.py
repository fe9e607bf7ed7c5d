from __future__ import annotations

from io import BytesIO
from typing import Any, Iterable, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.core.timezone import format_br_date, now_business
from app.services.asset_history import location_label


def _styles() -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    return {
        "title": ParagraphStyle(
            "title",
            parent=base["Title"],
            fontName="Helvetica-Bold",
            fontSize=18,
            leading=22,
            alignment=1,
            spaceAfter=4,
        ),
        "subtitle": ParagraphStyle(
            "subtitle",
            parent=base["Normal"],
            fontName="Helvetica-Bold",
            fontSize=11,
            leading=13,
            alignment=1,
            spaceAfter=8,
        ),
        "section": ParagraphStyle(
            "section",
            parent=base["Normal"],
            fontName="Helvetica-Bold",
            fontSize=11,
            leading=13,
            spaceBefore=6,
            spaceAfter=3,
        ),
        "small": ParagraphStyle(
            "small",
            parent=base["Normal"],
            fontName="Helvetica",
            fontSize=8,
            leading=10,
        ),
    }


def _asset_table(asset: Any) -> Table:
    rows = [
        ["PAT", asset.asset_code, "Equipamento", asset.equipment_name or ""],
        ["Fabricante", asset.manufacturer or "", "Modelo", asset.model or ""],
        ["Nº Série", asset.serial_number or "", "Localização", location_label(asset.location_type)],
        [
            "Entrada no sistema",
            format_br_date(asset.effective_registration_date or asset.created_at),
            "Disponível p/ locação",
            "Sim" if asset.available_for_rental else "Não",
        ],
    ]
    table = Table(rows, colWidths=[38 * mm, 90 * mm, 42 * mm, 100 * mm])
    table.setStyle(
        TableStyle(
            [
                ("FONTNAME", (0, 0), (-1, -1), "Helvetica"),
                ("FONTSIZE", (0, 0), (-1, -1), 9),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                ("GRID", (0, 0), (-1, -1), 0.4, colors.black),
                ("BACKGROUND", (0, 0), (0, -1), colors.HexColor("#f6f6f6")),
                ("BACKGROUND", (2, 0), (2, -1), colors.HexColor("#f6f6f6")),
                ("LEFTPADDING", (0, 0), (-1, -1), 4),
                ("RIGHTPADDING", (0, 0), (-1, -1), 4),
            ]
        )
    )
    return table


def _events_table(events: Iterable[Any], styles: dict[str, ParagraphStyle]) -> Table:
    data: list[list[Any]] = [["Registrado em", "Data real", "Evento", "Detalhes", "Usuário"]]
    for event in events:
        real_date = format_br_date(event.data_evento_real)
        if event.registro_retroativo:
            real_date = f"{real_date} (retroativo)"
        data.append(
            [
                format_br_date(event.data_modificacao),
                real_date,
                event.tipo_evento,
                Paragraph(event.detalhes_evento or "", styles["small"]),
                event.usuario_nome or event.usuario_modificacao or "",
            ]
        )

    table = Table(data, colWidths=[28 * mm, 34 * mm, 38 * mm, 130 * mm, 40 * mm], repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTNAME", (0, 1), (-1, -1), "Helvetica"),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#ececec")),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ]
        )
    )
    return table


def _cycles_table(cycles: Iterable[Any], styles: dict[str, ParagraphStyle]) -> Table:
    data: list[list[Any]] = [["Ciclo", "Tipo", "Empresa / Obra", "Período", "Dias", "Motivo"]]
    for cycle in cycles:
        period = f"{format_br_date(cycle.cycle_started_at) or '-'} a {format_br_date(cycle.cycle_ended_at) or '-'}"
        data.append(
            [
                str(cycle.cycle_number),
                "Locação" if cycle.cycle_kind == "locacao" else "Manutenção",
                Paragraph(f"{cycle.company or 'N/A'} - {cycle.work_site or 'N/A'}", styles["small"]),
                period,
                "" if cycle.duration_days is None else str(cycle.duration_days),
                Paragraph(cycle.reason or "", styles["small"]),
            ]
        )

    table = Table(data, colWidths=[16 * mm, 26 * mm, 70 * mm, 48 * mm, 16 * mm, 94 * mm], repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTNAME", (0, 1), (-1, -1), "Helvetica"),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#ececec")),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ]
        )
    )
    return table


def build_asset_history_pdf(asset: Any, events: list[Any], cycles: Optional[list[Any]] = None) -> bytes:
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        leftMargin=12 * mm,
        rightMargin=12 * mm,
        topMargin=12 * mm,
        bottomMargin=12 * mm,
        title=f"Historico PAT {asset.asset_code}",
    )
    styles = _styles()
    story: list[Any] = [
        Paragraph("Histórico do Equipamento", styles["title"]),
        Paragraph(f"Emitido em {now_business().strftime('%d/%m/%Y %H:%M')}", styles["subtitle"]),
        _asset_table(asset),
        Spacer(1, 6 * mm),
        Paragraph("Eventos", styles["section"]),
    ]
    if events:
        story.append(_events_table(events, styles))
    else:
        story.append(Paragraph("Nenhum evento registrado.", styles["small"]))

    if cycles:
        story.append(Spacer(1, 6 * mm))
        story.append(Paragraph("Ciclos arquivados", styles["section"]))
        story.append(_cycles_table(cycles, styles))

    doc.build(story)
    return buffer.getvalue()
