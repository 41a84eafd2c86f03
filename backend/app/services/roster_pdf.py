from __future__ import annotations

from datetime import date, datetime
from io import BytesIO
from typing import Any, Iterable, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.models.assignment import Assignment
from app.models.team_function import DEFAULT_FUNCTION_COLOR
from app.models.user import User
from app.services.roster import roster_for_date, scheduled_dates

MONTH_NAMES = (
    "Janeiro", "Fevereiro", "Março", "Abril", "Maio", "Junho",
    "Julho", "Agosto", "Setembro", "Outubro", "Novembro", "Dezembro",
)
WEEKDAY_NAMES = ("Segunda", "Terça", "Quarta", "Quinta", "Sexta", "Sábado", "Domingo")


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
            fontName="Helvetica",
            fontSize=10,
            leading=12,
            alignment=1,
            spaceAfter=8,
        ),
        "normal": ParagraphStyle(
            "normal",
            parent=base["Normal"],
            fontName="Helvetica",
            fontSize=9,
            leading=11,
        ),
        "small": ParagraphStyle(
            "small",
            parent=base["Normal"],
            fontName="Helvetica",
            fontSize=8,
            leading=10,
            textColor=colors.HexColor("#444444"),
        ),
    }


def _function_color(user: Optional[User]):
    color = DEFAULT_FUNCTION_COLOR
    if user is not None and user.team_function is not None and user.team_function.color:
        color = user.team_function.color
    try:
        return colors.HexColor(color)
    except ValueError:
        return colors.HexColor(DEFAULT_FUNCTION_COLOR)


def _roster_table(rows: list[tuple[Assignment, Optional[User]]], styles: dict[str, ParagraphStyle]) -> Table:
    data: list[list[Any]] = [["Data", "", "Nome", "Função"]]
    style_commands = [
        ("GRID", (0, 0), (-1, -1), 0.4, colors.black),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#ececec")),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("TOPPADDING", (0, 0), (-1, -1), 3),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
    ]

    for day_key in scheduled_dates(rows):
        weekday = WEEKDAY_NAMES[date.fromisoformat(day_key).weekday()]
        day_label = f"{date.fromisoformat(day_key).strftime('%d/%m')} ({weekday})"
        for index, (_, user) in enumerate(roster_for_date(rows, day_key)):
            row_number = len(data)
            name = user.full_name if user is not None else "Usuário removido"
            function_label = (
                user.team_function.label
                if user is not None and user.team_function is not None
                else "Sem função"
            )
            data.append([day_label if index == 0 else "", "", Paragraph(escape(name), styles["normal"]), function_label])
            style_commands.append(("BACKGROUND", (1, row_number), (1, row_number), _function_color(user)))

    table = Table(data, colWidths=[34 * mm, 6 * mm, 90 * mm, 60 * mm], repeatRows=1)
    table.setStyle(TableStyle(style_commands))
    return table


def build_month_roster_pdf(
    year: int,
    month: int,
    rows: Iterable[tuple[Assignment, Optional[User]]],
    team_name: str = "Escala da Equipe",
) -> bytes:
    rows = list(rows)
    output = BytesIO()
    document = SimpleDocTemplate(
        output,
        pagesize=A4,
        leftMargin=10 * mm,
        rightMargin=10 * mm,
        topMargin=10 * mm,
        bottomMargin=10 * mm,
        title=f"Escala {month:02d}/{year}",
    )

    styles = _styles()
    story: list[Any] = [
        Paragraph(team_name, styles["title"]),
        Paragraph(f"{MONTH_NAMES[month - 1]} de {year}", styles["subtitle"]),
    ]
    if rows:
        story.append(_roster_table(rows, styles))
    else:
        story.append(Paragraph("Nenhuma escala cadastrada neste mês.", styles["normal"]))
    story.append(Spacer(1, 8))
    story.append(Paragraph(f"Gerado em: {datetime.now().strftime('%d/%m/%Y %H:%M')}", styles["small"]))

    document.build(story)
    return output.getvalue()
