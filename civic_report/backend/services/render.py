from __future__ import annotations

import datetime as dt
import io
import math
from typing import Any

from services.table import SummaryTable


def _fmt(v: Any) -> str:
    if v is None:
        return "n/a"
    if isinstance(v, float):
        if math.isnan(v):
            return "n/a"
        if v.is_integer() and abs(v) >= 1000:
            return f"{int(v):,}"
        return f"{v:,.2f}"
    if isinstance(v, int) and not isinstance(v, bool):
        return f"{v:,}"
    return str(v)


def table_cells(table: SummaryTable) -> list[list[str]]:
    """Header + body cells, already formatted (static render: no client-side logic left)."""
    header = [c.label or c.name for c in table.columns]
    body = [[_fmt(r.get(c.name)) for c in table.columns] for r in table.rows]
    return [header, *body]


def render_text(table: SummaryTable) -> str:
    cells = table_cells(table)
    widths = [max(len(row[i]) for row in cells) for i in range(len(cells[0]))]
    lines = [table.title, ""]
    for n, row in enumerate(cells):
        lines.append("  ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip())
        if n == 0:
            lines.append("  ".join("-" * w for w in widths))
    return "\n".join(lines)


def render_pdf(*tables: SummaryTable, title: str = "Service-Request Report") -> bytes:
    from reportlab.lib import colors
    from reportlab.lib.pagesizes import A4, landscape
    from reportlab.lib.styles import getSampleStyleSheet
    from reportlab.lib.units import cm
    from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

    buf = io.BytesIO()
    doc = SimpleDocTemplate(buf, pagesize=landscape(A4), title=title)
    styles = getSampleStyleSheet()
    story = []

    story.append(Paragraph(title, styles["Title"]))
    story.append(Paragraph(f"Generated: {dt.datetime.utcnow().strftime('%Y-%m-%d %H:%M UTC')}", styles["Normal"]))
    story.append(Spacer(1, 0.4 * cm))

    for t in tables:
        story.append(Paragraph(f"<b>{t.title}</b>", styles["Heading2"]))
        grid = Table(table_cells(t), repeatRows=1)
        grid.setStyle(
            TableStyle(
                [
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("FONTSIZE", (0, 0), (-1, -1), 8),
                    ("LINEBELOW", (0, 0), (-1, 0), 0.5, colors.black),
                    ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
                ]
            )
        )
        story.append(grid)
        story.append(Spacer(1, 0.3 * cm))

    doc.build(story)
    return buf.getvalue()
