"""PDF inspection reports rendered with ReportLab.

Layout:
- Cover page (site, inspector, client)
- Summary of findings by severity
- One section per confirmed violation with photo and cited regulations
"""

from __future__ import annotations

from io import BytesIO
from xml.sax.saxutils import escape

from reportlab.graphics.charts.piecharts import Pie
from reportlab.graphics.shapes import Drawing
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch, mm
from reportlab.platypus import (
    Image,
    KeepTogether,
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from lukaut.reporting.data import SEVERITY_LABELS, ReportData, ReportParty, ReportViolation

# Styles
styles = getSampleStyleSheet()
title_style = ParagraphStyle(
    "CustomTitle",
    parent=styles["Heading1"],
    fontSize=24,
    spaceAfter=30,
    textColor=colors.HexColor("#2d3748"),
)
subtitle_style = ParagraphStyle(
    "CustomSubtitle",
    parent=styles["Heading2"],
    fontSize=18,
    spaceAfter=20,
    textColor=colors.HexColor("#4a5568"),
)
heading_style = ParagraphStyle(
    "ViolationHeading",
    parent=styles["Heading3"],
    fontSize=13,
    spaceAfter=8,
    textColor=colors.HexColor("#2d3748"),
)
normal_style = ParagraphStyle(
    "CustomNormal",
    parent=styles["Normal"],
    fontSize=10,
    leading=14,
    textColor=colors.HexColor("#2d3748"),
)
muted_style = ParagraphStyle(
    "Muted",
    parent=normal_style,
    fontSize=9,
    textColor=colors.HexColor("#718096"),
)

SEVERITY_COLORS = {
    "critical": colors.HexColor("#c53030"),
    "serious": colors.HexColor("#dd6b20"),
    "other": colors.HexColor("#d69e2e"),
    "recommendation": colors.HexColor("#3182ce"),
}

TABLE_STYLE = [
    ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#edf2f7")),
    ("TEXTCOLOR", (0, 0), (-1, 0), colors.HexColor("#2d3748")),
    ("ALIGN", (0, 0), (-1, -1), "LEFT"),
    ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
    ("FONTSIZE", (0, 0), (-1, -1), 10),
    ("BACKGROUND", (0, 1), (-1, -1), colors.white),
    ("GRID", (0, 0), (-1, -1), 1, colors.HexColor("#e2e8f0")),
    ("PADDING", (0, 0), (-1, -1), 8),
]


def _text(value: str | None) -> str:
    """Escape user text for Paragraph markup and keep line breaks."""
    return escape(value or "").replace("\n", "<br/>")


def _party_block(label: str, party: ReportParty) -> list:
    lines = [f"<b>{label}</b>", _text(party.name)]
    if party.company:
        lines.append(_text(party.company))
    if party.address:
        lines.append(_text(party.address))
    if party.email:
        lines.append(_text(party.email))
    if party.phone:
        lines.append(_text(party.phone))
    if party.license_number:
        lines.append(f"License: {_text(party.license_number)}")
    return [Paragraph("<br/>".join(lines), normal_style), Spacer(1, 0.25 * inch)]


def _severity_chart(counts: dict[str, int]) -> Drawing | None:
    values = [(key, count) for key, count in counts.items() if count]
    if not values:
        return None
    d = Drawing(400, 180)
    pc = Pie()
    pc.x = 120
    pc.y = 10
    pc.width = 150
    pc.height = 150
    pc.data = [count for _, count in values]
    pc.labels = [SEVERITY_LABELS.get(key, key) for key, _ in values]
    pc.slices.strokeWidth = 0.5
    for i, (key, _) in enumerate(values):
        pc.slices[i].fillColor = SEVERITY_COLORS.get(key, colors.grey)
    d.add(pc)
    return d


def _violation_section(violation: ReportViolation) -> KeepTogether:
    flow = [
        Paragraph(f"Violation {violation.number}", heading_style),
        Paragraph(
            f'<font color="{SEVERITY_COLORS.get(violation.severity, colors.grey).hexval()}">'
            f"<b>{violation.severity_label}</b></font>",
            normal_style,
        ),
        Spacer(1, 4),
        Paragraph(_text(violation.description), normal_style),
    ]

    if violation.inspector_notes:
        flow.append(Spacer(1, 4))
        flow.append(Paragraph(f"<i>Notes:</i> {_text(violation.inspector_notes)}", normal_style))

    if violation.thumbnail:
        flow.append(Spacer(1, 6))
        flow.append(Image(BytesIO(violation.thumbnail), width=2 * inch, height=2 * inch, kind="proportional"))

    if violation.regulations:
        rows = [["Standard", "Requirement"]]
        for reg in violation.regulations:
            standard = reg.standard_number + (" (primary)" if reg.is_primary else "")
            rows.append(
                [
                    Paragraph(_text(standard), normal_style),
                    Paragraph(
                        f"<b>{_text(reg.title)}</b><br/>{_text(reg.summary)}", normal_style
                    ),
                ]
            )
        t = Table(rows, colWidths=[1.6 * inch, 4.6 * inch])
        t.setStyle(TableStyle(TABLE_STYLE))
        flow.append(Spacer(1, 8))
        flow.append(t)

    flow.append(Spacer(1, 0.3 * inch))
    return KeepTogether(flow)


def generate_inspection_pdf(data: ReportData) -> bytes:
    """Render an inspection report to PDF bytes."""
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=20 * mm,
        leftMargin=20 * mm,
        topMargin=20 * mm,
        bottomMargin=20 * mm,
        title=f"Inspection Report - {data.site_name}",
        author=data.inspector.name,
    )

    story = []

    # --- Cover Page ---
    story.append(Spacer(1, 1.5 * inch))
    story.append(Paragraph("Construction Safety Inspection Report", title_style))
    story.append(Paragraph(_text(data.site_name), subtitle_style))
    if data.site_address:
        story.append(Paragraph(_text(data.site_address), normal_style))
    story.append(Spacer(1, 0.3 * inch))
    story.append(
        Paragraph(f"Inspection date: {data.inspection_date.strftime('%B %d, %Y')}", normal_style)
    )
    if data.weather_conditions or data.temperature:
        conditions = ", ".join(p for p in (data.weather_conditions, data.temperature) if p)
        story.append(Paragraph(f"Conditions: {_text(conditions)}", normal_style))
    story.append(Spacer(1, 0.5 * inch))
    story.extend(_party_block("Prepared by", data.inspector))
    if data.client is not None:
        story.extend(_party_block("Prepared for", data.client))
    story.append(
        Paragraph(f"Generated: {data.generated_at.strftime('%Y-%m-%d %H:%M')} UTC", muted_style)
    )
    story.append(PageBreak())

    # --- Summary ---
    story.append(Paragraph("Summary of Findings", title_style))
    counts = data.severity_counts
    summary = [["Severity", "Count"]]
    for key, label in SEVERITY_LABELS.items():
        summary.append([label, str(counts.get(key, 0))])
    summary.append(["Total", str(len(data.violations))])
    t = Table(summary, colWidths=[3 * inch, 3 * inch])
    t.setStyle(
        TableStyle(TABLE_STYLE + [("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold")])
    )
    story.append(t)
    story.append(Spacer(1, 0.3 * inch))

    chart = _severity_chart(counts)
    if chart is not None:
        story.append(chart)

    if data.inspector_notes:
        story.append(Spacer(1, 0.3 * inch))
        story.append(Paragraph("Inspector Notes", subtitle_style))
        story.append(Paragraph(_text(data.inspector_notes), normal_style))
    story.append(PageBreak())

    # --- Violations ---
    story.append(Paragraph("Violations", title_style))
    if data.violations:
        for violation in data.violations:
            story.append(_violation_section(violation))
    else:
        story.append(Paragraph("No confirmed violations.", normal_style))

    doc.build(story)
    return buffer.getvalue()
