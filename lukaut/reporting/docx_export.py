"""Word (.docx) inspection reports rendered with python-docx."""

from __future__ import annotations

from io import BytesIO

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Inches, Pt, RGBColor

from lukaut.reporting.data import SEVERITY_LABELS, ReportData, ReportParty, ReportViolation

SEVERITY_COLORS = {
    "critical": RGBColor(0xC5, 0x30, 0x30),
    "serious": RGBColor(0xDD, 0x6B, 0x20),
    "other": RGBColor(0xD6, 0x9E, 0x2E),
    "recommendation": RGBColor(0x31, 0x82, 0xCE),
}


def _add_party(doc, label: str, party: ReportParty) -> None:
    p = doc.add_paragraph()
    p.add_run(label).bold = True
    lines = [party.name, party.company, party.address, party.email, party.phone]
    if party.license_number:
        lines.append(f"License: {party.license_number}")
    for line in lines:
        if line:
            p.add_run("\n" + line)


def _add_violation(doc, violation: ReportViolation) -> None:
    doc.add_heading(f"Violation {violation.number}", level=2)

    severity = doc.add_paragraph().add_run(violation.severity_label)
    severity.bold = True
    if violation.severity in SEVERITY_COLORS:
        severity.font.color.rgb = SEVERITY_COLORS[violation.severity]

    doc.add_paragraph(violation.description)

    if violation.inspector_notes:
        notes = doc.add_paragraph()
        notes.add_run("Notes: ").italic = True
        notes.add_run(violation.inspector_notes)

    if violation.thumbnail:
        doc.add_picture(BytesIO(violation.thumbnail), width=Inches(2))

    if violation.regulations:
        table = doc.add_table(rows=1, cols=2)
        table.style = "Table Grid"
        header = table.rows[0].cells
        header[0].text = "Standard"
        header[1].text = "Requirement"
        for reg in violation.regulations:
            cells = table.add_row().cells
            cells[0].text = reg.standard_number + (" (primary)" if reg.is_primary else "")
            cells[1].text = reg.title
            if reg.summary:
                cells[1].add_paragraph(reg.summary)
        doc.add_paragraph()


def generate_inspection_docx(data: ReportData) -> bytes:
    """Render an inspection report to .docx bytes."""
    doc = Document()
    doc.core_properties.title = f"Inspection Report - {data.site_name}"
    doc.core_properties.author = data.inspector.name

    style = doc.styles["Normal"]
    style.font.name = "Calibri"
    style.font.size = Pt(10)

    # Cover
    title = doc.add_heading("Construction Safety Inspection Report", level=0)
    title.alignment = WD_ALIGN_PARAGRAPH.CENTER
    doc.add_heading(data.site_name, level=1)
    if data.site_address:
        doc.add_paragraph(data.site_address)
    doc.add_paragraph(f"Inspection date: {data.inspection_date.strftime('%B %d, %Y')}")
    if data.weather_conditions or data.temperature:
        conditions = ", ".join(p for p in (data.weather_conditions, data.temperature) if p)
        doc.add_paragraph(f"Conditions: {conditions}")

    _add_party(doc, "Prepared by", data.inspector)
    if data.client is not None:
        _add_party(doc, "Prepared for", data.client)
    doc.add_paragraph(f"Generated: {data.generated_at.strftime('%Y-%m-%d %H:%M')} UTC")
    doc.add_page_break()

    # Summary
    doc.add_heading("Summary of Findings", level=1)
    counts = data.severity_counts
    table = doc.add_table(rows=1, cols=2)
    table.style = "Table Grid"
    table.rows[0].cells[0].text = "Severity"
    table.rows[0].cells[1].text = "Count"
    for key, label in SEVERITY_LABELS.items():
        cells = table.add_row().cells
        cells[0].text = label
        cells[1].text = str(counts.get(key, 0))
    cells = table.add_row().cells
    cells[0].text = "Total"
    cells[1].text = str(len(data.violations))

    if data.inspector_notes:
        doc.add_heading("Inspector Notes", level=2)
        doc.add_paragraph(data.inspector_notes)
    doc.add_page_break()

    # Violations
    doc.add_heading("Violations", level=1)
    if data.violations:
        for violation in data.violations:
            _add_violation(doc, violation)
    else:
        doc.add_paragraph("No confirmed violations.")

    buffer = BytesIO()
    doc.save(buffer)
    return buffer.getvalue()
