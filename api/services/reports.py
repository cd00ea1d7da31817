# SPDX-License-Identifier: Apache-2.0

"""
Excel and PDF exports of the luminaria inventory.
"""

import io
import logging
from dataclasses import dataclass, astuple
from datetime import date
from typing import Iterable, List

from openpyxl import Workbook
from openpyxl.styles import Font
from reportlab.lib.pagesizes import A4, landscape
from reportlab.pdfgen import canvas
from opentelemetry import trace

from models.entities import Luminaria
from models.enums import LuminariaStatus

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"

STATUS_LABELS = {
    LuminariaStatus.OK.value: "OK",
    LuminariaStatus.REPORTED.value: "Reportado",
    LuminariaStatus.CONFIRMED.value: "Confirmado",
    LuminariaStatus.FIXED.value: "Reparado",
}

EXCEL_HEADERS = [
    "ID", "Estado", "Problema", "Fecha Reporte", "Hora Reporte",
    "Fecha Solución", "Hora Solución", "Tiempo Inactividad", "Coordenadas",
]

PDF_HEADERS = ["ID", "Estado", "Problema", "Fecha Reporte", "Tiempo Inactividad", "Coordenadas"]
PDF_COLUMN_WIDTHS = [110, 80, 120, 130, 110, 170]


@dataclass
class ReportRow:
    """One luminaria rendered with Spanish report labels."""
    id: str
    estado: str
    problema: str
    fecha_reporte: str
    hora_reporte: str
    fecha_solucion: str
    hora_solucion: str
    tiempo_inactividad: str
    coordenadas: str


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, "Desconocido")


def build_report_rows(luminarias: Iterable[Luminaria]) -> List[ReportRow]:
    """
    Format luminarias for export.

    Missing values render as ``N/A``; a downtime of zero also renders as
    ``N/A``.
    """
    rows = []
    for lum in luminarias:
        rows.append(ReportRow(
            id=lum.id,
            estado=status_label(lum.status),
            problema=lum.problem or NOT_AVAILABLE,
            fecha_reporte=lum.report_date or NOT_AVAILABLE,
            hora_reporte=lum.report_time or NOT_AVAILABLE,
            fecha_solucion=lum.fix_date or NOT_AVAILABLE,
            hora_solucion=lum.fix_time or NOT_AVAILABLE,
            tiempo_inactividad=f"{lum.downtime:.2f} horas" if lum.downtime else NOT_AVAILABLE,
            coordenadas=f"{lum.lat:.6f}, {lum.lng:.6f}",
        ))
    return rows


def report_filename(extension: str, today: date) -> str:
    """Download name such as ``Reporte_Luminarias_2025-01-31.xlsx``."""
    return f"Reporte_Luminarias_{today.isoformat()}.{extension}"


def generate_excel_report(rows: List[ReportRow]) -> bytes:
    """Render rows as an ``.xlsx`` workbook with a single ``Luminarias`` sheet."""
    with tracer.start_as_current_span("reports.generate_excel") as span:
        span.set_attribute("report.rows", len(rows))

        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "Luminarias"

        sheet.append(EXCEL_HEADERS)
        for cell in sheet[1]:
            cell.font = Font(bold=True)

        for row in rows:
            sheet.append(list(astuple(row)))

        buffer = io.BytesIO()
        workbook.save(buffer)

        logger.info("Excel report generated", extra={"rows": len(rows)})
        return buffer.getvalue()


def _pdf_cells(row: ReportRow) -> List[str]:
    reported_at = row.fecha_reporte
    if row.hora_reporte != NOT_AVAILABLE:
        reported_at = f"{row.fecha_reporte} {row.hora_reporte}"
    return [row.id, row.estado, row.problema, reported_at, row.tiempo_inactividad, row.coordenadas]


def _draw_header(pdf: canvas.Canvas, y: float, margin: float) -> float:
    pdf.setFont("Helvetica-Bold", 9)
    x = margin
    for header, width in zip(PDF_HEADERS, PDF_COLUMN_WIDTHS):
        pdf.drawString(x, y, header)
        x += width
    pdf.setFont("Helvetica", 9)
    return y - 14


def generate_pdf_report(rows: List[ReportRow], generated_on: date) -> bytes:
    """
    Render rows as a landscape A4 PDF with a totals footer.

    Args:
        rows: Report rows
        generated_on: Date printed under the title

    Returns:
        PDF document bytes
    """
    with tracer.start_as_current_span("reports.generate_pdf") as span:
        span.set_attribute("report.rows", len(rows))

        buffer = io.BytesIO()
        pagesize = landscape(A4)
        pdf = canvas.Canvas(buffer, pagesize=pagesize)
        _, height = pagesize
        margin = 40

        pdf.setTitle("Reporte de Luminarias")
        pdf.setFont("Helvetica-Bold", 18)
        pdf.drawString(margin, height - 50, "Reporte de Luminarias")
        pdf.setFont("Helvetica", 11)
        pdf.drawString(margin, height - 68, f"Fecha: {generated_on.isoformat()}")

        y = _draw_header(pdf, height - 92, margin)

        for row in rows:
            if y < margin:
                pdf.showPage()
                y = _draw_header(pdf, height - margin, margin)

            x = margin
            for value, width in zip(_pdf_cells(row), PDF_COLUMN_WIDTHS):
                # Clip to the column width in characters
                pdf.drawString(x, y, value[: int(width / 5)])
                x += width
            y -= 12

        if y < margin + 30:
            pdf.showPage()
            y = height - margin

        problem_count = sum(1 for row in rows if row.estado != "OK")
        pdf.setFont("Helvetica", 11)
        pdf.drawString(margin, y - 10, f"Total de luminarias: {len(rows)}")
        pdf.drawString(margin, y - 26, f"Luminarias con problemas: {problem_count}")
        pdf.save()

        logger.info("PDF report generated", extra={"rows": len(rows), "problems": problem_count})
        return buffer.getvalue()

