# SPDX-License-Identifier: Apache-2.0

"""
Report export endpoints (Excel and PDF).
"""

import io
import logging
from datetime import date

from flask import current_app, send_file
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace

from domain.authorization import REPORT_EXPORT
from models.responses import ErrorResponse
from services.reports import (
    build_report_rows, generate_excel_report, generate_pdf_report, report_filename
)
from middleware.auth import require_capability

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

reports_tag = Tag(name="Reports", description="Inventory exports")
reports_bp = APIBlueprint(
    'reports',
    __name__,
    url_prefix='/api/reports',
    abp_tags=[reports_tag]
)


def _report_rows(span):
    luminarias = current_app.luminaria_repository.all()
    span.set_attribute("report.luminarias", len(luminarias))
    return build_report_rows(luminarias)


@reports_bp.get('/luminarias.xlsx', responses={401: ErrorResponse, 403: ErrorResponse})
@require_capability(REPORT_EXPORT)
def export_excel(user_context):
    """Download the luminaria inventory as an Excel workbook."""
    with tracer.start_as_current_span(
        "report.export_excel",
        attributes={"user.id": user_context.user_id, "report.format": "xlsx"}
    ) as span:
        content = generate_excel_report(_report_rows(span))

        logger.info(
            "Excel report exported",
            extra={"user_id": user_context.user_id, "size_bytes": len(content)}
        )
        return send_file(
            io.BytesIO(content),
            mimetype=XLSX_MIMETYPE,
            as_attachment=True,
            download_name=report_filename("xlsx", date.today())
        )


@reports_bp.get('/luminarias.pdf', responses={401: ErrorResponse, 403: ErrorResponse})
@require_capability(REPORT_EXPORT)
def export_pdf(user_context):
    """Download the luminaria inventory as a PDF document."""
    with tracer.start_as_current_span(
        "report.export_pdf",
        attributes={"user.id": user_context.user_id, "report.format": "pdf"}
    ) as span:
        today = date.today()
        content = generate_pdf_report(_report_rows(span), today)

        logger.info(
            "PDF report exported",
            extra={"user_id": user_context.user_id, "size_bytes": len(content)}
        )
        return send_file(
            io.BytesIO(content),
            mimetype="application/pdf",
            as_attachment=True,
            download_name=report_filename("pdf", today)
        )
