# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for Excel and PDF report exports.
"""

import io
import pytest
from datetime import date
from openpyxl import load_workbook

from services.reports import (
    build_report_rows, generate_excel_report, generate_pdf_report,
    report_filename, status_label, EXCEL_HEADERS, NOT_AVAILABLE
)


@pytest.fixture
def inventory(make_luminaria):
    return [
        make_luminaria("LUM-001"),
        make_luminaria(
            "LUM-002", status="reported", problem="Apagado",
            report_date="2024-01-10", report_time="20:00:00"
        ),
        make_luminaria(
            "LUM-003", status="ok", problem="Hurto de cable",
            report_date="2024-01-10", report_time="20:00:00",
            fix_date="2024-01-11", fix_time="04:00:00", downtime=14
        ),
    ]


class TestReportRows:
    """Formatting luminarias for export."""

    def test_missing_values_render_as_not_available(self, inventory):
        row = build_report_rows(inventory)[0]

        assert row.id == "LUM-001"
        assert row.estado == "OK"
        assert row.problema == NOT_AVAILABLE
        assert row.fecha_reporte == NOT_AVAILABLE
        assert row.hora_solucion == NOT_AVAILABLE
        assert row.tiempo_inactividad == NOT_AVAILABLE
        assert row.coordenadas == "-34.603700, -58.381600"

    def test_downtime_is_formatted_in_hours(self, inventory):
        row = build_report_rows(inventory)[2]
        assert row.tiempo_inactividad == "14.00 horas"
        assert (row.fecha_solucion, row.hora_solucion) == ("2024-01-11", "04:00:00")

    def test_zero_downtime_is_not_available(self, make_luminaria):
        [row] = build_report_rows([make_luminaria(downtime=0)])
        assert row.tiempo_inactividad == NOT_AVAILABLE

    @pytest.mark.parametrize("status,label", [
        ("ok", "OK"),
        ("reported", "Reportado"),
        ("confirmed", "Confirmado"),
        ("fixed", "Reparado"),
        ("lost", "Desconocido"),
    ])
    def test_status_labels(self, status, label):
        assert status_label(status) == label

    def test_filename(self):
        assert report_filename("xlsx", date(2025, 1, 31)) == "Reporte_Luminarias_2025-01-31.xlsx"


class TestExcelReport:

    def test_workbook_layout(self, inventory):
        content = generate_excel_report(build_report_rows(inventory))

        sheet = load_workbook(io.BytesIO(content)).active
        rows = list(sheet.iter_rows(values_only=True))

        assert sheet.title == "Luminarias"
        assert list(rows[0]) == EXCEL_HEADERS
        assert sheet["A1"].font.bold
        assert len(rows) == 4
        assert rows[2][:5] == ("LUM-002", "Reportado", "Apagado", "2024-01-10", "20:00:00")
        assert rows[3][7] == "14.00 horas"

    def test_empty_inventory_has_only_headers(self):
        sheet = load_workbook(io.BytesIO(generate_excel_report([]))).active
        assert sheet.max_row == 1


class TestPdfReport:

    def test_pdf_document(self, inventory):
        content = generate_pdf_report(build_report_rows(inventory), date(2025, 1, 31))
        assert content.startswith(b"%PDF")

    def test_many_rows_span_pages(self, make_luminaria):
        rows = build_report_rows([make_luminaria(f"LUM-{n:03d}") for n in range(120)])
        content = generate_pdf_report(rows, date(2025, 1, 31))
        assert content.startswith(b"%PDF")
        assert content.rstrip().endswith(b"%%EOF")


class TestReportEndpoints:
    """Download endpoints."""

    def test_excel_download(self, client, auth_headers, luminaria_repository, inventory):
        luminaria_repository.all.return_value = inventory

        response = client.get('/api/reports/luminarias.xlsx', headers=auth_headers("inspector"))

        assert response.status_code == 200
        assert response.mimetype == (
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        disposition = response.headers["Content-Disposition"]
        assert "attachment" in disposition
        assert "Reporte_Luminarias_" in disposition
        sheet = load_workbook(io.BytesIO(response.data)).active
        assert sheet.max_row == 4

    def test_pdf_download(self, client, auth_headers, luminaria_repository, inventory):
        luminaria_repository.all.return_value = inventory

        response = client.get('/api/reports/luminarias.pdf', headers=auth_headers("admin"))

        assert response.status_code == 200
        assert response.mimetype == "application/pdf"
        assert response.data.startswith(b"%PDF")

    @pytest.mark.parametrize("role", ["viewer", "brigade"])
    def test_export_requires_capability(self, client, auth_headers, luminaria_repository, role):
        response = client.get('/api/reports/luminarias.pdf', headers=auth_headers(role))

        assert response.status_code == 403
        assert response.get_json()["detail"] == "Missing required permission: report:export"
        luminaria_repository.all.assert_not_called()

    def test_export_requires_token(self, client, luminaria_repository):
        response = client.get('/api/reports/luminarias.xlsx')
        assert response.status_code == 401
