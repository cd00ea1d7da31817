# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for Pydantic models.
"""

import pytest
from datetime import datetime
from pydantic import ValidationError

from models.entities import Luminaria, HistoryEntry, User, UserContext
from models.enums import UserStatus
from models.requests import (
    ReportProblemRequest, BrigadeVerificationRequest, MarkFixedRequest,
    SignupRequest, LoginRequest, LuminariaFilters
)


class TestLuminariaModel:
    """Test Luminaria model validation."""

    def test_valid_luminaria(self, make_luminaria):
        """Test defaults of a freshly imported luminaria."""
        lum = make_luminaria()

        assert lum.status == "ok"
        assert lum.problem is None
        assert lum.downtime is None
        assert isinstance(lum.created_at, datetime)

    def test_id_is_stripped(self, make_luminaria):
        assert make_luminaria("  LUM-7 ").id == "LUM-7"

    def test_blank_id_rejected(self, make_luminaria):
        with pytest.raises(ValidationError) as exc_info:
            make_luminaria("   ")

        assert "Luminaria id cannot be empty" in str(exc_info.value)

    @pytest.mark.parametrize("field,value", [
        ("lat", 91),
        ("lng", -181),
        ("report_date", "10/01/2024"),
        ("report_time", "8pm"),
        ("downtime", -1),
        ("status", "broken"),
    ])
    def test_invalid_fields(self, make_luminaria, field, value):
        with pytest.raises(ValidationError):
            make_luminaria(**{field: value})

    def test_document_round_trip_uses_camel_case(self, make_luminaria):
        """Stored documents use camelCase keys and ``_id``."""
        lum = make_luminaria(status="reported", report_date="2024-01-10", report_time="20:00:00")

        document = lum.to_document()

        assert document["_id"] == "LUM-001"
        assert "id" not in document
        assert document["reportDate"] == "2024-01-10"
        assert document["createdBy"] == "system"
        assert Luminaria.from_document(document).model_dump() == lum.model_dump()

    def test_api_shape_uses_field_names(self, make_luminaria):
        data = make_luminaria().to_api()
        assert data["id"] == "LUM-001"
        assert "report_date" in data
        assert isinstance(data["created_at"], str)

    def test_workflow_guards(self, make_luminaria):
        lum = make_luminaria()

        assert lum.can_report()
        assert not lum.can_verify()
        assert not lum.can_fix()

        with pytest.raises(ValueError):
            lum.verify("u1", True, "notes")

    def test_report_then_verify(self, make_luminaria):
        lum = make_luminaria()

        lum.report("u1", "Apagado", "2024-01-10", "20:00:00")
        assert lum.status == "reported"
        assert lum.has_open_incident()

        lum.verify("u2", True, "Confirmado", "/photo")
        assert lum.status == "confirmed"
        assert lum.updated_by == "u2"
        assert lum.can_fix()


class TestHistoryEntryModel:

    def test_valid_entry(self):
        entry = HistoryEntry(
            luminaria_id="LUM-001", date="2024-01-10", time="20:00:00",
            action="Reporte", details="Problema reportado: Apagado",
            user="Ana", user_id="u1"
        )

        assert entry.id
        assert entry.trace_id is None
        assert entry.to_document()["luminariaId"] == "LUM-001"

    def test_invalid_time(self):
        with pytest.raises(ValidationError):
            HistoryEntry(
                luminaria_id="LUM-001", date="2024-01-10", time="25:00:00",
                action="Reporte", details="", user="Ana", user_id="u1"
            )


class TestUserModel:
    """Test User model validation."""

    def test_valid_user(self, make_user):
        """Test valid user creation."""
        user = make_user("inspector")

        assert user.email == "inspector@lumin.example"
        assert user.role == "inspector"
        assert user.status == "active"
        assert user.is_active()

    def test_email_is_lowercased(self):
        user = User(
            email="Ana@Lumin.Example", name="Ana", password_hash="x",
            created_by="system", updated_by="system"
        )
        assert user.email == "ana@lumin.example"
        assert user.role == "viewer"

    def test_invalid_email(self):
        with pytest.raises(ValidationError) as exc_info:
            User(email="not-an-email", name="Ana", password_hash="x",
                 created_by="system", updated_by="system")

        assert "Invalid email format" in str(exc_info.value)

    def test_unknown_role_rejected(self, make_user):
        with pytest.raises(ValidationError):
            make_user("superuser")

    def test_inactive_and_deleted_users(self, make_user):
        user = make_user()
        user.status = UserStatus.INACTIVE
        assert not user.is_active()

        other = make_user()
        other.soft_delete("admin-1")
        assert other.is_deleted()
        assert not other.is_active()

    def test_api_shape_hides_password_hash(self, make_user):
        assert "password_hash" not in make_user().to_api()


class TestUserContext:

    def test_permissions_derived_from_role(self):
        context = UserContext(user_id="u1", role="brigade")
        assert "luminaria:verify" in context.permissions
        assert "luminaria:fix" not in context.permissions

    def test_display_name_fallbacks(self):
        assert UserContext(user_id="u1", name="Ana", email="a@x.io").display_name == "Ana"
        assert UserContext(user_id="u1", email="a@x.io").display_name == "a@x.io"
        assert UserContext(user_id="u1").display_name == "u1"


class TestRequestModels:
    """Test request payload validation."""

    def test_report_problem_accepts_known_types(self):
        assert ReportProblemRequest(problem="Hurto de luminario").problem == "Hurto de luminario"

        with pytest.raises(ValidationError):
            ReportProblemRequest(problem="Roto")

    def test_verification_notes_are_stripped(self):
        request = BrigadeVerificationRequest(outcome="confirmed", notes="  cable cortado  ")
        assert request.notes == "cable cortado"
        assert BrigadeVerificationRequest(outcome="ok").notes == ""

    def test_verification_outcome(self):
        with pytest.raises(ValidationError):
            BrigadeVerificationRequest(outcome="maybe")

    def test_fix_range_order(self):
        with pytest.raises(ValidationError) as exc_info:
            MarkFixedRequest(fix_start_date="2024-01-11", fix_end_date="2024-01-10")

        assert "fix_end_date cannot be before fix_start_date" in str(exc_info.value)

    def test_fix_date_format(self):
        with pytest.raises(ValidationError):
            MarkFixedRequest(fix_start_date="2024-13-01", fix_end_date="2024-12-01")

    @pytest.mark.parametrize("password", ["short1", "onlyletters", "12345678"])
    def test_weak_passwords(self, password):
        with pytest.raises(ValidationError):
            SignupRequest(email="ana@lumin.example", password=password, name="Ana")

    def test_signup_defaults_to_viewer(self):
        request = SignupRequest(email="ANA@lumin.example", password="secreto123", name="Ana")
        assert request.role == "viewer"
        assert request.email == "ana@lumin.example"

    def test_login_does_not_check_strength(self):
        assert LoginRequest(email="ana@lumin.example", password="x").password == "x"

    def test_filter_bounds(self):
        assert LuminariaFilters().page_size == 50
        with pytest.raises(ValidationError):
            LuminariaFilters(page_size=501)
        with pytest.raises(ValidationError):
            LuminariaFilters(status="lost")
