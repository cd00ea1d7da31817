# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for API endpoints.
"""

import re
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from .enums import BrigadeOutcome, LuminariaStatus, ProblemType, UserRole
from .entities import EMAIL_PATTERN, DATE_FORMAT


class ReportProblemRequest(BaseModel):
    """Request model for reporting a luminaria problem."""

    model_config = ConfigDict(use_enum_values=True)

    problem: ProblemType = Field(..., description="Problem type")


class BrigadeVerificationRequest(BaseModel):
    """Request model for a brigade field verification."""

    model_config = ConfigDict(use_enum_values=True)

    outcome: BrigadeOutcome = Field(..., description="Verification outcome")
    notes: str = Field(default="", max_length=2000, description="Brigade notes")

    @field_validator('notes')
    @classmethod
    def strip_notes(cls, v):
        return v.strip()


class MarkFixedRequest(BaseModel):
    """Request model for closing an incident with repair dates."""

    fix_start_date: str = Field(..., description="Repair work start date (YYYY-MM-DD)")
    fix_end_date: str = Field(..., description="Repair work end date (YYYY-MM-DD)")

    @field_validator('fix_start_date', 'fix_end_date')
    @classmethod
    def validate_date(cls, v):
        """Validate date format."""
        datetime.strptime(v, DATE_FORMAT)
        return v

    @model_validator(mode='after')
    def validate_range(self):
        """Ensure the repair range is ordered."""
        if self.fix_end_date < self.fix_start_date:
            raise ValueError('fix_end_date cannot be before fix_start_date')
        return self


class DowntimeRequest(BaseModel):
    """Request model for the stateless downtime calculator."""

    report_date: str = Field(..., description="Report date (YYYY-MM-DD)")
    report_time: str = Field(..., description="Report time (HH:MM:SS)")
    fix_date: str = Field(..., description="Fix date (YYYY-MM-DD)")
    fix_time: str = Field(..., description="Fix time (HH:MM:SS)")


class LuminariaFilters(BaseModel):
    """Query parameters for luminaria listing."""

    model_config = ConfigDict(use_enum_values=True)

    search: Optional[str] = Field(None, max_length=200, description="Case-insensitive id search")
    status: Optional[LuminariaStatus] = Field(None, description="Filter by status")
    page: int = Field(default=1, ge=1, description="Page number")
    page_size: int = Field(default=50, ge=1, le=500, description="Items per page")


class HistoryFilters(BaseModel):
    """Query parameters for the history feed."""

    action: Optional[str] = Field(None, description="Filter by action label")
    page: int = Field(default=1, ge=1, description="Page number")
    page_size: int = Field(default=20, ge=1, le=100, description="Items per page")


class LoginRequest(BaseModel):
    """Request model for user authentication."""

    email: str = Field(..., description="User email address")
    password: str = Field(..., description="User password")

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        """Validate email format."""
        if not re.match(EMAIL_PATTERN, v.lower()):
            raise ValueError('Invalid email format')
        return v.lower()


class SignupRequest(LoginRequest):
    """Request model for account creation."""

    model_config = ConfigDict(use_enum_values=True)

    name: str = Field(..., min_length=1, max_length=200, description="User full name")
    role: UserRole = Field(default=UserRole.VIEWER, description="Requested role")

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        """Validate password strength."""
        if len(v) < 8:
            raise ValueError('Password must be at least 8 characters long')
        if not any(c.isalpha() for c in v):
            raise ValueError('Password must contain at least one letter')
        if not any(c.isdigit() for c in v):
            raise ValueError('Password must contain at least one digit')
        return v


class RefreshTokenRequest(BaseModel):
    """Request model for token refresh."""

    refresh_token: str = Field(..., description="Refresh token")


class UpdateUserRoleRequest(BaseModel):
    """Request model for changing a user's role."""

    model_config = ConfigDict(use_enum_values=True)

    role: UserRole = Field(..., description="New role")


class PaginationParams(BaseModel):
    """Pagination parameters."""

    page: int = Field(default=1, ge=1, description="Page number")
    page_size: int = Field(default=20, ge=1, le=100, description="Items per page")


class LuminariaPath(BaseModel):
    """Path parameters for luminaria endpoints."""

    luminaria_id: str = Field(..., description="Luminaria waypoint identifier")


class PhotoPath(LuminariaPath):
    """Path parameters for a stored verification photo."""

    file_id: str = Field(..., description="Stored photo identifier")


class UserPath(BaseModel):
    """Path parameters for user endpoints."""

    user_id: str = Field(..., description="User identifier")
