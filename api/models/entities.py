# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the Lumin platform.
"""

import re
from datetime import datetime
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from .base import BaseEntity, DocumentModel, generate_object_id
from .enums import LuminariaStatus, UserRole, UserStatus

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M:%S"

EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'


def _check_format(value: Optional[str], fmt: str, label: str) -> Optional[str]:
    if value is None:
        return value
    try:
        datetime.strptime(value, fmt)
    except ValueError:
        raise ValueError(f'Invalid {label}: {value!r}')
    return value


class Luminaria(BaseEntity):
    """A monitored streetlight identified by its waypoint name."""

    id: str = Field(..., min_length=1, max_length=200, description="Waypoint identifier")
    name: Optional[str] = Field(None, max_length=200, description="Display name")
    description: Optional[str] = Field(None, max_length=2000, description="Waypoint description")
    lat: float = Field(..., ge=-90, le=90, description="Latitude")
    lng: float = Field(..., ge=-180, le=180, description="Longitude")
    status: LuminariaStatus = Field(default=LuminariaStatus.OK, description="Lifecycle status")
    problem: Optional[str] = Field(None, max_length=200, description="Reported problem")
    report_date: Optional[str] = Field(None, description="Report date (YYYY-MM-DD)")
    report_time: Optional[str] = Field(None, description="Report time (HH:MM:SS)")
    fix_date: Optional[str] = Field(None, description="Fix date (YYYY-MM-DD)")
    fix_time: Optional[str] = Field(None, description="Fix time (HH:MM:SS)")
    fix_start_date: Optional[str] = Field(None, description="Repair work start date")
    fix_end_date: Optional[str] = Field(None, description="Repair work end date")
    brigade_notes: Optional[str] = Field(None, max_length=2000, description="Field brigade notes")
    photo_url: Optional[str] = Field(None, description="Field verification photo")
    downtime: Optional[float] = Field(None, ge=0, description="Lit-window downtime in hours")

    @field_validator('id')
    @classmethod
    def validate_id(cls, v):
        """Validate waypoint identifier."""
        if not v.strip():
            raise ValueError('Luminaria id cannot be empty')
        return v.strip()

    @field_validator('report_date', 'fix_date', 'fix_start_date', 'fix_end_date')
    @classmethod
    def validate_dates(cls, v):
        return _check_format(v, DATE_FORMAT, 'date')

    @field_validator('report_time', 'fix_time')
    @classmethod
    def validate_times(cls, v):
        return _check_format(v, TIME_FORMAT, 'time')

    def has_open_incident(self) -> bool:
        """Check if a report is waiting for verification or repair."""
        return self.status in (LuminariaStatus.REPORTED, LuminariaStatus.CONFIRMED)

    def can_report(self) -> bool:
        """Check if a new problem can be reported."""
        return not self.has_open_incident()

    def can_verify(self) -> bool:
        """Check if a brigade can verify the luminaria."""
        return self.status == LuminariaStatus.REPORTED

    def can_fix(self) -> bool:
        """Check if the luminaria can be marked as fixed."""
        return self.status != LuminariaStatus.OK

    def report(self, user_id: str, problem: str, report_date: str, report_time: str) -> None:
        """Register a reported problem."""
        if not self.can_report():
            raise ValueError(f"Cannot report luminaria with status: {self.status}")

        self.status = LuminariaStatus.REPORTED
        self.problem = problem
        self.report_date = report_date
        self.report_time = report_time
        self.update_timestamp(user_id)

    def verify(self, user_id: str, confirmed: bool, notes: str, photo_url: Optional[str] = None) -> None:
        """Record a field verification outcome."""
        if not self.can_verify():
            raise ValueError(f"Cannot verify luminaria with status: {self.status}")

        self.status = LuminariaStatus.CONFIRMED if confirmed else LuminariaStatus.OK
        self.brigade_notes = notes
        if photo_url:
            self.photo_url = photo_url
        self.update_timestamp(user_id)

    def mark_fixed(
        self,
        user_id: str,
        fix_date: str,
        fix_time: str,
        fix_start_date: str,
        fix_end_date: str,
        downtime: float
    ) -> None:
        """Close the open incident with repair data."""
        if not self.can_fix():
            raise ValueError(f"Cannot fix luminaria with status: {self.status}")

        self.status = LuminariaStatus.OK
        self.fix_date = fix_date
        self.fix_time = fix_time
        self.fix_start_date = fix_start_date
        self.fix_end_date = fix_end_date
        self.downtime = downtime
        self.update_timestamp(user_id)


class HistoryEntry(DocumentModel):
    """History line attached to a luminaria."""

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    luminaria_id: str = Field(..., description="Luminaria identifier")
    date: str = Field(..., description="Action date (YYYY-MM-DD)")
    time: str = Field(..., description="Action time (HH:MM:SS)")
    action: str = Field(..., description="Action label")
    details: str = Field(..., description="Human readable details")
    user: str = Field(..., description="Display name of the actor")
    user_id: str = Field(..., description="Actor user ID")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Creation timestamp")
    trace_id: Optional[str] = Field(None, description="OpenTelemetry trace ID")

    @field_validator('date')
    @classmethod
    def validate_date(cls, v):
        return _check_format(v, DATE_FORMAT, 'date')

    @field_validator('time')
    @classmethod
    def validate_time(cls, v):
        return _check_format(v, TIME_FORMAT, 'time')


class User(BaseEntity):
    """User entity with authentication and role."""

    email: str = Field(..., description="User email address")
    name: str = Field(..., min_length=1, max_length=200, description="User full name")
    password_hash: str = Field(..., description="Hashed password")
    role: UserRole = Field(default=UserRole.VIEWER, description="Platform role")
    status: UserStatus = Field(default=UserStatus.ACTIVE, description="User account status")
    last_login: Optional[datetime] = Field(None, description="Last login timestamp")

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        """Validate email format."""
        if not re.match(EMAIL_PATTERN, v.lower()):
            raise ValueError('Invalid email format')
        return v.lower()

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        """Validate user name."""
        if not v.strip():
            raise ValueError('User name cannot be empty')
        return v.strip()

    def is_active(self) -> bool:
        """Check if user account is active."""
        return self.status == UserStatus.ACTIVE and not self.is_deleted()

    def to_api(self) -> Dict[str, Any]:
        """Serialize without the password hash."""
        return self.model_dump(mode="json", exclude={"password_hash"})


class UserContext(BaseModel):
    """User context for request processing with authentication and authorization data."""

    user_id: str = Field(..., description="Authenticated user ID")
    email: Optional[str] = Field(None, description="User email")
    name: Optional[str] = Field(None, description="User display name")
    role: UserRole = Field(default=UserRole.VIEWER, description="User role")
    permissions: List[str] = Field(default_factory=list, description="Capabilities granted by the role")
    token_payload: Optional[Dict[str, Any]] = Field(None, description="Original JWT payload")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")
    session_id: Optional[str] = Field(None, description="Session identifier")

    model_config = ConfigDict(
        use_enum_values=True
    )

    @model_validator(mode='after')
    def fill_permissions(self):
        """Derive permissions from the role when the token carries none."""
        if not self.permissions:
            from domain.authorization import capabilities_for_role
            self.permissions = capabilities_for_role(self.role)
        return self

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.user_id
