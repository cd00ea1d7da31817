# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response models for API endpoints with HAL support.

These models document the OpenAPI schema; handlers build plain dicts through
the HAL formatter.
"""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime


class HalLink(BaseModel):
    """HAL link representation."""

    href: str = Field(..., description="Link URL")
    method: Optional[str] = Field(None, description="HTTP method")
    type: Optional[str] = Field(None, description="Content type")
    title: Optional[str] = Field(None, description="Link title")
    templated: Optional[bool] = Field(None, description="Whether URL is templated")


class HalResponse(BaseModel):
    """Base HAL response with links."""

    model_config = ConfigDict(populate_by_name=True)

    links: Dict[str, HalLink] = Field(default_factory=dict, alias="_links", description="HAL links")


class HalCollection(HalResponse):
    """HAL collection response with embedded items."""

    embedded: Dict[str, List[Dict[str, Any]]] = Field(
        default_factory=dict, alias="_embedded", description="Embedded resources"
    )
    total: int = Field(..., description="Total number of items")
    page: int = Field(..., description="Current page number")
    page_size: int = Field(..., description="Items per page")
    total_pages: int = Field(..., description="Total number of pages")


class LuminariaResponse(HalResponse):
    """Luminaria response model."""

    id: str = Field(..., description="Waypoint identifier")
    name: Optional[str] = Field(None, description="Display name")
    lat: float = Field(..., description="Latitude")
    lng: float = Field(..., description="Longitude")
    status: str = Field(..., description="Lifecycle status")
    problem: Optional[str] = Field(None, description="Reported problem")
    report_date: Optional[str] = Field(None, description="Report date")
    report_time: Optional[str] = Field(None, description="Report time")
    fix_date: Optional[str] = Field(None, description="Fix date")
    fix_time: Optional[str] = Field(None, description="Fix time")
    fix_start_date: Optional[str] = Field(None, description="Repair start date")
    fix_end_date: Optional[str] = Field(None, description="Repair end date")
    brigade_notes: Optional[str] = Field(None, description="Brigade notes")
    photo_url: Optional[str] = Field(None, description="Verification photo URL")
    downtime: Optional[float] = Field(None, description="Downtime in hours")
    updated_at: datetime = Field(..., description="Last update timestamp")


class HistoryEntryResponse(BaseModel):
    """History entry response model."""

    id: str = Field(..., description="Entry ID")
    luminaria_id: str = Field(..., description="Luminaria identifier")
    date: str = Field(..., description="Action date")
    time: str = Field(..., description="Action time")
    action: str = Field(..., description="Action label")
    details: str = Field(..., description="Details")
    user: str = Field(..., description="Actor display name")


class ImportResultResponse(HalResponse):
    """KMZ import summary."""

    filename: str = Field(..., description="Uploaded file name")
    points: int = Field(..., description="Waypoints found in the file")
    created: int = Field(..., description="Luminarias created")
    skipped: int = Field(..., description="Waypoints already registered")


class DowntimeResponse(BaseModel):
    """Downtime calculator response."""

    report_date: str
    report_time: str
    fix_date: str
    fix_time: str
    downtime_hours: float = Field(..., description="Lit-window downtime in hours")


class UserResponse(HalResponse):
    """User response model (without sensitive data)."""

    id: str = Field(..., description="User ID")
    email: str = Field(..., description="User email")
    name: str = Field(..., description="User name")
    role: str = Field(..., description="User role")
    status: str = Field(..., description="User status")
    last_login: Optional[datetime] = Field(None, description="Last login timestamp")
    created_at: datetime = Field(..., description="Creation timestamp")


class AuthTokenResponse(BaseModel):
    """Authentication token response."""

    access_token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="JWT refresh token")
    token_type: str = Field(default="Bearer", description="Token type")
    expires_in: int = Field(..., description="Access token expiration in seconds")
    user: Dict[str, Any] = Field(..., description="Authenticated user information")


class ErrorResponse(BaseModel):
    """Error response model following RFC 7807."""

    type: str = Field(..., description="Error type URI")
    title: str = Field(..., description="Error title")
    status: int = Field(..., description="HTTP status code")
    detail: str = Field(..., description="Error detail")
    instance: str = Field(..., description="Request instance")
    errors: Optional[List[Dict[str, Any]]] = Field(None, description="Validation errors")
