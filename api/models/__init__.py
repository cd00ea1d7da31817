# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the Lumin platform.
"""

# Base models
from .base import BaseEntity, DocumentModel, generate_object_id

# Enumerations
from .enums import (
    LuminariaStatus,
    ProblemType,
    BrigadeOutcome,
    UserRole,
    UserStatus,
    HistoryAction
)

# Core entities
from .entities import (
    Luminaria,
    HistoryEntry,
    User,
    UserContext
)

# Request models
from .requests import (
    ReportProblemRequest,
    BrigadeVerificationRequest,
    MarkFixedRequest,
    DowntimeRequest,
    LuminariaFilters,
    HistoryFilters,
    LoginRequest,
    SignupRequest,
    RefreshTokenRequest,
    UpdateUserRoleRequest,
    PaginationParams,
    LuminariaPath,
    PhotoPath,
    UserPath
)

# Response models
from .responses import (
    HalLink,
    HalResponse,
    HalCollection,
    LuminariaResponse,
    HistoryEntryResponse,
    ImportResultResponse,
    DowntimeResponse,
    UserResponse,
    AuthTokenResponse,
    ErrorResponse
)

__all__ = [
    # Base
    "BaseEntity",
    "DocumentModel",
    "generate_object_id",

    # Enums
    "LuminariaStatus",
    "ProblemType",
    "BrigadeOutcome",
    "UserRole",
    "UserStatus",
    "HistoryAction",

    # Entities
    "Luminaria",
    "HistoryEntry",
    "User",
    "UserContext",

    # Requests
    "ReportProblemRequest",
    "BrigadeVerificationRequest",
    "MarkFixedRequest",
    "DowntimeRequest",
    "LuminariaFilters",
    "HistoryFilters",
    "LoginRequest",
    "SignupRequest",
    "RefreshTokenRequest",
    "UpdateUserRoleRequest",
    "PaginationParams",
    "LuminariaPath",
    "PhotoPath",
    "UserPath",

    # Responses
    "HalLink",
    "HalResponse",
    "HalCollection",
    "LuminariaResponse",
    "HistoryEntryResponse",
    "ImportResultResponse",
    "DowntimeResponse",
    "UserResponse",
    "AuthTokenResponse",
    "ErrorResponse"
]
