# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the Lumin platform.
"""

from enum import Enum


class LuminariaStatus(str, Enum):
    """Luminaria lifecycle status enumeration."""
    OK = "ok"
    REPORTED = "reported"
    CONFIRMED = "confirmed"
    FIXED = "fixed"


class ProblemType(str, Enum):
    """Problem categories an inspector can report."""
    LUMINAIRE_THEFT = "Hurto de luminario"
    CABLE_THEFT = "Hurto de cable"
    OFF = "Apagado"
    ALWAYS_ON = "Encendido"
    INTERMITTENT = "Intermitente"


class BrigadeOutcome(str, Enum):
    """Result of a field verification."""
    OK = "ok"
    CONFIRMED = "confirmed"


class UserRole(str, Enum):
    """Closed set of platform roles."""
    ADMIN = "admin"
    INSPECTOR = "inspector"
    BRIGADE = "brigade"
    VIEWER = "viewer"


class UserStatus(str, Enum):
    """User account status enumeration."""
    ACTIVE = "active"
    INACTIVE = "inactive"


class HistoryAction(str, Enum):
    """Actions recorded in a luminaria history."""
    KMZ_IMPORT = "Carga KMZ"
    REPORT = "Reporte"
    VERIFIED_OK = "Verificación OK"
    CONFIRMATION = "Confirmación"
    REPAIR = "Reparación"
