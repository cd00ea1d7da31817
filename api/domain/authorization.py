# SPDX-License-Identifier: Apache-2.0

"""
Authorization domain logic for role-based access control.

Roles form a closed set and each one grants a fixed list of capabilities.
Every check in the API goes through the pure predicates in this module
instead of comparing role strings at call sites.
"""

from typing import Any, Dict, Iterable, List, Optional, Union
from dataclasses import dataclass, field

from models.enums import LuminariaStatus, UserRole

# Capabilities
LUMINARIA_READ = "luminaria:read"
LUMINARIA_UPLOAD = "luminaria:upload"
LUMINARIA_REPORT = "luminaria:report"
LUMINARIA_VERIFY = "luminaria:verify"
LUMINARIA_FIX = "luminaria:fix"
LUMINARIA_DELETE = "luminaria:delete"
HISTORY_READ = "history:read"
REPORT_EXPORT = "report:export"
USER_MANAGE = "user:manage"

_READ_ONLY = [LUMINARIA_READ, HISTORY_READ]

ROLE_CAPABILITIES: Dict[str, List[str]] = {
    UserRole.ADMIN.value: _READ_ONLY + [
        LUMINARIA_UPLOAD,
        LUMINARIA_REPORT,
        LUMINARIA_VERIFY,
        LUMINARIA_FIX,
        LUMINARIA_DELETE,
        REPORT_EXPORT,
        USER_MANAGE,
    ],
    UserRole.INSPECTOR.value: _READ_ONLY + [LUMINARIA_UPLOAD, LUMINARIA_REPORT, REPORT_EXPORT],
    UserRole.BRIGADE.value: _READ_ONLY + [LUMINARIA_VERIFY],
    UserRole.VIEWER.value: list(_READ_ONLY),
}

CAPABILITY_DESCRIPTIONS = {
    LUMINARIA_READ: "View luminarias and their status",
    LUMINARIA_UPLOAD: "Import luminarias from KMZ files",
    LUMINARIA_REPORT: "Report luminaria problems",
    LUMINARIA_VERIFY: "Verify reported problems in the field",
    LUMINARIA_FIX: "Register repairs",
    LUMINARIA_DELETE: "Delete luminarias",
    HISTORY_READ: "View luminaria history",
    REPORT_EXPORT: "Export Excel and PDF reports",
    USER_MANAGE: "Manage user accounts and roles",
}


@dataclass
class AuthorizationResult:
    """Result of an authorization check."""
    allowed: bool
    reason: Optional[str] = None
    missing_permissions: List[str] = field(default_factory=list)


def normalize_role(role: Union[str, UserRole, None]) -> str:
    """Return the role value, falling back to viewer for unknown roles."""
    value = role.value if isinstance(role, UserRole) else role
    return value if value in ROLE_CAPABILITIES else UserRole.VIEWER.value


def role_of(actor: Any) -> str:
    """Extract the role from a role value or any object with a ``role`` attribute."""
    if isinstance(actor, (str, UserRole)) or actor is None:
        return normalize_role(actor)
    return normalize_role(getattr(actor, "role", None))


def capabilities_for_role(role: Union[str, UserRole, None]) -> List[str]:
    """List the capabilities granted to a role."""
    return list(ROLE_CAPABILITIES[normalize_role(role)])


def has_capability(actor: Any, required: Union[str, Iterable[str]], require_all: bool = True) -> bool:
    """
    Check whether an actor's role grants the required capabilities.

    Args:
        actor: Role value, UserRole or object with a ``role`` attribute
        required: One capability or an iterable of capabilities
        require_all: If True, every capability is needed; otherwise any one suffices

    Returns:
        True if the role grants the capabilities
    """
    granted = set(ROLE_CAPABILITIES[role_of(actor)])
    wanted = {required} if isinstance(required, str) else set(required)

    if not wanted:
        return True
    if require_all:
        return wanted <= granted
    return bool(wanted & granted)


def check_capability(actor: Any, capability: str) -> AuthorizationResult:
    """
    Check a single capability and explain a denial.

    Args:
        actor: Role value or object with a ``role`` attribute
        capability: Capability string to check

    Returns:
        AuthorizationResult indicating if the capability is granted
    """
    if has_capability(actor, capability):
        return AuthorizationResult(allowed=True)

    return AuthorizationResult(
        allowed=False,
        reason=f"Missing required permission: {capability}",
        missing_permissions=[capability]
    )



def can_assign_role(actor: Any, requested_role: Union[str, UserRole]) -> AuthorizationResult:
    """
    Check if an actor may create or promote a user to ``requested_role``.

    Anyone may obtain the viewer role; every other role needs an admin.
    """
    if normalize_role(requested_role) == UserRole.VIEWER.value:
        return AuthorizationResult(allowed=True)

    if role_of(actor) == UserRole.ADMIN.value:
        return AuthorizationResult(allowed=True)

    return AuthorizationResult(
        allowed=False,
        reason=f"Only administrators can assign the {normalize_role(requested_role)} role",
        missing_permissions=[USER_MANAGE]
    )


def can_manage_user(actor: Any, actor_user_id: str, target_user_id: str) -> AuthorizationResult:
    """Check if an actor can change or delete another user account."""
    perm_check = check_capability(actor, USER_MANAGE)
    if not perm_check.allowed:
        return perm_check

    if actor_user_id == target_user_id:
        return AuthorizationResult(
            allowed=False,
            reason="Administrators cannot change or delete their own account"
        )

    return AuthorizationResult(allowed=True)


def available_luminaria_actions(status: str, actor: Any) -> List[str]:
    """
    List the workflow actions an actor may perform on a luminaria right now.

    Args:
        status: Current luminaria status
        actor: Role value or object with a ``role`` attribute

    Returns:
        Action names among ``report``, ``verify``, ``fix`` and ``delete``
    """
    actions = []

    if (status in (LuminariaStatus.OK.value, LuminariaStatus.FIXED.value)
            and has_capability(actor, LUMINARIA_REPORT)):
        actions.append("report")

    if status == LuminariaStatus.REPORTED.value and has_capability(actor, LUMINARIA_VERIFY):
        actions.append("verify")

    if status != LuminariaStatus.OK.value and has_capability(actor, LUMINARIA_FIX):
        actions.append("fix")

    if has_capability(actor, LUMINARIA_DELETE):
        actions.append("delete")

    return actions


def get_permission_description(permission: str) -> str:
    """Get human-readable description for a capability."""
    return CAPABILITY_DESCRIPTIONS.get(permission, f"Permission: {permission}")
