# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for role capabilities and access predicates.
"""

import pytest

from domain.authorization import (
    LUMINARIA_READ, LUMINARIA_UPLOAD, LUMINARIA_REPORT, LUMINARIA_VERIFY,
    LUMINARIA_FIX, LUMINARIA_DELETE, HISTORY_READ, REPORT_EXPORT, USER_MANAGE,
    ROLE_CAPABILITIES, has_capability, check_capability,
    capabilities_for_role, normalize_role, can_assign_role, can_manage_user,
    available_luminaria_actions, get_permission_description
)
from models.entities import UserContext
from models.enums import UserRole


class TestRoleCapabilities:
    """The role to capability table."""

    def test_admin_has_every_capability(self):
        every = set().union(*ROLE_CAPABILITIES.values())
        assert set(capabilities_for_role("admin")) == every

    @pytest.mark.parametrize("role,capability,expected", [
        ("inspector", LUMINARIA_UPLOAD, True),
        ("inspector", LUMINARIA_REPORT, True),
        ("inspector", REPORT_EXPORT, True),
        ("inspector", LUMINARIA_VERIFY, False),
        ("inspector", LUMINARIA_FIX, False),
        ("brigade", LUMINARIA_VERIFY, True),
        ("brigade", LUMINARIA_REPORT, False),
        ("brigade", REPORT_EXPORT, False),
        ("viewer", LUMINARIA_READ, True),
        ("viewer", HISTORY_READ, True),
        ("viewer", LUMINARIA_REPORT, False),
        ("viewer", USER_MANAGE, False),
    ])
    def test_has_capability(self, role, capability, expected):
        assert has_capability(role, capability) is expected

    def test_every_role_can_read(self):
        for role in UserRole:
            assert has_capability(role, [LUMINARIA_READ, HISTORY_READ])

    def test_unknown_role_is_treated_as_viewer(self):
        assert normalize_role("superuser") == "viewer"
        assert capabilities_for_role(None) == capabilities_for_role("viewer")

    def test_actor_object_with_role(self):
        actor = UserContext(user_id="u1", role="brigade")
        assert has_capability(actor, LUMINARIA_VERIFY)
        assert not has_capability(actor, LUMINARIA_DELETE)

    def test_require_any(self):
        assert has_capability("brigade", [LUMINARIA_REPORT, LUMINARIA_VERIFY], require_all=False)
        assert not has_capability("brigade", [LUMINARIA_REPORT, LUMINARIA_VERIFY])

    def test_empty_requirement_is_granted(self):
        assert has_capability("viewer", [])

    def test_user_context_permissions_follow_role(self):
        actor = UserContext(user_id="u1", role="inspector")
        assert LUMINARIA_UPLOAD in actor.permissions
        assert USER_MANAGE not in actor.permissions


class TestChecks:
    """Checks that explain denials."""

    def test_check_capability_denied(self):
        result = check_capability("viewer", LUMINARIA_DELETE)
        assert not result.allowed
        assert result.missing_permissions == [LUMINARIA_DELETE]
        assert LUMINARIA_DELETE in result.reason

    def test_anyone_may_get_viewer(self):
        assert can_assign_role(None, "viewer").allowed

    @pytest.mark.parametrize("actor_role", ["viewer", "inspector", "brigade"])
    def test_only_admin_assigns_privileged_roles(self, actor_role):
        result = can_assign_role(actor_role, "inspector")
        assert not result.allowed
        assert can_assign_role("admin", "inspector").allowed

    def test_admin_cannot_manage_own_account(self):
        assert not can_manage_user("admin", "a1", "a1").allowed
        assert can_manage_user("admin", "a1", "u2").allowed
        assert not can_manage_user("inspector", "i1", "u2").allowed

    def test_permission_descriptions(self):
        assert get_permission_description(LUMINARIA_VERIFY) == "Verify reported problems in the field"
        assert get_permission_description("x:y") == "Permission: x:y"


class TestLuminariaActions:
    """Affordances offered per status and role."""

    def test_inspector_can_report_healthy_luminaria(self):
        assert available_luminaria_actions("ok", "inspector") == ["report"]

    def test_inspector_cannot_report_open_incident(self):
        assert available_luminaria_actions("reported", "inspector") == []

    def test_brigade_verifies_reported(self):
        assert available_luminaria_actions("reported", "brigade") == ["verify"]
        assert available_luminaria_actions("confirmed", "brigade") == []

    def test_admin_actions(self):
        assert available_luminaria_actions("ok", "admin") == ["report", "delete"]
        assert available_luminaria_actions("reported", "admin") == ["verify", "fix", "delete"]
        assert available_luminaria_actions("confirmed", "admin") == ["fix", "delete"]

    def test_viewer_has_no_actions(self):
        for status in ("ok", "reported", "confirmed", "fixed"):
            assert available_luminaria_actions(status, "viewer") == []
