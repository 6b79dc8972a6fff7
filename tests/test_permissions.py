"""
Authorization predicate tests

The predicates are pure functions over an already-resolved Principal and
FarmContext, so they are tested without a database.
"""
import uuid

import pytest

from farmhub.core.errors import AccountInactive, InsufficientPermissions
from farmhub.core.permissions import (
    FARM_ADMINS,
    FARM_ANY,
    FARM_STAFF,
    SYSTEM_ROLES,
    can_assign_role,
    check_active,
    check_farm_role,
    check_ownership_or_role,
    check_permission,
    check_role,
    check_verified_email,
)
from farmhub.core.principal import FarmContext, Principal
from farmhub.models import FarmRole


def make_principal(role_name="manager", level=50, permissions=(), active=True, verified=True):
    return Principal(
        id=uuid.uuid4(),
        email="someone@example.com",
        is_active=active,
        email_verified=verified,
        role_id=uuid.uuid4(),
        role_name=role_name,
        role_level=level,
        permissions=frozenset(permissions),
    )


def make_context(role):
    return FarmContext(farm_id=uuid.uuid4(), farm_name="Green Acres", farm_role=role, source="header")


class TestRoleCheck:
    def test_allowed_role_passes_case_insensitively(self):
        check_role(make_principal("Manager"), ["manager", "admin"])

    def test_other_role_reports_required_and_current(self):
        with pytest.raises(InsufficientPermissions) as exc_info:
            check_role(make_principal("viewer"), ["admin"])
        assert exc_info.value.extra == {"requirement": "role", "required": ["admin"], "current": "viewer"}


class TestPermissionCheck:
    def test_any_mode_needs_one(self):
        principal = make_principal(permissions=["finance:read"])
        check_permission(principal, ["finance:read", "finance:create"], "any")

    def test_all_mode_needs_every_one(self):
        """
        Test: principal holds one of two required permissions, mode all
        Expected: rejected, current lists what was matched
        """
        principal = make_principal(permissions=["finance:read"])
        with pytest.raises(InsufficientPermissions) as exc_info:
            check_permission(principal, ["finance:read", "finance:create"], "all")
        assert exc_info.value.extra["current"] == ["finance:read"]
        assert exc_info.value.extra["required"] == ["finance:read", "finance:create"]

    def test_no_permissions_rejected(self):
        with pytest.raises(InsufficientPermissions):
            check_permission(make_principal(), ["users:read"])

    def test_unknown_mode_is_a_programming_error(self):
        with pytest.raises(ValueError):
            check_permission(make_principal(permissions=["users:read"]), ["users:read"], "some")


class TestFarmRoleCheck:
    def test_viewer_on_staff_route(self):
        """
        Test: VIEWER on a route open to OWNER, MANAGER and WORKER
        Expected: required lists the three roles, current is VIEWER
        """
        with pytest.raises(InsufficientPermissions) as exc_info:
            check_farm_role(make_principal(), make_context(FarmRole.VIEWER), FARM_STAFF)
        assert exc_info.value.extra["required"] == ["OWNER", "MANAGER", "WORKER"]
        assert exc_info.value.extra["current"] == "VIEWER"

    @pytest.mark.parametrize("role", FARM_ADMINS)
    def test_admins_pass(self, role):
        check_farm_role(make_principal(), make_context(role), FARM_ADMINS)


class TestOwnershipOrRole:
    def test_owner_passes(self):
        principal = make_principal("viewer")
        check_ownership_or_role(principal, principal.id, ["admin"])

    def test_escalation_role_passes(self):
        check_ownership_or_role(make_principal("admin"), uuid.uuid4(), ["admin"])

    def test_farm_role_escalation(self):
        check_ownership_or_role(
            make_principal("viewer"), uuid.uuid4(), ["OWNER", "MANAGER"], make_context(FarmRole.MANAGER)
        )

    def test_stranger_rejected(self):
        with pytest.raises(InsufficientPermissions) as exc_info:
            check_ownership_or_role(make_principal("viewer"), uuid.uuid4(), ["admin"])
        assert exc_info.value.extra["requirement"] == "ownership_or_role"


class TestInactivePrincipal:
    """An inactive principal is rejected by every predicate, whatever it holds"""

    @pytest.fixture
    def inactive(self):
        return make_principal("admin", 100, SYSTEM_ROLES["admin"]["permissions"], active=False)

    def test_every_predicate_rejects(self, inactive):
        checks = [
            lambda: check_active(inactive),
            lambda: check_verified_email(inactive),
            lambda: check_role(inactive, ["admin"]),
            lambda: check_permission(inactive, ["users:read"]),
            lambda: check_permission(inactive, ["users:read"], "all"),
            lambda: check_farm_role(inactive, make_context(FarmRole.OWNER), FARM_ANY),
            lambda: check_ownership_or_role(inactive, inactive.id, ["admin"]),
        ]
        for check in checks:
            with pytest.raises(AccountInactive):
                check()

    def test_cannot_assign_roles(self, inactive):
        assert can_assign_role(inactive, 10) is False


class TestMisc:
    def test_unverified_email_rejected(self):
        with pytest.raises(InsufficientPermissions) as exc_info:
            check_verified_email(make_principal(verified=False))
        assert exc_info.value.extra["requirement"] == "verified_email"

    def test_role_levels(self):
        manager = make_principal("manager", 50)
        assert can_assign_role(manager, 50)
        assert can_assign_role(manager, 10)
        assert not can_assign_role(manager, 100)
