"""
Permission catalogue, built-in roles and the authorization predicates

The check_* functions are pure: they only read the Principal and
FarmContext already resolved for the request and raise on failure.
Every check rejects an inactive principal first.
"""
from typing import Dict, Iterable, List, Optional, Sequence

from farmhub.core.errors import AccountInactive, InsufficientPermissions
from farmhub.core.principal import FarmContext, Principal
from farmhub.models.farm import FarmRole

# -------------------------
# PERMISSION CATALOGUE
# -------------------------
ACTIONS = ("create", "read", "update", "delete", "manage")

ADMIN_MODULES = ("users", "roles")
BUSINESS_MODULES = (
    "farms",
    "inventory",
    "finance",
    "reports",
    "poultry",
    "livestock",
    "fishery",
    "assets",
    "notifications",
)
MODULES = ADMIN_MODULES + BUSINESS_MODULES


def permission_name(module: str, action: str) -> str:
    return f"{module}:{action}"


ALL_PERMISSIONS = [permission_name(m, a) for m in MODULES for a in ACTIONS]

USERS_READ = permission_name("users", "read")
USERS_CREATE = permission_name("users", "create")
USERS_UPDATE = permission_name("users", "update")
USERS_DELETE = permission_name("users", "delete")
USERS_MANAGE = permission_name("users", "manage")
ROLES_MANAGE = permission_name("roles", "manage")
REPORTS_READ = permission_name("reports", "read")


def _business(*actions: str) -> List[str]:
    return [permission_name(m, a) for m in BUSINESS_MODULES for a in actions]


ADMIN_ROLE = "admin"
DEFAULT_ROLE = "viewer"

# name -> level, description, permission names
SYSTEM_ROLES: Dict[str, dict] = {
    "admin": {
        "level": 100,
        "description": "Full access to every module",
        "permissions": ALL_PERMISSIONS,
    },
    "manager": {
        "level": 50,
        "description": "Runs day-to-day operations",
        "permissions": _business("read", "create", "update") + [USERS_READ, REPORTS_READ],
    },
    "worker": {
        "level": 20,
        "description": "Records field data",
        "permissions": _business("read", "create"),
    },
    "viewer": {
        "level": 10,
        "description": "Read-only access",
        "permissions": _business("read"),
    },
}

# -------------------------
# FARM ROLE GROUPS
# -------------------------
FARM_ANY = (FarmRole.OWNER, FarmRole.MANAGER, FarmRole.WORKER, FarmRole.VIEWER)
FARM_STAFF = (FarmRole.OWNER, FarmRole.MANAGER, FarmRole.WORKER)
FARM_ADMINS = (FarmRole.OWNER, FarmRole.MANAGER)
FARM_OWNER = (FarmRole.OWNER,)


# -------------------------
# PREDICATES
# -------------------------
def check_active(principal: Principal) -> None:
    if not principal.is_active:
        raise AccountInactive()


def check_verified_email(principal: Principal) -> None:
    check_active(principal)
    if not principal.email_verified:
        raise InsufficientPermissions(
            "Email verification required",
            requirement="verified_email",
            required=[True],
            current=False,
        )


def check_role(principal: Principal, allowed: Sequence[str]) -> None:
    """Global role must be one of allowed (case-insensitive)"""
    check_active(principal)
    wanted = [name.lower() for name in allowed]
    current = (principal.role_name or "").lower()
    if current not in wanted:
        raise InsufficientPermissions(
            "Insufficient role",
            requirement="role",
            required=wanted,
            current=principal.role_name,
        )


def check_permission(principal: Principal, required: Sequence[str], mode: str = "any") -> None:
    """
    any: at least one of required is held
    all: every one of required is held
    """
    check_active(principal)
    if mode not in ("any", "all"):
        raise ValueError(f"Unknown permission mode: {mode}")

    held = principal.permissions
    matched = [perm for perm in required if perm in held]
    passed = bool(matched) if mode == "any" else len(matched) == len(required)
    if not passed:
        raise InsufficientPermissions(
            "Insufficient permissions",
            requirement=f"permission:{mode}",
            required=list(required),
            current=matched,
        )


def check_farm_role(principal: Principal, context: FarmContext, allowed: Iterable[FarmRole]) -> None:
    check_active(principal)
    allowed = list(allowed)
    if context.farm_role not in allowed:
        raise InsufficientPermissions(
            "Insufficient farm role",
            requirement="farm_role",
            required=[role.value for role in allowed],
            current=context.farm_role.value,
        )


def check_ownership_or_role(
    principal: Principal,
    owner_id,
    escalation_roles: Sequence[str],
    context: Optional[FarmContext] = None,
) -> None:
    """
    Owner of the resource passes. Otherwise the caller needs one of
    escalation_roles, matched against the global role name and, when a farm
    context is present, the farm role.
    """
    check_active(principal)
    if owner_id is not None and str(owner_id) == str(principal.id):
        return

    wanted = {name.upper() for name in escalation_roles}
    held = [(principal.role_name or "").upper()]
    if context is not None:
        held.append(context.farm_role.value)
    if wanted.intersection(held):
        return

    raise InsufficientPermissions(
        "You can only access your own resources",
        requirement="ownership_or_role",
        required=list(escalation_roles),
        current=context.farm_role.value if context is not None else principal.role_name,
    )


def can_assign_role(principal: Principal, role_level: int) -> bool:
    """A caller may only hand out roles at or below their own level"""
    return principal.is_active and role_level <= principal.role_level
