from consent_broker.models.principal import Principal
from .rbac import has_permission


def resolve_principal(db, identity):
    """Map a verified JWT identity onto the stored principal, or None."""
    try:
        principal_id = int(identity)
    except (TypeError, ValueError):
        return None
    return db.get(Principal, principal_id)


def check_permission(principal, permission):
    """Check if a resolved principal may perform an action"""
    if principal is None:
        return False, "Principal not found"
    if not principal.is_active:
        return False, "Principal is inactive"
    if not has_permission(principal.role, permission):
        return False, f"{principal.role.value} cannot {permission.value}"
    return True, "Role permits action"
