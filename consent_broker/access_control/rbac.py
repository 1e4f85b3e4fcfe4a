from enum import Enum

from consent_broker.models.principal import PrincipalRole


class Permission(Enum):
    # Provider permissions
    ADD_ITEM = "add_item"
    LIST_OWN_ITEMS = "list_own_items"
    EDIT_ITEM = "edit_item"
    DELETE_ITEM = "delete_item"
    LIST_PENDING_CONSENTS = "list_pending_consents"
    DECIDE_CONSENT = "decide_consent"
    VIEW_OWNER_HISTORY = "view_owner_history"

    # Seeker permissions
    BROWSE_PROVIDER_ITEMS = "browse_provider_items"
    ACCESS_ITEM = "access_item"
    RETRIEVE_ITEM = "retrieve_item"
    REREQUEST_ACCESS = "rerequest_access"
    VIEW_REQUESTER_HISTORY = "view_requester_history"

    # Admin permissions
    MANAGE_PRINCIPALS = "manage_principals"


# Role-Based Access Control Matrix
ROLE_PERMISSIONS = {
    PrincipalRole.PROVIDER: [
        Permission.ADD_ITEM,
        Permission.LIST_OWN_ITEMS,
        Permission.EDIT_ITEM,
        Permission.DELETE_ITEM,
        Permission.LIST_PENDING_CONSENTS,
        Permission.DECIDE_CONSENT,
        Permission.VIEW_OWNER_HISTORY,
    ],
    PrincipalRole.SEEKER: [
        Permission.BROWSE_PROVIDER_ITEMS,
        Permission.ACCESS_ITEM,
        Permission.RETRIEVE_ITEM,  # Only with an approved consent
        Permission.REREQUEST_ACCESS,
        Permission.VIEW_REQUESTER_HISTORY,
    ],
    PrincipalRole.ADMIN: [
        Permission.MANAGE_PRINCIPALS,
    ],
}


def has_permission(role, permission):
    """Check if a role has specific permission"""
    return permission in ROLE_PERMISSIONS.get(role, [])
