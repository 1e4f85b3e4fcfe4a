from functools import wraps

import structlog
from flask import g, jsonify
from flask_jwt_extended import get_jwt_identity

from consent_broker.database.session import get_db
from .authorization import check_permission, resolve_principal

log = structlog.get_logger(__name__)


def require_permission(permission):
    """Decorator to require specific permission.

    Must sit below @jwt_required(). The resolved principal is left on
    flask.g for the view.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = resolve_principal(get_db(), get_jwt_identity())
            if principal is None:
                return jsonify({"code": "not_found", "msg": "User not found"}), 404

            allowed, reason = check_permission(principal, permission)
            if not allowed:
                log.warning(
                    "auth.permission_denied",
                    principal_id=principal.id,
                    permission=permission.value,
                    reason=reason,
                )
                return jsonify({"code": "forbidden", "msg": "Insufficient permissions"}), 403

            g.principal = principal
            return f(*args, **kwargs)
        return decorated_function
    return decorator
