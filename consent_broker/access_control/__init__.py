# This file makes the access_control directory a Python package
from .rbac import Permission, has_permission
from .authorization import check_permission, resolve_principal
from .decorators import require_permission
