"""
Tenant Scoping Helpers

WHY: Centralize how the tenant of the current request is resolved.
The tenant is the id of the admin who registered the account; there is no
separate tenant table.

SECURITY INVARIANTS:
1. Every authenticated request has g.tenant_id and g.current_user set
   (see decorators.require_auth)
2. Every query touching products, movements or payments filters by g.tenant_id
3. Entities in another tenant are reported as not found
"""

from flask import g

from ..extensions import db
from ..models import User


class TenantAccessError(Exception):
    """Raised when the tenant context is missing from the request."""


def get_current_user() -> User:
    user = getattr(g, "current_user", None)
    if user is None:
        raise TenantAccessError("Tenant context not established")
    return user


def tenant_owner(tenant_id: int) -> User | None:
    return db.session.get(User, tenant_id)
