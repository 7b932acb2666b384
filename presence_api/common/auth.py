# presence_api/common/auth.py
from __future__ import annotations

from functools import wraps
from typing import Optional

from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity

from presence_api.common.http import fail


def current_employee_id() -> Optional[int]:
    """
    Resolve the employee behind the bearer token.

    Accepted identity shapes:
      - "12" / 12                      (employee id as subject)
      - {"employee_id": 12, ...}       (legacy dict identity)
    """
    ident = get_jwt_identity()

    if isinstance(ident, dict):
        ident = ident.get("employee_id") or ident.get("emp_id")

    try:
        return int(ident)
    except (TypeError, ValueError):
        return None


def requires_roles(*codes: str):
    """
    Require that the current user has AT LEAST ONE of the given role codes.
    - Roles are read from the 'roles' claim issued with the token.
    - 'admin' role always passes.
    """
    def outer(fn):
        @wraps(fn)
        @jwt_required()
        def inner(*args, **kwargs):
            claims = get_jwt() or {}
            roles = set(claims.get("roles") or [])

            if get_jwt_identity() is None:
                return fail("Unauthorized", status=401)

            if "admin" in roles:
                return fn(*args, **kwargs)

            if not any(r in roles for r in codes):
                return fail("Forbidden", status=403)

            return fn(*args, **kwargs)
        return inner
    return outer
