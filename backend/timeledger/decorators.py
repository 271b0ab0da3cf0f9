# Overview: Request decorators that establish the caller context for API routes.

from __future__ import annotations

import uuid
from dataclasses import dataclass
from functools import wraps

from flask import g, jsonify, request

from .logging_config import bind_request_context

ROLE_EMPLOYEE = "EMPLOYEE"
ROLE_MANAGER = "MANAGER"
ROLE_ADMIN = "ADMIN"
ROLES = {ROLE_EMPLOYEE, ROLE_MANAGER, ROLE_ADMIN}


@dataclass(frozen=True)
class CallerContext:
    user_id: int
    company_id: int
    employee_id: int | None
    role: str

    @property
    def is_manager(self) -> bool:
        return self.role in {ROLE_MANAGER, ROLE_ADMIN}


def _int_header(name: str) -> int | None:
    raw = request.headers.get(name)
    if raw is None or raw.strip() == "":
        return None
    return int(raw)


def require_context(f):
    """
    Load the caller identity resolved by the upstream gateway.

    Headers: X-User-Id, X-Company-Id, X-Employee-Id (optional), X-Role.
    Authentication itself happens before the request reaches this service.

    Sets g.caller (CallerContext) and binds request-scoped log fields.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            user_id = _int_header("X-User-Id")
            company_id = _int_header("X-Company-Id")
            employee_id = _int_header("X-Employee-Id")
        except ValueError:
            return jsonify({"error": "Caller context headers must be integers"}), 401

        role = (request.headers.get("X-Role") or ROLE_EMPLOYEE).upper()
        if user_id is None or company_id is None:
            return jsonify({"error": "Caller context required"}), 401
        if role not in ROLES:
            return jsonify({"error": f"Unknown role: {role}"}), 401

        g.caller = CallerContext(user_id=user_id, company_id=company_id, employee_id=employee_id, role=role)
        bind_request_context(
            request_id=request.headers.get("X-Request-Id") or uuid.uuid4().hex,
            company_id=company_id,
            actor_id=user_id,
        )
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require one of the given roles. Use after @require_context."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            caller = getattr(g, "caller", None)
            if caller is None:
                return jsonify({"error": "Caller context required"}), 401
            if caller.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": sorted(roles),
                }), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator
