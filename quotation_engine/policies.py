from __future__ import annotations

from typing import Iterable, Set

from flask import current_app, request, session

from quotation_engine.domain.contracts import Principal
from quotation_engine.errors import AuthRequiredError, ForbiddenError


VALID_ROLES: Set[str] = {"admin", "vendor", "approver"}


def normalize_role(role: str | None, default: str = "") -> str:
    normalized = str(role or "").strip().lower()
    if normalized in VALID_ROLES:
        return normalized
    return default if default in VALID_ROLES else ""


def normalize_allowed_roles(roles: Iterable[str]) -> Set[str]:
    allowed: Set[str] = set()
    for role in roles:
        normalized = normalize_role(role)
        if normalized:
            allowed.add(normalized)
    return allowed


def has_any_role(role: str | None, allowed_roles: Iterable[str]) -> bool:
    allowed = normalize_allowed_roles(allowed_roles)
    return not allowed or normalize_role(role) in allowed


def _parse_user_id(value) -> int | None:
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def resolve_principal() -> Principal | None:
    user_id = _parse_user_id(session.get("user_id"))
    role = normalize_role(session.get("user_role"))
    if user_id and role:
        return Principal(user_id=user_id, role=role)

    user_id = _parse_user_id(request.headers.get("X-User-Id"))
    role = normalize_role(request.headers.get("X-User-Role"))
    if user_id and role:
        return Principal(user_id=user_id, role=role)
    return None


def current_principal() -> Principal:
    principal = resolve_principal()
    if principal is not None:
        return principal
    if not bool(current_app.config.get("AUTH_ENABLED", True)):
        return Principal(user_id=1, role="admin")
    raise AuthRequiredError()


def require_roles(*allowed_roles: str, principal: Principal | None = None) -> Principal:
    resolved = principal or current_principal()
    if has_any_role(resolved.role, allowed_roles):
        return resolved
    raise ForbiddenError(
        code="forbidden",
        message_key="permission_denied",
        payload={"required_roles": sorted(normalize_allowed_roles(allowed_roles))},
    )
