"""Utilities for role and tenant-aware request handling."""

from __future__ import annotations

from functools import wraps
from typing import Any, Dict, Optional

from flask import g, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from ispmanager import db
from ispmanager.models import User, UserRole


class TenantResolutionError(ValueError):
    """Raised when a request asks for a tenant the caller cannot reach."""


def _coerce_tenant_id(value: Any) -> Optional[str]:
    if value in (None, ''):
        return None
    return str(value).strip() or None


def requested_tenant_id(data: Optional[Dict[str, Any]] = None) -> Optional[str]:
    """Tenant explicitly asked for by body, query string or ``X-Tenant-ID``."""
    candidate = None
    if data:
        candidate = data.get('tenant_id')
    if candidate in (None, ''):
        candidate = request.args.get('tenant_id') or request.headers.get('X-Tenant-ID')
    return _coerce_tenant_id(candidate)


def current_user() -> Optional[User]:
    """Return the user loaded by ``roles_required`` for this request."""
    return getattr(g, 'current_user', None)


def tenant_access_allowed(user: Optional[User], tenant_id: Optional[str]) -> bool:
    """Admins reach every tenant; everyone else only their own."""
    if user is None:
        return False
    if user.role in UserRole.ADMINS:
        return True
    if tenant_id is None or user.tenant_id is None:
        return False
    return str(user.tenant_id) == str(tenant_id)


def resolve_tenant_scope(user: User, requested: Optional[str] = None) -> Optional[str]:
    """Tenant a query must be restricted to, or None for every tenant.

    ISP owners and customers are pinned to their own tenant. Admins may
    narrow down to a requested tenant.
    """
    requested = _coerce_tenant_id(requested)
    if user.role in UserRole.ADMINS:
        return requested
    if requested is not None and requested != user.tenant_id:
        raise TenantResolutionError('Access denied')
    return user.tenant_id


def access_denied():
    return jsonify({'error': 'Access denied'}), 403


def roles_required(*roles):
    """JWT + active user + optional role gate.

    With no roles any authenticated user passes.
    """

    def wrapper(fn):
        @jwt_required()
        @wraps(fn)
        def decorator(*args, **kwargs):
            identity = get_jwt_identity()
            user = db.session.get(User, str(identity)) if identity else None
            if not user or not user.is_active:
                return jsonify({'error': 'User not authenticated'}), 401
            if roles and user.role not in roles:
                return jsonify({'error': 'Insufficient permissions'}), 403

            g.current_user = user
            return fn(*args, **kwargs)

        return decorator

    return wrapper

