"""Package initializer for the backend `ispmanager` package.
Re-exports the factory and extensions defined in `init.py`.
"""
from .init import (
    create_app,
    db,
    migrate,
    jwt,
    mail,
    limiter,
    metrics,
    cache,
    celery,
)

__all__ = [
    "create_app",
    "db",
    "migrate",
    "jwt",
    "mail",
    "limiter",
    "metrics",
    "cache",
    "celery",
]
