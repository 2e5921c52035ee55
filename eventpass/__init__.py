"""Event registration and QR attendance service."""

from __future__ import annotations

from typing import Any

from .database import Database
from .config import resolve_database_path


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the registration API application."""

    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "Database",
    "create_app",
    "resolve_database_path",
]
