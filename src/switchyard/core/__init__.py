"""Core infrastructure for Switchyard."""

from switchyard.core.connection import DatabaseConnection, normalize_url

__all__ = [
    "DatabaseConnection",
    "normalize_url",
]
