"""Last-access tracking for users and courses."""

from .models import ACTIVITY_TABLES_CQL


__all__ = ["ACTIVITY_TABLES_CQL"]
