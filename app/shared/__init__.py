"""Shared model mixins used by feature tables."""

from app.shared.models import TimestampMixin

__all__ = ["TimestampMixin"]
