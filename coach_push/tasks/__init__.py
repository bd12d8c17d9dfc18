"""Celery tasks package."""

from coach_push.tasks import notifications

__all__ = ["notifications"]
