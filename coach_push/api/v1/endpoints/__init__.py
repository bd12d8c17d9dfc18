"""API endpoint modules for v1."""

from coach_push.api.v1.endpoints import push

__all__ = ["push"]
