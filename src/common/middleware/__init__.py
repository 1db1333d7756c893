"""Common middleware for Gatherly."""

from .observability import StructlogContextMiddleware

__all__ = ["StructlogContextMiddleware"]
