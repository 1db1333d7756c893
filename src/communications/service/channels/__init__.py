from .registry import get_channel

__all__ = ["get_channel"]
