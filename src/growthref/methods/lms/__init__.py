"""LMS calculation method."""

from .method import LMSConfig, LMSMethod

__all__ = ["LMSConfig", "LMSMethod"]
