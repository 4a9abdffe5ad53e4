"""Utility helpers."""

from .logging import get_log_path, resolve_log_level, setup_logging

__all__ = ["get_log_path", "resolve_log_level", "setup_logging"]
