"""
Core application modules.
Contains configuration, logging, metrics, tracing, and error types.
"""
from .config import Settings, get_settings
from .errors import BusinessQueryError

__all__ = ["Settings", "get_settings", "BusinessQueryError"]
