"""
Core utilities shared across the application.
"""

from .logger import configure_from_env, setup_logging

__all__ = ["configure_from_env", "setup_logging"]
