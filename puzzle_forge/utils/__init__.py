"""
Puzzle Forge - Utilities
Logging and numeric helpers.
"""

from .logging import get_logger, setup_logging, SessionLogger
from .numbers import round_half_up

__all__ = ["get_logger", "setup_logging", "SessionLogger", "round_half_up"]
