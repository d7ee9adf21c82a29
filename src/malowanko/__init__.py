"""Malowanko - AI coloring page generator for children."""

__version__ = "0.1.0"

from malowanko.core.config import MalowankoConfig, config

__all__ = [
    "MalowankoConfig",
    "config",
]
