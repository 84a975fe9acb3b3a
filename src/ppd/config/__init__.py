"""Configuration package."""

from ppd.config.settings import Settings

__all__ = ["Settings"]
