"""Configuration module -- exports Settings."""

from chattube.config.settings import Settings

__all__ = ["Settings"]
