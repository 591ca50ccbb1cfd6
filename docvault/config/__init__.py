"""Configuration module: exports Settings and the layered load_settings() loader."""

from docvault.config.loader import load_settings
from docvault.config.settings import Settings

__all__ = ["Settings", "load_settings"]
