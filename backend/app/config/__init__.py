"""Configuration package for the paper-trading service."""

from .settings import AppSettings, get_settings

__all__ = ["AppSettings", "get_settings"]
