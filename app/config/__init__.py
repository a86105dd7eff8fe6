"""Configuration module for the admin starter application."""
from .settings import AppConfig, load_settings
from .logging import setup_logging

__all__ = ["AppConfig", "load_settings", "setup_logging"]
