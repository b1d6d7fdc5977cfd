"""Build configuration loading."""

from .settings import BuildConfig, load_config, load_settings, save_settings

__all__ = ["BuildConfig", "load_config", "load_settings", "save_settings"]
