"""Configuration: environment settings and the YAML config file.

Quick start::

    from backuper.core.config import get_settings, load_config

    settings = get_settings()
    config = load_config(settings.config_file, settings)

Architecture::

    settings.py   BackuperSettings (pydantic-settings) + get_settings() cache
    loader.py     ConfigFileSpec (pydantic, YAML) -> BackuperConfig
"""

from .loader import BackupTargetSpec, ConfigFileSpec, load_config, resolve_config
from .settings import BackuperSettings, get_settings

__all__ = [
    "BackuperSettings",
    "get_settings",
    "BackupTargetSpec",
    "ConfigFileSpec",
    "load_config",
    "resolve_config",
]
