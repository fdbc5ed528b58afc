"""Public API for shared Stowage configuration utilities."""

from .loader import load_settings
from .models import (
    DEFAULT_CONFIG_PATH,
    ComponentsSettings,
    LoggingSettings,
    PostgresSettings,
    StowageSettings,
    resolve_component_settings,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ComponentsSettings",
    "LoggingSettings",
    "PostgresSettings",
    "StowageSettings",
    "load_settings",
    "resolve_component_settings",
]
