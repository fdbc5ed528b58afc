"""Settings loading entrypoint.

Precedence is always:
1) explicit keyword overrides
2) environment variables (``STOWAGE_`` prefix, ``__`` nesting)
3) ``~/.config/stowage/stowage.yaml``
4) built-in model defaults

Example: ``STOWAGE_LOGGING__LEVEL=DEBUG`` sets ``logging.level``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from .models import StowageSettings


def load_settings(
    *, config_path: str | Path | None = None, **overrides: Any
) -> StowageSettings:
    """Build root settings, optionally reading YAML from ``config_path``."""
    if config_path is None:
        return StowageSettings(**overrides)

    class _PathBoundSettings(StowageSettings):
        _config_path = Path(config_path)

    return _PathBoundSettings(**overrides)
