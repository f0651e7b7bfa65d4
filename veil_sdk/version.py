"""Version of the veil Python SDK."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _distribution_version

# Bump together with pyproject.toml when publishing
__version__ = "0.3.0"


def version() -> str:
    """Version of the installed distribution, or `__version__` when running from a source tree."""
    try:
        return _distribution_version("veil-sdk")
    except PackageNotFoundError:
        return __version__


__all__ = ["__version__", "version"]
