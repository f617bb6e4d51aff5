"""Version info for dutywatch."""

import os


def _get_scm_version() -> str:
    """Get version from setuptools_scm generated _version.py."""
    try:
        from ._version import __version__
        return __version__
    except ImportError:
        return os.environ.get("DUTYWATCH_VERSION", "0.1.0")


def get_version() -> str:
    return _get_scm_version()
