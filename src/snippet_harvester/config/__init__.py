"""Configuration package for Snippet Harvester.

Re-exports the settings symbols so that callers can write::

    from snippet_harvester.config import get_settings
"""

from __future__ import annotations

from snippet_harvester.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
