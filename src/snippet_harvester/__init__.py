"""Snippet Harvester: scheduled CSS-selector extraction from web pages."""

__version__ = "0.1.0"
