"""Slack archive: workspace credential lifecycle and storage."""

__version__ = "0.1.0"
