"""Ephemeral photo/video messaging with friendship streaks."""

__version__ = "0.1.0"
