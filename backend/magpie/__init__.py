"""Magpie - scholarship discovery, moderation and search."""

__version__ = "0.1.0"
