"""Authenticated remote administration endpoint for constrained devices."""

__version__ = "0.1.0"
