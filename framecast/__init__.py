"""Render caller-supplied per-frame markup into encoded videos."""

__version__ = "0.1.0"
