"""Pastoralist - dependency override bookkeeping with vulnerability scanning."""

__version__ = "1.0.0"
