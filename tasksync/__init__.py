"""Offline-first mirror and sync engine for remote task lists."""

__version__ = "0.1.0"
