"""Blocket Notifier — rental listing crawler and notifier."""

__version__ = "1.0.0"
