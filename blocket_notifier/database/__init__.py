"""Blocket Notifier — SQLite storage layer."""
