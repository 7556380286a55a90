"""Blocket Notifier — Shared utilities (logging, wave executor)."""
