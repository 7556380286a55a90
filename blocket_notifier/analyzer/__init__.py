"""Blocket Notifier — Analyzer Package.

Rule-based classification of listing text into boolean tags.
"""

from blocket_notifier.analyzer.classifier import RULES, classify, classify_listing

__all__ = ["RULES", "classify", "classify_listing"]
