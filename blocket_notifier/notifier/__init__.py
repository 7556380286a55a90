"""Blocket Notifier — Notifier Package.

Components:
  - matcher: Pairs recipients with listings matching their profile
  - dispatcher: SMS and e-mail fan-out with a delivery log
  - transports: HTTP gateway implementations for SMS and e-mail
  - leads: Lead forwarding to the partner API
  - telegram_bot: Operator alerts
"""

from blocket_notifier.notifier.dispatcher import Delivery, NotificationDispatcher
from blocket_notifier.notifier.leads import LeadForwarder
from blocket_notifier.notifier.matcher import (
    list_recipients_interested_in,
    listing_matches,
    match_targets,
)
from blocket_notifier.notifier.telegram_bot import TelegramNotifier

__all__ = [
    "Delivery",
    "NotificationDispatcher",
    "LeadForwarder",
    "list_recipients_interested_in",
    "listing_matches",
    "match_targets",
    "TelegramNotifier",
]
