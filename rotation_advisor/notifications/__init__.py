"""Notification modules."""
from .email import EmailNotifier
from .status import StatusSink
from .telegram import TelegramNotifier

__all__ = ["EmailNotifier", "StatusSink", "TelegramNotifier"]
