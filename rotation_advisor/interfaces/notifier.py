"""Notifier protocol for status delivery."""
from typing import Protocol


class Notifier(Protocol):
    """Channel the status sink forwards messages to."""

    async def send_alert(self, message: str, subject: str = "") -> bool: ...

    async def send_log(self, message: str, silent: bool = True) -> bool: ...
