"""Scheduler status sink that fans out to the configured notifiers."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Sequence

from ..interfaces.notifier import Notifier
from ..models import Severity

logger = logging.getLogger(__name__)

_ICONS = {
    Severity.INFO: "ℹ️",
    Severity.SUCCESS: "✅",
    Severity.WARNING: "⚠️",
    Severity.ERROR: "🚨",
}


class StatusSink:
    """Scheduler ``on_status`` callback.

    Errors and successes (found plans, execution outcomes) go out as alerts.
    Warnings, and info when enabled, go to the silent log channel. Each
    notifier's failure is contained so the others still receive the message.
    """

    def __init__(
        self,
        notifiers: Sequence[Notifier],
        label: str,
        forward_info: bool = False,
    ) -> None:
        self._notifiers = list(notifiers)
        self._label = label
        self._forward_info = forward_info

    def subject(self, severity: Severity) -> str:
        return f"{_ICONS[severity]} {self._label}"

    def body(self, message: str) -> str:
        now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        return f"{message}\n\n{now} UTC"

    async def __call__(self, message: str, severity: Severity) -> bool:
        if severity is Severity.INFO and not self._forward_info:
            return False

        subject = self.subject(severity)
        body = self.body(message)
        delivered = False
        for notifier in self._notifiers:
            try:
                if severity in (Severity.ERROR, Severity.SUCCESS):
                    sent = await notifier.send_alert(body, subject=subject)
                else:
                    sent = await notifier.send_log(f"{subject}\n\n{body}", silent=True)
            except Exception as e:
                logger.error(
                    "Status delivery via %s failed: %s", type(notifier).__name__, e
                )
                continue
            delivered = delivered or sent
        return delivered
