# Overview: Fire-and-forget notification hooks triggered after booking transitions.

"""
Email / SMS delivery lives outside the booking core. The core only announces
that something happened (booking confirmed, worker assigned, invoice issued);
the default notifier just logs the hook so a delivery worker can be attached
later without touching the services.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class LoggingNotifier:
    def notify(self, event: str, **payload) -> None:
        logger.info("Notification hook %s: %s", event, payload)

