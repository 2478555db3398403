"""
User-facing notifications.

The dashboard and the usage-fee gate report outcomes (load errors, success,
refunds) through a Notifier. The default implementation writes them to the
log; a web client can supply one that forwards them to the UI.
"""

import logging
from typing import List, Optional, Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, title: str, description: str, variant: str = "default") -> None:
        ...


class LoggingNotifier:
    """Notifier that writes every notification to the log."""

    def notify(self, title: str, description: str, variant: str = "default") -> None:
        if variant == "destructive":
            logger.warning(f"NOTIFY | {title} | {description}")
        else:
            logger.info(f"NOTIFY | {title} | {description}")


class BufferedNotifier(LoggingNotifier):
    """
    Collects notifications so they can be returned with an API response.
    """

    def __init__(self):
        self.messages: List[dict] = []

    def notify(self, title: str, description: str, variant: str = "default") -> None:
        super().notify(title, description, variant)
        self.messages.append({"title": title, "description": description, "variant": variant})

    def last(self, variant: Optional[str] = None) -> Optional[dict]:
        for message in reversed(self.messages):
            if variant is None or message["variant"] == variant:
                return message
        return None
