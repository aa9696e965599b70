"""
UI-agnostic notification interface.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List


logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Fire-and-forget reporting of update problems and outcomes."""

    @abstractmethod
    def notify_error(self, title: str, body: str) -> None:
        pass

    @abstractmethod
    def notify_important_error(self, title: str, body: str) -> None:
        """Report an error the user must act on before retrying the update."""
        pass

    @abstractmethod
    def notify_info(self, title: str, body: str) -> None:
        pass


class LoggingNotifier(Notifier):
    """Notifier that only writes to the log."""

    def notify_error(self, title: str, body: str) -> None:
        logger.error(f"{title}: {body}")

    def notify_important_error(self, title: str, body: str) -> None:
        logger.error(f"{title}: {body}")

    def notify_info(self, title: str, body: str) -> None:
        logger.info(f"{title}: {body}")


@dataclass
class Notification:
    level: str
    title: str
    body: str


class RecordingNotifier(Notifier):
    """Keeps notifications in memory, e.g. to summarise them after a run."""

    def __init__(self) -> None:
        self.notifications: List[Notification] = []

    def notify_error(self, title: str, body: str) -> None:
        self.notifications.append(Notification("error", title, body))

    def notify_important_error(self, title: str, body: str) -> None:
        self.notifications.append(Notification("important", title, body))

    def notify_info(self, title: str, body: str) -> None:
        self.notifications.append(Notification("info", title, body))

    @property
    def titles(self) -> List[str]:
        return [n.title for n in self.notifications]
