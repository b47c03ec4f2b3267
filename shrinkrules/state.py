from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from .models import EMPTY_DATASET, Dataset

logger = logging.getLogger(__name__)

NoticeLevel = Literal["info", "warn", "error"]


class Connectivity(str, Enum):
    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass(frozen=True)
class Notice:
    level: NoticeLevel
    text: str


@dataclass(frozen=True)
class StateChange:
    """Emitted to subscribers after every committed change."""

    reason: str
    dataset: Dataset
    connectivity: Connectivity
    notice: Notice | None = None


Listener = Callable[[StateChange], None]


@dataclass
class AppState:
    """In-memory application state shared by the engine and the front end.

    One instance is created per client and passed explicitly to whatever
    needs it.
    """

    dataset: Dataset = EMPTY_DATASET
    connectivity: Connectivity = Connectivity.UNKNOWN
    last_sync: str | None = None
    notices: list[Notice] = field(default_factory=list)
    _listeners: list[Listener] = field(default_factory=list, repr=False)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def notify(self, level: NoticeLevel, text: str) -> Notice:
        notice = Notice(level=level, text=text)
        self.notices.append(notice)
        return notice

    def drain_notices(self) -> list[Notice]:
        notices = list(self.notices)
        self.notices.clear()
        return notices

    def commit(self, reason: str, notice: Notice | None = None) -> None:
        change = StateChange(
            reason=reason,
            dataset=self.dataset,
            connectivity=self.connectivity,
            notice=notice,
        )
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as exc:
                logger.warning("state listener failed on %s", reason, exc_info=exc)
