"""
User-facing notices.

Remote failures are converted into notices at the call site; a notice is
dismissible and may carry one follow-up action such as "Sign In".
"""

import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger("storefront-client-notices")

_ids = itertools.count(1)


class NoticeLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class NoticeAction:
    label: str
    target: str


@dataclass
class Notice:
    title: str
    message: str = ""
    level: NoticeLevel = NoticeLevel.INFO
    action: Optional[NoticeAction] = None
    id: int = field(default_factory=lambda: next(_ids))


SIGN_IN_ACTION = NoticeAction(label="Sign In", target="/auth")


class NoticeBoard:
    """Holds the notices currently shown to the user, newest last."""

    def __init__(self, limit: int = 5) -> None:
        self._limit = limit
        self._notices: list[Notice] = []
        self._listeners: list[Callable[[Notice], None]] = []

    @property
    def notices(self) -> list[Notice]:
        return list(self._notices)

    @property
    def latest(self) -> Optional[Notice]:
        return self._notices[-1] if self._notices else None

    def subscribe(self, listener: Callable[[Notice], None]) -> Callable[[], None]:
        """Call ``listener`` for each new notice. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def push(self, notice: Notice) -> Notice:
        self._notices.append(notice)
        if len(self._notices) > self._limit:
            self._notices = self._notices[-self._limit:]
        for listener in list(self._listeners):
            listener(notice)
        return notice

    def info(self, title: str, message: str = "", action: Optional[NoticeAction] = None) -> Notice:
        return self.push(Notice(title, message, NoticeLevel.INFO, action))

    def success(self, title: str, message: str = "", action: Optional[NoticeAction] = None) -> Notice:
        return self.push(Notice(title, message, NoticeLevel.SUCCESS, action))

    def error(self, title: str, message: str = "", action: Optional[NoticeAction] = None) -> Notice:
        return self.push(Notice(title, message, NoticeLevel.ERROR, action))

    def dismiss(self, notice_id: int) -> bool:
        for i, notice in enumerate(self._notices):
            if notice.id == notice_id:
                del self._notices[i]
                return True
        return False

    def clear(self) -> None:
        self._notices.clear()
