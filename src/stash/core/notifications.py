# src/stash/core/notifications.py

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field

from ..tasks.task_models import Tier

logger = logging.getLogger(__name__)

MAX_PENDING_NOTICES = 100


@dataclass(frozen=True, slots=True)
class Notice:
    title: str
    body: str


def escalation_notice(task_title: str, new_tier: Tier) -> Notice:
    return Notice(title="Task Escalated", body=f'"{task_title}" escalated to {new_tier.short_label}')


@dataclass(slots=True)
class LogNotifier:
    """
    Default notification collaborator: logs escalation notices.

    Notices are only queued in `pending` when a connector that can show them
    (console, OS banners) sets `queue_notices` and calls drain(). The queue
    keeps the newest MAX_PENDING_NOTICES entries. Honors the
    notifications_enabled flag.
    """

    enabled: bool = True
    queue_notices: bool = False
    pending: deque[Notice] = field(default_factory=lambda: deque(maxlen=MAX_PENDING_NOTICES))

    def notify_escalation(self, task_title: str, new_tier: Tier) -> None:
        if not self.enabled:
            logger.debug("Notifications disabled; dropping escalation of %r", task_title)
            return
        notice = escalation_notice(task_title, new_tier)
        if self.queue_notices:
            self.pending.append(notice)
        logger.info("%s: %s", notice.title, notice.body)

    def drain(self) -> list[Notice]:
        out = list(self.pending)
        self.pending.clear()
        return out
