# src/stash/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps storage/notification collaborators swappable and makes testing easier.
"""

from collections.abc import Callable
from typing import Protocol

from ..tasks.task_models import Task, Tier

Clock = Callable[[], float]
# Returns "now" as epoch seconds. Tests inject a fake clock.


class EscalationNotifier(Protocol):
    """
    Outbound event for the notification collaborator.

    Fired once per successful automatic escalation. Delivery (banner, sound,
    push) is the collaborator's business, not the engine's.
    """

    def notify_escalation(self, task_title: str, new_tier: Tier) -> None: ...


class TaskRepo(Protocol):
    # Read path (engine snapshots)
    def fetch_active(self) -> list[Task]: ...
    def fetch_completed(self) -> list[Task]: ...
    def count_active(self, tier: Tier) -> int: ...

    # Mutations
    def add_task(self, task: Task) -> None: ...
    def complete_task(self, task_id: str, *, now_ts: float | None = None) -> bool: ...
    def update_tier(self, task_id: str, new_tier: Tier, *, now_ts: float | None = None) -> bool: ...
    def clear_completed(self) -> int: ...
    def clear_all(self) -> int: ...

    # Backup
    def export_snapshot(self) -> str: ...
