# src/stash/core/state.py

from __future__ import annotations

"""
Application state: the tiering engine.

AppState holds the in-memory view of tasks (a snapshot refreshed from the
store after every mutation) and is the only place that mutates tasks on
behalf of connectors. The escalation scheduler reads the same snapshot.

All mutations and snapshot swaps happen under `lock`; the escalation
thread takes the same lock before touching anything.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

from ..tasks.task_models import TIERS_IN_ORDER, Task, Tier
from ..tasks.task_store import StorageError
from .ports import Clock, TaskRepo

logger = logging.getLogger(__name__)

ChangeKind = Literal["tasks", "completed", "escalation"]


class TaskNotFound(LookupError):
    """No active task matches the given query."""


@dataclass(frozen=True, slots=True)
class StateChange:
    kind: ChangeKind
    tasks: tuple[Task, ...]


Subscriber = Callable[[StateChange], None]


@dataclass
class AppState:
    settings: object
    task_store: TaskRepo
    clock: Clock = time.time

    tasks: list[Task] = field(default_factory=list)
    completed_tasks: list[Task] = field(default_factory=list)
    last_escalation_time: float | None = None

    # Tier new console input goes to (cycled with /tier).
    input_tier: Tier = Tier.L1

    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    _subscribers: list[Subscriber] = field(default_factory=list, repr=False)

    # ---- change notification ----

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a change listener. Returns a function that unsubscribes it."""
        with self.lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self.lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _emit(self, kind: ChangeKind) -> None:
        snapshot = tuple(self.completed_tasks if kind == "completed" else self.tasks)
        change = StateChange(kind=kind, tasks=snapshot)
        for cb in list(self._subscribers):
            try:
                cb(change)
            except Exception:
                logger.exception("State subscriber failed kind=%s", kind)

    # ---- snapshots ----

    def reload(self) -> None:
        with self.lock:
            self.tasks = self.task_store.fetch_active()
            self._emit("tasks")

    def reload_completed(self) -> None:
        with self.lock:
            self.completed_tasks = self.task_store.fetch_completed()
            self._emit("completed")

    def active_tasks(self, tier: Tier) -> list[Task]:
        return [t for t in self.tasks if t.tier == tier]

    @property
    def highest_active_tier(self) -> Tier | None:
        for tier in TIERS_IN_ORDER:
            if any(t.tier == tier for t in self.tasks):
                return tier
        return None

    def find_active(self, query: str) -> Task:
        """First active task (snapshot order) whose title contains query, case-insensitive."""
        needle = (query or "").strip().lower()
        if needle:
            for t in self.tasks:
                if needle in t.title.lower():
                    return t
        raise TaskNotFound(query)

    # ---- mutations ----

    def add_task(self, title: str, tier: Tier | None = None) -> Task | None:
        """
        Create a task in `tier` (defaults to the current input tier).

        Titles are stripped here; an empty title is ignored.
        """
        clean = (title or "").strip()
        if not clean:
            logger.debug("add_task ignored: empty title")
            return None

        with self.lock:
            task = Task.new(clean, tier or self.input_tier, now_ts=self.clock())
            try:
                self.task_store.add_task(task)
            except StorageError:
                logger.exception("add_task failed title=%r", clean)
                task = None
            self.reload()
            return task

    def complete_task(self, task: Task) -> bool:
        with self.lock:
            try:
                done = self.task_store.complete_task(task.id, now_ts=self.clock())
            except StorageError:
                logger.exception("complete_task failed id=%s", task.id)
                done = False
            self.reload()
            return done

    def promote_task(self, task: Task) -> bool:
        """One step toward L1. No-op (False) when the task is already in L1."""
        new_tier = task.tier.manual_promoted
        if new_tier is None:
            return False
        return self._move(task, new_tier)

    def snooze_task(self, task: Task) -> bool:
        """One step toward MEM. No-op (False) when the task is already in MEM."""
        new_tier = task.tier.manual_previous
        if new_tier is None:
            return False
        return self._move(task, new_tier)

    def _move(self, task: Task, new_tier: Tier) -> bool:
        with self.lock:
            try:
                moved = self.task_store.update_tier(task.id, new_tier, now_ts=self.clock())
            except StorageError:
                logger.exception("update_tier failed id=%s tier=%s", task.id, new_tier.value)
                moved = False
            self.reload()
            if moved:
                logger.info("Task %s moved %s -> %s", task.id, task.tier.value, new_tier.value)
            return moved

    def clear_completed(self) -> int:
        with self.lock:
            try:
                n = self.task_store.clear_completed()
            except StorageError:
                logger.exception("clear_completed failed")
                n = 0
            self.reload_completed()
            return n

    def clear_all_data(self) -> int:
        with self.lock:
            try:
                n = self.task_store.clear_all()
            except StorageError:
                logger.exception("clear_all failed")
                n = 0
            self.reload()
            self.reload_completed()
            return n

    def mark_escalated(self, now_ts: float) -> None:
        """Called by the escalation pass after it changed at least one tier."""
        with self.lock:
            self.tasks = self.task_store.fetch_active()
            self.last_escalation_time = float(now_ts)
            self._emit("escalation")

    def export_json(self) -> str:
        with self.lock:
            return self.task_store.export_snapshot()
