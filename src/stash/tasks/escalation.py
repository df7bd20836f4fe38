# src/stash/tasks/escalation.py

from __future__ import annotations

"""
Escalation scheduler.

A small timer loop that, on every tick:
- takes the engine's active-task snapshot (one consistent read),
- decides which tasks escalate (pure: plan_escalations),
- commits tier changes through the store, one task at a time,
- notifies the notification collaborator and asks the engine to refresh.

Capacity of the target tier is counted from the snapshot taken at the start
of the pass. Tasks escalated earlier in the same pass are not counted again.
"""

import asyncio
import contextlib
import logging
import threading
import time
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from ..core.ports import Clock, EscalationNotifier
from ..core.state import AppState
from .task_models import Task, Tier
from .task_store import StorageError

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_DELAY_SECONDS = 60.0
DEFAULT_INTERVAL_SECONDS = 300.0


@dataclass(slots=True, frozen=True)
class Escalation:
    task: Task
    from_tier: Tier
    to_tier: Tier


def plan_escalations(tasks: Iterable[Task], now_ts: float) -> list[Escalation]:
    """
    Decide which tasks escalate in this pass.

    Tasks are considered in the given order (the store returns them oldest
    tier assignment first). A task escalates when:
    - its tier has an escalation target and a non-zero threshold,
    - it has dwelt in its tier for at least the threshold,
    - the target tier held fewer than the capacity at pass start.
    """
    snapshot = [t for t in tasks if not t.is_completed]
    occupancy = Counter(t.tier for t in snapshot)

    out: list[Escalation] = []
    for task in snapshot:
        target = task.tier.escalation_target
        if target is None:
            continue

        threshold = task.tier.escalation_threshold_seconds
        if threshold <= 0:
            continue

        if now_ts - task.tier_assigned_at < threshold:
            continue

        if occupancy[target] >= task.tier.target_tier_capacity:
            continue

        out.append(Escalation(task=task, from_tier=task.tier, to_tier=target))
    return out


def run_escalation_pass(
    state: AppState,
    notifier: EscalationNotifier | None,
    *,
    enabled: bool = True,
    now_ts: float | None = None,
) -> list[Escalation]:
    """
    Run one escalation pass against the engine snapshot.

    Runs entirely under state.lock. A store failure for one task is logged
    and the pass moves on to the next task. Returns the escalations that
    were actually committed.
    """
    if not enabled:
        logger.debug("Escalation disabled; skipping pass")
        return []

    with state.lock:
        if now_ts is None:
            now_ts = state.clock()

        planned = plan_escalations(list(state.tasks), now_ts)
        applied: list[Escalation] = []

        for esc in planned:
            try:
                moved = state.task_store.update_tier(esc.task.id, esc.to_tier, now_ts=now_ts)
            except StorageError:
                logger.exception("Escalation failed task_id=%s", esc.task.id)
                continue

            if not moved:
                # Completed or deleted since the snapshot was taken.
                logger.debug("Escalation skipped, task gone task_id=%s", esc.task.id)
                continue

            applied.append(esc)
            logger.info(
                "Task %s escalated %s -> %s", esc.task.id, esc.from_tier.value, esc.to_tier.value
            )

            if notifier is not None:
                try:
                    notifier.notify_escalation(esc.task.title, esc.to_tier)
                except Exception:
                    logger.exception("Escalation notifier failed task_id=%s", esc.task.id)

        if applied:
            state.mark_escalated(now_ts)

    return applied


def _escalation_enabled(settings: object | None) -> bool:
    return bool(getattr(settings, "escalation_enabled", True))


async def run_escalation_scheduler(
        state: AppState,
        notifier: EscalationNotifier | None,
        *,
        settings: object | None = None,
        initial_delay_seconds: float = DEFAULT_INITIAL_DELAY_SECONDS,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        enabled: Callable[[], bool] | None = None,
        clock: Clock | None = None,
) -> None:
    """
    Periodic escalation loop.

    First pass after initial_delay_seconds, then every interval_seconds.
    The enabled flag is read on every tick (settings.escalation_enabled
    unless an `enabled` callable is given), so toggling it takes effect
    without a restart. Passes read time from `clock` when given, otherwise
    from state.clock.

    A pass always runs to completion. To stop the scheduler, cancel the
    coroutine/task.
    """
    first_s = max(0.0, float(initial_delay_seconds))
    sleep_s = max(0.01, float(interval_seconds))
    is_enabled = enabled or (lambda: _escalation_enabled(settings if settings is not None else state.settings))

    await asyncio.sleep(first_s)

    while True:
        try:
            now_ts = clock() if clock is not None else None
            applied = run_escalation_pass(state, notifier, enabled=is_enabled(), now_ts=now_ts)
            if applied:
                logger.info("Escalation pass: %d task(s) escalated", len(applied))
        except Exception:
            logger.exception("Escalation pass crashed")

        await asyncio.sleep(sleep_s)


@dataclass(slots=True)
class EscalationRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    task: asyncio.Task

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.task.cancel)
        except RuntimeError:
            logger.debug("Failed to signal escalation stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_escalation_in_background(
    state: AppState,
    notifier: EscalationNotifier | None,
    *,
    settings: object | None = None,
) -> EscalationRunner | None:
    """
    Start the escalation loop in a dedicated thread with its own event loop,
    so the blocking console REPL can run in the main thread.
    """
    settings = settings if settings is not None else state.settings
    initial = float(getattr(settings, "escalation_initial_delay_seconds", DEFAULT_INITIAL_DELAY_SECONDS))
    interval = float(getattr(settings, "escalation_interval_seconds", DEFAULT_INTERVAL_SECONDS))

    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        task = loop.create_task(
            run_escalation_scheduler(
                state,
                notifier,
                settings=settings,
                initial_delay_seconds=initial,
                interval_seconds=interval,
            )
        )

        holder["loop"] = loop
        holder["task"] = task
        ready.set()

        try:
            loop.run_until_complete(task)
        except asyncio.CancelledError:
            logger.info("Escalation scheduler stopped.")
        finally:
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="stash-escalation", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    task = holder.get("task")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(task, asyncio.Task):
        logger.error("Escalation thread did not initialize properly.")
        return None

    logger.info(
        "Escalation scheduler started (first pass in %.0fs, then every %.0fs).", initial, interval
    )
    return EscalationRunner(thread=t, loop=loop, task=task)


def seconds_until_eligible(task: Task, now_ts: float | None = None) -> float | None:
    """Remaining dwell time before `task` may escalate, or None if it never does."""
    if task.is_completed or task.tier.escalation_target is None:
        return None
    threshold = task.tier.escalation_threshold_seconds
    if threshold <= 0:
        return None
    if now_ts is None:
        now_ts = time.time()
    return max(0.0, threshold - task.dwell_seconds(now_ts))
