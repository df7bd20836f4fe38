# tests/test_escalation.py

from __future__ import annotations

import asyncio
import threading
from types import SimpleNamespace

import pytest

from stash.cli.bootstrap import create_notifier
from stash.core.notifications import MAX_PENDING_NOTICES, LogNotifier
from stash.core.state import AppState, StateChange
from stash.tasks.escalation import (
    plan_escalations,
    run_escalation_pass,
    run_escalation_scheduler,
    seconds_until_eligible,
    start_escalation_in_background,
)
from stash.tasks.task_models import Task, Tier

from .fakes import FakeClock, FakeNotifier, FlakyTaskStore

L2_WAIT = Tier.L2.escalation_threshold_seconds
L3_WAIT = Tier.L3.escalation_threshold_seconds


def _fill(state: AppState, tier: Tier, n: int, prefix: str) -> list[Task]:
    out = []
    for i in range(n):
        task = state.add_task(f"{prefix}{i}", tier)
        assert task is not None
        out.append(task)
    return out


def test_dwell_gate(state: AppState, clock: FakeClock, notifier: FakeNotifier) -> None:
    _fill(state, Tier.L2, 1, "wait")
    t0 = clock.now

    assert run_escalation_pass(state, notifier, now_ts=t0 + L2_WAIT - 1) == []
    assert state.tasks[0].tier is Tier.L2

    applied = run_escalation_pass(state, notifier, now_ts=t0 + L2_WAIT)
    assert len(applied) == 1
    assert state.tasks[0].tier is Tier.L1
    assert state.tasks[0].tier_assigned_at == t0 + L2_WAIT


def test_capacity_gate(state: AppState, clock: FakeClock, notifier: FakeNotifier) -> None:
    hot = _fill(state, Tier.L1, 3, "hot")
    _fill(state, Tier.L2, 1, "waiting")

    clock.advance(L2_WAIT + 1)
    assert run_escalation_pass(state, notifier) == []
    assert [t.title for t in state.active_tasks(Tier.L2)] == ["waiting0"]

    # Once L1 has room, the same task escalates on the next pass.
    state.complete_task(hot[0])
    applied = run_escalation_pass(state, notifier)
    assert [e.task.title for e in applied] == ["waiting0"]
    assert len(state.active_tasks(Tier.L1)) == 3


def test_l3_escalates_into_l2(state: AppState, clock: FakeClock, notifier: FakeNotifier) -> None:
    _fill(state, Tier.L3, 1, "slow")

    clock.advance(L2_WAIT)
    assert run_escalation_pass(state, notifier) == []

    clock.advance(L3_WAIT - L2_WAIT)
    applied = run_escalation_pass(state, notifier)
    assert [(e.from_tier, e.to_tier) for e in applied] == [(Tier.L3, Tier.L2)]

    # The L2 clock restarts: no double jump to L1 in the same or the next pass.
    assert run_escalation_pass(state, notifier) == []
    assert state.tasks[0].tier is Tier.L2


def test_mem_and_l1_never_escalate(state: AppState, clock: FakeClock, notifier: FakeNotifier) -> None:
    _fill(state, Tier.MEM, 2, "someday")
    _fill(state, Tier.L1, 1, "now")

    clock.advance(365 * 86400)
    assert run_escalation_pass(state, notifier) == []
    assert sorted(t.tier.value for t in state.tasks) == ["l1", "mem", "mem"]
    assert notifier.events == []


def test_three_tasks_compete_for_empty_l1(state: AppState, clock: FakeClock, notifier: FakeNotifier) -> None:
    _fill(state, Tier.L2, 3, "t")
    clock.advance(L2_WAIT + 1)

    applied = run_escalation_pass(state, notifier)

    # Snapshot order (tier_assigned_at, then insertion) decides the order.
    assert [e.task.title for e in applied] == ["t0", "t1", "t2"]
    assert [t.tier for t in state.tasks] == [Tier.L1, Tier.L1, Tier.L1]
    assert notifier.events == [("t0", Tier.L1), ("t1", Tier.L1), ("t2", Tier.L1)]


def test_capacity_is_counted_at_pass_start(state: AppState, clock: FakeClock, notifier: FakeNotifier) -> None:
    _fill(state, Tier.L1, 2, "hot")
    _fill(state, Tier.L2, 2, "warm")
    clock.advance(L2_WAIT + 1)

    # L1 holds 2 < 3 at pass start, so both L2 tasks are admitted in this pass.
    applied = run_escalation_pass(state, notifier)
    assert [e.task.title for e in applied] == ["warm0", "warm1"]
    assert len(state.active_tasks(Tier.L1)) == 4

    # From now on L1 is over capacity and nothing else gets in.
    _fill(state, Tier.L2, 1, "late")
    clock.advance(L2_WAIT + 1)
    assert run_escalation_pass(state, notifier) == []


def test_plan_is_pure_and_skips_completed() -> None:
    now = 100_000.0
    ready = Task.new("ready", Tier.L2, now_ts=now - L2_WAIT)
    done = Task.new("done", Tier.L2, now_ts=now - L2_WAIT)
    done.is_completed = True
    done.completed_at = now

    plan = plan_escalations([ready, done], now)
    assert [e.task.title for e in plan] == ["ready"]
    assert ready.tier is Tier.L2


def test_disabled_pass_does_nothing(state: AppState, clock: FakeClock, notifier: FakeNotifier) -> None:
    _fill(state, Tier.L2, 1, "x")
    clock.advance(L2_WAIT * 10)

    assert run_escalation_pass(state, notifier, enabled=False) == []
    assert state.tasks[0].tier is Tier.L2
    assert state.last_escalation_time is None


def test_escalation_updates_engine_and_emits_change(
    state: AppState, clock: FakeClock, notifier: FakeNotifier
) -> None:
    seen: list[StateChange] = []
    state.subscribe(seen.append)
    _fill(state, Tier.L2, 1, "x")

    now = clock.advance(L2_WAIT)
    run_escalation_pass(state, notifier)

    assert state.last_escalation_time == now
    assert seen[-1].kind == "escalation"
    assert seen[-1].tasks[0].tier is Tier.L1


def test_one_failed_update_does_not_abort_pass(settings, clock: FakeClock, notifier: FakeNotifier) -> None:
    store = FlakyTaskStore(settings.tasks_db_path, clock=clock)
    state = AppState(settings=settings, task_store=store, clock=clock)
    bad, good = _fill(state, Tier.L2, 2, "t")
    store.fail_ids.add(bad.id)

    clock.advance(L2_WAIT)
    applied = run_escalation_pass(state, notifier)

    assert [e.task.id for e in applied] == [good.id]
    assert {t.title: t.tier for t in state.tasks} == {"t0": Tier.L2, "t1": Tier.L1}
    assert notifier.events == [("t1", Tier.L1)]


def test_log_notifier_respects_flag() -> None:
    on = LogNotifier(enabled=True, queue_notices=True)
    off = LogNotifier(enabled=False)

    on.notify_escalation("pay rent", Tier.L1)
    off.notify_escalation("pay rent", Tier.L1)

    notices = on.drain()
    assert [(n.title, n.body) for n in notices] == [("Task Escalated", '"pay rent" escalated to L1')]
    assert on.drain() == []
    assert off.drain() == []


def test_log_notifier_keeps_only_newest_notices() -> None:
    notifier = LogNotifier(queue_notices=True)
    for i in range(MAX_PENDING_NOTICES + 50):
        notifier.notify_escalation(f"t{i}", Tier.L1)

    assert len(notifier.pending) == MAX_PENDING_NOTICES
    notices = notifier.drain()
    assert notices[0].body == '"t50" escalated to L1'
    assert not notifier.pending


def test_headless_notifier_does_not_accumulate(state: AppState, clock: FakeClock) -> None:
    notifier = create_notifier(SimpleNamespace(notifications_enabled=True, console_enabled=False))

    for day in range(50):
        _fill(state, Tier.L2, 3, f"day{day}-")
        clock.advance(L2_WAIT)
        assert len(run_escalation_pass(state, notifier)) == 3
        for task in list(state.tasks):
            assert state.complete_task(task)

    assert len(notifier.pending) == 0
    assert notifier.drain() == []


def test_console_notifier_queues_notices(state: AppState, clock: FakeClock) -> None:
    notifier = create_notifier(SimpleNamespace(notifications_enabled=True, console_enabled=True))
    _fill(state, Tier.L2, 1, "shown")
    clock.advance(L2_WAIT)
    run_escalation_pass(state, notifier)

    assert [n.body for n in notifier.drain()] == ['"shown0" escalated to L1']


def test_seconds_until_eligible() -> None:
    t = Task.new("x", Tier.L2, now_ts=0.0)
    assert seconds_until_eligible(t, 100.0) == L2_WAIT - 100
    assert seconds_until_eligible(t, L2_WAIT + 5.0) == 0.0
    assert seconds_until_eligible(Task.new("y", Tier.MEM, now_ts=0.0), 1e9) is None
    assert seconds_until_eligible(Task.new("z", Tier.L1, now_ts=0.0), 1e9) is None


@pytest.mark.asyncio
async def test_scheduler_runs_passes_until_cancelled(
    state: AppState, clock: FakeClock, notifier: FakeNotifier
) -> None:
    _fill(state, Tier.L2, 1, "async")
    clock.advance(L2_WAIT)

    runner = asyncio.create_task(
        run_escalation_scheduler(
            state,
            notifier,
            initial_delay_seconds=0.0,
            interval_seconds=0.01,
            enabled=lambda: True,
        )
    )

    await asyncio.sleep(0.05)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert notifier.events == [("async0", Tier.L1)]
    assert state.tasks[0].tier is Tier.L1


@pytest.mark.asyncio
async def test_scheduler_uses_its_own_clock(
    state: AppState, clock: FakeClock, notifier: FakeNotifier
) -> None:
    _fill(state, Tier.L2, 1, "ahead")
    ahead = FakeClock(start=clock.now + L2_WAIT)

    runner = asyncio.create_task(
        run_escalation_scheduler(
            state,
            notifier,
            initial_delay_seconds=0.0,
            interval_seconds=0.01,
            enabled=lambda: True,
            clock=ahead,
        )
    )
    await asyncio.sleep(0.05)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert notifier.events == [("ahead0", Tier.L1)]
    assert state.last_escalation_time == ahead.now


@pytest.mark.asyncio
async def test_scheduler_waits_for_initial_delay(
    state: AppState, clock: FakeClock, notifier: FakeNotifier
) -> None:
    _fill(state, Tier.L2, 1, "later")
    clock.advance(L2_WAIT)

    runner = asyncio.create_task(
        run_escalation_scheduler(state, notifier, initial_delay_seconds=10.0, interval_seconds=0.01)
    )
    await asyncio.sleep(0.05)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert notifier.events == []


@pytest.mark.asyncio
async def test_scheduler_reads_enabled_flag_from_settings(
    state: AppState, clock: FakeClock, notifier: FakeNotifier
) -> None:
    state.settings = SimpleNamespace(escalation_enabled=False)
    _fill(state, Tier.L2, 1, "off")
    clock.advance(L2_WAIT)

    runner = asyncio.create_task(
        run_escalation_scheduler(state, notifier, initial_delay_seconds=0.0, interval_seconds=0.01)
    )
    await asyncio.sleep(0.05)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert notifier.events == []
    assert state.tasks[0].tier is Tier.L2


def test_background_runner_escalates_and_stops(
    state: AppState, clock: FakeClock, notifier: FakeNotifier
) -> None:
    escalated = threading.Event()
    state.subscribe(lambda change: escalated.set() if change.kind == "escalation" else None)
    _fill(state, Tier.L2, 1, "bg")
    clock.advance(L2_WAIT)

    runner = start_escalation_in_background(state, notifier)
    assert runner is not None
    try:
        assert escalated.wait(timeout=5.0)
    finally:
        runner.stop()
        runner.join(timeout=5.0)

    assert not runner.thread.is_alive()
    assert state.tasks[0].tier is Tier.L1
