# tasks/task_models.py

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

_TIER_LABELS = {
    "l1": "L1 Cache",
    "l2": "L2 Cache",
    "l3": "L3 Cache",
    "mem": "Main Memory",
}


class Tier(StrEnum):
    """
    Task tier, named after cache levels (L1 is the hottest).

    Notes:
    - escalation (automatic) only ever moves a task toward L1;
    - snooze (manual) only ever moves a task toward MEM;
    - L1 and MEM never auto-escalate (threshold 0).
    """

    L1 = "l1"
    L2 = "l2"
    L3 = "l3"
    MEM = "mem"

    @classmethod
    def from_db(cls, raw: str | None) -> Tier:
        if not raw:
            return cls.L1
        try:
            return cls(raw)
        except ValueError:
            return cls.L1

    @classmethod
    def parse(cls, text: str) -> Tier:
        """Parse user input such as "l2", "L2", "mem" or "main memory"."""
        key = (text or "").strip().lower()
        for tier in cls:
            if key in (tier.value, tier.label.lower()):
                return tier
        raise ValueError(f"unknown tier: {text!r}")

    @property
    def label(self) -> str:
        return _TIER_LABELS[self.value]

    @property
    def short_label(self) -> str:
        return self.value.upper()

    @property
    def sort_order(self) -> int:
        return _ORDER.index(self)

    @property
    def escalation_threshold_seconds(self) -> int:
        return _ESCALATION_THRESHOLDS[self]

    @property
    def escalation_target(self) -> Tier | None:
        return _ESCALATION_TARGETS[self]

    @property
    def target_tier_capacity(self) -> int:
        """Escalation is allowed only while the target tier holds fewer tasks than this."""
        return _TARGET_CAPACITY[self]

    @property
    def manual_next(self) -> Tier:
        """Cyclic order used when the user cycles the input tier (L1 -> L2 -> L3 -> MEM -> L1)."""
        return _ORDER[(self.sort_order + 1) % len(_ORDER)]

    @property
    def manual_previous(self) -> Tier | None:
        """Snooze target (one step toward MEM)."""
        if self is Tier.MEM:
            return None
        return _ORDER[self.sort_order + 1]

    @property
    def manual_promoted(self) -> Tier | None:
        """Promote target (one step toward L1)."""
        if self is Tier.L1:
            return None
        return _ORDER[self.sort_order - 1]


_ORDER: tuple[Tier, ...] = (Tier.L1, Tier.L2, Tier.L3, Tier.MEM)

_ESCALATION_THRESHOLDS = {
    Tier.L1: 0,
    Tier.L2: 2 * 3600,
    Tier.L3: 5 * 3600,
    Tier.MEM: 0,
}

_ESCALATION_TARGETS: dict[Tier, Tier | None] = {
    Tier.L1: None,
    Tier.L2: Tier.L1,
    Tier.L3: Tier.L2,
    Tier.MEM: None,
}

_TARGET_CAPACITY = {
    Tier.L1: 0,
    Tier.L2: 3,
    Tier.L3: 3,
    Tier.MEM: 0,
}

TIERS_IN_ORDER = _ORDER


def _iso(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


@dataclass(slots=True)
class Task:
    id: str
    title: str
    tier: Tier
    is_completed: bool
    created_at: float
    tier_assigned_at: float
    completed_at: float | None = None

    @classmethod
    def new(cls, title: str, tier: Tier = Tier.L1, *, now_ts: float | None = None) -> Task:
        if now_ts is None:
            now_ts = time.time()
        return cls(
            id=str(uuid.uuid4()),
            title=title,
            tier=tier,
            is_completed=False,
            created_at=float(now_ts),
            tier_assigned_at=float(now_ts),
            completed_at=None,
        )

    def dwell_seconds(self, now_ts: float | None = None) -> float:
        """Time spent in the current tier. This is the only input to escalation."""
        if now_ts is None:
            now_ts = time.time()
        return max(0.0, float(now_ts) - self.tier_assigned_at)

    def relative_time(self, now_ts: float | None = None) -> str:
        """Age of the task for display, e.g. "2h ago" or "just now"."""
        if now_ts is None:
            now_ts = time.time()
        interval = float(now_ts) - self.created_at
        if interval < 60:
            return "just now"
        if interval < 3600:
            return f"{int(interval // 60)}m ago"
        if interval < 86400:
            return f"{int(interval // 3600)}h ago"
        return f"{int(interval // 86400)}d ago"

    def to_export_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "tier": self.tier.value,
            "isCompleted": self.is_completed,
            "createdAt": _iso(self.created_at),
            "tierAssignedAt": _iso(self.tier_assigned_at),
            "completedAt": _iso(self.completed_at),
        }
