# src/stash/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import cast

from ..core.state import AppState, TaskNotFound
from ..tasks.escalation import seconds_until_eligible
from ..tasks.task_models import TIERS_IN_ORDER, Task, Tier

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandArgs(list[str]):
    """Whitespace-split arguments that also keep the raw text after the command name."""

    def __init__(self, text: str = "") -> None:
        super().__init__(text.split())
        self.text = text.strip()


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /list, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split(maxsplit=1)
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = CommandArgs(parts[1] if len(parts) > 1 else "")

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        lines.append("Anything that is not a command is added as a task.")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_ts(ts: float | None) -> str:
    if ts is None:
        return "never"
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _fmt_duration(seconds: float) -> str:
    minutes = int(seconds // 60)
    if minutes < 60:
        return f"{max(minutes, 1)}m"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h{minutes:02d}m"


def _task_line(task: Task, now_ts: float) -> str:
    line = f"  - {task.title} ({task.relative_time(now_ts)})"
    remaining = seconds_until_eligible(task, now_ts)
    if remaining is not None and task.tier.escalation_target is not None:
        if remaining > 0:
            line += f" -> {task.tier.escalation_target.short_label} in {_fmt_duration(remaining)}"
        else:
            line += f" -> {task.tier.escalation_target.short_label} when there is room"
    return line


def _list_active(state: AppState) -> str:
    state.reload()
    if not state.tasks:
        return "No active tasks. Type anything to add one."
    now_ts = state.clock()
    lines = ["Active tasks:"]
    for tier in TIERS_IN_ORDER:
        tasks = state.active_tasks(tier)
        if not tasks:
            continue
        lines.append(f"[{tier.short_label}] {tier.label} ({len(tasks)})")
        lines.extend(_task_line(t, now_ts) for t in tasks)
    return "\n".join(lines)


def _list_completed(state: AppState) -> str:
    state.reload_completed()
    if not state.completed_tasks:
        return "No completed tasks."
    lines = ["Completed tasks:"]
    for t in state.completed_tasks:
        lines.append(f"  - [{t.tier.short_label}] {t.title} (done {_fmt_ts(t.completed_at)})")
    return "\n".join(lines)


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_list(state: AppState, args: list[str]) -> str:
    """
    /list             -> active tasks grouped by tier
    /list active      -> same
    /list completed   -> completed tasks, most recent first
    """
    sub = args[0].lower() if args else "active"
    if sub == "active":
        return _list_active(state)
    if sub in ("completed", "done"):
        return _list_completed(state)
    return "Usage: /list [active|completed]"


def cmd_done(state: AppState, args: list[str]) -> str:
    return _list_completed(state)


def cmd_focus(state: AppState, args: list[str]) -> str:
    tasks = state.active_tasks(Tier.L1)
    if not tasks:
        return "L1 is empty. Nothing urgent."
    now_ts = state.clock()
    lines = [f"Focus ({Tier.L1.label}):"]
    lines.extend(_task_line(t, now_ts) for t in tasks)
    return "\n".join(lines)


def cmd_clear(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /clear                -> delete completed tasks
    /clear completed      -> same
    /clear all confirm    -> delete everything (irreversible)
    """
    sub = args[0].lower() if args else "completed"
    if sub == "completed":
        n = state.clear_completed()
        return f"Completed tasks cleared ({n})."
    if sub == "all":
        if len(args) < 2 or args[1].lower() != "confirm":
            return "This deletes ALL tasks. Type /clear all confirm to proceed."
        if emit:
            emit("Deleting all tasks...")
        n = state.clear_all_data()
        return f"All data cleared ({n} task(s))."
    return "Usage: /clear [completed] | /clear all confirm"


def _match(state: AppState, args: list[str], usage: str) -> Task | str:
    if not args:
        return usage
    # Task titles may hold repeated spaces; match on the unsplit text.
    query = getattr(args, "text", None) or " ".join(args)
    try:
        return state.find_active(query)
    except TaskNotFound:
        return f"Task not found: {query}"


def cmd_promote(state: AppState, args: list[str]) -> str:
    found = _match(state, args, "Usage: /promote <task name>")
    if isinstance(found, str):
        return found
    if found.tier.manual_promoted is None:
        return f'"{found.title}" is already in {found.tier.short_label}.'
    if not state.promote_task(found):
        return f'Could not promote "{found.title}".'
    return f'"{found.title}" promoted to {found.tier.manual_promoted.short_label}.'


def cmd_snooze(state: AppState, args: list[str]) -> str:
    found = _match(state, args, "Usage: /snooze <task name>")
    if isinstance(found, str):
        return found
    if found.tier.manual_previous is None:
        return f'"{found.title}" is already in {found.tier.short_label}.'
    if not state.snooze_task(found):
        return f'Could not snooze "{found.title}".'
    return f'"{found.title}" snoozed to {found.tier.manual_previous.short_label}.'


def cmd_complete(state: AppState, args: list[str]) -> str:
    found = _match(state, args, "Usage: /complete <task name>")
    if isinstance(found, str):
        return found
    if not state.complete_task(found):
        return f'Could not complete "{found.title}".'
    return f'Done: "{found.title}".'


def cmd_tier(state: AppState, args: list[str]) -> str:
    """
    /tier          -> cycle the input tier (L1 -> L2 -> L3 -> MEM -> L1)
    /tier <name>   -> set it (l1, l2, l3, mem)
    """
    if args:
        try:
            state.input_tier = Tier.parse(" ".join(args))
        except ValueError:
            return "Usage: /tier [l1|l2|l3|mem]"
    else:
        state.input_tier = state.input_tier.manual_next
    return f"New tasks go to {state.input_tier.short_label} ({state.input_tier.label})."


def cmd_export(state: AppState, args: list[str]) -> str:
    if args:
        path = Path(" ".join(args)).expanduser()
    else:
        path = Path(getattr(state.settings, "export_path", "stash-export.json"))
    try:
        payload = state.export_json()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(payload + "\n", encoding="utf-8")
    except OSError as e:
        logger.exception("Export failed path=%s", path)
        return f"Export failed: {e}"
    logger.info("Exported tasks to %s", path)
    return f"Exported to {path}."


def cmd_status(state: AppState, args: list[str]) -> str:
    counts = ", ".join(f"{t.short_label}={len(state.active_tasks(t))}" for t in TIERS_IN_ORDER)
    escalation = "ON" if getattr(state.settings, "escalation_enabled", True) else "OFF"
    notifications = "ON" if getattr(state.settings, "notifications_enabled", True) else "OFF"
    highest = state.highest_active_tier
    return (
        "Status:\n"
        f"  Active: {counts}\n"
        f"  Hottest tier: {highest.short_label if highest else '-'}\n"
        f"  New tasks go to: {state.input_tier.short_label}\n"
        f"  Auto-escalation: {escalation}\n"
        f"  Notifications: {notifications}\n"
        f"  Last escalation: {_fmt_ts(state.last_escalation_time)}"
    )


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("list", cmd_list, help_text="List tasks: /list [active|completed].")
registry.register("done", cmd_done, help_text="List completed tasks.")
registry.register("focus", cmd_focus, help_text="Show L1 tasks only.")
registry.register("promote", cmd_promote, help_text="Move a task up one tier: /promote <task>.")
registry.register("snooze", cmd_snooze, help_text="Move a task down one tier: /snooze <task>.")
registry.register(
    "complete", cmd_complete, help_text="Mark a task done: /complete <task>.", aliases=["check"]
)
registry.register(
    "clear", cmd_clear, help_text="Clear completed tasks (/clear all confirm wipes everything)."
)
registry.register("tier", cmd_tier, help_text="Cycle or set the tier for new tasks: /tier [l2].")
registry.register("export", cmd_export, help_text="Export all tasks as JSON: /export [path].")
registry.register("status", cmd_status, help_text="Show tier counts and escalation settings.")
