# src/daytrack/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Callable
from datetime import date, timedelta
from typing import Any, cast

from ..core.state import TrackerState
from ..llm.client import friendly_llm_error_message
from ..tasks import task_api
from ..tasks.carry_over import Authority
from ..tasks.task_models import LocalTask, TaskStatus, parse_day
from ..tasks.task_store import TaskStoreError

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[TrackerState, list[str]], str]
CommandHandler3 = Callable[[TrackerState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /add, ...)."""

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
        state: TrackerState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return h2(state, args)
        except TaskStoreError as e:
            logger.info("Command /%s failed on the task store: %s", name, e)
            return f"Storage error: {e}. Nothing was changed locally; try again."
        except ValueError as e:
            return f"Invalid input: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- formatting helpers ----


def _fmt_task(n: int, task: Any, today: date) -> str:
    parts = [f"{n}. {task.title}"]
    if task.description:
        parts.append(f"- {task.description}")
    if task.due_date:
        parts.append(f"[due {task.due_date.isoformat()}]")
    if task.created_date and task.created_date != today:
        parts.append(f"(from {task.created_date.isoformat()})")
    if getattr(task, "status", None) is TaskStatus.CARRY_OVER:
        parts.append("(carried over)")
    hints = len(getattr(task, "ai_suggestions", []) or [])
    if hints:
        parts.append(f"{{{hints} hint(s)}}")
    return " ".join(parts)


def _split_add_args(args: list[str]) -> tuple[str, str | None, date | None]:
    """Parse "<title> [| description] [due:YYYY-MM-DD]"."""
    due: date | None = None
    words: list[str] = []
    for a in args:
        if a.lower().startswith("due:"):
            due = parse_day(a[4:])
            if due is None:
                raise ValueError(f"bad due date {a[4:]!r}, expected YYYY-MM-DD")
            continue
        words.append(a)
    text = " ".join(words)
    title, sep, desc = text.partition("|")
    return title.strip(), (desc.strip() or None) if sep else None, due


_SUGGESTIONS_LOCAL_ONLY = (
    "AI suggestions live in the local cache and only work in local mode "
    "(DAYTRACK_AUTHORITY=local)."
)


def _resolve_local(state: TrackerState, ref: str) -> LocalTask | None:
    task = task_api.resolve_task_ref(state, ref)
    return task if isinstance(task, LocalTask) else None


# ---- commands ----


def cmd_help(state: TrackerState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: TrackerState, args: list[str]) -> str:
    open_tasks = task_api.list_open_tasks(state)
    last = state.cache.get_last_viewed_date()
    models = ", ".join(list(getattr(state.settings, "llm_models", []) or []))
    return (
        "Status:\n"
        f"  Today: {state.today().isoformat()}\n"
        f"  Last viewed: {last.isoformat() if last else 'never'}\n"
        f"  Working set: {state.authority} ({len(open_tasks)} open)\n"
        f"  Models (priority -> fallback): {models or 'none'}"
    )


def cmd_add(state: TrackerState, args: list[str]) -> str:
    """
    /add Buy milk
    /add Report | finish section 2 due:2024-05-01
    """
    title, description, due = _split_add_args(args)
    if not title:
        return "Usage: /add <title> [| description] [due:YYYY-MM-DD]"
    task = task_api.add_task(state, title, description=description, due_date=due)
    return f"Added: {task.title}"


def cmd_list(state: TrackerState, args: list[str]) -> str:
    tasks = task_api.list_open_tasks(state)
    if not tasks:
        return "No open tasks. Add one with /add <title>."
    today = state.today()
    lines = ["Open tasks:"]
    lines.extend(_fmt_task(i, t, today) for i, t in enumerate(tasks, start=1))
    return "\n".join(lines)


def cmd_today(state: TrackerState, args: list[str]) -> str:
    today = state.today()
    all_open = task_api.list_open_tasks(state)
    todays = {t.id for t in task_api.list_today(state)}
    if not todays:
        return f"Nothing planned for {today.isoformat()}."
    lines = [f"Tasks for {today.isoformat()}:"]
    lines.extend(_fmt_task(i, t, today) for i, t in enumerate(all_open, start=1) if t.id in todays)
    return "\n".join(lines)


def cmd_done(state: TrackerState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <n|id> [<n|id> ...]"
    ids: list[str] = []
    unknown: list[str] = []
    for ref in args:
        task = task_api.resolve_task_ref(state, ref)
        if task is None:
            unknown.append(ref)
        else:
            ids.append(task.id)
    result = task_api.complete_tasks(state, ids)
    reply = f"Marked {len(result.done_ids)} task(s) done."
    if unknown:
        reply += f" Not found: {', '.join(unknown)}."
    return reply


def cmd_del(state: TrackerState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /del <n|id>"
    task = task_api.resolve_task_ref(state, args[0])
    if task is None:
        return f"No such task: {args[0]}"
    if not task_api.delete_task(state, task.id):
        return f"Could not delete: {task.title}"
    return f"Deleted: {task.title}"


def cmd_edit(state: TrackerState, args: list[str]) -> str:
    """
    /edit <n|id> title <text>
    /edit <n|id> desc <text>
    /edit <n|id> due <YYYY-MM-DD>
    """
    usage = "Usage: /edit <n|id> title|desc|due <value>"
    if len(args) < 3:
        return usage
    task = task_api.resolve_task_ref(state, args[0])
    if task is None:
        return f"No such task: {args[0]}"
    field = args[1].lower()
    value = " ".join(args[2:])

    if field == "title":
        ok = task_api.edit_task(state, task.id, title=value)
    elif field in ("desc", "description"):
        ok = task_api.edit_task(state, task.id, description=value)
    elif field == "due":
        due = parse_day(value)
        if due is None:
            return f"Bad date {value!r}, expected YYYY-MM-DD."
        ok = task_api.edit_task(state, task.id, due_date=due)
    else:
        return usage
    return f"Updated: {task.title}" if ok else f"Could not update: {task.title}"


def cmd_ask(state: TrackerState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) != 1:
        return "Usage: /ask <n|id>"
    if Authority.parse(state.authority) is Authority.DURABLE:
        return _SUGGESTIONS_LOCAL_ONLY
    task = _resolve_local(state, args[0])
    if task is None:
        return f"No such open task: {args[0]}"

    if emit:
        with contextlib.suppress(Exception):
            emit(f"[LLM] Asking for suggestions on: {task.title} ...")

    try:
        text = task_api.request_suggestion(state, task.id, attach=True)
    except RuntimeError as e:
        return f"[LLM] {friendly_llm_error_message(e)}"
    return f"Suggestions for {task.title}:\n{text}"


def cmd_hints(state: TrackerState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /hints <n|id>"
    if Authority.parse(state.authority) is Authority.DURABLE:
        return _SUGGESTIONS_LOCAL_ONLY
    task = _resolve_local(state, args[0])
    if task is None:
        return f"No such open task: {args[0]}"
    if not task.ai_suggestions:
        return f"No saved suggestions for {task.title}. Use /ask {args[0]}."
    lines = [f"Saved suggestions for {task.title}:"]
    for i, s in enumerate(task.ai_suggestions, start=1):
        lines.append(f"[{i}] {s.text}")
    return "\n".join(lines)


def cmd_unhint(state: TrackerState, args: list[str]) -> str:
    if len(args) != 2 or not args[1].isdigit():
        return "Usage: /unhint <n|id> <hint number>"
    if Authority.parse(state.authority) is Authority.DURABLE:
        return _SUGGESTIONS_LOCAL_ONLY
    task = _resolve_local(state, args[0])
    if task is None:
        return f"No such open task: {args[0]}"
    k = int(args[1])
    if not 1 <= k <= len(task.ai_suggestions):
        return f"No suggestion [{k}] on {task.title}."
    # Remove by stable id: the number only names what the user saw.
    target = task.ai_suggestions[k - 1]
    if not state.cache.remove_suggestion_by_id(task.id, target.id):
        return "Suggestion was already removed."
    return f"Removed suggestion [{k}] from {task.title}."


def cmd_history(state: TrackerState, args: list[str]) -> str:
    """
    /history            -> archive (accomplished)
    /history overdue    -> carried-over tasks
    """
    sub = (args[0].lower() if args else "archive")
    if sub in ("archive", "done"):
        rows = task_api.history(state, TaskStatus.ACCOMPLISHED)
        if not rows:
            return "No archived tasks yet."
        lines = ["Archive:"]
        for t in rows:
            lines.append(f"- {t.title} (from {t.created_date.isoformat() if t.created_date else '?'})")
        return "\n".join(lines)
    if sub in ("overdue", "carryover", "carry_over"):
        rows = task_api.history(state, TaskStatus.CARRY_OVER)
        if not rows:
            return "No overdue tasks."
        lines = ["Overdue:"]
        for t in rows:
            lines.append(f"- {t.title} (from {t.created_date.isoformat() if t.created_date else '?'})")
        return "\n".join(lines)
    return "Usage: /history [archive|overdue]"


def cmd_upcoming(state: TrackerState, args: list[str]) -> str:
    tasks = task_api.list_upcoming(state)
    if not tasks:
        return "No upcoming tasks."
    lines = ["Upcoming:"]
    for t in tasks:
        lines.append(f"- {t.due_date.isoformat() if t.due_date else '?'}: {t.title}")
    return "\n".join(lines)


def cmd_week(state: TrackerState, args: list[str]) -> str:
    """
    /week      -> this week (Sunday start), tasks by due date
    /week +1   -> next week, /week -1 -> previous week
    """
    offset = 0
    if args:
        try:
            offset = int(args[0])
        except ValueError:
            return "Usage: /week [+n|-n]"
    today = state.today()
    anchor = today + timedelta(weeks=offset)
    days, undated = task_api.week_view(task_api.list_open_tasks(state), anchor)

    lines = []
    for day, tasks in days.items():
        marker = " (today)" if day == today else ""
        titles = ", ".join(t.title for t in tasks) or "-"
        lines.append(f"{day.strftime('%a %b %d')}{marker}: {titles}")
    if undated:
        lines.append(f"No due date: {', '.join(t.title for t in undated)}")
    return "\n".join(lines)


def cmd_rollover(state: TrackerState, args: list[str]) -> str:
    result = task_api.run_carry_over(state)
    if result.first_run:
        return f"First run: tracking starts {result.today.isoformat()}."
    if not result.rolled_over:
        return "Already up to date for today."
    prev = result.previous_date.isoformat() if result.previous_date else "?"
    return f"Rolled over from {prev}: carried {len(result.carried_ids)} task(s) to today."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show today, last viewed date, mode and models.")
registry.register("add", cmd_add, help_text="Add a task: /add <title> [| description] [due:YYYY-MM-DD].")
registry.register("list", cmd_list, help_text="List all open tasks (numbers are used by other commands).", aliases=["ls"])
registry.register("today", cmd_today, help_text="List open tasks dated today.")
registry.register("done", cmd_done, help_text="Mark tasks done: /done 1 3.")
registry.register("del", cmd_del, help_text="Delete an open task: /del <n|id>.", aliases=["rm"])
registry.register("edit", cmd_edit, help_text="Edit a task: /edit <n|id> title|desc|due <value>.")
registry.register("ask", cmd_ask, help_text="Ask the local model for suggestions: /ask <n|id>.")
registry.register("hints", cmd_hints, help_text="Show saved suggestions: /hints <n|id>.")
registry.register("unhint", cmd_unhint, help_text="Remove a saved suggestion: /unhint <n|id> <k>.")
registry.register("history", cmd_history, help_text="Durable history: /history [archive|overdue].")
registry.register("upcoming", cmd_upcoming, help_text="Open tasks due after today.")
registry.register("week", cmd_week, help_text="Week view by due date: /week [+n|-n].")
registry.register("rollover", cmd_rollover, help_text="Run the day-rollover check now.")
