# src/taskhub/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
import shlex
from collections.abc import Callable
from datetime import datetime
from typing import Any, cast

from ..core.errors import InvalidValue, TaskError
from ..core.identity import Actor, Role
from ..core.state import AppState
from ..tasks.task_models import TaskView
from .bootstrap import actor_for_user

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)

NOT_LOGGED_IN = "Not logged in. Use /login <user_id>."

# Friendly keys accepted by /task new and /task set.
_FIELD_ALIASES = {
    "project": "project_id",
    "assignee": "assigned_to",
    "assigned_to": "assigned_to",
    "due": "due_date",
    "due_date": "due_date",
    "desc": "description",
}


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /task, ...)."""

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

        Task-core errors are rendered, not raised: "Error [<kind>]: <message>".
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError:
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
        except Exception:
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(state, args, emit)

            h2 = cast(CommandHandler2, handler)
            return h2(state, args)
        except TaskError as exc:
            logger.debug("Command /%s failed: %s", name, exc.to_dict())
            return format_error(exc)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- rendering helpers ----


def format_error(exc: TaskError) -> str:
    return f"Error [{exc.kind}]: {exc.message}"


def _fmt_ts(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M")


def _fmt_date(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d")


def _task_line(view: TaskView) -> str:
    return (
        f"#{view.id} [{view.status}] ({view.priority}) {view.title}"
        f" -> {view.assigned_to.name} due {_fmt_date(view.due_date)}"
    )


def render_task(view: TaskView) -> str:
    lines = [
        _task_line(view),
        f"  Project: {view.project_id}",
        f"  Assigned by: {view.assigned_by.name} <{view.assigned_by.email}>",
        f"  Description: {view.description}",
    ]
    if view.depends_on:
        deps = ", ".join(f"#{r.id} {r.title} [{r.status}]" for r in view.depends_on)
        lines.append(f"  Depends on: {deps}")
    if view.blocks:
        blocks = ", ".join(f"#{r.id} {r.title} [{r.status}]" for r in view.blocks)
        lines.append(f"  Blocks: {blocks}")
    lines.append(f"  Time spent: {view.total_time_spent} min")
    if view.comments:
        lines.append("  Comments:")
        for c in view.comments:
            lines.append(f"    [{_fmt_ts(c.created_at)}] {c.user.name}: {c.text}")
    return "\n".join(lines)


# ---- argument helpers ----


def _require_actor(state: AppState) -> Actor | None:
    return state.actor


def _task_id(raw: str) -> int:
    try:
        return int(raw.lstrip("#"))
    except ValueError:
        raise InvalidValue(f"Task id must be a number, got {raw!r}", field="task_id") from None


def parse_fields(args: list[str]) -> dict[str, Any]:
    """
    key=value pairs -> update fields.

    Unknown keys are passed through unchanged; the permission policy decides what to
    do with them.
    """
    fields: dict[str, Any] = {}
    for arg in args:
        key, sep, value = arg.partition("=")
        if not sep or not key:
            raise InvalidValue(f"Expected key=value, got {arg!r}", field="args")
        name = key.strip().lower()
        fields[_FIELD_ALIASES.get(name, name)] = value
    return fields


# ---- session ----


def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    who = f"{state.actor.name} ({state.actor.role.value})" if state.actor else "nobody"
    settings = state.settings
    return (
        "Status:\n"
        f"  Logged in as: {who}\n"
        f"  Tasks: {state.task_store.count_tasks()}\n"
        f"  Cycle check: {'ON' if getattr(settings, 'reject_dependency_cycles', False) else 'OFF'}\n"
        f"  Notification relay: {'ON' if getattr(settings, 'relay_enabled', False) else 'OFF'}"
    )


def cmd_login(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /login <user_id>"
    state.actor = actor_for_user(state.task_store, args[0])
    logger.info("Session user switched to %s", state.actor.id)
    unread = state.notifications.unread_count(state.actor.id)
    return f"Logged in as {state.actor.name} ({state.actor.role.value}). Unread notifications: {unread}"


def cmd_whoami(state: AppState, args: list[str]) -> str:
    actor = _require_actor(state)
    if actor is None:
        return NOT_LOGGED_IN
    return f"{actor.name} [{actor.id}] role={actor.role.value}"


def cmd_users(state: AppState, args: list[str]) -> str:
    users = state.task_store.search_users(" ".join(args)) if args else state.task_store.list_users()
    if not users:
        return "No users."
    return "\n".join(f"{u.id}: {u.name} <{u.email}> ({u.role})" for u in users)


def cmd_user(state: AppState, args: list[str]) -> str:
    """
    /user add <id> <role> <email> <name...>
    """
    if len(args) < 5 or args[0].lower() != "add":
        return "Usage: /user add <id> <role> <email> <name...>"
    actor = _require_actor(state)
    if state.task_store.list_users() and (actor is None or actor.role is not Role.ADMIN):
        return "Only an admin can add users."
    role = Role.parse(args[2])
    user = state.task_store.add_user(
        user_id=args[1], role=role.value, email=args[3], name=" ".join(args[4:])
    )
    return f"User saved: {user.id} ({user.role})"


# ---- tasks ----


def cmd_task(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /task new key=value...          (title, description, project, assignee, due, priority, status)
    /task show <id>
    /task list [mine|project <id>|employee]
    /task set <id> key=value...
    /task status <id> <todo|in-progress|completed>
    /task delete <id>
    """
    usage = (
        "Usage:\n"
        "  /task new title=.. description=.. project=.. assignee=.. due=YYYY-MM-DD [priority=..]\n"
        "  /task show <id>\n"
        "  /task list [mine|project <id>|employee]\n"
        "  /task set <id> key=value...\n"
        "  /task status <id> <todo|in-progress|completed>\n"
        "  /task delete <id>"
    )
    if not args:
        return usage

    actor = _require_actor(state)
    if actor is None:
        return NOT_LOGGED_IN

    sub = args[0].lower()
    service = state.service

    if sub == "new":
        result = service.create_task(actor, parse_fields(args[1:]))
        return f"Created:\n{render_task(result.task)}"

    if sub == "show" and len(args) == 2:
        return render_task(service.get_task(actor, _task_id(args[1])))

    if sub == "list":
        if len(args) >= 3 and args[1].lower() == "project":
            views = service.list_project_tasks(actor, args[2])
        elif len(args) >= 2 and args[1].lower() == "employee":
            views = service.list_employee_tasks(actor)
        else:
            views = service.list_user_tasks(actor)
        if not views:
            return "No tasks."
        return "\n".join(_task_line(v) for v in views)

    if sub == "set" and len(args) >= 3:
        result = service.apply_update(actor, _task_id(args[1]), parse_fields(args[2:]))
        out = f"Updated:\n{render_task(result.task)}"
        dropped = result.metadata.get("dropped") or []
        if dropped:
            out += f"\n(ignored fields you may not change: {', '.join(dropped)})"
        return out

    if sub == "status" and len(args) == 3:
        result = service.update_status(actor, _task_id(args[1]), args[2])
        old = result.metadata.get("old_status")
        return f"Task #{result.task.id} status: {old} -> {result.task.status}"

    if sub == "delete" and len(args) == 2:
        if emit:
            with contextlib.suppress(Exception):
                emit(f"Deleting task #{args[1]} and unlinking its dependencies...")
        deleted = service.delete_task(actor, _task_id(args[1]))
        return f"Task deleted: #{deleted.task_id} {deleted.title}"

    return usage


def cmd_comment(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /comment <task_id> <text...>"
    actor = _require_actor(state)
    if actor is None:
        return NOT_LOGGED_IN
    result = state.service.add_comment(actor, _task_id(args[0]), " ".join(args[1:]))
    return f"Comment added to #{result.task.id} ({len(result.task.comments)} total)."


def cmd_dep(state: AppState, args: list[str]) -> str:
    """
    /dep add <task_id> <depends_on_id>
    /dep rm <task_id> <depends_on_id>
    /dep list <task_id>
    """
    usage = "Usage: /dep add|rm <task_id> <depends_on_id> | /dep list <task_id>"
    if len(args) < 2:
        return usage
    actor = _require_actor(state)
    if actor is None:
        return NOT_LOGGED_IN

    sub = args[0].lower()
    task_id = _task_id(args[1])

    if sub == "list":
        listing = state.service.list_dependencies(actor, task_id)
        lines = [f"Task #{task_id}:"]
        lines.append(
            "  Depends on: "
            + (", ".join(f"#{r.id} {r.title} [{r.status}]" for r in listing.depends_on) or "-")
        )
        lines.append(
            "  Blocks: " + (", ".join(f"#{r.id} {r.title} [{r.status}]" for r in listing.blocks) or "-")
        )
        return "\n".join(lines)

    if len(args) != 3:
        return usage
    other = _task_id(args[2])

    if sub == "add":
        state.service.add_dependency(actor, task_id, other)
        return f"Task #{task_id} now depends on #{other}."
    if sub in ("rm", "remove"):
        state.service.remove_dependency(actor, task_id, other)
        return f"Task #{task_id} no longer depends on #{other}."
    return usage


def cmd_timer(state: AppState, args: list[str]) -> str:
    """
    /timer start <task_id> [description...]
    /timer stop <task_id>
    /timer list <task_id>
    """
    usage = "Usage: /timer start <task_id> [description...] | /timer stop|list <task_id>"
    if len(args) < 2:
        return usage
    actor = _require_actor(state)
    if actor is None:
        return NOT_LOGGED_IN

    sub = args[0].lower()
    task_id = _task_id(args[1])

    if sub == "start":
        outcome = state.service.start_timer(actor, task_id, " ".join(args[2:]) or None)
        return f"Timer started on #{task_id} at {_fmt_ts(outcome.entry.start_time)}."

    if sub == "stop":
        outcome = state.service.stop_timer(actor, task_id)
        return (
            f"Timer stopped on #{task_id}: {outcome.entry.duration} min "
            f"(total {outcome.total_time_spent} min)."
        )

    if sub == "list":
        sheet = state.service.list_time_entries(actor, task_id)
        lines = [f"Time entries for #{task_id} (total {sheet.total_time_spent} min):"]
        for e in sheet.entries:
            span = f"{_fmt_ts(e.start_time)} - {_fmt_ts(e.end_time) if e.end_time else 'running'}"
            dur = f"{e.duration} min" if e.duration is not None else "..."
            lines.append(f"  {e.user.name}: {span} ({dur}) {e.description}")
        return "\n".join(lines)

    return usage


def cmd_notif(state: AppState, args: list[str]) -> str:
    """
    /notif list
    /notif read <id>
    /notif readall
    /notif count
    """
    actor = _require_actor(state)
    if actor is None:
        return NOT_LOGGED_IN

    sub = args[0].lower() if args else "list"
    store = state.notifications

    if sub == "list":
        items = store.list_for_user(actor.id)
        if not items:
            return "No notifications."
        return "\n".join(
            f"{'  ' if n.is_read else '* '}{n.id}. [{_fmt_ts(n.created_at)}] {n.title}: {n.message}"
            for n in items
        )
    if sub == "read" and len(args) == 2:
        try:
            nid = int(args[1])
        except ValueError:
            return "Usage: /notif read <id>"
        n = store.mark_read(nid)
        return f"Notification {n.id} marked as read."
    if sub == "readall":
        count = store.mark_all_read(actor.id)
        return f"All notifications marked as read ({count})."
    if sub == "count":
        return f"Unread notifications: {store.unread_count(actor.id)}"

    return "Usage: /notif list | read <id> | readall | count"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show session and service status.")
registry.register("login", cmd_login, help_text="Act as a user: /login <user_id>.")
registry.register("whoami", cmd_whoami, help_text="Show the current session user.")
registry.register("users", cmd_users, help_text="List users or search: /users [query].")
registry.register("user", cmd_user, help_text="Add a user: /user add <id> <role> <email> <name>.")
registry.register(
    "task", cmd_task, help_text="Tasks: /task new|show|list|set|status|delete.", aliases=["t"]
)
registry.register("comment", cmd_comment, help_text="Comment on a task: /comment <id> <text>.")
registry.register("dep", cmd_dep, help_text="Dependencies: /dep add|rm <id> <dep_id> | /dep list <id>.")
registry.register("timer", cmd_timer, help_text="Time tracking: /timer start|stop|list <id>.")
registry.register(
    "notif", cmd_notif, help_text="Notifications: /notif list | read <id> | readall | count."
)
