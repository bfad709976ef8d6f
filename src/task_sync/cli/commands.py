# src/task_sync/cli/commands.py

from __future__ import annotations

import json
import logging
from collections.abc import Callable

from ..core.state import AppState
from ..tasks.errors import TaskStoreError
from ..tasks.task_api import ensure_task_repository
from ..tasks.task_models import Task

# (state, whitespace-split args, raw text after the command name) -> reply
CommandHandler = Callable[[AppState, list[str], str], str]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /list, ...)."""

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

    def handle(self, state: AppState, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Store failures are turned into a reply; the session keeps going.
        """
        if not line.startswith("/"):
            return None

        head, _, raw = line[1:].strip().partition(" ")
        if not head:
            return "Empty command. Use /help to list available commands."

        name = head.lower()
        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return handler(state, raw.split(), raw.strip())
        except TaskStoreError as exc:
            logger.exception("Command /%s failed", name)
            return f"Storage error: {exc}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_task(task: Task) -> str:
    return json.dumps(task.to_dict(), ensure_ascii=False, sort_keys=True)


def _fmt_tasks(tasks: list[Task]) -> str:
    if not tasks:
        return "No tasks."
    return "\n".join(_fmt_task(t) for t in tasks)


def cmd_help(state: AppState, args: list[str], raw: str) -> str:
    return registry.build_help()


def cmd_list(state: AppState, args: list[str], raw: str) -> str:
    return _fmt_tasks(ensure_task_repository(state).get_all())


def cmd_get(state: AppState, args: list[str], raw: str) -> str:
    if len(args) != 1:
        return "Usage: /get <id>"
    task = ensure_task_repository(state).get_by_id(args[0])
    if task is None:
        return f"Task not found: {args[0]}"
    return _fmt_task(task)


def cmd_filter(state: AppState, args: list[str], raw: str) -> str:
    user_id: str | None = None
    since: int | None = None
    for arg in args:
        key, sep, value = arg.partition("=")
        if not sep:
            return "Usage: /filter [user=<id>] [since=<ms>]"
        if key == "user":
            user_id = value
        elif key == "since":
            try:
                since = int(value)
            except ValueError:
                return f"Bad timestamp: {value}"
        else:
            return f"Unknown filter: {key}"
    tasks = ensure_task_repository(state).get_by_filter(user_id=user_id, modified_since=since)
    return _fmt_tasks(tasks)


def cmd_upsert(state: AppState, args: list[str], raw: str) -> str:
    if not raw:
        return 'Usage: /upsert {"id": "...", "version": 1, "updatedAt": 1000, ...}'
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        return f"Invalid JSON: {exc.msg}"
    try:
        task = Task.from_dict(data)
    except TaskStoreError as exc:
        return f"Invalid task: {exc}"

    repo = ensure_task_repository(state)
    repo.upsert(task)
    stored = repo.get_by_id(task.id)
    accepted = stored is not None and stored.to_dict() == task.to_dict()
    verdict = "stored" if accepted else "kept existing (stale write)"
    return f"Upsert {task.id}: {verdict}"


def cmd_delete(state: AppState, args: list[str], raw: str) -> str:
    if len(args) != 1:
        return "Usage: /delete <id>"
    removed = ensure_task_repository(state).delete(args[0])
    return f"Deleted {args[0]}" if removed else f"Task not found: {args[0]}"


def cmd_hwm(state: AppState, args: list[str], raw: str) -> str:
    return f"lastTaskUpdate={ensure_task_repository(state).get_high_water_mark()}"


registry.register("help", cmd_help, "Show this help.", aliases=["h", "?"])
registry.register("list", cmd_list, "List all tasks in stored order.", aliases=["ls"])
registry.register("get", cmd_get, "Show one task by id.")
registry.register("filter", cmd_filter, "Filter tasks: /filter [user=<id>] [since=<ms>].")
registry.register("upsert", cmd_upsert, "Insert or LWW-merge a task given as JSON.")
registry.register("delete", cmd_delete, "Delete a task by id.", aliases=["rm"])
registry.register("hwm", cmd_hwm, "Show the lastTaskUpdate high-water mark.")
