# src/taskpad/cli/commands.py

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import cast

from ..core.state import AppState
from ..tasks.task_models import Task

CommandEmitter = Callable[[str], None]
CommandResult = str | Awaitable[str]
CommandHandler2 = Callable[[AppState, list[str]], CommandResult]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], CommandResult]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)

STRIKE = "\033[9m"
RESET = "\033[0m"


class CommandRegistry:
    """Slash-command registry used by the console connector (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}
        self._raw: set[str] = set()

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
        *,
        raw: bool = False,
    ) -> None:
        """`raw` handlers get the untouched text after the command name as their single arg."""
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler
        if raw:
            self._raw.update([key, *(a.lower() for a in aliases)])

    async def handle(
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
        rest = parts[1] if len(parts) > 1 else ""

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        if name in self._raw:
            args = [rest] if rest else []
        else:
            args = rest.split()

        try:
            nparams = len(inspect.signature(handler).parameters)
        except Exception:
            nparams = 3

        if nparams >= 3:
            result = cast(CommandHandler3, handler)(state, args, emit)
        else:
            result = cast(CommandHandler2, handler)(state, args)

        if inspect.isawaitable(result):
            return await result
        return result

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        lines.append("Plain text (no leading /) adds a task.")
        return "\n".join(lines)


registry = CommandRegistry()


def render_tasks(state: AppState, *, color: bool = False) -> str:
    """Text rendering of the task list (the console's only view)."""
    rec = state.tasks
    if rec.loading:
        return "Loading tasks..."

    lines: list[str] = []
    if rec.load_error:
        lines.append(f"Could not load todos: {rec.load_error}")

    tasks = rec.tasks
    if not tasks:
        if not rec.load_error:
            lines.append("No tasks yet. Add your first one!")
        return "\n".join(lines)

    for i, task in enumerate(tasks, start=1):
        lines.append(_render_task(i, task, color=color))
    return "\n".join(lines)


def _render_task(index: int, task: Task, *, color: bool) -> str:
    box = "[x]" if task.done else "[ ]"
    title = f"{STRIKE}{task.title}{RESET}" if (color and task.done) else task.title
    suffix = " (saving...)" if task.provisional else ""
    return f"{index:>2}. {box} {title}{suffix}"


def _color(state: AppState) -> bool:
    return bool(getattr(state.settings, "console_color", False))


def _pick(state: AppState, args: list[str]) -> Task | str:
    """Resolve "/cmd N" to the N-th displayed task, or an error reply."""
    if not args:
        return "Which task? Give its number from /list."
    try:
        index = int(args[0])
    except ValueError:
        return f"Not a task number: {args[0]}"
    tasks = state.tasks.tasks
    if index < 1 or index > len(tasks):
        return f"No task #{index}. There are {len(tasks)} task(s)."
    return tasks[index - 1]


async def _let_optimistic_edit_land() -> None:
    # One loop turn: the spawned mutation applies its local edit before its first await.
    await asyncio.sleep(0)


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    settings = state.settings
    if getattr(settings, "offline", False) or not getattr(settings, "remote_configured", False):
        backend = "offline (in-memory)"
    else:
        backend = f"supabase {getattr(settings, 'supabase_url', '')}"
    who = state.session.email or (state.session.identity.id if state.session.identity else None)
    return (
        "Status:\n"
        f"  Backend: {backend}\n"
        f"  Signed in as: {who or '-'}\n"
        f"  Tasks: {len(state.tasks.tasks)}\n"
        f"  Changes in flight: {len(state.tasks.in_flight)}"
    )


async def _auth(state: AppState, args: list[str], *, sign_up: bool, emit: CommandEmitter | None) -> str:
    verb = "up" if sign_up else "in"
    if len(args) != 2:
        return f"Usage: /sign{verb} <email> <password>"
    if state.session.signed_in:
        return f"Already signed in as {state.session.email}. Use /signout first."

    email, password = args
    if emit:
        emit("Please wait...")

    if sign_up:
        ok = await state.session.sign_up(email, password)
    else:
        ok = await state.session.sign_in(email, password)

    if not ok:
        return state.session.auth_error or f"Sign {verb} failed."
    if not state.session.signed_in:
        return "Check your inbox to confirm your email, then /signin."
    return f"Signed in as {state.session.email}.\n" + render_tasks(state, color=_color(state))


async def cmd_signup(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return await _auth(state, args, sign_up=True, emit=emit)


async def cmd_signin(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return await _auth(state, args, sign_up=False, emit=emit)


async def cmd_signout(state: AppState, args: list[str]) -> str:
    if not state.session.signed_in:
        return "Not signed in."
    await state.session.sign_out()
    return "Signed out."


async def cmd_list(state: AppState, args: list[str]) -> str:
    if not state.session.signed_in:
        return "Sign in to see your tasks. Use /signin or /signup."
    return render_tasks(state, color=_color(state))


async def cmd_reload(state: AppState, args: list[str]) -> str:
    if not state.session.signed_in:
        return "Not signed in."
    await state.tasks.load()
    return render_tasks(state, color=_color(state))


async def cmd_add(state: AppState, args: list[str]) -> str:
    if not state.session.signed_in:
        return "Sign in to save your tasks."
    title = args[0].strip() if args else ""
    if not title:
        return "Nothing to add."
    state.spawn(state.tasks.add(title), name="add")
    await _let_optimistic_edit_land()
    return render_tasks(state, color=_color(state))


async def cmd_done(state: AppState, args: list[str]) -> str:
    if not state.session.signed_in:
        return "Not signed in."
    picked = _pick(state, args)
    if isinstance(picked, str):
        return picked
    if picked.provisional:
        return f"'{picked.title}' is still being saved; try again in a moment."
    state.spawn(state.tasks.toggle_done(picked), name=f"toggle-{picked.id}")
    await _let_optimistic_edit_land()
    return render_tasks(state, color=_color(state))


async def cmd_rm(state: AppState, args: list[str]) -> str:
    if not state.session.signed_in:
        return "Not signed in."
    picked = _pick(state, args)
    if isinstance(picked, str):
        return picked
    if picked.provisional:
        return f"'{picked.title}' is still being saved; try again in a moment."
    state.spawn(state.tasks.remove(picked.id), name=f"remove-{picked.id}")
    await _let_optimistic_edit_land()
    return render_tasks(state, color=_color(state))


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show backend, account and sync status.")
registry.register("signup", cmd_signup, help_text="Create an account: /signup <email> <password>.")
registry.register("signin", cmd_signin, help_text="Sign in: /signin <email> <password>.", aliases=["login"])
registry.register("signout", cmd_signout, help_text="Sign out.", aliases=["logout"])
registry.register("list", cmd_list, help_text="Show your tasks.", aliases=["ls"])
registry.register("reload", cmd_reload, help_text="Fetch your tasks again from the server.")
registry.register("add", cmd_add, help_text="Add a task: /add <title>.", raw=True)
registry.register("done", cmd_done, help_text="Toggle a task done/undone: /done <number>.", aliases=["toggle"])
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <number>.", aliases=["del", "delete"])
