# src/taskpix/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import cast

from ..cache.integrity import decode_data_uri
from ..core.models import ArtStyle, GenerationOptions, GenerationResult, ProgressEvent
from ..core.state import AppState
from .bootstrap import PROVIDER_SETTING

CommandEmitter = Callable[[str], None]
CommandResult = str | Awaitable[str]
CommandHandler2 = Callable[[AppState, list[str]], CommandResult]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], CommandResult]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /generate, ...)."""

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
        return "\n".join(lines)


registry = CommandRegistry()


def _parse_id(args: list[str]) -> int | None:
    if not args:
        return None
    try:
        return int(args[0])
    except ValueError:
        return None


def _progress_printer(emit: CommandEmitter | None) -> Callable[[ProgressEvent], None] | None:
    if emit is None:
        return None

    def on_progress(event: ProgressEvent) -> None:
        with contextlib.suppress(Exception):
            emit(f"[{event.percent:3d}%] {event.message}")

    return on_progress


def _describe_result(target_id: int, result: GenerationResult) -> str:
    if not result.success:
        assert result.error is not None
        return f"Task {target_id}: {result.error.user_message} ({result.error.kind})"
    decoded = decode_data_uri(result.image_url or "")
    if decoded is None:
        return f"Task {target_id}: image ready."
    mime, data = decoded
    return f"Task {target_id}: image ready ({mime}, {round(len(data) / 1024)} KB)."


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    orch = state.orchestrator
    return (
        "Status:\n"
        f"  Provider: {orch.provider_name} ({'ready' if orch.is_ready() else 'not configured'})\n"
        f"  Available providers: {', '.join(orch.available_providers)}\n"
        f"  Tasks: {state.store.count_tasks()}\n"
        f"  Database: {state.store.db_path}\n"
        f"  Image cache: {orch.cache_dir}"
    )


def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add <title> [| description]
    """
    raw = " ".join(args).strip()
    if not raw:
        return "Usage: /add <title> [| description]"
    title, _, description = raw.partition("|")
    try:
        task_id = state.store.add_task(title.strip(), description.strip())
    except ValueError as e:
        return f"Cannot add task: {e}"
    return f"Task {task_id} added: {title.strip()}"


def cmd_tasks(state: AppState, args: list[str]) -> str:
    tasks = state.store.list_tasks()
    if not tasks:
        return "No tasks yet. Use /add <title> to create one."
    lines = ["Tasks:"]
    for t in tasks:
        mark = "img" if t.image_url else "   "
        lines.append(f"  [{mark}] {t.id}. {t.title}")
    return "\n".join(lines)


def cmd_profile(state: AppState, args: list[str]) -> str:
    """
    /profile                      -> show
    /profile <style> <description> -> set
    """
    if not args:
        profile = state.store.get_profile()
        if profile is None:
            return "No profile set. Usage: /profile <style> <description>"
        return (
            "Profile:\n"
            f"  Style: {profile.style}\n"
            f"  Description: {profile.description or '-'}\n"
            f"  Reference image: {profile.reference_image_path or '-'}\n"
            f"  Quality: {profile.quality or 'default'}"
        )

    style = ArtStyle.parse(args[0])
    description = " ".join(args[1:]) if args[0].lower() == style.value else " ".join(args)
    current = state.store.get_profile()
    state.store.set_profile(
        description,
        style=style,
        reference_image_path=current.reference_image_path if current else None,
        quality=current.quality if current else None,
    )
    return f"Profile saved (style={style})."


async def cmd_generate(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    target_id = _parse_id(args)
    if target_id is None:
        return "Usage: /generate <task id>"
    target = state.store.get_target(target_id)
    if target is None:
        return f"Task {target_id} not found."

    profile = state.store.get_profile()
    options = GenerationOptions(location=target.location)
    profile_text = ""
    if profile is not None:
        profile_text = profile.description
        options = GenerationOptions(
            style=profile.style,
            reference_image_path=profile.reference_image_path,
            quality=profile.quality,
            location=target.location,
        )

    result = await state.orchestrator.generate_image_for(
        target.title,
        target.description,
        profile_text,
        options,
        target.id,
        on_progress=_progress_printer(emit),
    )
    return _describe_result(target_id, result)


async def cmd_regenerate(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    target_id = _parse_id(args)
    if target_id is None:
        return "Usage: /regenerate <task id>"
    result = await state.orchestrator.regenerate_image_for(target_id, on_progress=_progress_printer(emit))
    return _describe_result(target_id, result)


def cmd_show(state: AppState, args: list[str]) -> str:
    target_id = _parse_id(args)
    if target_id is None:
        return "Usage: /show <task id>"
    image = state.orchestrator.get_image_for(target_id)
    if image is None:
        return f"Task {target_id} has no image."
    decoded = decode_data_uri(image)
    if decoded is None:
        return f"Task {target_id}: stored image is not a data URI."
    mime, data = decoded
    return f"Task {target_id}: {mime}, {round(len(data) / 1024)} KB."


def cmd_provider(state: AppState, args: list[str]) -> str:
    """
    /provider          -> show current
    /provider <name>   -> switch (gemini | openai)
    """
    orch = state.orchestrator
    if not args:
        return f"Image provider: {orch.provider_name}. Available: {', '.join(orch.available_providers)}."
    if not orch.set_provider(args[0]):
        return f"Unknown provider: {args[0]}. Available: {', '.join(orch.available_providers)}."
    try:
        state.store.set_setting(PROVIDER_SETTING, orch.provider_name)
    except Exception:
        logger.exception("Persisting provider choice failed")
    ready = "ready" if orch.is_ready() else "not configured (missing API key)"
    return f"Image provider set to {orch.provider_name}: {ready}."


def cmd_stats(state: AppState, args: list[str]) -> str:
    stats = state.orchestrator.cache_stats()
    return (
        "Image cache:\n"
        f"  Memory entries: {stats['size']}/{stats['maxSize']}\n"
        f"  File mappings: {stats['mappedFiles']}\n"
        f"  Task mappings: {stats['mappedTargets']}\n"
        f"  In flight: {stats['inFlight']}"
    )


def cmd_clear_cache(state: AppState, args: list[str]) -> str:
    state.orchestrator.clear_cache()
    return "Memory image cache cleared (files on disk are kept)."


async def cmd_backfill(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    limit = _parse_id(args) or 8
    if emit:
        with contextlib.suppress(Exception):
            emit(f"Generating images for up to {limit} tasks...")
    summary = await state.orchestrator.backfill_missing(limit)
    return (
        f"Backfill: attempted={summary['attempted']} "
        f"succeeded={summary['succeeded']} failed={summary['failed']}"
    )


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show provider, storage and cache locations.")
registry.register("add", cmd_add, help_text="Add a task: /add <title> [| description].")
registry.register("tasks", cmd_tasks, help_text="List tasks.", aliases=["ls"])
registry.register("profile", cmd_profile, help_text="Show or set the profile: /profile <style> <description>.")
registry.register("generate", cmd_generate, help_text="Generate an image for a task: /generate <id>.", aliases=["gen"])
registry.register("regenerate", cmd_regenerate, help_text="Force a fresh image: /regenerate <id>.")
registry.register("show", cmd_show, help_text="Show image info for a task: /show <id>.")
registry.register("provider", cmd_provider, help_text="Show or switch provider: /provider gemini | openai.")
registry.register("stats", cmd_stats, help_text="Show image cache statistics.")
registry.register("clear-cache", cmd_clear_cache, help_text="Clear the in-memory image cache.")
registry.register("backfill", cmd_backfill, help_text="Generate images for tasks without one: /backfill [limit].")
