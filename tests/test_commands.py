# tests/test_commands.py

from __future__ import annotations

import pytest

from taskpix.cli.commands import CommandRegistry, registry


@pytest.mark.asyncio
async def test_command_registry_routes_2_and_3_params(state) -> None:
    reg = CommandRegistry()
    called = {"h2": 0, "h3": 0}

    def h2(state, args):
        called["h2"] += 1
        return "h2"

    async def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3"

    reg.register("a", h2, "a")
    reg.register("b", h3, "b")

    assert await reg.handle(state, "/a x") == "h2"
    assert await reg.handle(state, "/b y", emit=lambda _: None) == "h3"
    assert called == {"h2": 1, "h3": 1}


@pytest.mark.asyncio
async def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert await reg.handle(state, "hello") is None
    assert "Unknown command" in (await reg.handle(state, "/nope") or "")
    assert "Empty command" in (await reg.handle(state, "/") or "")


@pytest.mark.asyncio
async def test_add_profile_generate_show_flow(state, provider) -> None:
    emitted: list[str] = []

    assert "Task 1 added" in await registry.handle(state, "/add Write report | Q3 numbers")
    assert "style=watercolor" in await registry.handle(state, "/profile watercolor a tall man")

    reply = await registry.handle(state, "/generate 1", emit=emitted.append)
    assert "image ready (image/png" in reply
    assert any("100%" in line for line in emitted)

    request, _ = provider.calls[0]
    assert request.title == "Write report"
    assert request.description == "Q3 numbers"
    assert request.profile_text == "a tall man"
    assert request.style == "watercolor"

    assert "image/png" in await registry.handle(state, "/show 1")
    assert "[img] 1. Write report" in await registry.handle(state, "/tasks")


@pytest.mark.asyncio
async def test_generate_usage_and_missing_task(state) -> None:
    assert "Usage" in await registry.handle(state, "/generate")
    assert "not found" in await registry.handle(state, "/generate 42")
    assert "has no image" in await registry.handle(state, "/show 42")


@pytest.mark.asyncio
async def test_regenerate_without_profile_reports_error(state) -> None:
    await registry.handle(state, "/add Run")
    reply = await registry.handle(state, "/regenerate 1")
    assert "UNKNOWN_ERROR" in reply


@pytest.mark.asyncio
async def test_provider_switch_is_persisted(state) -> None:
    assert "gemini" in await registry.handle(state, "/provider")
    reply = await registry.handle(state, "/provider openai")
    assert "not configured" in reply
    assert state.store.get_setting("imageProvider") == "openai"
    assert "Unknown provider" in await registry.handle(state, "/provider dalle")


@pytest.mark.asyncio
async def test_stats_clear_and_backfill(state, provider) -> None:
    await registry.handle(state, "/add A")
    await registry.handle(state, "/add B")

    reply = await registry.handle(state, "/backfill 5")
    assert "attempted=2 succeeded=2 failed=0" in reply
    assert len(provider.calls) == 2

    assert "Memory entries: 2/50" in await registry.handle(state, "/stats")
    await registry.handle(state, "/clear-cache")
    assert "Memory entries: 0/50" in await registry.handle(state, "/stats")


@pytest.mark.asyncio
async def test_help_lists_commands(state) -> None:
    text = await registry.handle(state, "/help")
    for name in ("generate", "regenerate", "provider", "backfill", "clear-cache"):
        assert f"/{name}" in text
