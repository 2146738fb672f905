#!/usr/bin/env python3
"""Command-line driver for the Hive-Mind conversation engine.

Usage examples:
    python cli.py ask --question "Should I use Postgres or MongoDB for an event log?"
    python cli.py debate --question "Tabs vs spaces?" --model gpt-4o:2 --model claude-3-haiku --max-turns 6
    python cli.py models
    python cli.py bots
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any

import click
import yaml

from agents import ModelCatalog, ModelSelection, create_provider
from agents.llm_provider import LLMProvider
from agents.roster import load_roster
from data.models import Conversation, ConversationStatus, Message, MessageType
from orchestration.engine import ConversationEngine
from orchestration.registry import ProviderFactory
from tools.search import SearchTool


# ---------------------------------------------------------------------------
# Transcript display
# ---------------------------------------------------------------------------

# message type -> (label, ANSI colour code)
_TYPE_STYLES: dict[MessageType, tuple[str, str]] = {
    MessageType.USER_QUESTION:       ("YOU",        "\033[1;37m"),
    MessageType.USER_RESPONSE:       ("YOU",        "\033[1;37m"),
    MessageType.USER_INTERJECTION:   ("YOU",        "\033[1;37m"),
    MessageType.CLARIFYING_QUESTION: ("MODERATOR",  "\033[1;35m"),
    MessageType.MODERATOR_THINKING:  ("THINKING",   "\033[2;35m"),
    MessageType.BOT_QUERY:           ("QUERY",      "\033[1;34m"),
    MessageType.BOT_RESPONSE:        ("RESPONSE",   "\033[1;36m"),
    MessageType.PROGRESS_UPDATE:     ("PROGRESS",   "\033[2m"),
    MessageType.FINAL_REPORT:        ("REPORT",     "\033[1;32m"),
    MessageType.SYSTEM_MESSAGE:      ("SYSTEM",     "\033[1;33m"),
}
_RESET = "\033[0m"
_DIM = "\033[2m"


def _print_message(message: Message) -> None:
    label, colour = _TYPE_STYLES.get(message.type, (message.type.value.upper(), "\033[1m"))
    who = message.bot_id or message.role.value
    model = f"  •  {message.model_name}" if message.model_name else ""

    click.echo(f"\n{colour}{'─' * 60}")
    click.echo(f"  [{label}]  {who}{model}")
    click.echo(f"{'─' * 60}{_RESET}")
    for paragraph in message.content.strip().split("\n"):
        click.echo(f"  {paragraph}")
    for usage in message.tools_used:
        click.echo(f"{_DIM}  [{usage.tool}: {usage.query}]{_RESET}")


class _TranscriptPrinter:
    """``on_change`` callback that prints messages as they are appended."""

    def __init__(self) -> None:
        self._printed: dict[str, int] = {}

    def __call__(self, conversation_id: str, conversation: Conversation) -> None:
        start = self._printed.get(conversation_id, 0)
        for message in conversation.messages[start:]:
            _print_message(message)
        self._printed[conversation_id] = len(conversation.messages)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load_config(config_path: str = "config/default.yaml") -> dict[str, Any]:
    """Load and return the YAML config."""
    p = Path(config_path)
    if not p.exists():
        click.echo(f"Config not found: {p}. Using defaults.", err=True)
        return {}
    with open(p) as f:
        return yaml.safe_load(f) or {}


def _setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _provider_factory(cfg: dict[str, Any]) -> ProviderFactory:
    """Return a factory creating one provider per model, sharing the API settings."""
    api_cfg = cfg.get("api") or {}
    provider_name = api_cfg.get("provider", "openrouter")
    cache: dict[str, LLMProvider] = {}

    def factory(model: str) -> LLMProvider:
        if model not in cache:
            kwargs: dict[str, Any] = {
                "model": model,
                "timeout": api_cfg.get("timeout", 60),
                "max_retries": api_cfg.get("max_retries", 3),
            }
            if api_cfg.get("api_key_env"):
                kwargs["api_key_env"] = api_cfg["api_key_env"]
            cache[model] = create_provider(provider_name, **kwargs)
        return cache[model]

    return factory


def _build_engine(cfg: dict[str, Any], **overrides: Any) -> ConversationEngine:
    search_cfg = cfg.get("search") or {}
    search_tool = SearchTool(
        os.getenv(search_cfg.get("tavily_api_key_env", "TAVILY_API_KEY")),
        os.getenv(search_cfg.get("serper_api_key_env", "SERPER_API_KEY")),
        timeout=search_cfg.get("timeout", 15.0),
    )
    cfg = {**cfg, "debate": {**(cfg.get("debate") or {}), **overrides}}
    try:
        return ConversationEngine.from_config(
            cfg,
            _provider_factory(cfg),
            search_tool=search_tool,
            on_change=_TranscriptPrinter(),
        )
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@click.group()
@click.option("--config", default="config/default.yaml", help="Path to YAML config")
@click.option("--log-level", default="WARNING", help="Logging level")
@click.pass_context
def cli(ctx: click.Context, config: str, log_level: str) -> None:
    """Hive-Mind – a moderator and specialist LLM agents working on your question."""
    _setup_logging(log_level)
    ctx.ensure_object(dict)
    ctx.obj["config"] = _load_config(config)
    ctx.obj["config_path"] = config


# ---- ask ------------------------------------------------------------------

@cli.command()
@click.option("--question", required=True, help="Question for the moderator")
@click.option("--user", "user_id", default="cli-user", help="User id to file the conversation under")
@click.pass_context
def ask(ctx: click.Context, question: str, user_id: str) -> None:
    """Guided research: the moderator asks, delegates and reports back."""
    engine = _build_engine(ctx.obj["config"])

    async def _run() -> None:
        conversation, _ = await engine.create_conversation(user_id, question, debate_mode=False)
        while (
            conversation.status == ConversationStatus.GATHERING_CONTEXT
            and conversation.messages[-1].type == MessageType.CLARIFYING_QUESTION
        ):
            answer = click.prompt("\nYour answer", type=str)
            await engine.process_user_message(conversation.id, answer, MessageType.USER_RESPONSE)

        click.echo(f"\n{'=' * 60}")
        click.echo(f"  {conversation.current_phase.upper() or conversation.status.value.upper()}")
        click.echo(f"{'=' * 60}")

    asyncio.run(_run())


# ---- debate ---------------------------------------------------------------

@cli.command()
@click.option("--question", required=True, help="Debate topic")
@click.option(
    "--model",
    "models",
    multiple=True,
    help="Catalog model id, optionally with an instance count (gpt-4o:2). Repeatable.",
)
@click.option("--max-turns", default=6, type=int, help="Bot responses before concluding")
@click.option("--turn-delay", default=None, type=float, help="Seconds between turns")
@click.option("--user", "user_id", default="cli-user", help="User id to file the conversation under")
@click.pass_context
def debate(
    ctx: click.Context,
    question: str,
    models: tuple[str, ...],
    max_turns: int,
    turn_delay: float | None,
    user_id: str,
) -> None:
    """Round-robin debate between models, concluded by the moderator."""
    try:
        selections = [ModelSelection.parse(m) for m in models]
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--model") from exc

    overrides: dict[str, Any] = {"max_turns": max_turns}
    if turn_delay is not None:
        overrides["turn_delay"] = turn_delay
    engine = _build_engine(ctx.obj["config"], **overrides)

    click.echo(f"\n\033[1m{'=' * 60}")
    click.echo(f"  DEBATE: {question}")
    click.echo(f"{'=' * 60}\033[0m")
    click.echo(f"  Models   : {', '.join(models) or 'default specialists'}")
    click.echo(f"  Max turns: {max_turns}")

    async def _run() -> None:
        conversation, _ = await engine.create_conversation(
            user_id, question, debate_mode=True, model_selections=selections or None
        )
        try:
            await engine.debates.wait(conversation.id)
        except (KeyboardInterrupt, asyncio.CancelledError):
            engine.stop_debate(conversation.id)
        conclusion = await engine.generate_conclusion(conversation.id)

        click.echo(f"\n{'=' * 60}")
        click.echo(f"  DEBATE COMPLETE – {conversation.debate_round} round(s)")
        click.echo(f"{'=' * 60}")
        if conclusion is None:
            click.echo("  No conclusion could be generated.", err=True)
        await engine.shutdown()

    asyncio.run(_run())


# ---- models / bots --------------------------------------------------------

@cli.command()
@click.pass_context
def models(ctx: click.Context) -> None:
    """List the models debate participants can be created from."""
    catalog = ModelCatalog.from_config(ctx.obj["config"].get("models"))
    click.echo(f"{'ID':<20} {'Provider':<10} {'Context':>9}  {'Model'}")
    click.echo(f"{'─' * 20} {'─' * 10} {'─' * 9}  {'─' * 35}")
    for m in catalog:
        click.echo(f"{m.id:<20} {m.provider:<10} {m.context_window:>9}  {m.model_id}")


@cli.command()
@click.pass_context
def bots(ctx: click.Context) -> None:
    """List the moderator and the specialists available for guided research."""
    moderator, specialists = load_roster(ctx.obj["config"])
    for config in [moderator, *specialists]:
        tools = f" [{', '.join(config.tools)}]" if config.tools else ""
        click.echo(f"{config.id:<24} {config.model:<32} {config.name}{tools}")


# ---------------------------------------------------------------------------

if __name__ == "__main__":
    cli()
