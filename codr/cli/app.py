"""
Main CLI application for codr.

Usage:
    codr chat [--stream/--no-stream] [--profile NAME] [--model NAME] [--verbose]
    codr ask PROMPT
    codr tools list|info
    codr config show|validate
    codr version
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console

from codr import __version__
from codr.config import CodrConfig, load_config
from codr.errors import CodrError, ConfigError

app = typer.Typer(name="codr", help="codr - coding assistant chat client")
tools_app = typer.Typer(help="Tool management")
config_app = typer.Typer(help="Configuration management")

app.add_typer(tools_app, name="tools")
app.add_typer(config_app, name="config")

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )


def _load(
    config_path: str | None,
    profile: str | None,
    cli_overrides: dict | None = None,
) -> CodrConfig:
    try:
        return load_config(config_path, profile=profile, cli_overrides=cli_overrides)
    except ConfigError as e:
        console.print(f"[red]Config error:[/red] {e}")
        raise typer.Exit(1)


def _build_registry(cfg: CodrConfig):
    from codr.tools.file_tools import build_default_registry

    return build_default_registry(
        root=cfg.tools.root or None,
        disabled=cfg.tools.disabled,
        max_risk=cfg.tool_max_risk,
    )


def _setup_stack(cfg: CodrConfig, *, stream: bool):
    """Wire up client, tools, prompt and orchestrator for a chat."""
    from codr.cli.chat import ChatHandler
    from codr.llm.client import ChatClient
    from codr.orchestrator.core import Orchestrator
    from codr.prompts.system import load_system_prompt

    cfg.validate()

    registry = _build_registry(cfg)
    system_prompt = load_system_prompt(cfg.prompt, registry.list())

    client = ChatClient(
        cfg.llm.base_url,
        cfg.llm.api_key,
        cfg.llm.model,
        timeout=float(cfg.llm.timeout_seconds),
    )

    handler = ChatHandler(orchestrator=None, console=console, stream=stream)
    handler.orchestrator = Orchestrator(
        client=client,
        registry=registry,
        system_prompt=system_prompt,
        max_rounds=cfg.session.max_rounds,
        channel_capacity=cfg.session.channel_capacity,
        tool_callback=handler.formatter.format_tool_call,
    )
    return handler, client


def _run_session(cfg: CodrConfig, stream: bool, prompt: str | None = None) -> None:
    async def _run():
        handler, client = _setup_stack(cfg, stream=stream)
        try:
            if prompt is None:
                await handler.run_loop()
            else:
                await handler.handle_input(prompt)
        finally:
            await client.aclose()

    try:
        asyncio.run(_run())
    except ConfigError as e:
        console.print(f"[red]Config error:[/red] {e}")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def chat(
    stream: Optional[bool] = typer.Option(None, "--stream/--no-stream", help="Stream answers as they arrive"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    model: Optional[str] = typer.Option(None, help="Model identifier"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a YAML config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Start an interactive chat session."""
    _setup_logging(verbose)
    cfg = _load(config, profile, {"llm.model": model, "session.stream": stream})
    _run_session(cfg, cfg.session.stream)


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="Question or instruction for the assistant"),
    stream: Optional[bool] = typer.Option(None, "--stream/--no-stream", help="Stream the answer"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    model: Optional[str] = typer.Option(None, help="Model identifier"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a YAML config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Run a single turn and print the answer."""
    _setup_logging(verbose)
    cfg = _load(config, profile, {"llm.model": model, "session.stream": stream})
    _run_session(cfg, cfg.session.stream, prompt)


@tools_app.command("list")
def tools_list(
    max_risk: Optional[str] = typer.Option(None, help="Max risk level filter"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a YAML config file"),
):
    """List registered tools."""
    from codr.cli.output import OutputFormatter
    from codr.tools.base import ToolRisk

    cfg = _load(config, None)
    try:
        registry = _build_registry(cfg)
    except ConfigError as e:
        console.print(f"[red]Config error:[/red] {e}")
        raise typer.Exit(1)

    risk_filter = None
    if max_risk:
        risk_filter = ToolRisk.__members__.get(max_risk.upper())
        if risk_filter is None:
            console.print(f"[red]Unknown risk level:[/red] {max_risk}")
            raise typer.Exit(1)

    OutputFormatter(console).format_tool_list(registry.list(max_risk=risk_filter))


@tools_app.command("info")
def tools_info(
    tool_name: str = typer.Argument(..., help="Tool name"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a YAML config file"),
):
    """Show tool details and schema."""
    from codr.cli.output import OutputFormatter

    cfg = _load(config, None)
    tool = _build_registry(cfg).get(tool_name)
    if not tool:
        console.print(f"[red]Tool not found:[/red] {tool_name}")
        raise typer.Exit(1)

    OutputFormatter(console).format_tool_info(tool)


@config_app.command("show")
def config_show(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a YAML config file"),
):
    """Show effective config (the API key is masked)."""
    from codr.cli.output import OutputFormatter

    cfg = _load(config, profile)
    OutputFormatter(console).format_config(cfg.to_dict())


@config_app.command("validate")
def config_validate(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a YAML config file"),
):
    """Validate config and report anything missing."""
    cfg = _load(config, profile)
    try:
        cfg.validate()
    except CodrError as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)

    console.print("[green]Config is valid.[/green]")
    if cfg.source:
        console.print(f"  Loaded from: {cfg.source}")
    else:
        console.print("  [dim]No config file found, using defaults and environment.[/dim]")
    console.print(f"  Endpoint: {cfg.llm.base_url} ({cfg.llm.model})")
    console.print(f"  Streaming: {cfg.session.stream}")
    console.print(f"  Tools max risk: {cfg.tools.max_risk}")


@app.command()
def version():
    """Show version."""
    console.print(f"codr v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
