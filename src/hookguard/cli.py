"""hookguard CLI - single-shot hook transport and chain inspection."""

import json
import logging
import sys
from builtins import print as builtin_print
from pathlib import Path
from typing import Annotated, Literal

import attrs
import tyro
from rich import print
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from hookguard.config import HookGuardSettings, get_config, set_config_instance
from hookguard.engine import HookEngine
from hookguard.manifest import load_manifest
from hookguard.pipeline.chain import render_chain, to_mermaid
from hookguard.pipeline.errors import ConfigurationError
from hookguard.pipeline.event import Event, Phase
from hookguard.pipeline.overrides import parse_overrides
from hookguard.pipeline.registry import HookRegistry

logger = logging.getLogger(__name__)

# Host protocol: exit code 2 blocks the operation and shows stderr to the agent
EXIT_BLOCKED = 2

ChainFormat = Literal["ascii", "mermaid", "json"]


@attrs.define
class Run:
    """Evaluate one event read from stdin and print the result as JSON."""

    verdicts: Annotated[bool, tyro.conf.arg(aliases=["-v"])] = False
    """Include per-hook verdicts in the output."""


@attrs.define
class Chain:
    """Show the hooks that would run for an operation, grouped by tier."""

    tool: Annotated[str | None, tyro.conf.Positional] = None
    """Tool name to match (all hooks when omitted)."""

    file_path: Annotated[str | None, tyro.conf.arg(aliases=["-f"])] = None
    """Target file path of the operation."""

    phase: Literal["pre", "post"] = "pre"
    """Event phase."""

    output: Annotated[ChainFormat, tyro.conf.arg(aliases=["-o"])] = "ascii"
    """Output format: ascii, mermaid, json."""


@attrs.define
class Validate:
    """Validate the hook manifest and list the configured hooks."""


Command = (
    Annotated[Run, tyro.conf.subcommand(name="run")]
    | Annotated[Chain, tyro.conf.subcommand(name="chain")]
    | Annotated[Validate, tyro.conf.subcommand(name="validate")]
)


def setup_logging(level: int = logging.INFO) -> None:
    """Configure logging with 100-character text width."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)-20s - %(levelname)-8s - %(message).100s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def load_settings(config: Path | None) -> HookGuardSettings:
    """Load settings from an explicit config file, or discover them."""
    if config is None:
        return get_config()
    if not config.exists():
        raise ConfigurationError(f"Config file not found: {config}")
    settings = HookGuardSettings.from_yaml(config)
    set_config_instance(settings)
    return settings


def run_event(settings: HookGuardSettings, stdin_text: str, include_verdicts: bool = False) -> int:
    """Process one serialized event.

    Args:
        settings: Engine settings
        stdin_text: Raw JSON event
        include_verdicts: Add per-hook verdicts to the output

    Returns:
        Process exit code (EXIT_BLOCKED when the operation is blocked)
    """
    engine = HookEngine.from_settings(settings)
    try:
        payload = json.loads(stdin_text)
    except json.JSONDecodeError as e:
        # Routed through the engine so the result carries the malformed-event annotation
        logger.warning("Event is not valid JSON: %s", e)
        payload = None

    result = engine.process_sync(payload)
    builtin_print(json.dumps(result.to_dict(include_verdicts=include_verdicts)))

    if result.blocked:
        builtin_print(result.message, file=sys.stderr)
        return EXIT_BLOCKED
    if result.message:
        # Warnings are surfaced without blocking
        builtin_print(result.message, file=sys.stderr)
    return 0


def handle_chain(settings: HookGuardSettings, cmd: Chain) -> None:
    """Handle chain subcommand to visualize the tiered hook chain."""
    manifest_path = settings.resolved_manifest_path
    descriptors = load_manifest(manifest_path, settings.default_timeout_ms) if manifest_path else []
    registry = HookRegistry(descriptors, overrides=parse_overrides(settings.overrides))

    if cmd.tool is None:
        hooks = registry.snapshot.ordered()
    else:
        event = Event(phase=Phase(cmd.phase), tool_name=cmd.tool, file_path=cmd.file_path)
        hooks = registry.hooks_for(event)

    if cmd.output == "mermaid":
        builtin_print(to_mermaid(hooks))
        return
    if cmd.output == "json":
        chain = [
            {
                "id": d.id,
                "tier": d.priority_tier.value,
                "phase": d.phase.value,
                "matcher": d.matcher.describe(),
                "timeoutMs": d.timeout_ms,
                "enabled": d.enabled,
            }
            for d in hooks
        ]
        builtin_print(json.dumps(chain, indent=2))
        return

    console = Console()
    title = f"Hook chain for {cmd.phase} {cmd.tool}" if cmd.tool else "Registered hook chain"
    if cmd.tool and cmd.file_path:
        title += f" ({cmd.file_path})"
    console.print(Panel(f"[bold cyan]{escape(title)}[/bold cyan]", expand=False))
    console.print(render_chain(hooks), markup=False, highlight=False)


def handle_validate(settings: HookGuardSettings) -> None:
    """Handle validate subcommand."""
    manifest_path = settings.resolved_manifest_path
    if manifest_path is None:
        print("[yellow]No hook manifest configured[/yellow]")
        return

    descriptors = load_manifest(manifest_path, settings.default_timeout_ms)
    print(f"[green]✓[/green] {len(descriptors)} hook(s) valid in {escape(str(manifest_path))}")
    if not descriptors:
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Hook", style="cyan")
    table.add_column("Tier", style="magenta")
    table.add_column("Phase")
    table.add_column("Matcher", style="green")
    table.add_column("Timeout", justify="right")
    table.add_column("Enabled")
    for d in HookRegistry(descriptors).snapshot.ordered():
        table.add_row(
            d.id,
            d.priority_tier.value,
            d.phase.value,
            d.matcher.describe(),
            f"{d.timeout_ms}ms",
            "yes" if d.enabled else "[red]no[/red]",
        )
    Console().print(table)


def main(
    cmd: Annotated[Command, tyro.conf.arg(name="")],
    *,
    config: Annotated[Path | None, tyro.conf.arg(help="Path to hookguard.yaml")] = None,
) -> None:
    """hookguard - tiered policy hooks for agent file operations.

    Evaluates intercepted write/edit operations against a configurable chain
    of critical, high and background hooks.
    """
    # stdout carries the result for `run`; keep the log on stderr quiet
    setup_logging(logging.WARNING if isinstance(cmd, Run) else logging.INFO)

    try:
        settings = load_settings(config)

        if isinstance(cmd, Run):
            code = run_event(settings, sys.stdin.read(), include_verdicts=cmd.verdicts)
            if code:
                sys.exit(code)

        elif isinstance(cmd, Chain):
            handle_chain(settings, cmd)

        elif isinstance(cmd, Validate):
            handle_validate(settings)

    except ConfigurationError as e:
        print(f"[red]Configuration error:[/red] {escape(str(e))}", file=sys.stderr)
        sys.exit(1)


def entry_point() -> None:
    """Entry point for the hookguard command."""
    tyro.cli(main)


if __name__ == "__main__":
    entry_point()
