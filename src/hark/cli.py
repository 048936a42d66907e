"""CLI entry point for hark.

Parses arguments, configures logging, and launches the requested command.
setup_environment() is called before anything imports transformers or
onnxruntime so their environment switches take effect.

Subcommands:
    run      live assistant (default)
    resolve  rank catalog intents for a typed utterance
    check    validate the data directory and catalog
"""

import argparse
import logging
import os
from dataclasses import replace
from typing import TYPE_CHECKING

from hark.constants import DEFAULT_DATA_DIR_ENV

if TYPE_CHECKING:
    from hark.config import HarkConfig


def _add_run_args(parser: argparse.ArgumentParser) -> None:
    """Add live-session arguments.

    Value flags default to None, meaning "keep the configured value".
    """
    parser.add_argument("--device", help="Audio input device (index or name)")
    parser.add_argument(
        "--output-device", help="Audio output device (index or name)"
    )
    parser.add_argument(
        "--threshold",
        type=float,
        help="Minimum similarity to accept an intent (0-1)",
    )
    parser.add_argument(
        "--max-silence",
        type=float,
        help="Seconds of silence that end an utterance",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Ignore all speech while the assistant is talking",
    )
    parser.add_argument(
        "--require-wake",
        action="store_true",
        help="Only act on utterances that start with a wake phrase",
    )
    parser.add_argument(
        "--engine",
        choices=["piper", "espeak"],
        help="Speech synthesis engine",
    )
    parser.add_argument(
        "--ui", action="store_true", help="Show the Rich live status view"
    )


def build_arg_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser with subcommand support."""
    parser = argparse.ArgumentParser(
        description="Offline voice assistant: speech in, intent, spoken reply"
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help=f"Model and catalog directory (default: ${DEFAULT_DATA_DIR_ENV} "
        "or ~/.config/hark)",
    )
    parser.add_argument(
        "--config-file", default=None, help="Path to config.json"
    )
    parser.add_argument(
        "--list-devices", action="store_true", help="List audio devices"
    )
    _add_run_args(parser)

    subparsers = parser.add_subparsers(dest="subcommand")

    # Unset flags leave values parsed before the subcommand alone.
    run_parser = subparsers.add_parser(
        "run",
        help="Run the assistant (default)",
        argument_default=argparse.SUPPRESS,
    )
    _add_run_args(run_parser)

    resolve_parser = subparsers.add_parser(
        "resolve", help="Show the closest intents for some text"
    )
    resolve_parser.add_argument("text", nargs="+", help="Utterance text")
    resolve_parser.add_argument(
        "-k", type=int, default=5, help="Number of matches to show"
    )
    resolve_parser.add_argument(
        "--threshold",
        type=float,
        default=argparse.SUPPRESS,
        help="Acceptance threshold",
    )

    subparsers.add_parser("check", help="Validate the data directory")

    return parser


def list_audio_devices() -> None:
    """Display available audio input and output devices."""
    import sounddevice as sd
    from rich.console import Console
    from rich.table import Table

    console = Console()
    table = Table(title="Audio Devices")
    table.add_column("ID", style="cyan")
    table.add_column("Device", style="white")
    table.add_column("In", justify="right")
    table.add_column("Out", justify="right")
    table.add_column("Default", style="green")
    default_in, default_out = sd.default.device
    for i, d in enumerate(sd.query_devices()):
        marks = []
        if i == default_in:
            marks.append("input")
        if i == default_out:
            marks.append("output")
        table.add_row(
            str(i),
            d["name"],
            str(d["max_input_channels"]),
            str(d["max_output_channels"]),
            ", ".join(marks),
        )
    console.print(table)


def _device(value: str | None) -> int | str | None:
    if value is None:
        return None
    return int(value) if value.isdigit() else value


def apply_overrides(
    config: "HarkConfig", args: argparse.Namespace
) -> "HarkConfig":
    """Fold command-line flags over the loaded configuration."""
    audio = config.audio
    if getattr(args, "device", None) is not None:
        audio = replace(audio, input_device=_device(args.device))
    if getattr(args, "output_device", None) is not None:
        audio = replace(audio, output_device=_device(args.output_device))

    from hark.segmenter import SuppressionPolicy

    segmenter = config.segmenter
    if getattr(args, "max_silence", None) is not None:
        segmenter = replace(segmenter, max_silence_s=args.max_silence)
    if getattr(args, "strict", False):
        segmenter = replace(segmenter, policy=SuppressionPolicy.STRICT)
    if getattr(args, "require_wake", False):
        segmenter = replace(segmenter, require_wake=True)

    resolver = config.resolver
    if getattr(args, "threshold", None) is not None:
        resolver = replace(resolver, threshold=args.threshold)

    synth = config.synth
    if getattr(args, "engine", None) is not None:
        synth = replace(synth, engine=args.engine)

    return replace(
        config, audio=audio, segmenter=segmenter, resolver=resolver, synth=synth
    )


def _run_assistant(config: "HarkConfig", show_ui: bool) -> int:
    import asyncio

    from hark.service import VoiceAssistant

    asyncio.run(VoiceAssistant(config, show_ui=show_ui).run())
    return 0


def _run_resolve(config: "HarkConfig", args: argparse.Namespace) -> int:
    from rich.console import Console
    from rich.table import Table

    from hark.service import load_resolver
    from hark.types import IntentMatch

    resolver = load_resolver(config)
    text = " ".join(args.text)
    outcome = resolver.resolve(text)

    table = Table(title=f"Matches for {text!r}")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Intent", style="white")
    table.add_column("Example", style="dim")
    table.add_column("Score", justify="right")
    for rank, (exemplar, score) in enumerate(resolver.rank(text, args.k), 1):
        style = "green" if score >= resolver.config.threshold else "red"
        table.add_row(
            str(rank),
            exemplar.intent_id,
            exemplar.phrase,
            f"[{style}]{score:.3f}[/{style}]",
        )

    console = Console()
    console.print(table)
    if isinstance(outcome, IntentMatch):
        console.print(f"[green]Match:[/green] {outcome.intent_id}")
        if outcome.slots:
            slots = ", ".join(f"{k}={v}" for k, v in outcome.slots.items())
            console.print(f"[cyan]Slots:[/cyan] {slots}")
    else:
        console.print(
            f"[red]No match[/red] (threshold {resolver.config.threshold:.2f})"
        )
    return 0


def _run_check(config: "HarkConfig") -> int:
    from rich.console import Console
    from rich.table import Table

    from hark.catalog import load_catalog
    from hark.errors import FatalStartupFailure
    from hark.service import check_data_dir

    console = Console()
    table = Table(title=f"Data directory {config.paths.data_dir}")
    table.add_column("Item", style="cyan")
    table.add_column("Path", style="white")
    table.add_column("OK")
    checks = check_data_dir(config)
    for name, path, ok in checks:
        table.add_row(name, str(path), "[green]yes[/green]" if ok else "[red]missing[/red]")
    console.print(table)

    healthy = all(ok for _, _, ok in checks)
    if config.catalog_source.is_file():
        try:
            catalog = load_catalog(config.catalog_source)
        except FatalStartupFailure as exc:
            console.print(f"[red]Catalog invalid:[/red] {exc}")
            return 1
        examples = sum(len(intent.examples) for intent in catalog.intents)
        console.print(
            f"Catalog: {len(catalog.intents)} intents, {examples} examples, "
            f"{len(catalog.actions)} actions, {len(catalog.warnings)} warnings"
        )
        for warning in catalog.warnings:
            console.print(f"  [yellow]![/yellow] {warning}")
    return 0 if healthy else 1


def main() -> int:
    """CLI entry point. Returns exit code."""
    # Must run before transformers / onnxruntime are imported.
    from hark.env import LOGGER, quiet_libraries, setup_environment

    setup_environment()

    from rich.console import Console
    from rich.logging import RichHandler

    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=Console(stderr=True),
                show_time=False,
                show_path=False,
                rich_tracebacks=False,
            )
        ],
    )
    quiet_libraries()

    parser = build_arg_parser()
    args = parser.parse_args()

    if args.list_devices:
        list_audio_devices()
        return 0

    from hark.config import load_config
    from hark.errors import FatalStartupFailure

    try:
        config = apply_overrides(
            load_config(args.config_file, args.data_dir), args
        )
        if args.subcommand == "resolve":
            return _run_resolve(config, args)
        if args.subcommand == "check":
            return _run_check(config)
        return _run_assistant(config, show_ui=args.ui)
    except FatalStartupFailure as exc:
        LOGGER.error("Cannot start: %s", exc)
        return 1
    except ValueError as exc:
        LOGGER.error("Invalid setting: %s", exc)
        return 1
