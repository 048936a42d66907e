"""Terminal UI rendering for hark.

All render functions are pure: they take a PipelineStatus snapshot (plus
the static session info) and return Rich renderables.
"""

from dataclasses import dataclass

from rich.layout import Layout
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from hark.coordinator import PipelineState, PipelineStatus

_STATE_STYLES = {
    PipelineState.IDLE: "dim",
    PipelineState.LISTENING: "green",
    PipelineState.AWAITING_FINAL: "cyan",
    PipelineState.RESOLVING: "yellow",
    PipelineState.ACTING: "yellow",
    PipelineState.SPEAKING: "magenta",
}


@dataclass(frozen=True, slots=True)
class SessionInfo:
    """What the session was started with; shown in the status bar."""

    asr_model: str = ""
    voice: str = ""
    intents: int = 0
    threshold: float = 0.0
    wake: str = ""


def short_name(path: str | None) -> str:
    """Extract the last path segment for display."""
    if not path:
        return "--"
    return path.rstrip("/").split("/")[-1]


def _ms(value: float | None) -> str:
    return f"{value:.0f} ms" if value is not None else "--"


def render_status_panel(status: PipelineStatus, info: SessionInfo) -> Panel:
    """Render the top status bar."""
    text = Text()
    text.append("State: ", style="bold")
    text.append(
        status.state.value.replace("_", " "),
        style=_STATE_STYLES.get(status.state, "white"),
    )
    text.append(" | ")
    text.append(f"ASR: {short_name(info.asr_model)}")
    text.append(" | ")
    text.append(f"Voice: {short_name(info.voice)}")
    text.append(" | ")
    text.append(f"Intents: {info.intents} @ {info.threshold:.2f}")
    if info.wake:
        text.append(" | ")
        text.append(f"Wake: {info.wake}")
    return Panel(text, title="hark", padding=(0, 1))


def render_history_panel(status: PipelineStatus) -> Panel:
    """Render past turns and the partial transcript."""
    body = Text()
    for turn in status.history:
        body.append("> ", style="bold green")
        body.append(turn.heard)
        body.append("\n")
        if turn.intent_id:
            body.append("  Intent: ", style="cyan")
            body.append(turn.intent_id)
            if turn.score is not None:
                body.append(f" ({turn.score:.2f})", style="dim")
            body.append("\n")
        body.append("  Reply: ", style="cyan")
        body.append(turn.reply or "--")
        if turn.interrupted:
            body.append(" [interrupted]", style="yellow")
        body.append("\n\n")

    if status.pending:
        body.append("Queued: ", style="yellow")
        body.append(status.pending)
        body.append("\n")
    if status.partial:
        body.append("... ", style="dim")
        body.append(status.partial, style="dim")
        body.append("\n")

    if not body.plain:
        body.append("Waiting for speech...", style="dim")
    return Panel(body, title="Conversation", padding=(0, 1))


def render_stats_panel(status: PipelineStatus) -> Panel:
    """Render the stats table."""
    stats = Table.grid(expand=True, padding=(0, 1))
    stats.add_column(justify="right", style="cyan")
    stats.add_column()
    stats.add_row("Queue", str(status.queue_size))
    stats.add_row("Dropped", str(status.dropped_frames))
    stats.add_row("Faults", str(status.recognizer_faults))
    stats.add_row("ASR", _ms(status.asr_ms))
    stats.add_row("Resolve", _ms(status.resolve_ms))
    stats.add_row("Action", _ms(status.dispatch_ms))
    return Panel(stats, title="Stats", padding=(0, 1))


def render_layout(status: PipelineStatus, info: SessionInfo) -> Layout:
    """Compose the full terminal layout from state."""
    layout = Layout()
    layout.split_column(
        Layout(render_status_panel(status, info), name="status", size=3),
        Layout(render_history_panel(status), name="history", ratio=2),
        Layout(render_stats_panel(status), name="stats", size=8),
    )
    return layout
