"""Action registry, built-in handlers and the dispatcher.

A handler receives an ActionContext and may return:

- ``None``: speak the action's response template filled with the slots,
- a ``str``: speak it as-is,
- a mapping: merge it into the slot values, then fill the template.

Handler failures never escape ``dispatch``; they become the action's error
phrase so the user always hears something back.
"""

import subprocess
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from hark.catalog import IntentCatalog
from hark.constants import (
    DEFAULT_ACKNOWLEDGEMENT,
    DEFAULT_APOLOGY,
    DEFAULT_COMMAND_TIMEOUT_S,
    DEFAULT_NOT_ACTIONABLE,
    DEFAULT_NOT_UNDERSTOOD,
)
from hark.env import LOGGER
from hark.errors import DispatchFailure
from hark.types import (
    Action,
    ActionContext,
    Handler,
    HandlerResult,
    IntentMatch,
    NoMatch,
    ResponsePhrase,
)


@dataclass(frozen=True, slots=True)
class ResponseConfig:
    """Fixed phrases for the outcomes that have no action of their own."""

    not_understood: str = DEFAULT_NOT_UNDERSTOOD
    not_actionable: str = DEFAULT_NOT_ACTIONABLE
    apology: str = DEFAULT_APOLOGY


class _Blank(dict):
    def __missing__(self, key: str) -> str:
        return ""


def fill_template(template: str, values: Mapping[str, Any]) -> str:
    """Format *template* with *values*; unknown placeholders render empty."""
    try:
        return template.format_map(_Blank(values)).strip()
    except (ValueError, IndexError, KeyError, AttributeError, TypeError) as exc:
        LOGGER.warning("Bad response template %r: %s", template, exc)
        return template.strip()


# ---------------------------------------------------------------------------
# Built-in handlers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now()


def respond(ctx: ActionContext) -> HandlerResult:
    """Speak the template; no side effect."""
    return None


def clock_time(ctx: ActionContext) -> HandlerResult:
    now = _now()
    return {"time": now.strftime("%I:%M %p").lstrip("0")}


def clock_day(ctx: ActionContext) -> HandlerResult:
    return {"day": _now().strftime("%A")}


def clock_date(ctx: ActionContext) -> HandlerResult:
    now = _now()
    return {"date": f"{now:%B} {now.day}, {now.year}"}


def run_command(ctx: ActionContext) -> HandlerResult:
    """Run the configured argv; slot values may be used as ``{placeholders}``.

    The command runs without a shell. A non-zero exit status is a failure.
    Its trimmed stdout is available to the template as ``{output}``.
    """
    argv = ctx.options.get("command")
    if (
        not isinstance(argv, list)
        or not argv
        or not all(isinstance(a, str) for a in argv)
    ):
        raise DispatchFailure(ctx.action_id, "'command' must be a list of strings")

    timeout = float(ctx.options.get("timeout", DEFAULT_COMMAND_TIMEOUT_S))
    args = [fill_template(a, ctx.slots) for a in argv]
    try:
        proc = subprocess.run(
            args, capture_output=True, text=True, timeout=timeout, check=False
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise DispatchFailure(ctx.action_id, str(exc)) from exc
    if proc.returncode != 0:
        raise DispatchFailure(
            ctx.action_id,
            f"exit status {proc.returncode}: {proc.stderr.strip()}",
        )
    return {"output": proc.stdout.strip()}


BUILTIN_HANDLERS: Mapping[str, Handler] = {
    "respond": respond,
    "clock.time": clock_time,
    "clock.day": clock_day,
    "clock.date": clock_date,
    "command": run_command,
}

# Used when the catalog gives a built-in action no response of its own.
BUILTIN_RESPONSES: Mapping[str, str] = {
    "clock.time": "It's {time}.",
    "clock.day": "It's {day}.",
    "clock.date": "It's {date}.",
}


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ActionRegistry:
    """Actions by identifier, registered once at startup."""

    __slots__ = ("_actions",)

    def __init__(self) -> None:
        self._actions: dict[str, Action] = {}

    def register(self, action: Action) -> None:
        if action.action_id in self._actions:
            raise ValueError(f"action {action.action_id!r} already registered")
        self._actions[action.action_id] = action

    def get(self, action_id: str) -> Action | None:
        return self._actions.get(action_id)

    def __contains__(self, action_id: object) -> bool:
        return action_id in self._actions

    def __len__(self) -> int:
        return len(self._actions)

    def __iter__(self) -> Iterator[Action]:
        return iter(self._actions.values())

    @classmethod
    def from_catalog(
        cls,
        catalog: IntentCatalog,
        handlers: Mapping[str, Handler] | None = None,
    ) -> "ActionRegistry":
        """Bind catalog action definitions to handler functions.

        Actions naming an unknown handler are skipped with a warning.
        """
        available = {**BUILTIN_HANDLERS, **(handlers or {})}
        registry = cls()
        for spec in catalog.actions:
            handler = available.get(spec.handler)
            if handler is None:
                LOGGER.warning(
                    "Catalog: action %r uses unknown handler %r; skipped",
                    spec.action_id,
                    spec.handler,
                )
                continue
            registry.register(
                Action(
                    action_id=spec.action_id,
                    handler=handler,
                    response=spec.response
                    or BUILTIN_RESPONSES.get(spec.handler, ""),
                    error_response=spec.error_response,
                    options=dict(spec.options),
                )
            )
        return registry


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class ActionDispatcher:
    """Turns a resolution outcome into a phrase to speak."""

    def __init__(
        self,
        registry: ActionRegistry,
        intent_actions: Mapping[str, str],
        responses: ResponseConfig | None = None,
    ) -> None:
        self._registry = registry
        self._intent_actions = dict(intent_actions)
        self._responses = responses or ResponseConfig()
        for intent_id in self.unactionable_intents():
            LOGGER.warning(
                "Intent %r has no registered action %r; it will answer %r",
                intent_id,
                self._intent_actions[intent_id],
                self._responses.not_actionable,
            )

    @property
    def responses(self) -> ResponseConfig:
        return self._responses

    def unactionable_intents(self) -> list[str]:
        """Intents whose action is not in the registry."""
        return [
            intent_id
            for intent_id, action_id in self._intent_actions.items()
            if action_id not in self._registry
        ]

    def dispatch(self, match: IntentMatch | NoMatch) -> ResponsePhrase:
        if isinstance(match, NoMatch):
            return ResponsePhrase(self._responses.not_understood)

        action_id = self._intent_actions.get(match.intent_id)
        action = self._registry.get(action_id) if action_id else None
        if action is None:
            LOGGER.warning("Intent %r is not actionable", match.intent_id)
            return ResponsePhrase(self._responses.not_actionable, action_id)

        ctx = ActionContext(
            action_id=action.action_id,
            intent_id=match.intent_id,
            text=match.text,
            slots=match.slots,
            options=action.options,
        )
        try:
            result = action.handler(ctx)
        except Exception as exc:
            failure = (
                exc
                if isinstance(exc, DispatchFailure)
                else DispatchFailure(action.action_id, repr(exc))
            )
            LOGGER.error("Action failed: %s", failure)
            template = action.error_response or self._responses.apology
            return ResponsePhrase(
                fill_template(template, match.slots),
                action.action_id,
                is_error=True,
            )

        return ResponsePhrase(self._render(action, match, result), action.action_id)

    def _render(
        self, action: Action, match: IntentMatch, result: HandlerResult
    ) -> str:
        if isinstance(result, str) and result.strip():
            return result.strip()
        values: dict[str, Any] = dict(match.slots)
        if isinstance(result, Mapping):
            values.update(result)
        text = fill_template(action.response, values) if action.response else ""
        return text or DEFAULT_ACKNOWLEDGEMENT
