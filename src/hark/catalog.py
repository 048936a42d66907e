"""Intent catalog loading and validation.

The catalog is a JSON document mapping intent identifiers to exemplar
phrases and an action, plus the action definitions themselves::

    {
      "intents": {
        "turn_on_light": {
          "examples": ["turn on the light", {"text": "lights on"}],
          "action": "lights.on",
          "slots": "(?P<room>kitchen|bedroom)"
        }
      },
      "actions": {
        "lights.on": {"handler": "respond", "response": "Turning on the light."}
      }
    }

Malformed entries are dropped one by one with a warning so that a single
typo does not take the assistant down. A catalog with no usable intent is
fatal: without intents there is no possible behavior.
"""

import json
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

from hark.env import LOGGER
from hark.errors import CatalogError, FatalStartupFailure

# Greeting, weather, time, day and date; used when the data directory has none.
BUNDLED_CATALOG: Final = Path(__file__).parent / "data" / "catalog.json"


@dataclass(frozen=True, slots=True)
class ExampleSpec:
    """One exemplar phrase, optionally with its own slot pattern."""

    text: str
    slots: str | None = None


@dataclass(frozen=True, slots=True)
class IntentSpec:
    intent_id: str
    examples: tuple[ExampleSpec, ...]
    action: str
    slots: str | None = None


@dataclass(frozen=True, slots=True)
class ActionSpec:
    action_id: str
    handler: str
    response: str = ""
    error_response: str | None = None
    options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class IntentCatalog:
    """Validated catalog, in declaration order."""

    intents: tuple[IntentSpec, ...]
    actions: tuple[ActionSpec, ...] = ()
    warnings: tuple[str, ...] = ()

    def intent_actions(self) -> dict[str, str]:
        """Map of intent identifier to action identifier."""
        return {i.intent_id: i.action for i in self.intents}

    def phrases(self) -> Iterator[str]:
        for intent in self.intents:
            for example in intent.examples:
                yield example.text


def _check_pattern(pattern: Any, where: str) -> str | None:
    if pattern is None:
        return None
    if not isinstance(pattern, str) or not pattern:
        raise CatalogError(f"{where}: 'slots' must be a non-empty regex string")
    try:
        compiled = re.compile(pattern)
    except re.error as exc:
        raise CatalogError(f"{where}: invalid slot pattern: {exc}") from exc
    if not compiled.groupindex:
        raise CatalogError(f"{where}: slot pattern has no named groups")
    return pattern


def _parse_example(raw: Any, where: str) -> ExampleSpec:
    if isinstance(raw, str):
        text, slots = raw, None
    elif isinstance(raw, dict):
        text, slots = raw.get("text"), raw.get("slots")
    else:
        raise CatalogError(f"{where}: example must be a string or object")
    if not isinstance(text, str) or not text.strip():
        raise CatalogError(f"{where}: example text is empty")
    return ExampleSpec(text=text.strip(), slots=_check_pattern(slots, where))


def _parse_intent(
    intent_id: Any, raw: Any, warnings: list[str]
) -> IntentSpec:
    if not isinstance(intent_id, str) or not intent_id.strip():
        raise CatalogError(f"intent {intent_id!r}: identifier must be a string")
    if not isinstance(raw, dict):
        raise CatalogError(f"intent {intent_id!r}: entry must be an object")

    action = raw.get("action")
    if not isinstance(action, str) or not action.strip():
        raise CatalogError(f"intent {intent_id!r}: missing 'action'")

    raw_examples = raw.get("examples")
    if isinstance(raw_examples, str):
        raw_examples = [raw_examples]
    if not isinstance(raw_examples, list) or not raw_examples:
        raise CatalogError(f"intent {intent_id!r}: 'examples' must be a list")

    examples: list[ExampleSpec] = []
    for n, raw_example in enumerate(raw_examples):
        try:
            examples.append(
                _parse_example(raw_example, f"intent {intent_id!r} example {n}")
            )
        except CatalogError as exc:
            warnings.append(str(exc))
    if not examples:
        raise CatalogError(f"intent {intent_id!r}: no valid examples")

    return IntentSpec(
        intent_id=intent_id,
        examples=tuple(examples),
        action=action.strip(),
        slots=_check_pattern(raw.get("slots"), f"intent {intent_id!r}"),
    )


def _parse_action(action_id: Any, raw: Any) -> ActionSpec:
    if not isinstance(action_id, str) or not action_id.strip():
        raise CatalogError(f"action {action_id!r}: identifier must be a string")
    if isinstance(raw, str):
        raw = {"handler": "respond", "response": raw}
    if not isinstance(raw, dict):
        raise CatalogError(f"action {action_id!r}: entry must be an object")

    handler = raw.get("handler", "respond")
    if not isinstance(handler, str) or not handler:
        raise CatalogError(f"action {action_id!r}: 'handler' must be a string")
    response = raw.get("response", "")
    error_response = raw.get("error_response")
    if not isinstance(response, str):
        raise CatalogError(f"action {action_id!r}: 'response' must be a string")
    if error_response is not None and not isinstance(error_response, str):
        raise CatalogError(
            f"action {action_id!r}: 'error_response' must be a string"
        )

    options = {
        k: v
        for k, v in raw.items()
        if k not in ("handler", "response", "error_response")
    }
    return ActionSpec(
        action_id=action_id,
        handler=handler,
        response=response,
        error_response=error_response,
        options=options,
    )


def parse_catalog(data: Any) -> IntentCatalog:
    """Validate a decoded catalog document.

    Raises FatalStartupFailure when no intent survives validation.
    """
    if not isinstance(data, dict):
        raise FatalStartupFailure("intent catalog must be a JSON object")

    warnings: list[str] = []
    intents: list[IntentSpec] = []
    raw_intents = data.get("intents", {})
    if not isinstance(raw_intents, dict):
        raise FatalStartupFailure("catalog 'intents' must be an object")
    for intent_id, raw in raw_intents.items():
        try:
            intents.append(_parse_intent(intent_id, raw, warnings))
        except CatalogError as exc:
            warnings.append(str(exc))

    actions: list[ActionSpec] = []
    raw_actions = data.get("actions", {})
    if not isinstance(raw_actions, dict):
        warnings.append("catalog 'actions' must be an object; ignored")
        raw_actions = {}
    for action_id, raw in raw_actions.items():
        try:
            actions.append(_parse_action(action_id, raw))
        except CatalogError as exc:
            warnings.append(str(exc))

    for warning in warnings:
        LOGGER.warning("Catalog: %s", warning)

    if not intents:
        raise FatalStartupFailure("intent catalog contains no valid intents")

    return IntentCatalog(
        intents=tuple(intents),
        actions=tuple(actions),
        warnings=tuple(warnings),
    )


def load_catalog(path: str | Path) -> IntentCatalog:
    """Read and validate the catalog file at *path*."""
    catalog_path = Path(path).expanduser()
    if not catalog_path.is_file():
        raise FatalStartupFailure(f"intent catalog not found: {catalog_path}")
    try:
        with open(catalog_path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise FatalStartupFailure(
            f"intent catalog {catalog_path} is not valid JSON: {exc}"
        ) from exc
    return parse_catalog(data)
