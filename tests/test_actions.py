"""Tests for hark.actions: registry, built-in handlers and dispatch."""

from __future__ import annotations

import sys
from datetime import datetime

import numpy as np
import pytest

from hark import actions
from hark.actions import (
    ActionDispatcher,
    ActionRegistry,
    ResponseConfig,
    fill_template,
    run_command,
)
from hark.catalog import parse_catalog
from hark.errors import DispatchFailure
from hark.types import Action, ActionContext, IntentExemplar, IntentMatch, NoMatch


def match(intent_id: str, slots: dict | None = None, text: str = "") -> IntentMatch:
    exemplar = IntentExemplar(text, np.zeros(2, np.float32), intent_id, 0)
    return IntentMatch(
        intent_id=intent_id, score=0.9, exemplar=exemplar, text=text, slots=slots or {}
    )


def dispatcher_for(handler, response: str = "", error_response=None) -> ActionDispatcher:
    registry = ActionRegistry()
    registry.register(
        Action("act", handler, response=response, error_response=error_response)
    )
    return ActionDispatcher(registry, {"intent": "act"})


class TestFillTemplate:
    def test_fills_values(self) -> None:
        assert fill_template("Lights on in the {room}.", {"room": "kitchen"}) == (
            "Lights on in the kitchen."
        )

    def test_missing_values_render_empty(self) -> None:
        assert fill_template("Hello {name}", {}) == "Hello"

    def test_bad_template_is_spoken_raw(self) -> None:
        assert fill_template("broken {", {}) == "broken {"

    def test_bad_field_lookup_is_spoken_raw(self) -> None:
        assert fill_template("In {room[x]}", {"room": "kitchen"}) == "In {room[x]}"


class TestRegistry:
    def test_duplicate_is_rejected(self) -> None:
        registry = ActionRegistry()
        registry.register(Action("a", actions.respond))
        with pytest.raises(ValueError):
            registry.register(Action("a", actions.respond))

    def test_from_catalog(self, catalog) -> None:
        registry = ActionRegistry.from_catalog(catalog)
        assert len(registry) == 3
        assert "time" in registry
        assert registry.get("time").response == "It's {time}."

    def test_unknown_handler_is_skipped(self) -> None:
        catalog = parse_catalog(
            {
                "intents": {"a": {"examples": ["hi"], "action": "x"}},
                "actions": {"x": {"handler": "no.such.handler"}},
            }
        )
        assert len(ActionRegistry.from_catalog(catalog)) == 0

    def test_custom_handlers(self) -> None:
        catalog = parse_catalog(
            {
                "intents": {"a": {"examples": ["hi"], "action": "x"}},
                "actions": {"x": {"handler": "greet"}},
            }
        )
        registry = ActionRegistry.from_catalog(catalog, {"greet": lambda ctx: "Hi!"})
        assert [a.action_id for a in registry] == ["x"]


class TestDispatch:
    def test_no_match_is_not_understood(self, dispatcher: ActionDispatcher) -> None:
        phrase = dispatcher.dispatch(NoMatch("what is the capital of narnia", 0.4))
        assert phrase.text == ResponseConfig().not_understood
        assert not phrase.is_error

    def test_respond_speaks_template(self, dispatcher: ActionDispatcher) -> None:
        phrase = dispatcher.dispatch(match("turn_on_light"))
        assert phrase.text == "Turning on the light."
        assert phrase.action_id == "lights.on"

    def test_unactionable_intent(self, dispatcher: ActionDispatcher) -> None:
        assert dispatcher.unactionable_intents() == ["open_garage"]
        phrase = dispatcher.dispatch(match("open_garage"))
        assert phrase.text == ResponseConfig().not_actionable

    def test_clock_time(self, dispatcher, monkeypatch) -> None:
        monkeypatch.setattr(actions, "_now", lambda: datetime(2024, 3, 5, 7, 5))
        assert dispatcher.dispatch(match("tell_time")).text == "It's 7:05 AM."

    def test_clock_day_and_date(self, monkeypatch) -> None:
        monkeypatch.setattr(actions, "_now", lambda: datetime(2024, 3, 5, 7, 5))
        ctx = ActionContext("a", "i", "")
        assert actions.clock_day(ctx) == {"day": "Tuesday"}
        assert actions.clock_date(ctx) == {"date": "March 5, 2024"}

    def test_handler_string_is_spoken(self) -> None:
        phrase = dispatcher_for(lambda ctx: "  Done it.  ").dispatch(match("intent"))
        assert phrase.text == "Done it."

    def test_handler_mapping_fills_template(self) -> None:
        dispatcher = dispatcher_for(
            lambda ctx: {"level": 40}, response="{room} dimmed to {level}%."
        )
        phrase = dispatcher.dispatch(match("intent", {"room": "Kitchen"}))
        assert phrase.text == "Kitchen dimmed to 40%."

    def test_bad_template_still_yields_a_phrase(self) -> None:
        dispatcher = dispatcher_for(actions.respond, response="In {room[x]}")
        phrase = dispatcher.dispatch(match("intent", {"room": "kitchen"}))
        assert phrase.text == "In {room[x]}"
        assert not phrase.is_error

    def test_empty_response_acknowledges(self) -> None:
        phrase = dispatcher_for(actions.respond).dispatch(match("intent"))
        assert phrase.text == "Okay."

    def test_handler_failure_apologizes(self) -> None:
        def broken(ctx):
            raise RuntimeError("relay offline")

        phrase = dispatcher_for(broken).dispatch(match("intent"))
        assert phrase.is_error
        assert phrase.text == ResponseConfig().apology

    def test_handler_failure_uses_error_response(self) -> None:
        def broken(ctx):
            raise DispatchFailure(ctx.action_id, "relay offline")

        dispatcher = dispatcher_for(
            broken, error_response="I couldn't reach the {room} lights."
        )
        phrase = dispatcher.dispatch(match("intent", {"room": "bedroom"}))
        assert phrase.is_error
        assert phrase.text == "I couldn't reach the bedroom lights."

    def test_custom_responses(self, catalog) -> None:
        dispatcher = ActionDispatcher(
            ActionRegistry(),
            catalog.intent_actions(),
            ResponseConfig(not_understood="Pardon?"),
        )
        assert dispatcher.dispatch(NoMatch("x")).text == "Pardon?"


class TestRunCommand:
    def ctx(self, command, **slots) -> ActionContext:
        return ActionContext("cmd", "i", "", slots=slots, options={"command": command})

    def test_output_with_slot_arguments(self) -> None:
        ctx = self.ctx(
            [sys.executable, "-c", "import sys; print(sys.argv[1])", "{room}"],
            room="kitchen",
        )
        assert run_command(ctx) == {"output": "kitchen"}

    def test_nonzero_exit_fails(self) -> None:
        with pytest.raises(DispatchFailure):
            run_command(self.ctx([sys.executable, "-c", "raise SystemExit(3)"]))

    def test_missing_executable_fails(self) -> None:
        with pytest.raises(DispatchFailure):
            run_command(self.ctx(["/nonexistent/hark-test-binary"]))

    @pytest.mark.parametrize("command", [None, [], "echo hi", [1, 2]])
    def test_invalid_command_fails(self, command) -> None:
        with pytest.raises(DispatchFailure):
            run_command(self.ctx(command))
