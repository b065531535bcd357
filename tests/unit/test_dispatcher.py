"""
Tests for action dispatch, debouncing and composite actions
"""

import json
from unittest.mock import patch

import pytest

from deckmap.actions.base import ActionResult, BaseAction
from deckmap.actions.dispatcher import DEBOUNCE_WINDOW, ActionDispatcher, KeyDebouncer
from deckmap.actions.multi import MAX_MULTI_ACTION_DEPTH, parse_multi_action_value
from deckmap.actions.registry import ActionRegistry
from deckmap.config.schema import ActionType


def steps(*items):
    return json.dumps({"steps": [{"actionType": t, "value": v} for t, v in items]})


@pytest.fixture
def dispatcher(fake_platform):
    return ActionDispatcher(fake_platform)


@pytest.fixture(autouse=True)
def no_step_pause():
    with patch("deckmap.actions.multi.time.sleep") as sleep:
        yield sleep


class TestKeyDebouncer:
    def test_rejects_presses_inside_window(self, clock):
        debouncer = KeyDebouncer(clock=clock)

        assert debouncer.accept(0)
        clock.advance(0.1)
        assert not debouncer.accept(0)
        clock.advance(DEBOUNCE_WINDOW)
        assert debouncer.accept(0)

    def test_rejected_press_does_not_extend_window(self, clock):
        debouncer = KeyDebouncer(clock=clock)

        debouncer.accept(3)
        clock.advance(0.2)
        assert not debouncer.accept(3)
        clock.advance(0.06)
        # 0.26s after the accepted press
        assert debouncer.accept(3)

    def test_keys_are_independent(self, clock):
        debouncer = KeyDebouncer(clock=clock)
        assert debouncer.accept(0)
        assert debouncer.accept(1)

    def test_reset(self, clock):
        debouncer = KeyDebouncer(clock=clock)
        debouncer.accept(0)
        debouncer.reset()
        assert debouncer.accept(0)


class TestActionDispatcher:
    def test_url_value_overrides_tag(self, dispatcher, fake_platform):
        result = dispatcher.execute("command", "https://example.com")
        assert result.ok
        assert fake_platform.opened == ["https://example.com"]
        assert fake_platform.launched == []

    def test_unknown_tag_runs_as_command(self, dispatcher, fake_platform):
        result = dispatcher.execute("page", "calc.exe")
        assert result == ActionResult.success("Command started: calc.exe")

    def test_exceptions_become_failures(self, fake_platform):
        class ExplodingAction(BaseAction):
            action_type = ActionType.COMMAND

            def execute(self, context, value):
                raise RuntimeError("boom")

        registry = ActionRegistry()
        registry.register(ExplodingAction)

        result = ActionDispatcher(fake_platform, registry).execute("command", "x")

        assert result == ActionResult.failure("Action failed: boom")

    def test_platform_restriction(self, fake_platform):
        class WindowsOnly(BaseAction):
            action_type = ActionType.COMMAND
            supported_platforms = ["windows"]

            def execute(self, context, value):
                return ActionResult.success("ran")

        registry = ActionRegistry()
        registry.register(WindowsOnly)
        fake_platform.name = "generic"

        result = ActionDispatcher(fake_platform, registry).execute("command", "x")

        assert not result.ok
        assert "unsupported on this platform" in result.reason

    def test_key_index_reaches_context(self, fake_platform):
        seen = {}

        class Recording(BaseAction):
            action_type = ActionType.COMMAND

            def execute(self, context, value):
                seen["key"] = context.key_index
                seen["depth"] = context.depth
                return ActionResult.success("ok")

        registry = ActionRegistry()
        registry.register(Recording)
        ActionDispatcher(fake_platform, registry).execute("command", "x", key_index=4)

        assert seen == {"key": 4, "depth": 0}


class TestMultiAction:
    def test_parse_filters_nested_composites(self):
        value = json.dumps(
            {
                "steps": [
                    {"actionType": "multi_action", "value": "{}"},
                    {"actionType": "bogus", "value": "calc"},
                    "junk",
                    {"actionType": "url"},
                ]
            }
        )
        assert parse_multi_action_value(value) == [
            {"actionType": "command", "value": "calc"},
            {"actionType": "url", "value": ""},
        ]

    def test_parse_garbage(self):
        assert parse_multi_action_value("not json") == []
        assert parse_multi_action_value('{"steps": 3}') == []
        assert parse_multi_action_value("") == []

    def test_runs_steps_in_order(self, dispatcher, fake_platform, no_step_pause):
        result = dispatcher.execute("multi_action", steps(("command", "a.exe"), ("url", "https://b.example"), ("app", "c")))

        assert result == ActionResult.success("Multi-action done (3 step(s))")
        assert fake_platform.launched == [["a.exe"], ["c"]]
        assert fake_platform.opened == ["https://b.example"]
        # Pause between steps only
        assert no_step_pause.call_count == 2
        no_step_pause.assert_called_with(0.04)

    def test_stops_at_first_failure(self, dispatcher, fake_platform):
        result = dispatcher.execute(
            "multi_action", steps(("command", "a.exe"), ("key_press", "NOPE"), ("command", "never.exe"))
        )

        assert result == ActionResult.failure("Multi-action step 2: Invalid key (e.g. F1, DELETE, !, a, 5).")
        assert fake_platform.launched == [["a.exe"]]

    def test_empty(self, dispatcher):
        assert dispatcher.execute("multi_action", "") == ActionResult.failure("Multi-action is empty.")
        assert dispatcher.execute("multi_action", steps(("multi_action", "{}"))) == ActionResult.failure(
            "Multi-action is empty."
        )

    def test_depth_limit(self, dispatcher, fake_platform):
        value = steps(("command", "a.exe"))

        assert dispatcher.execute("multi_action", value, depth=MAX_MULTI_ACTION_DEPTH - 1).ok
        assert dispatcher.execute("multi_action", value, depth=MAX_MULTI_ACTION_DEPTH) == ActionResult.failure(
            "Multi-action nested too deeply."
        )

    def test_steps_run_one_level_deeper(self, fake_platform):
        depths = []

        class Recording(BaseAction):
            action_type = ActionType.COMMAND

            def execute(self, context, value):
                depths.append(context.depth)
                return ActionResult.success("ok")

        registry = ActionRegistry()
        registry.auto_discover()
        registry.register(Recording)

        ActionDispatcher(fake_platform, registry).execute("multi_action", steps(("command", "x")), depth=1)

        assert depths == [2]
