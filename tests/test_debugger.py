"""Tests for the workflow debugger: breakpoints, tracing and summaries."""

import json
import logging

import pytest

from easyflow import BreakpointType
from easyflow.debug import Breakpoint, WorkflowDebugger, actions
from easyflow.debug.debugger import KEY_NODE, KEY_OUTPUT, KEY_OUTPUT_NAME, KEY_TOOL, KEY_TOOL_REQUEST
from easyflow.exceptions import DelegateInvocationError
from easyflow.runtime import Tool
from easyflow.workflow import WorkflowBuilder


def write_story(topic: str) -> str:
    return f"A story about {topic}"


def score_story(story: str) -> float:
    return 0.9 if "dragons" in story else 0.3


def story_pipeline(debugger):
    return (
        WorkflowBuilder("story", inputs=["topic"], output_name="story")
        .debugger(debugger)
        .agent(write_story, "story")
        .agent(score_story, "score")
        .build()
    )


def recorder(events):
    """Action appending (type, context copy) to events."""

    def _action(bp, ctx):
        events.append((bp.type, dict(ctx)))

    return _action


class TestBreakpointFilters:
    """Tests for breakpoint matching."""

    def test_output_name_and_condition(self):
        """Test a score breakpoint firing only for high scores."""
        events = []
        debugger = WorkflowDebugger()
        debugger.add_breakpoint(
            Breakpoint(
                BreakpointType.AGENT_OUTPUT,
                recorder(events),
                output_names=["score"],
                condition=lambda ctx: ctx["score"] >= 0.8,
            )
        )
        pipeline = story_pipeline(debugger)

        pipeline(topic="dragons")
        pipeline(topic="cats")

        assert len(events) == 1
        _, ctx = events[0]
        assert ctx["score"] == 0.9
        assert ctx[KEY_OUTPUT] == 0.9
        assert ctx[KEY_OUTPUT_NAME] == "score"
        assert ctx["topic"] == "dragons"

    def test_wildcard_output_names(self):
        assert Breakpoint(BreakpointType.AGENT_OUTPUT, "x", output_names=["story_*"]).matches(
            BreakpointType.AGENT_OUTPUT, "writer", "story_1"
        )
        assert not Breakpoint(BreakpointType.AGENT_OUTPUT, "x", output_names=["story_?"]).matches(
            BreakpointType.AGENT_OUTPUT, "writer", "story_12"
        )

    def test_unit_filter(self):
        """Test that unit filters accept names, units and functions."""
        events = []
        debugger = WorkflowDebugger()
        debugger.add_breakpoint(
            Breakpoint.builder(BreakpointType.AGENT_INPUT, recorder(events)).for_units(score_story).build()
        )

        story_pipeline(debugger)(topic="dragons")

        assert len(events) == 1
        assert events[0][1]["$unit"] == "score_story"

    def test_agent_input_ignores_output_names(self):
        bp = Breakpoint(BreakpointType.AGENT_INPUT, "x", output_names=["score"])

        assert bp.matches(BreakpointType.AGENT_INPUT, "write_story", None)
        assert not bp.matches(BreakpointType.AGENT_OUTPUT, "write_story", "story")

    def test_global_switch(self):
        """Test that disabling the debugger silences every breakpoint."""
        events = []
        debugger = WorkflowDebugger()
        debugger.add_breakpoint(Breakpoint(BreakpointType.AGENT_OUTPUT, recorder(events)))
        debugger.breakpoints_enabled = False

        story_pipeline(debugger)(topic="dragons")

        assert events == []
        assert len(debugger.get_agent_invocation_trace_entries()) == 2

    def test_registry(self):
        debugger = WorkflowDebugger()
        bp = debugger.add_breakpoint(Breakpoint(BreakpointType.SESSION_STARTED, "started"))

        assert bp.debugger is debugger
        assert debugger.breakpoints == [bp]

        debugger.remove_breakpoint(bp)
        assert debugger.breakpoints == []
        assert bp.debugger is None


class TestSessionLifecycle:
    """Tests for session events and breakpoint state restoration."""

    def test_toggle_on_session_start(self):
        """Test that breakpoints armed at session start are disarmed afterwards."""
        events = []
        debugger = WorkflowDebugger()
        watched = debugger.add_breakpoint(
            Breakpoint(BreakpointType.AGENT_OUTPUT, recorder(events), output_names=["story"], enabled=False)
        )
        debugger.add_breakpoint(
            Breakpoint(BreakpointType.SESSION_STARTED, actions.toggle_breakpoints(True, watched))
        )

        story_pipeline(debugger)(topic="dragons")

        assert len(events) == 1
        assert watched.enabled is False

    def test_failure_fires_failed_then_stopped(self):
        events = []
        debugger = WorkflowDebugger()
        for event in (BreakpointType.SESSION_STARTED, BreakpointType.SESSION_FAILED, BreakpointType.SESSION_STOPPED):
            debugger.add_breakpoint(Breakpoint(event, recorder(events)))

        def explode(topic: str) -> str:
            raise ValueError("boom")

        pipeline = WorkflowBuilder(inputs=["topic"]).debugger(debugger).agent(explode, "story").build()

        with pytest.raises(DelegateInvocationError):
            pipeline(topic="x")

        assert [t for t, _ in events] == [
            BreakpointType.SESSION_STARTED,
            BreakpointType.SESSION_FAILED,
            BreakpointType.SESSION_STOPPED,
        ]
        assert events[-1][1][KEY_OUTPUT] is None
        assert not debugger.started
        assert isinstance(debugger.failure, DelegateInvocationError)

        entry = debugger.get_agent_invocation_trace_entries()[0]
        assert isinstance(entry.failure, DelegateInvocationError)
        assert debugger.summary().endswith("✘ ERROR: ValueError: boom\n")

    def test_run_reports_failure_and_trace(self):
        debugger = WorkflowDebugger()

        def explode(story: str) -> str:
            raise ValueError("boom")

        result = (
            WorkflowBuilder("story", inputs=["topic"])
            .debugger(debugger)
            .agent(write_story, "story")
            .agent(explode, "review")
            .build()
            .run({"topic": "dragons"})
        )

        assert not result.success
        assert result.state["story"] == "A story about dragons"
        assert [e.unit_name for e in result.trace] == ["write_story", "explode"]
        assert result.session_id == debugger.session_id

    def test_action_error_is_swallowed(self, caplog):
        """Test that a failing action is logged and the session continues."""
        debugger = WorkflowDebugger()

        def broken(bp, ctx):
            raise KeyError("nope")

        debugger.add_breakpoint(Breakpoint(BreakpointType.AGENT_OUTPUT, broken))

        with caplog.at_level(logging.ERROR, logger="easyflow.debug.debugger"):
            assert story_pipeline(debugger)(topic="dragons") == "A story about dragons"

        assert "Breakpoint action for AGENT_OUTPUT failed" in caplog.text

    def test_archives_previous_sessions(self):
        debugger = WorkflowDebugger()
        pipeline = story_pipeline(debugger)

        pipeline(topic="dragons")
        first_session = debugger.session_id
        pipeline(topic="cats")

        archives = debugger.archives
        assert len(archives) == 1
        assert archives[0].session_id == first_session
        assert archives[0].inputs == {"topic": "dragons"}
        assert archives[0].result == "A story about dragons"
        assert debugger.inputs == {"topic": "cats"}


class TestTrace:
    """Tests for trace entries and summaries."""

    def test_one_entry_per_leaf(self):
        debugger = WorkflowDebugger()
        (
            WorkflowBuilder(inputs=["topic"])
            .debugger(debugger)
            .agent(write_story, "story")
            .breakpoint(lambda bp, ctx: None)
            .set_state(status="done")
            .repeat(max_iterations=2)
                .agent(score_story, "score")
            .end()
            .build()
        )(topic="dragons")

        entries = debugger.get_agent_invocation_trace_entries()
        assert [e.unit_name for e in entries] == ["write_story", "set_state", "score_story", "score_story"]
        assert entries[0].input == {"topic": "dragons"}
        assert entries[0].output_name == "story"
        assert entries[1].output_name == "status"
        assert all(e.completed for e in entries)

    def test_summary_format(self):
        debugger = WorkflowDebugger()
        (
            WorkflowBuilder(inputs=["topic"], output_name="story")
            .debugger(debugger)
            .agent(write_story, "story")
            .build()
        )(topic="dragons")

        assert debugger.summary() == (
            '↓ IN > "topic": dragons\n'
            "-----------------------\n"
            "      ↓ IN: {'topic': 'dragons'}\n"
            "1. ▷︎ write_story\n"
            '      ↓ OUT > "story": A story about dragons\n'
            "-----------------------\n"
            "◼ RESULT: A story about dragons\n"
        )

    def test_report(self):
        debugger = WorkflowDebugger()
        story_pipeline(debugger)(topic="dragons")

        report = json.loads(debugger.report_json())

        assert report["status"] == "completed"
        assert report["session_id"] == debugger.session_id
        assert report["completed"] == ["node-1", "node-2"]
        assert report["failed"] == []
        assert report["entries"][1]["output"] == 0.9

    def test_tool_invocations(self):
        """Test that tools called inside a leaf fire tool breakpoints and are traced."""
        events = []
        debugger = WorkflowDebugger()
        debugger.add_breakpoint(Breakpoint(BreakpointType.TOOL_INPUT, recorder(events)))
        debugger.add_breakpoint(Breakpoint(BreakpointType.TOOL_OUTPUT, recorder(events)))

        search = Tool(lambda query: [f"{query} facts"], name="web_search")

        def research(topic: str) -> str:
            return ", ".join(search(query=topic))

        (
            WorkflowBuilder(inputs=["topic"])
            .debugger(debugger)
            .agent(research, "notes")
            .build()
        )(topic="owls")

        assert [t for t, _ in events] == [BreakpointType.TOOL_INPUT, BreakpointType.TOOL_OUTPUT]
        assert events[0][1][KEY_TOOL] == "web_search"
        assert events[0][1][KEY_TOOL_REQUEST] == {"query": "owls"}

        entry = debugger.get_agent_invocation_trace_entries()[0]
        assert len(entry.tool_invocations) == 1
        assert entry.tool_invocations[0].result == ["owls facts"]
        assert entry.failed_tool_invocations == []
        assert "⚒ TOOL web_search" in debugger.summary()


class TestLineBreakpoints:
    """Tests for inline breakpoints."""

    def test_line_breakpoint_sees_scope(self):
        events = []
        debugger = WorkflowDebugger()
        builder = (
            WorkflowBuilder(inputs=["topic"])
            .debugger(debugger)
            .agent(write_story, "story")
            .breakpoint(recorder(events), condition=lambda ctx: "dragons" in ctx["story"])
        )
        pipeline = builder.build()

        pipeline(topic="dragons")
        pipeline(topic="cats")

        assert len(events) == 1
        _, ctx = events[0]
        assert ctx["story"] == "A story about dragons"
        assert ctx[KEY_NODE] == "node-2"
        assert builder.line_breakpoints[0] in debugger.breakpoints

    def test_line_breakpoint_does_not_change_result(self):
        """Test that the value before a line breakpoint stays the result."""
        pipeline = (
            WorkflowBuilder(inputs=["topic"])
            .debugger(WorkflowDebugger())
            .agent(write_story, "story")
            .breakpoint("story ready")
            .build()
        )

        assert pipeline(topic="moths") == "A story about moths"


class TestActions:
    """Tests for ready-made actions."""

    def test_log_action(self, caplog):
        debugger = WorkflowDebugger()
        debugger.add_breakpoint(
            Breakpoint(BreakpointType.AGENT_OUTPUT, "{{$outputName}} = {{$output}}", output_names=["score"])
        )

        with caplog.at_level(logging.INFO, logger="easyflow.debug.actions"):
            story_pipeline(debugger)(topic="dragons")

        assert "score = 0.9" in caplog.text

    def test_write_summary_on_stop(self, tmp_path):
        path = tmp_path / "summary.txt"
        debugger = WorkflowDebugger()
        debugger.add_breakpoint(Breakpoint(BreakpointType.SESSION_STOPPED, actions.write_summary(path)))

        story_pipeline(debugger)(topic="dragons")

        text = path.read_text(encoding="utf-8")
        assert "2. ▷︎ score_story" in text
        assert text.endswith("◼ RESULT: A story about dragons\n")

    def test_write_report_requires_debugger(self):
        bp = Breakpoint(BreakpointType.SESSION_STOPPED, actions.write_report("unused.json"))

        with pytest.raises(RuntimeError):
            bp.execute({})
