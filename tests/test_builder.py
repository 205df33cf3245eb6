"""Tests for the fluent WorkflowBuilder and the statement tree."""

import pytest

from easyflow import RuntimeConfig
from easyflow.exceptions import CompilationError, MalformedWorkflowError
from easyflow.types import NodeKind
from easyflow.workflow import (
    Conditional,
    Group,
    Leaf,
    LineBreakpoint,
    Loop,
    Parallel,
    Sequence,
    Switch,
    WorkflowBuilder,
)


def write_story(topic: str) -> str:
    return f"A story about {topic}"


def score_story(story: str) -> float:
    return 0.5


class TestBuilderStack:
    """Tests for block nesting."""

    def test_balanced_blocks_build(self):
        """Test that balanced open/end calls build successfully."""
        pipeline = (
            WorkflowBuilder("story", inputs=["topic"])
            .agent(write_story, "story")
            .repeat(lambda s: True, max_iterations=2)
                .if_then(lambda s: True)
                    .agent(score_story, "score")
                .end()
            .end()
            .build()
        )

        assert pipeline.name == "story"

    def test_end_without_block(self):
        """Test that end() on an empty stack fails."""
        with pytest.raises(MalformedWorkflowError) as exc_info:
            WorkflowBuilder().agent(write_story, "story").end()

        assert exc_info.value.method == "end"

    def test_build_with_open_block(self):
        """Test that build() with an open block fails."""
        builder = WorkflowBuilder().repeat(max_iterations=2).agent(write_story, "story")

        with pytest.raises(MalformedWorkflowError) as exc_info:
            builder.build()

        assert "repeat" in str(exc_info.value)
        assert builder.depth == 1

    def test_depth_tracks_open_blocks(self):
        builder = WorkflowBuilder().do_parallel().group()

        assert builder.depth == 2
        builder.agent(write_story).end()
        assert builder.depth == 1

    def test_else_if_outside_conditional(self):
        with pytest.raises(MalformedWorkflowError):
            WorkflowBuilder().else_if(lambda s: True)

        with pytest.raises(MalformedWorkflowError):
            WorkflowBuilder().repeat(max_iterations=1).else_if(lambda s: True)

    def test_otherwise_outside_branching_block(self):
        with pytest.raises(MalformedWorkflowError):
            WorkflowBuilder().do_parallel().otherwise()

    def test_match_outside_switch(self):
        with pytest.raises(MalformedWorkflowError):
            WorkflowBuilder().if_then(lambda s: True).match("a")

    def test_leaf_before_first_match(self):
        """Test that a switch needs a case before statements."""
        with pytest.raises(MalformedWorkflowError):
            WorkflowBuilder().do_when(lambda s: "a").agent(write_story)

    def test_duplicate_otherwise(self):
        builder = WorkflowBuilder().if_then(lambda s: True).agent(write_story).otherwise()

        with pytest.raises(MalformedWorkflowError):
            builder.otherwise()

    def test_else_if_after_otherwise(self):
        builder = WorkflowBuilder().if_then(lambda s: True).agent(write_story).otherwise()

        with pytest.raises(MalformedWorkflowError):
            builder.else_if(lambda s: False)

    def test_duplicate_switch_keys(self):
        """Test that switch keys must be unique across cases."""
        builder = WorkflowBuilder().do_when(lambda s: "a").match("a", "b").agent(write_story)

        with pytest.raises(MalformedWorkflowError):
            builder.match("b")

        with pytest.raises(MalformedWorkflowError):
            builder.match("c", "c")

    def test_empty_loop_and_group(self):
        with pytest.raises(MalformedWorkflowError):
            WorkflowBuilder().repeat(max_iterations=2).end()

        with pytest.raises(MalformedWorkflowError):
            WorkflowBuilder().group().end()

    def test_switch_without_cases(self):
        with pytest.raises(MalformedWorkflowError):
            WorkflowBuilder().do_when(lambda s: 1).end()

    @pytest.mark.parametrize("bound", [0, -1, 101])
    def test_loop_bounds(self, bound):
        """Test that loop bounds outside 1..limit are rejected."""
        with pytest.raises(MalformedWorkflowError):
            WorkflowBuilder().repeat(max_iterations=bound)

    def test_loop_limit_from_config(self):
        """Test that the accepted bound follows the configuration."""
        builder = WorkflowBuilder(config=RuntimeConfig(max_iterations_limit=3))

        builder.repeat(max_iterations=3).agent(write_story).end()
        with pytest.raises(MalformedWorkflowError):
            builder.repeat(max_iterations=4)

    def test_set_state_requires_values(self):
        with pytest.raises(MalformedWorkflowError):
            WorkflowBuilder().set_state()

        with pytest.raises(MalformedWorkflowError):
            WorkflowBuilder().set_state(lambda: {"a": 1}, b=2)


class TestTreeShape:
    """Tests for the frozen statement tree."""

    def test_node_kinds_and_nesting(self):
        """Test that blocks are attached to the enclosing container."""
        tree = (
            WorkflowBuilder()
            .agent(write_story, "story")
            .if_then(lambda s: True)
                .agent(score_story, "score")
            .else_if(lambda s: False)
                .set_state(status="maybe")
            .otherwise()
                .set_state(status="no")
            .end()
            .do_when(lambda s: s.read("status"))
                .match("yes", "ok")
                    .agent(write_story)
                .otherwise()
                    .agent(score_story)
            .end()
            .do_parallel("both")
                .agent(write_story, "a")
                .agent(write_story, "b")
            .end()
            .repeat(max_iterations=2)
                .agent(score_story, "score")
            .end()
            .group()
                .agent(write_story, "story")
            .end()
            .breakpoint("reached {{story}}")
            .tree()
        )

        assert isinstance(tree, Sequence)
        kinds = [child.kind for child in tree.children]
        assert kinds == [
            NodeKind.LEAF,
            NodeKind.CONDITIONAL,
            NodeKind.SWITCH,
            NodeKind.PARALLEL,
            NodeKind.LOOP,
            NodeKind.GROUP,
            NodeKind.LINE_BREAKPOINT,
        ]

        conditional = tree.children[1]
        assert isinstance(conditional, Conditional)
        assert len(conditional.branches) == 2
        assert conditional.otherwise is not None

        switch = tree.children[2]
        assert isinstance(switch, Switch)
        assert switch.cases[0].keys == ("yes", "ok")
        assert switch.case_for("ok") is switch.cases[0].body
        assert switch.case_for("other") is switch.default

        parallel = tree.children[3]
        assert isinstance(parallel, Parallel)
        assert parallel.output_name == "both"
        assert [c.output_name for c in parallel.children] == ["a", "b"]

        loop = tree.children[4]
        assert isinstance(loop, Loop)
        assert loop.max_iterations == 2
        assert isinstance(loop.body.children[0], Leaf)

        group = tree.children[5]
        assert isinstance(group, Group)
        assert group.output_name == "response"

        assert isinstance(tree.children[6], LineBreakpoint)

    def test_node_ids_unique(self):
        """Test that every node has a distinct id."""
        from easyflow.workflow.nodes import walk

        tree = (
            WorkflowBuilder()
            .agent(write_story)
            .if_then(lambda s: True)
                .agent(write_story)
            .end()
            .tree()
        )

        ids = [node.id for node in walk(tree)]
        assert len(ids) == len(set(ids))

    def test_default_loop_bound(self):
        """Test that repeat() without a bound uses the configured default."""
        tree = WorkflowBuilder(config=RuntimeConfig()).repeat().agent(write_story).end().tree()

        assert tree.children[0].max_iterations == 5

    def test_tree_is_rebuilt_identically(self):
        """Test that freezing twice yields equal trees."""
        builder = WorkflowBuilder().agent(write_story, "story").repeat(max_iterations=2).agent(score_story).end()

        assert builder.to_json() == builder.to_json()


class TestCompileChecks:
    """Tests for compile-time validation."""

    def test_empty_parallel(self):
        with pytest.raises(CompilationError):
            WorkflowBuilder().do_parallel().end().build()

    def test_parallel_duplicate_outputs_need_combiner(self):
        """Test that children writing the same key need an explicit combiner."""
        builder = (
            WorkflowBuilder()
            .do_parallel()
                .agent(write_story, "story")
                .agent(write_story, "story")
            .end()
        )

        with pytest.raises(CompilationError) as exc_info:
            builder.build()
        assert "story" in str(exc_info.value)

        builder_with_combiner = (
            WorkflowBuilder()
            .do_parallel(combiner=lambda s: s.read("story"))
                .agent(write_story, "story")
                .agent(write_story, "story")
            .end()
        )
        builder_with_combiner.build()

    def test_parallel_spread_outputs_checked(self):
        """Test that keys written by set_state children count as outputs."""
        builder = (
            WorkflowBuilder()
            .do_parallel()
                .set_state(status="draft")
                .set_state(status="final", reviewed=True)
            .end()
        )

        with pytest.raises(CompilationError) as exc_info:
            builder.build()
        assert "status" in str(exc_info.value)

    def test_parallel_spread_outputs_in_default_map(self):
        result = (
            WorkflowBuilder()
            .do_parallel("flags")
                .set_state(status="draft")
                .agent(write_story, "story")
            .end()
            .build()
            .run({"topic": "moss"})
        )

        assert result.output == {"status": "draft", "story": "A story about moss"}
