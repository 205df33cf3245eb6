"""Tests for output composers."""

import pytest
from pydantic import BaseModel

from easyflow.exceptions import WorkflowExecutionError
from easyflow.runtime import Scope
from easyflow.workflow import WorkflowBuilder, as_list, as_map, as_model, as_model_list, mapping_of


class Story(BaseModel):
    story: str
    score: float = 0.0


class Chapter(BaseModel):
    title: str
    text: str | None = None


class TestComposers:
    """Tests for as_map, as_list, as_model and as_model_list."""

    def test_as_map_and_as_list(self):
        scope = Scope({"story": "s", "score": 0.5})

        assert as_map("score", "story")(scope) == {"score": 0.5, "story": "s"}
        assert as_map()(scope) is None
        assert as_list("story", "missing")(scope) == ["s", None]

    def test_composer_names(self):
        assert as_map("a", "b").__name__ == "as_map(a, b)"
        assert as_model(Story).__name__ == "as_model(Story)"

    def test_as_model(self):
        """Test that fields are filled from same-named scope values."""
        scope = Scope({"story": "Once", "score": 0.7, "unrelated": 1})

        story = as_model(Story)(scope)

        assert story == Story(story="Once", score=0.7)

    def test_as_model_skips_none(self):
        """Test that None values fall back to field defaults."""
        story = as_model(Story)(Scope({"story": "Once", "score": None}))

        assert story.score == 0.0

    def test_as_model_list(self):
        """Test one model per index, with shorter lists leaving fields unset."""
        scope = Scope({"titles": ["One", "Two"], "texts": ["first"]})

        chapters = as_model_list(
            Chapter, mapping_of("titles", "title"), mapping_of("texts", "text")
        )(scope)

        assert chapters == [Chapter(title="One", text="first"), Chapter(title="Two")]

    def test_as_model_list_scalar_value(self):
        chapters = as_model_list(Chapter, mapping_of("title"))(Scope({"title": "Only"}))

        assert chapters == [Chapter(title="Only")]

    def test_pipeline_output_composer(self):
        pipeline = (
            WorkflowBuilder(inputs=["topic"])
            .agent(lambda topic: f"About {topic}", "story")
            .agent(lambda story: 0.8, "score")
            .output(as_model(Story))
            .build()
        )

        assert pipeline(topic="kites") == Story(story="About kites", score=0.8)

    def test_composer_failure(self):
        """Test that validation errors surface as execution errors."""
        pipeline = WorkflowBuilder().set_state(score=1.0).output(as_model(Story)).build()

        with pytest.raises(WorkflowExecutionError):
            pipeline()
