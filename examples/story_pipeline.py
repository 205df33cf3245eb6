"""Easyflow example: a story pipeline with a debugger attached.

Run: python examples/story_pipeline.py
"""

import random

from pydantic import BaseModel

from easyflow import (
    Breakpoint,
    BreakpointType,
    WorkflowBuilder,
    WorkflowDebugger,
    as_model,
    condition,
    configure_logging,
    shutdown_shared_executor,
    tool,
    toggle_breakpoints,
)


class Story(BaseModel):
    story: str
    score: float
    status: str


@tool(name="thesaurus")
def thesaurus(word: str) -> list[str]:
    return [word, word.upper()]


def write_story(topic: str) -> str:
    """Draft a story about the topic."""
    return f"Once upon a time there was a {topic}."


def edit_story(story: str) -> str:
    """Polish the draft."""
    synonyms = thesaurus(word="time")
    return story.replace("time", synonyms[-1])


def score_story(story: str) -> float:
    """Rate the draft between 0 and 1."""
    return round(random.uniform(0.5, 1.0), 2)


def write_title(topic: str) -> str:
    return f"The {topic.title()}"


def main():
    configure_logging("INFO")

    debugger = WorkflowDebugger("story")
    scores = debugger.add_breakpoint(
        Breakpoint(
            BreakpointType.AGENT_OUTPUT,
            "Story scored {{score}}",
            output_names=["score"],
            condition=lambda ctx: ctx["score"] >= 0.8,
            enabled=False,
        )
    )
    debugger.add_breakpoint(Breakpoint(BreakpointType.SESSION_STARTED, toggle_breakpoints(True, scores)))

    good_enough = condition(lambda s: s.read("score", 0) >= 0.8, "score >= 0.8")

    pipeline = (
        WorkflowBuilder("story", inputs=["topic"])
        .debugger(debugger)
        .do_parallel("drafts")
            .agent(write_story, "story")
            .agent(write_title, "title")
        .end()
        .repeat(condition(lambda s: s.read("score", 0) < 0.8, "score < 0.8"), max_iterations=3)
            .agent(edit_story, "story")
            .agent(score_story, "score")
        .end()
        .breakpoint("Finished editing: {{story}}")
        .if_then(good_enough)
            .set_state(status="published")
        .otherwise()
            .set_state(status="rejected")
        .end()
        .output(as_model(Story))
        .build()
    )

    print(pipeline.to_json())

    try:
        result = pipeline.run({"topic": "dragon"})
        print(f"Status: {result.status.value}")
        print(f"Output: {result.output}")
        print(debugger.summary())
    finally:
        shutdown_shared_executor()


if __name__ == "__main__":
    main()
