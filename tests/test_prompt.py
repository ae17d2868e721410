"""PromptRenderer tests — authored prompts with collected answers in scope."""

import logging

import pytest

from leadflow_engine.prompt import PromptRenderer


@pytest.fixture
def renderer():
    """Fresh PromptRenderer for each test."""
    return PromptRenderer()


# =====================================================================
# Authored prompts
# =====================================================================


class TestRenderPrompt:

    def test_plain_text_unchanged(self, renderer):
        assert renderer.render_prompt("What's your budget?") == "What's your budget?"

    def test_answers_in_scope(self, renderer):
        out = renderer.render_prompt(
            "Thanks {{ answers.name }}! What's your budget?", {"name": "Dana"},
        )
        assert out == "Thanks Dana! What's your budget?"

    def test_missing_answer_renders_empty(self, renderer):
        out = renderer.render_prompt("Thanks{% if answers.name %}, {{ answers.name }}{% endif %}!")
        assert out == "Thanks!"

    def test_syntax_error_returns_raw_prompt(self, renderer, caplog):
        raw = "Hello {{ answers.name "
        with caplog.at_level(logging.WARNING, logger="leadflow_engine.prompt.renderer"):
            assert renderer.render_prompt(raw) == raw
        assert "Prompt template error" in caplog.text

    def test_repo_timeline_prompt(self, renderer, store):
        prompt = store.get_config("buy").get_state("q_timeline").prompt
        out = renderer.render_prompt(prompt, {"location": "Austin"})
        assert out.startswith("Thanks, Austin is a great area!"), out
        assert renderer.render_prompt(prompt, {}).startswith("Thanks! When")


    def test_sandbox_hides_internals(self, renderer):
        assert renderer.render_prompt("Hi{{ answers.__class__ }}!", {}) == "Hi!"
