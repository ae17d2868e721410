"""PromptRenderer — Jinja2 rendering for authored state prompts.

Authored prompts may reference collected answers, e.g.
``"Thanks {{ answers.first_name }}! What's your budget?"``.  Names that are
not yet answered render as empty strings rather than failing the turn.
"""

from __future__ import annotations

import logging

import jinja2
from jinja2.sandbox import SandboxedEnvironment

logger = logging.getLogger(__name__)


class PromptRenderer:
    """Renders prompt strings from flow documents in a sandboxed environment."""

    def __init__(self) -> None:
        self._env = SandboxedEnvironment(undefined=jinja2.Undefined)

    def render_prompt(self, prompt: str, answers: dict[str, str] | None = None) -> str:
        """Render an authored prompt string with ``answers`` in scope.

        A prompt with a template syntax error is returned verbatim.
        """
        if "{" not in prompt:
            return prompt
        try:
            template = self._env.from_string(prompt)
        except jinja2.TemplateSyntaxError as exc:
            logger.warning("Prompt template error (%s); showing raw text: %r", exc, prompt)
            return prompt
        return template.render(answers=answers or {}).strip()
