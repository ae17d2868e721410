"""Prompt rendering.

Provides ``PromptRenderer``, a Jinja2-based renderer for authored state
prompts with the collected answers in scope.
"""

from leadflow_engine.prompt.renderer import PromptRenderer

__all__ = ["PromptRenderer"]
