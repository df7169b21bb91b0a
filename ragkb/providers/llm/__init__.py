"""LLM answer providers.

Two concrete implementations of IAiAnswerer (ragkb/interfaces/ai_answerer.py):
    - OpenAIAnswerer    -- chat completions, gpt-4o-mini by default
    - AnthropicAnswerer -- Messages API, Claude Sonnet by default

main.py builds the one named by ``AI_PROVIDER``.
"""

from ragkb.providers.llm.anthropic_answerer import AnthropicAnswerer
from ragkb.providers.llm.openai_answerer import OpenAIAnswerer

__all__ = ["AnthropicAnswerer", "OpenAIAnswerer"]
