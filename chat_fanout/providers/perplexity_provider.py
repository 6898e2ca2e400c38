"""Perplexity provider: OpenAI-compatible chat completions on Perplexity's endpoint."""

from chat_fanout.constants import PERPLEXITY_BASE_URL

from .openai_provider import OpenAIChatProvider


class PerplexityChatProvider(OpenAIChatProvider):
    display_name = "Perplexity"
    base_url = PERPLEXITY_BASE_URL
