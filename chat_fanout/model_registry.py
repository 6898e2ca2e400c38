"""Model identifier registry and provider-family routing."""

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType

from .errors import UnsupportedModel


class ProviderFamily(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    PERPLEXITY = "perplexity"


_OPENAI_MODELS = frozenset(
    {
        "gpt-4",
        "gpt-4-turbo",
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4.1",
        "gpt-4.1-mini",
        "gpt-4.1-nano",
        "gpt-3.5-turbo",
        "o1",
        "o1-mini",
        "o1-preview",
        "o3-mini",
    }
)

_ANTHROPIC_MODELS = frozenset(
    {
        "claude-3-haiku-20240307",
        "claude-3-sonnet-20240229",
        "claude-3-opus-20240229",
        "claude-3-5-haiku-20241022",
        "claude-3-5-sonnet-20240620",
        "claude-3-5-sonnet-20241022",
        "claude-3-7-sonnet-20250219",
        "claude-sonnet-4-20250514",
        "claude-opus-4-20250514",
    }
)

_GEMINI_MODELS = frozenset(
    {
        "gemini-1.0-pro",
        "gemini-1.5-pro",
        "gemini-1.5-flash",
        "gemini-1.5-flash-8b",
        "gemini-2.0-flash",
        "gemini-2.0-flash-lite",
        "gemini-2.5-pro",
        "gemini-2.5-flash",
    }
)

_PERPLEXITY_MODELS = frozenset(
    {
        "llama-3.1-sonar-small-128k-online",
        "llama-3.1-sonar-large-128k-online",
        "llama-3.1-sonar-huge-128k-online",
        "sonar",
        "sonar-pro",
        "sonar-reasoning",
        "sonar-reasoning-pro",
    }
)

# Lookup order is fixed; the lists are disjoint so the order never changes a result.
MODEL_FAMILIES: Mapping[ProviderFamily, frozenset[str]] = MappingProxyType(
    {
        ProviderFamily.OPENAI: _OPENAI_MODELS,
        ProviderFamily.ANTHROPIC: _ANTHROPIC_MODELS,
        ProviderFamily.GEMINI: _GEMINI_MODELS,
        ProviderFamily.PERPLEXITY: _PERPLEXITY_MODELS,
    }
)
ALLOWED_MODELS = frozenset().union(*MODEL_FAMILIES.values())


def resolve_provider(model_id: str) -> ProviderFamily:
    """Classify a model identifier into exactly one provider family."""
    for family, models in MODEL_FAMILIES.items():
        if model_id in models:
            return family
    raise UnsupportedModel(f"Unsupported model: {model_id}")
