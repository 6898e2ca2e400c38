"""Shared constants and literal types for the chat fan-out service."""

from typing import Literal

OPENAI_API_KEY_PARAMETER_NAME = "/chat-fanout/openai-api-key"
ANTHROPIC_API_KEY_PARAMETER_NAME = "/chat-fanout/anthropic-api-key"
GEMINI_API_KEY_PARAMETER_NAME = "/chat-fanout/gemini-api-key"
PERPLEXITY_API_KEY_PARAMETER_NAME = "/chat-fanout/perplexity-api-key"
LANGSMITH_API_KEY_PARAMETER_NAME = "/chat-fanout/langsmith-api-key"
AWS_REGION = "ap-northeast-1"
LANGSMITH_PROJECT = "chat-fanout"
ORCHESTRATOR_ENV_VAR = "CHAT_FANOUT_ORCHESTRATOR"

PERPLEXITY_BASE_URL = "https://api.perplexity.ai"
DEFAULT_MAX_INPUT_BYTES = 100_000
DEFAULT_MAX_OUTPUT_TOKENS = 1000

SYSTEM_ACKNOWLEDGEMENT = "Okay"
GEMINI_VALID_ROLES = ("user", "model", "function", "system")
UNKNOWN_ERROR_MESSAGE = "Unknown error"

StreamStatus = Literal["success", "error"]
