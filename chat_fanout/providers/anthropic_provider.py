"""Anthropic provider implementation for chat requests."""

import logging
import time
from collections.abc import Callable
from typing import Any

from langchain_core.runnables import Runnable

from chat_fanout.errors import ProviderError
from chat_fanout.message_mappers import build_chat_completion_messages, transform_messages
from chat_fanout.model_registry import ProviderFamily

from .base import ProviderCall, runnable_config

logger = logging.getLogger(__name__)


def extract_message_text(response: Any) -> str:
    for block in response.content:
        if getattr(block, "type", None) == "text":
            return block.text
    raise ValueError("response contained no text content block")


class AnthropicChatProvider:
    display_name = "Claude"

    def __init__(
        self,
        get_messages_runnable: Callable[[], Runnable[dict[str, Any], Any]],
    ) -> None:
        self._get_messages_runnable = get_messages_runnable

    async def invoke(self, credential: str, call: ProviderCall) -> str:
        messages = transform_messages(call.messages, ProviderFamily.ANTHROPIC)
        params: dict[str, Any] = {
            "api_key": credential,
            "model": call.model_id,
            "max_tokens": call.max_output_tokens,
            "messages": build_chat_completion_messages(messages),
        }

        start = time.time()
        try:
            response = await self._get_messages_runnable().ainvoke(
                params, config=runnable_config("anthropic", call)
            )
            content = extract_message_text(response)
        except Exception as e:
            logger.exception(
                "Anthropic messages call failed", extra={"model": call.model_id}
            )
            raise ProviderError(f"Error processing request with {self.display_name}: {e}") from e
        duration_ms = int((time.time() - start) * 1000)

        usage = getattr(response, "usage", None)
        logger.info(
            "Chat response generated",
            extra={
                "provider": self.display_name,
                "duration_ms": duration_ms,
                "model": call.model_id,
                "usage_prompt_tokens": usage.input_tokens if usage else None,
                "usage_completion_tokens": usage.output_tokens if usage else None,
                "response_length": len(content),
            },
        )
        return content
