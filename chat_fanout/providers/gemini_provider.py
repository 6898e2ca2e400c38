"""Gemini provider implementation for chat requests."""

import logging
import time
from collections.abc import Callable
from typing import Any

from langchain_core.runnables import Runnable

from chat_fanout.errors import ProviderError
from chat_fanout.message_mappers import build_gemini_contents, map_gemini_roles, transform_messages
from chat_fanout.model_registry import ProviderFamily

from .base import ProviderCall, runnable_config

logger = logging.getLogger(__name__)


class GeminiChatProvider:
    display_name = "Gemini"

    def __init__(
        self,
        get_chat_session_runnable: Callable[[], Runnable[dict[str, Any], Any]],
    ) -> None:
        self._get_chat_session_runnable = get_chat_session_runnable

    async def invoke(self, credential: str, call: ProviderCall) -> str:
        messages = map_gemini_roles(transform_messages(call.messages, ProviderFamily.GEMINI))
        # Earlier turns seed the chat history; the final turn is sent as the new message.
        history = build_gemini_contents(messages[:-1])
        prompt = messages[-1].content if messages else ""

        params: dict[str, Any] = {
            "api_key": credential,
            "model": call.model_id,
            "history": history,
            "message": prompt,
            "max_output_tokens": call.max_output_tokens,
        }

        start = time.time()
        try:
            response = await self._get_chat_session_runnable().ainvoke(
                params, config=runnable_config("gemini", call)
            )
            content = response.text
        except Exception as e:
            logger.exception("Gemini chat call failed", extra={"model": call.model_id})
            raise ProviderError(f"Error processing request with {self.display_name}: {e}") from e
        duration_ms = int((time.time() - start) * 1000)

        usage = getattr(response, "usage_metadata", None)
        logger.info(
            "Chat response generated",
            extra={
                "provider": self.display_name,
                "duration_ms": duration_ms,
                "model": call.model_id,
                "usage_prompt_tokens": getattr(usage, "prompt_token_count", None),
                "usage_completion_tokens": getattr(usage, "candidates_token_count", None),
                "response_length": len(content),
            },
        )
        return content
