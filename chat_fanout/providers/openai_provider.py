"""OpenAI provider implementation for chat requests."""

import logging
import time
from collections.abc import Callable
from typing import Any

from langchain_core.runnables import Runnable

from chat_fanout.errors import ProviderError
from chat_fanout.message_mappers import build_chat_completion_messages

from .base import ProviderCall, runnable_config

logger = logging.getLogger(__name__)


def extract_chat_completion_text(response: Any) -> str:
    content = response.choices[0].message.content
    if content is None:
        raise ValueError("response contained no message content")
    return content


class OpenAIChatProvider:
    display_name = "OpenAI"
    base_url: str | None = None

    def __init__(
        self,
        get_chat_completions_runnable: Callable[[], Runnable[dict[str, Any], Any]],
    ) -> None:
        self._get_chat_completions_runnable = get_chat_completions_runnable

    async def invoke(self, credential: str, call: ProviderCall) -> str:
        request_params: dict[str, Any] = {
            "api_key": credential,
            "model": call.model_id,
            "messages": build_chat_completion_messages(call.messages),
            "max_tokens": call.max_output_tokens,
        }
        if self.base_url:
            request_params["base_url"] = self.base_url

        start = time.time()
        try:
            response = await self._get_chat_completions_runnable().ainvoke(
                request_params,
                config=runnable_config(self.display_name.lower(), call),
            )
            content = extract_chat_completion_text(response)
        except Exception as e:
            logger.exception(
                "Chat completion failed",
                extra={"provider": self.display_name, "model": call.model_id},
            )
            raise ProviderError(
                f"Error processing request with {self.display_name}: {e}"
            ) from e
        duration_ms = int((time.time() - start) * 1000)

        usage = getattr(response, "usage", None)
        logger.info(
            "Chat response generated",
            extra={
                "provider": self.display_name,
                "duration_ms": duration_ms,
                "model": call.model_id,
                "usage_prompt_tokens": usage.prompt_tokens if usage else None,
                "usage_completion_tokens": usage.completion_tokens if usage else None,
                "response_length": len(content),
            },
        )
        return content
