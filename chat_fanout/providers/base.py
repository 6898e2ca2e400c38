"""Provider interfaces and shared call model."""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from chat_fanout.schemas import Message


@dataclass(frozen=True)
class ProviderCall:
    model_id: str
    messages: Sequence[Message]
    max_output_tokens: int


class ChatProvider(Protocol):
    async def invoke(self, credential: str, call: ProviderCall) -> str:
        """Send one chat request and return the reply text."""
        ...


def runnable_config(provider_name: str, call: ProviderCall) -> dict[str, object]:
    return {
        "run_name": f"chat_fanout_{provider_name}",
        "tags": ["chat-fanout", call.model_id],
        "metadata": {"message_count": len(call.messages)},
    }
