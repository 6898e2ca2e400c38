"""Content-safety gate backed by the OpenAI moderation endpoint."""

import logging
from collections.abc import Awaitable, Callable, Sequence

from openai import AsyncOpenAI

from .errors import ContentRejected
from .schemas import Message

logger = logging.getLogger(__name__)

ModerationGate = Callable[[str, Sequence[Message]], Awaitable[None]]


async def check_moderation(credential: str, messages: Sequence[Message]) -> None:
    """Reject the whole message set if any single message is flagged."""
    if not messages:
        return

    client = AsyncOpenAI(api_key=credential)
    moderation = await client.moderations.create(
        input=[message.content for message in messages]
    )
    flagged = [index for index, result in enumerate(moderation.results) if result.flagged]
    if flagged:
        logger.warning(
            "Moderation flagged request content",
            extra={"message_count": len(messages), "flagged_indexes": flagged},
        )
        raise ContentRejected("Input contains restricted or potentially harmful content.")
