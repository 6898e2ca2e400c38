"""Conversion helpers between API messages and provider-specific formats."""

from collections.abc import Sequence
from typing import Any

from .constants import GEMINI_VALID_ROLES, SYSTEM_ACKNOWLEDGEMENT
from .errors import InvalidRole, InvalidTarget
from .model_registry import ProviderFamily
from .schemas import Message

_ACKNOWLEDGEMENT_ROLES = {
    ProviderFamily.ANTHROPIC: "assistant",
    ProviderFamily.GEMINI: "model",
}


def transform_messages(
    messages: Sequence[Message], target: ProviderFamily | str
) -> list[Message]:
    """Rewrite inline system messages for targets that cannot carry them.

    Each system message becomes a user message with the same content followed by
    a short acknowledgement from the model side. Everything else is kept as is.
    """
    try:
        acknowledgement_role = _ACKNOWLEDGEMENT_ROLES[ProviderFamily(target)]
    except (KeyError, ValueError):
        name = target.value if isinstance(target, ProviderFamily) else target
        raise InvalidTarget(
            f'Invalid target: {name}. Supported targets are "anthropic" and "gemini".'
        ) from None

    transformed: list[Message] = []
    for message in messages:
        if message.role == "system":
            transformed.append(Message(role="user", content=message.content))
            transformed.append(
                Message(role=acknowledgement_role, content=SYSTEM_ACKNOWLEDGEMENT)
            )
        else:
            transformed.append(message)
    return transformed


def map_gemini_roles(messages: Sequence[Message]) -> list[Message]:
    """Map assistant turns to Gemini's model role and reject unknown roles."""
    mapped: list[Message] = []
    for message in messages:
        role = message.role
        if role == "assistant":
            role = "model"
        elif role not in GEMINI_VALID_ROLES:
            valid = ", ".join(f'"{valid_role}"' for valid_role in GEMINI_VALID_ROLES)
            raise InvalidRole(f'Invalid role "{role}". Valid roles are: [{valid}].')
        if role != message.role:
            message = Message(role=role, content=message.content)
        mapped.append(message)
    return mapped


def build_chat_completion_messages(messages: Sequence[Message]) -> list[dict[str, str]]:
    """OpenAI-compatible chat messages; system roles stay inline."""
    return [{"role": message.role, "content": message.content} for message in messages]


def build_gemini_contents(messages: Sequence[Message]) -> list[dict[str, Any]]:
    return [{"role": message.role, "parts": [{"text": message.content}]} for message in messages]
