"""Input size validation."""

from collections.abc import Sequence

from .errors import InputTooLarge
from .schemas import Message


def _format_kilobytes(size: int) -> str:
    # 1000 -> "0.9765625", 1024 -> "1"
    return format(size / 1024, ".15g")


def content_size(messages: Sequence[Message]) -> int:
    """Total UTF-8 byte length of every message's content."""
    return sum(len(message.content.encode("utf-8")) for message in messages)


def validate_input_size(messages: Sequence[Message], max_input_bytes: int) -> None:
    input_size = content_size(messages)
    if input_size > max_input_bytes:
        raise InputTooLarge(
            f"Input size of {_format_kilobytes(input_size)} KB exceeds the limit of "
            f"{_format_kilobytes(max_input_bytes)} KB."
        )
