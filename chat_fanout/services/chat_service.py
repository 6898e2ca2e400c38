"""Application service that fans chat requests out to many models.

Two delivery modes share the same pre-flight checks and routing:

* batch (``create_chat`` / ``create_chat_messages``) waits for every model and
  returns one outcome per model identifier;
* stream (``create_chat_streaming``) schedules every model and reports each one
  to a callback as soon as it completes.

A failing model never affects the others. Size and moderation checks on shared
messages apply to every model at once, so they abort the whole call; the same
checks on per-model messages only fail the model they belong to.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from pydantic import TypeAdapter, ValidationError

from chat_fanout.constants import (
    DEFAULT_MAX_INPUT_BYTES,
    DEFAULT_MAX_OUTPUT_TOKENS,
    UNKNOWN_ERROR_MESSAGE,
)
from chat_fanout.errors import (
    CallbackRequired,
    ConfigurationError,
    InvalidRequest,
    MissingModelMessages,
)
from chat_fanout.model_registry import resolve_provider
from chat_fanout.moderation import ModerationGate, check_moderation
from chat_fanout.orchestration.base import ChatOrchestrator
from chat_fanout.providers.base import ProviderCall
from chat_fanout.schemas import (
    AggregatedResult,
    ApiKeys,
    ChatFailure,
    ChatOutcome,
    ChatRequest,
    ChatSuccess,
    Message,
    StreamEvent,
)
from chat_fanout.validation import validate_input_size

logger = logging.getLogger(__name__)

StreamCallback = Callable[[StreamEvent], Any]
MessageList = Sequence[Message | dict[str, Any]]
MessagesInput = MessageList | Mapping[str, MessageList]

_MESSAGE_LIST = TypeAdapter(list[Message])


def _coerce_messages(messages: Any) -> list[Message]:
    if isinstance(messages, (str, bytes)) or not isinstance(messages, Sequence):
        raise InvalidRequest("Messages must be a list of messages.")
    try:
        return _MESSAGE_LIST.validate_python(list(messages))
    except ValidationError as e:
        raise InvalidRequest(f"Invalid messages: {e}") from e


def _check_models(models: Any) -> list[str]:
    if isinstance(models, str) or not isinstance(models, Sequence) or not models:
        raise InvalidRequest("At least one model is required.")
    return list(models)


class StreamHandle:
    """Pending stream events for one ``create_chat_streaming`` call."""

    def __init__(self, tasks: Sequence["asyncio.Task[StreamEvent]"]) -> None:
        self._tasks = tuple(tasks)

    @property
    def tasks(self) -> tuple["asyncio.Task[StreamEvent]", ...]:
        return self._tasks

    def done(self) -> bool:
        return all(task.done() for task in self._tasks)

    async def wait(self) -> list[StreamEvent]:
        """Wait for every model to report; events come back in ``models`` order."""
        return list(await asyncio.gather(*self._tasks))


class ChatService:
    def __init__(
        self,
        api_keys: ApiKeys | None,
        orchestrator: ChatOrchestrator,
        moderation_gate: ModerationGate = check_moderation,
    ) -> None:
        if not isinstance(api_keys, ApiKeys):
            raise ConfigurationError("API keys are required.")
        self._api_keys = api_keys
        self._orchestrator = orchestrator
        self._moderation_gate = moderation_gate
        self._pending: set[asyncio.Task[StreamEvent]] = set()

    async def execute(self, request: ChatRequest) -> AggregatedResult:
        if request.has_model_specific_messages:
            return await self.create_chat_messages(
                request.models,
                request.messages,
                max_input_bytes=request.max_input_bytes,
                max_output_tokens=request.max_output_tokens,
                moderation_enabled=request.moderation_enabled,
            )
        return await self.create_chat(
            request.models,
            request.messages,
            max_input_bytes=request.max_input_bytes,
            max_output_tokens=request.max_output_tokens,
            moderation_enabled=request.moderation_enabled,
        )

    async def create_chat(
        self,
        models: Sequence[str],
        messages: MessagesInput,
        max_input_bytes: int = DEFAULT_MAX_INPUT_BYTES,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
        moderation_enabled: bool = False,
    ) -> AggregatedResult:
        """Send one shared conversation to every model and aggregate the outcomes."""
        if isinstance(messages, Mapping):
            return await self.create_chat_messages(
                models, messages, max_input_bytes, max_output_tokens, moderation_enabled
            )

        model_ids = _check_models(models)
        shared = _coerce_messages(messages)
        logger.info(
            "Chat request received",
            extra={"model_count": len(model_ids), "message_count": len(shared), "mode": "batch"},
        )
        await self._preflight(shared, max_input_bytes, moderation_enabled)

        outcomes = await asyncio.gather(
            *(self._run_model(model_id, shared, max_output_tokens) for model_id in model_ids)
        )
        return self._aggregate(model_ids, outcomes)

    async def create_chat_messages(
        self,
        models: Sequence[str],
        messages: Mapping[str, MessageList],
        max_input_bytes: int = DEFAULT_MAX_INPUT_BYTES,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
        moderation_enabled: bool = False,
    ) -> AggregatedResult:
        """Send each model its own conversation and aggregate the outcomes."""
        model_ids = _check_models(models)
        by_model = self._messages_by_model(model_ids, messages)
        logger.info(
            "Chat request received",
            extra={"model_count": len(model_ids), "mode": "batch_per_model"},
        )

        outcomes = await asyncio.gather(
            *(
                self._run_model(
                    model_id,
                    by_model[model_id],
                    max_output_tokens,
                    max_input_bytes=max_input_bytes,
                    moderation_enabled=moderation_enabled,
                )
                for model_id in model_ids
            )
        )
        return self._aggregate(model_ids, outcomes)

    async def create_chat_streaming(
        self,
        models: Sequence[str],
        messages: MessagesInput,
        on_response: StreamCallback | None = None,
        max_input_bytes: int = DEFAULT_MAX_INPUT_BYTES,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
        moderation_enabled: bool = False,
    ) -> StreamHandle:
        """Schedule every model and report each to ``on_response`` as it completes.

        Returns once the calls are scheduled. Await ``StreamHandle.wait()`` to
        join them.
        """
        if on_response is None or not callable(on_response):
            raise CallbackRequired("onResponse callback function is required for streaming.")

        model_ids = _check_models(models)
        if isinstance(messages, Mapping):
            by_model = self._messages_by_model(model_ids, messages)
            jobs = [(model_id, by_model[model_id], True) for model_id in model_ids]
        else:
            shared = _coerce_messages(messages)
            await self._preflight(shared, max_input_bytes, moderation_enabled)
            jobs = [(model_id, shared, False) for model_id in model_ids]

        logger.info(
            "Streaming chat request received",
            extra={"model_count": len(model_ids), "per_model_messages": jobs[0][2]},
        )

        tasks = []
        for model_id, model_messages, check_per_model in jobs:
            task = asyncio.create_task(
                self._stream_model(
                    model_id,
                    model_messages,
                    max_output_tokens,
                    on_response,
                    max_input_bytes=max_input_bytes if check_per_model else None,
                    moderation_enabled=moderation_enabled and check_per_model,
                )
            )
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            tasks.append(task)
        return StreamHandle(tasks)

    def _messages_by_model(
        self, model_ids: list[str], messages: Any
    ) -> dict[str, list[Message]]:
        if not isinstance(messages, Mapping):
            raise InvalidRequest("Messages must be an object with model-specific messages.")
        by_model: dict[str, list[Message]] = {}
        for model_id in model_ids:
            if model_id not in messages:
                raise MissingModelMessages(f"No messages provided for model: {model_id}")
            by_model[model_id] = _coerce_messages(messages[model_id])
        return by_model

    async def _preflight(
        self, messages: list[Message], max_input_bytes: int, moderation_enabled: bool
    ) -> None:
        validate_input_size(messages, max_input_bytes)
        if moderation_enabled:
            await self._moderation_gate(self._api_keys.openai, messages)

    async def _run_model(
        self,
        model_id: str,
        messages: list[Message],
        max_output_tokens: int,
        max_input_bytes: int | None = None,
        moderation_enabled: bool = False,
    ) -> ChatOutcome:
        try:
            if max_input_bytes is not None:
                await self._preflight(messages, max_input_bytes, moderation_enabled)
            family = resolve_provider(model_id)
            credential = self._api_keys.for_family(family)
            reply = await self._orchestrator.run(
                family,
                credential,
                ProviderCall(
                    model_id=model_id,
                    messages=messages,
                    max_output_tokens=max_output_tokens,
                ),
            )
        except Exception as e:
            logger.warning(
                "Model call failed",
                extra={"model": model_id, "error_type": type(e).__name__},
            )
            return ChatFailure(error=str(e) or UNKNOWN_ERROR_MESSAGE)
        return ChatSuccess(text=reply)

    async def _stream_model(
        self,
        model_id: str,
        messages: list[Message],
        max_output_tokens: int,
        on_response: StreamCallback,
        max_input_bytes: int | None,
        moderation_enabled: bool,
    ) -> StreamEvent:
        outcome = await self._run_model(
            model_id,
            messages,
            max_output_tokens,
            max_input_bytes=max_input_bytes,
            moderation_enabled=moderation_enabled,
        )
        event = StreamEvent.from_outcome(model_id, outcome)
        try:
            result = on_response(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Stream callback failed", extra={"model": model_id})
        return event

    @staticmethod
    def _aggregate(model_ids: list[str], outcomes: Sequence[ChatOutcome]) -> AggregatedResult:
        # Duplicate identifiers keep their first position and the last outcome.
        result: AggregatedResult = {}
        for model_id, outcome in zip(model_ids, outcomes):
            result[model_id] = outcome
        return result
