import asyncio
import unittest
from datetime import datetime
from unittest.mock import AsyncMock

from chat_fanout.errors import (
    CallbackRequired,
    ConfigurationError,
    ContentRejected,
    InputTooLarge,
    InvalidRequest,
    MissingModelMessages,
    ProviderError,
)
from chat_fanout.model_registry import ProviderFamily
from chat_fanout.providers.base import ProviderCall
from chat_fanout.schemas import ApiKeys, ChatFailure, ChatRequest, ChatSuccess, Message
from chat_fanout.services.chat_service import ChatService

API_KEYS = ApiKeys(
    openai="openai-key",
    anthropic="anthropic-key",
    gemini="gemini-key",
    perplexity="perplexity-key",
)
CLAUDE = "claude-3-haiku-20240307"
HI = [{"role": "user", "content": "hi"}]


class StubOrchestrator:
    def __init__(
        self,
        replies: dict[str, str | Exception],
        gates: dict[str, asyncio.Event] | None = None,
    ) -> None:
        self._replies = replies
        self._gates = gates or {}
        self.calls: list[tuple[ProviderFamily, str, ProviderCall]] = []

    async def run(self, family: ProviderFamily, credential: str, call: ProviderCall) -> str:
        self.calls.append((family, credential, call))
        gate = self._gates.get(call.model_id)
        if gate is not None:
            await gate.wait()
        reply = self._replies[call.model_id]
        if isinstance(reply, Exception):
            raise reply
        return reply


class ChatServiceBatchTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.moderation_gate = AsyncMock(return_value=None)

    def _service(
        self, orchestrator: StubOrchestrator, api_keys: ApiKeys = API_KEYS
    ) -> ChatService:
        return ChatService(
            api_keys=api_keys,
            orchestrator=orchestrator,
            moderation_gate=self.moderation_gate,
        )

    def test_requires_api_keys(self) -> None:
        with self.assertRaisesRegex(ConfigurationError, "API keys are required."):
            ChatService(api_keys=None, orchestrator=StubOrchestrator({}))

    async def test_single_model_returns_reply(self) -> None:
        orchestrator = StubOrchestrator({"gpt-4": "hello"})
        service = self._service(orchestrator)

        result = await service.create_chat(
            ["gpt-4"], HI, max_input_bytes=1000, max_output_tokens=500
        )

        self.assertEqual(result, {"gpt-4": ChatSuccess(text="hello")})
        family, credential, call = orchestrator.calls[0]
        self.assertIs(family, ProviderFamily.OPENAI)
        self.assertEqual(credential, "openai-key")
        self.assertEqual(call.model_id, "gpt-4")
        self.assertEqual(call.messages, [Message(role="user", content="hi")])
        self.assertEqual(call.max_output_tokens, 500)

    async def test_one_failure_does_not_affect_other_models(self) -> None:
        orchestrator = StubOrchestrator({"gpt-4": "ok", CLAUDE: RuntimeError("boom")})
        service = self._service(orchestrator)

        result = await service.create_chat(
            ["gpt-4", CLAUDE], HI, max_input_bytes=1000, max_output_tokens=500
        )

        self.assertEqual(
            result, {"gpt-4": ChatSuccess(text="ok"), CLAUDE: ChatFailure(error="boom")}
        )
        credentials = {call.model_id: credential for _, credential, call in orchestrator.calls}
        self.assertEqual(credentials, {"gpt-4": "openai-key", CLAUDE: "anthropic-key"})

    async def test_unsupported_model_becomes_failure(self) -> None:
        orchestrator = StubOrchestrator({"gpt-4": "ok"})
        service = self._service(orchestrator)

        result = await service.create_chat(["made-up-model", "gpt-4"], HI)

        self.assertEqual(
            result,
            {
                "made-up-model": ChatFailure(error="Unsupported model: made-up-model"),
                "gpt-4": ChatSuccess(text="ok"),
            },
        )
        self.assertEqual([call.model_id for _, _, call in orchestrator.calls], ["gpt-4"])

    async def test_result_follows_model_order_not_completion_order(self) -> None:
        gate = asyncio.Event()
        orchestrator = StubOrchestrator(
            {"gpt-4": "first", "gemini-1.5-pro": "second", "sonar": "third"},
            gates={"gpt-4": gate},
        )
        service = self._service(orchestrator)

        pending = asyncio.create_task(
            service.create_chat(["gpt-4", "gemini-1.5-pro", "sonar"], HI)
        )
        await asyncio.sleep(0)
        gate.set()
        result = await pending

        self.assertEqual(list(result), ["gpt-4", "gemini-1.5-pro", "sonar"])
        self.assertEqual(result["sonar"], ChatSuccess(text="third"))

    async def test_identical_requests_give_identical_results(self) -> None:
        service = self._service(StubOrchestrator({"gpt-4": "ok", CLAUDE: ProviderError("down")}))

        first = await service.create_chat(["gpt-4", CLAUDE], HI)
        second = await service.create_chat(["gpt-4", CLAUDE], HI)

        self.assertEqual(first, second)

    async def test_duplicate_models_are_dispatched_independently(self) -> None:
        orchestrator = StubOrchestrator({"gpt-4": "ok"})
        service = self._service(orchestrator)

        result = await service.create_chat(["gpt-4", "gpt-4"], HI)

        self.assertEqual(result, {"gpt-4": ChatSuccess(text="ok")})
        self.assertEqual(len(orchestrator.calls), 2)

    async def test_empty_error_message_uses_fallback(self) -> None:
        service = self._service(StubOrchestrator({"gpt-4": RuntimeError()}))

        result = await service.create_chat(["gpt-4"], HI)

        self.assertEqual(result, {"gpt-4": ChatFailure(error="Unknown error")})

    async def test_missing_provider_key_fails_only_that_model(self) -> None:
        service = self._service(
            StubOrchestrator({"gpt-4": "ok", "gemini-1.5-pro": "unused"}),
            api_keys=ApiKeys(openai="openai-key"),
        )

        result = await service.create_chat(["gpt-4", "gemini-1.5-pro"], HI)

        self.assertEqual(result["gpt-4"], ChatSuccess(text="ok"))
        self.assertEqual(
            result["gemini-1.5-pro"],
            ChatFailure(error="No API key configured for provider: gemini"),
        )

    async def test_shared_messages_over_budget_abort_before_dispatch(self) -> None:
        orchestrator = StubOrchestrator({"gpt-4": "ok"})
        service = self._service(orchestrator)
        messages = [
            {"role": "user", "content": "a" * 600},
            {"role": "assistant", "content": "b" * 600},
        ]

        with self.assertRaises(InputTooLarge) as ctx:
            await service.create_chat(["gpt-4"], messages, max_input_bytes=1000)

        self.assertIn("1.171875 KB", str(ctx.exception))
        self.assertIn("0.9765625 KB", str(ctx.exception))
        self.assertEqual(orchestrator.calls, [])

    async def test_moderation_runs_once_with_openai_key_when_enabled(self) -> None:
        service = self._service(StubOrchestrator({"gpt-4": "ok", CLAUDE: "ok"}))

        await service.create_chat(["gpt-4", CLAUDE], HI, moderation_enabled=True)

        self.moderation_gate.assert_awaited_once_with(
            "openai-key", [Message(role="user", content="hi")]
        )

    async def test_moderation_skipped_when_disabled(self) -> None:
        service = self._service(StubOrchestrator({"gpt-4": "ok"}))

        await service.create_chat(["gpt-4"], HI)

        self.moderation_gate.assert_not_awaited()

    async def test_shared_moderation_rejection_aborts_call(self) -> None:
        self.moderation_gate.side_effect = ContentRejected("flagged")
        orchestrator = StubOrchestrator({"gpt-4": "ok"})
        service = self._service(orchestrator)

        with self.assertRaises(ContentRejected):
            await service.create_chat(["gpt-4"], HI, moderation_enabled=True)
        self.assertEqual(orchestrator.calls, [])

    async def test_empty_model_list_is_rejected(self) -> None:
        service = self._service(StubOrchestrator({}))

        with self.assertRaises(InvalidRequest):
            await service.create_chat([], HI)

    async def test_per_model_messages_are_routed_to_their_model(self) -> None:
        orchestrator = StubOrchestrator({"gpt-4": "a", CLAUDE: "b"})
        service = self._service(orchestrator)
        messages = {
            "gpt-4": [{"role": "user", "content": "for gpt"}],
            CLAUDE: [{"role": "user", "content": "for claude"}],
        }

        result = await service.create_chat_messages(["gpt-4", CLAUDE], messages)

        self.assertEqual(result, {"gpt-4": ChatSuccess(text="a"), CLAUDE: ChatSuccess(text="b")})
        sent = {call.model_id: call.messages[0].content for _, _, call in orchestrator.calls}
        self.assertEqual(sent, {"gpt-4": "for gpt", CLAUDE: "for claude"})

    async def test_per_model_messages_must_be_a_mapping(self) -> None:
        service = self._service(StubOrchestrator({}))

        with self.assertRaisesRegex(
            InvalidRequest, "Messages must be an object with model-specific messages."
        ):
            await service.create_chat_messages(["gpt-4"], HI)  # type: ignore[arg-type]

    async def test_per_model_messages_missing_entry_aborts(self) -> None:
        orchestrator = StubOrchestrator({"gpt-4": "ok"})
        service = self._service(orchestrator)

        with self.assertRaisesRegex(
            MissingModelMessages, f"No messages provided for model: {CLAUDE}"
        ):
            await service.create_chat_messages(["gpt-4", CLAUDE], {"gpt-4": HI})
        self.assertEqual(orchestrator.calls, [])

    async def test_per_model_size_failure_is_scoped_to_that_model(self) -> None:
        service = self._service(StubOrchestrator({"gpt-4": "ok", CLAUDE: "ok"}))
        messages = {
            "gpt-4": HI,
            CLAUDE: [{"role": "user", "content": "x" * 2048}],
        }

        result = await service.create_chat_messages(
            ["gpt-4", CLAUDE], messages, max_input_bytes=1024
        )

        self.assertEqual(result["gpt-4"], ChatSuccess(text="ok"))
        self.assertEqual(
            result[CLAUDE], ChatFailure(error="Input size of 2 KB exceeds the limit of 1 KB.")
        )

    async def test_per_model_moderation_runs_for_each_model(self) -> None:
        service = self._service(StubOrchestrator({"gpt-4": "ok", CLAUDE: "ok"}))
        messages = {
            "gpt-4": [{"role": "user", "content": "one"}],
            CLAUDE: [{"role": "user", "content": "two"}],
        }

        await service.create_chat_messages(["gpt-4", CLAUDE], messages, moderation_enabled=True)

        self.assertEqual(self.moderation_gate.await_count, 2)
        moderated = {call.args[1][0].content for call in self.moderation_gate.await_args_list}
        self.assertEqual(moderated, {"one", "two"})

    async def test_create_chat_accepts_per_model_mapping(self) -> None:
        service = self._service(StubOrchestrator({"gpt-4": "ok"}))

        result = await service.create_chat(["gpt-4"], {"gpt-4": HI})

        self.assertEqual(result, {"gpt-4": ChatSuccess(text="ok")})

    async def test_execute_uses_request_fields(self) -> None:
        orchestrator = StubOrchestrator({"gpt-4": "ok"})
        service = self._service(orchestrator)
        request = ChatRequest.model_validate(
            {"models": ["gpt-4"], "messages": HI, "maxInput": 1000, "maxOutput": 42}
        )

        result = await service.execute(request)

        self.assertEqual(result, {"gpt-4": ChatSuccess(text="ok")})
        self.assertEqual(orchestrator.calls[0][2].max_output_tokens, 42)


class ChatServiceStreamingTests(unittest.IsolatedAsyncioTestCase):
    def _service(self, orchestrator: StubOrchestrator) -> ChatService:
        return ChatService(
            api_keys=API_KEYS,
            orchestrator=orchestrator,
            moderation_gate=AsyncMock(return_value=None),
        )

    async def test_callback_is_required(self) -> None:
        orchestrator = StubOrchestrator({"gpt-4": "ok"})
        service = self._service(orchestrator)

        with self.assertRaisesRegex(
            CallbackRequired, "onResponse callback function is required for streaming."
        ):
            await service.create_chat_streaming(["gpt-4"], HI)
        with self.assertRaises(CallbackRequired):
            await service.create_chat_streaming(["gpt-4"], HI, on_response="not-a-function")
        self.assertEqual(orchestrator.calls, [])

    async def test_one_event_per_model_with_timestamps(self) -> None:
        events = []
        service = self._service(
            StubOrchestrator({"gpt-4": "a", CLAUDE: RuntimeError("Claude API error")})
        )

        handle = await service.create_chat_streaming(
            ["gpt-4", CLAUDE, "unsupported-model"], HI, on_response=events.append
        )
        await handle.wait()

        self.assertEqual(len(events), 3)
        by_model = {event.model: event for event in events}
        self.assertEqual(set(by_model), {"gpt-4", CLAUDE, "unsupported-model"})
        for event in events:
            datetime.fromisoformat(event.timestamp)
        self.assertEqual(by_model["gpt-4"].status, "success")
        self.assertEqual(by_model["gpt-4"].data, "a")
        self.assertEqual(by_model[CLAUDE].status, "error")
        self.assertEqual(by_model[CLAUDE].error, "Claude API error")
        self.assertEqual(
            by_model["unsupported-model"].to_payload(),
            {
                "model": "unsupported-model",
                "status": "error",
                "error": "Unsupported model: unsupported-model",
                "timestamp": by_model["unsupported-model"].timestamp,
            },
        )

    async def test_returns_before_model_calls_complete(self) -> None:
        gate = asyncio.Event()
        events = []
        service = self._service(StubOrchestrator({"gpt-4": "late"}, gates={"gpt-4": gate}))

        handle = await service.create_chat_streaming(["gpt-4"], HI, on_response=events.append)

        self.assertEqual(events, [])
        self.assertFalse(handle.done())
        gate.set()
        await handle.wait()
        self.assertEqual([event.data for event in events], ["late"])

    async def test_events_arrive_in_completion_order(self) -> None:
        gate = asyncio.Event()
        events = []
        service = self._service(
            StubOrchestrator({"gpt-4": "slow", "sonar": "fast"}, gates={"gpt-4": gate})
        )

        handle = await service.create_chat_streaming(
            ["gpt-4", "sonar"], HI, on_response=events.append
        )
        while not events:
            await asyncio.sleep(0)
        gate.set()
        await handle.wait()

        self.assertEqual([event.model for event in events], ["sonar", "gpt-4"])

    async def test_async_callback_is_awaited(self) -> None:
        callback = AsyncMock(return_value=None)
        service = self._service(StubOrchestrator({"gpt-4": "ok"}))

        handle = await service.create_chat_streaming(["gpt-4"], HI, on_response=callback)
        await handle.wait()

        callback.assert_awaited_once()
        self.assertEqual(callback.await_args.args[0].data, "ok")

    async def test_failing_callback_does_not_affect_other_models(self) -> None:
        seen = []

        def on_response(event) -> None:
            seen.append(event.model)
            if event.model == "gpt-4":
                raise RuntimeError("callback broke")

        service = self._service(StubOrchestrator({"gpt-4": "a", "sonar": "b"}))

        handle = await service.create_chat_streaming(
            ["gpt-4", "sonar"], HI, on_response=on_response
        )
        events = await handle.wait()

        self.assertEqual(sorted(seen), ["gpt-4", "sonar"])
        self.assertEqual([event.status for event in events], ["success", "success"])

    async def test_shared_messages_over_budget_abort_streaming(self) -> None:
        callback = AsyncMock()
        service = self._service(StubOrchestrator({"gpt-4": "ok"}))

        with self.assertRaises(InputTooLarge):
            await service.create_chat_streaming(
                ["gpt-4"],
                [{"role": "user", "content": "🚀" * 100}],
                on_response=callback,
                max_input_bytes=100,
            )
        callback.assert_not_called()

    async def test_per_model_streaming_requires_every_model(self) -> None:
        service = self._service(StubOrchestrator({"gpt-4": "ok"}))

        with self.assertRaisesRegex(MissingModelMessages, CLAUDE):
            await service.create_chat_streaming(
                ["gpt-4", CLAUDE], {"gpt-4": HI}, on_response=lambda event: None
            )

    async def test_per_model_streaming_scopes_validation_errors(self) -> None:
        events = []
        service = self._service(StubOrchestrator({"gpt-4": "ok", CLAUDE: "ok"}))
        messages = {"gpt-4": HI, CLAUDE: [{"role": "user", "content": "x" * 50}]}

        handle = await service.create_chat_streaming(
            ["gpt-4", CLAUDE], messages, on_response=events.append, max_input_bytes=10
        )
        await handle.wait()

        statuses = {event.model: event.status for event in events}
        self.assertEqual(statuses, {"gpt-4": "success", CLAUDE: "error"})


if __name__ == "__main__":
    unittest.main()
