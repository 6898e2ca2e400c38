"""LangGraph-based orchestration strategy for provider dispatch."""

from collections.abc import Mapping
from typing import NotRequired, TypedDict, cast

from langgraph.graph import END, START, StateGraph

from chat_fanout.model_registry import ProviderFamily
from chat_fanout.providers.base import ChatProvider, ProviderCall

from .base import ChatOrchestrator


class ChatGraphState(TypedDict):
    family: ProviderFamily
    credential: str
    call: ProviderCall
    reply: NotRequired[str]


class LangGraphChatOrchestrator(ChatOrchestrator):
    def __init__(self, providers: Mapping[ProviderFamily, ChatProvider]) -> None:
        self._providers = providers
        graph = StateGraph(ChatGraphState)
        graph.add_node("invoke_provider", self._invoke_provider)
        graph.add_edge(START, "invoke_provider")
        graph.add_edge("invoke_provider", END)
        self._graph = graph.compile()

    async def _invoke_provider(self, state: ChatGraphState) -> dict[str, str]:
        family = state["family"]
        provider = self._providers.get(family)
        if provider is None:
            raise RuntimeError(f"Unsupported provider: {family.value}")

        return {"reply": await provider.invoke(state["credential"], state["call"])}

    async def run(self, family: ProviderFamily, credential: str, call: ProviderCall) -> str:
        initial_state: ChatGraphState = {
            "family": family,
            "credential": credential,
            "call": call,
        }
        result = cast("ChatGraphState", await self._graph.ainvoke(initial_state))
        reply = result.get("reply")
        if reply is None:
            raise RuntimeError("LangGraph execution did not return a provider reply")
        return reply
