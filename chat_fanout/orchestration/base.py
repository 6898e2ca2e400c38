"""Orchestration interfaces for provider dispatch."""

from typing import Protocol

from chat_fanout.model_registry import ProviderFamily
from chat_fanout.providers.base import ProviderCall


class ChatOrchestrator(Protocol):
    async def run(self, family: ProviderFamily, credential: str, call: ProviderCall) -> str:
        """Execute one model call using the selected orchestration strategy."""
