"""Direct provider dispatch orchestration."""

from collections.abc import Mapping

from chat_fanout.model_registry import ProviderFamily
from chat_fanout.orchestration.base import ChatOrchestrator
from chat_fanout.providers.base import ChatProvider, ProviderCall


class DirectChatOrchestrator(ChatOrchestrator):
    def __init__(self, providers: Mapping[ProviderFamily, ChatProvider]) -> None:
        self._providers = providers

    async def run(self, family: ProviderFamily, credential: str, call: ProviderCall) -> str:
        provider = self._providers.get(family)
        if provider is None:
            raise RuntimeError(f"Unsupported provider: {family.value}")
        return await provider.invoke(credential, call)
