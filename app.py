"""Chat fan-out API backend using FastAPI + Mangum for AWS Lambda."""

import logging
import os
from functools import lru_cache

from fastapi import APIRouter, FastAPI, HTTPException
from mangum import Mangum

from chat_fanout.constants import ORCHESTRATOR_ENV_VAR
from chat_fanout.errors import BadRequestError, ConfigurationError
from chat_fanout.infra.runtime import (
    ensure_langsmith_configured,
    flush_langsmith_traces,
    get_anthropic_messages_runnable,
    get_api_credentials,
    get_chat_completions_runnable,
    get_gemini_chat_runnable,
)
from chat_fanout.model_registry import MODEL_FAMILIES, ProviderFamily
from chat_fanout.orchestration.base import ChatOrchestrator
from chat_fanout.orchestration.direct import DirectChatOrchestrator
from chat_fanout.orchestration.langgraph_flow import LangGraphChatOrchestrator
from chat_fanout.providers.anthropic_provider import AnthropicChatProvider
from chat_fanout.providers.base import ChatProvider
from chat_fanout.providers.gemini_provider import GeminiChatProvider
from chat_fanout.providers.openai_provider import OpenAIChatProvider
from chat_fanout.providers.perplexity_provider import PerplexityChatProvider
from chat_fanout.schemas import ChatRequest, ChatResponse, ModelMetadata
from chat_fanout.services.chat_service import ChatService

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

app = FastAPI()
router = APIRouter(prefix="/api")


def build_providers() -> dict[ProviderFamily, ChatProvider]:
    return {
        ProviderFamily.OPENAI: OpenAIChatProvider(get_chat_completions_runnable),
        ProviderFamily.ANTHROPIC: AnthropicChatProvider(get_anthropic_messages_runnable),
        ProviderFamily.GEMINI: GeminiChatProvider(get_gemini_chat_runnable),
        ProviderFamily.PERPLEXITY: PerplexityChatProvider(get_chat_completions_runnable),
    }


def build_orchestrator(kind: str) -> ChatOrchestrator:
    providers = build_providers()
    if kind == "direct":
        return DirectChatOrchestrator(providers=providers)
    if kind == "langgraph":
        return LangGraphChatOrchestrator(providers=providers)
    raise ConfigurationError(f"Unknown orchestrator: {kind}")


@lru_cache(maxsize=1)
def get_chat_service() -> ChatService:
    kind = os.environ.get(ORCHESTRATOR_ENV_VAR, "direct")
    logger.info("Building chat service", extra={"orchestrator": kind})
    return ChatService(
        api_keys=get_api_credentials().api_keys,
        orchestrator=build_orchestrator(kind),
    )


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest) -> ChatResponse:
    """Send the conversation to every requested model and return all outcomes."""
    ensure_langsmith_configured()
    try:
        result = await get_chat_service().execute(request)
    except BadRequestError as e:
        logger.warning("Chat request rejected", extra={"reason": str(e)})
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.exception("Chat request failed")
        raise HTTPException(status_code=502, detail=str(e)) from e
    finally:
        flush_langsmith_traces()
    return ChatResponse.from_result(result)


@router.get("/models", response_model=list[ModelMetadata])
def models() -> list[ModelMetadata]:
    return [
        ModelMetadata(id=model_id, provider=family)
        for family, model_ids in MODEL_FAMILIES.items()
        for model_id in sorted(model_ids)
    ]


@router.get("/health")
def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}


app.include_router(router)


handler = Mangum(app)
