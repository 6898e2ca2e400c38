"""Runtime infrastructure helpers for credentials, tracing, and provider runnables."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import anthropic
import boto3
import google.generativeai as genai
from langchain_core.runnables import Runnable, RunnableLambda
from langsmith import traceable
from langsmith.run_trees import get_cached_client
from openai import AsyncOpenAI

from chat_fanout.constants import (
    ANTHROPIC_API_KEY_PARAMETER_NAME,
    AWS_REGION,
    GEMINI_API_KEY_PARAMETER_NAME,
    LANGSMITH_API_KEY_PARAMETER_NAME,
    LANGSMITH_PROJECT,
    OPENAI_API_KEY_PARAMETER_NAME,
    PERPLEXITY_API_KEY_PARAMETER_NAME,
)
from chat_fanout.schemas import ApiKeys

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiCredentials:
    api_keys: ApiKeys
    langsmith_api_key: str | None


def _get_secure_parameter(ssm_client: Any, parameter_name: str) -> str:
    result = ssm_client.get_parameter(Name=parameter_name, WithDecryption=True)
    value = result["Parameter"].get("Value")
    if not value:
        raise RuntimeError(f"SSM parameter {parameter_name} has no value")
    return value


def _get_optional_secure_parameter(ssm_client: Any, parameter_name: str) -> str | None:
    try:
        return _get_secure_parameter(ssm_client, parameter_name)
    except Exception:
        logger.warning(
            "Optional SSM parameter is unavailable; disabling dependent feature",
            extra={"parameter_name": parameter_name},
            exc_info=True,
        )
        return None


def _resolve_key(
    ssm_client: Any, env_var: str, parameter_name: str, *, required: bool = False
) -> str | None:
    value = os.environ.get(env_var)
    if value:
        return value
    if required:
        return _get_secure_parameter(ssm_client, parameter_name)
    return _get_optional_secure_parameter(ssm_client, parameter_name)


@lru_cache(maxsize=1)
def get_api_credentials() -> ApiCredentials:
    """Load provider keys once; environment variables win over SSM parameters."""
    ssm_client = boto3.client("ssm", region_name=AWS_REGION)
    api_keys = ApiKeys(
        openai=_resolve_key(
            ssm_client, "OPENAI_API_KEY", OPENAI_API_KEY_PARAMETER_NAME, required=True
        ),
        anthropic=_resolve_key(ssm_client, "ANTHROPIC_API_KEY", ANTHROPIC_API_KEY_PARAMETER_NAME),
        gemini=_resolve_key(ssm_client, "GEMINI_API_KEY", GEMINI_API_KEY_PARAMETER_NAME),
        perplexity=_resolve_key(
            ssm_client, "PERPLEXITY_API_KEY", PERPLEXITY_API_KEY_PARAMETER_NAME
        ),
    )
    return ApiCredentials(
        api_keys=api_keys,
        langsmith_api_key=_resolve_key(
            ssm_client, "LANGSMITH_API_KEY", LANGSMITH_API_KEY_PARAMETER_NAME
        ),
    )


def _configure_langsmith(langsmith_api_key: str | None) -> None:
    if not langsmith_api_key:
        os.environ.pop("LANGSMITH_TRACING", None)
        os.environ.pop("LANGSMITH_API_KEY", None)
        logger.info("LangSmith tracing disabled because API key is unavailable")
        return

    os.environ["LANGSMITH_TRACING"] = "true"
    os.environ["LANGSMITH_API_KEY"] = langsmith_api_key
    os.environ.setdefault("LANGSMITH_PROJECT", LANGSMITH_PROJECT)


@lru_cache(maxsize=1)
def ensure_langsmith_configured() -> None:
    """Configure LangSmith environment variables (called once via lru_cache)."""
    credentials = get_api_credentials()
    _configure_langsmith(credentials.langsmith_api_key)


def flush_langsmith_traces() -> None:
    if os.environ.get("LANGSMITH_TRACING", "").lower() != "true":
        return
    if not os.environ.get("LANGSMITH_API_KEY"):
        return
    try:
        get_cached_client().flush()
    except Exception:
        logger.warning("Failed to flush LangSmith traces", exc_info=True)


def _redact_credentials(inputs: dict[str, Any]) -> dict[str, Any]:
    params = inputs.get("params")
    if isinstance(params, dict) and "api_key" in params:
        return {**inputs, "params": {**params, "api_key": "***"}}
    return inputs


# Each call builds its own client; nothing is shared between concurrent calls.


@traceable(
    run_type="llm", name="openai.chat.completions.create", process_inputs=_redact_credentials
)
async def _invoke_chat_completions(params: dict[str, Any]) -> Any:
    request_params = dict(params)
    client = AsyncOpenAI(
        api_key=request_params.pop("api_key"),
        base_url=request_params.pop("base_url", None),
    )
    return await client.chat.completions.create(**request_params)


@traceable(run_type="llm", name="anthropic.messages.create", process_inputs=_redact_credentials)
async def _invoke_anthropic_messages(params: dict[str, Any]) -> Any:
    request_params = dict(params)
    client = anthropic.AsyncAnthropic(api_key=request_params.pop("api_key"))
    return await client.messages.create(**request_params)


@traceable(run_type="llm", name="gemini.chat.send_message", process_inputs=_redact_credentials)
async def _invoke_gemini_chat(params: dict[str, Any]) -> Any:
    genai.configure(api_key=params["api_key"])
    model = genai.GenerativeModel(params["model"])
    chat = model.start_chat(history=params["history"])
    return await chat.send_message_async(
        params["message"],
        generation_config={"max_output_tokens": params["max_output_tokens"]},
    )


@lru_cache(maxsize=1)
def get_chat_completions_runnable() -> Runnable[dict[str, Any], Any]:
    return RunnableLambda(_invoke_chat_completions).with_config(
        {"run_name": "chat_fanout_chat_completions"}
    )


@lru_cache(maxsize=1)
def get_anthropic_messages_runnable() -> Runnable[dict[str, Any], Any]:
    return RunnableLambda(_invoke_anthropic_messages).with_config(
        {"run_name": "chat_fanout_anthropic_messages"}
    )


@lru_cache(maxsize=1)
def get_gemini_chat_runnable() -> Runnable[dict[str, Any], Any]:
    return RunnableLambda(_invoke_gemini_chat).with_config(
        {"run_name": "chat_fanout_gemini_chat"}
    )
