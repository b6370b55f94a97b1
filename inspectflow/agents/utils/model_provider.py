"""Model factory for the evidence analyst.

The analyst needs a vision-capable model that returns deterministic verdicts,
so every provider is created with temperature 0 and without streaming.
``LLM_PROVIDER`` picks the backend (``bedrock`` unless set); providers other
than Bedrock ship as optional extras and are imported on first use.

A model id is chosen from, in order: the ``model_id`` argument, the
``<PROVIDER>_MODEL_ID`` variable (``OPENAI_MODEL_ID`` ...), and finally
``PROVIDER_DEFAULTS``.
"""

import importlib
import logging
import os
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class LLMProvider(Enum):
    """Supported LLM providers."""

    BEDROCK = "bedrock"
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    OLLAMA = "ollama"


# Vision-capable defaults
PROVIDER_DEFAULTS: dict[LLMProvider, str] = {
    LLMProvider.BEDROCK: "anthropic.claude-3-5-sonnet-20241022-v2:0",
    LLMProvider.ANTHROPIC: "claude-sonnet-4-20250514",
    LLMProvider.OPENAI: "gpt-4o",
    LLMProvider.OLLAMA: "llava:13b",
}

DEFAULT_MAX_TOKENS = 1024


def get_active_provider() -> LLMProvider:
    """Provider named by ``LLM_PROVIDER``.

    Raises:
        ValueError: If the variable names an unsupported provider.
    """
    name = os.getenv("LLM_PROVIDER", LLMProvider.BEDROCK.value).strip().lower()
    try:
        return LLMProvider(name)
    except ValueError:
        options = ", ".join(p.value for p in LLMProvider)
        raise ValueError(f"Unknown LLM_PROVIDER '{name}'. Valid options: {options}") from None


def get_model_id(provider: LLMProvider | None = None) -> str:
    provider = provider or get_active_provider()
    override = os.getenv(f"{provider.value.upper()}_MODEL_ID")
    if override:
        return override
    logger.info("No %s_MODEL_ID set, using %s", provider.value.upper(), PROVIDER_DEFAULTS[provider])
    return PROVIDER_DEFAULTS[provider]


def get_default_max_tokens() -> int:
    """Verdicts are short; ``DEFAULT_MAX_TOKENS`` overrides the 1024 default."""
    return int(os.getenv("DEFAULT_MAX_TOKENS", str(DEFAULT_MAX_TOKENS)))


# =============================================================================
# Provider factories
# =============================================================================

_PROVIDER_FACTORIES: dict[LLMProvider, Callable[..., Any]] = {}


def _register_provider(provider: LLMProvider):
    """Register ``fn`` as the model factory for ``provider``."""

    def decorator(fn):
        _PROVIDER_FACTORIES[provider] = fn
        return fn

    return decorator


def _optional_model_class(provider: LLMProvider, module: str, class_name: str):
    """Import a Strands model class that lives behind an install extra."""
    try:
        return getattr(importlib.import_module(module), class_name)
    except ImportError as e:
        raise ImportError(
            f"The {provider.value} provider is not installed. "
            f"Install it with: pip install 'inspectflow[{provider.value}]'"
        ) from e


def _client_args(api_key_var: str, timeout: float) -> dict[str, Any]:
    args: dict[str, Any] = {"timeout": timeout}
    if os.getenv(api_key_var):
        args["api_key"] = os.environ[api_key_var]
    return args


@_register_provider(LLMProvider.BEDROCK)
def _create_bedrock(model_id, max_tokens, temperature, read_timeout, connect_timeout):
    from botocore.config import Config
    from strands.models.bedrock import BedrockModel

    region = os.getenv("BEDROCK_REGION") or os.getenv("AWS_REGION")
    if not region:
        raise ValueError("Set AWS_REGION (or BEDROCK_REGION) to analyze evidence with Bedrock")

    client_config = Config(
        read_timeout=read_timeout,
        connect_timeout=connect_timeout,
        retries={"max_attempts": 3, "mode": "standard"},
    )
    return BedrockModel(
        model_id=model_id,
        region_name=region,
        boto_client_config=client_config,
        streaming=False,
        temperature=temperature,
        max_tokens=max_tokens,
    )


@_register_provider(LLMProvider.ANTHROPIC)
def _create_anthropic(model_id, max_tokens, temperature, read_timeout, connect_timeout):
    model_class = _optional_model_class(
        LLMProvider.ANTHROPIC, "strands.models.anthropic", "AnthropicModel"
    )
    return model_class(
        client_args=_client_args("ANTHROPIC_API_KEY", read_timeout),
        model_id=model_id,
        max_tokens=max_tokens,
        params={"temperature": temperature},
    )


@_register_provider(LLMProvider.OPENAI)
def _create_openai(model_id, max_tokens, temperature, read_timeout, connect_timeout):
    model_class = _optional_model_class(LLMProvider.OPENAI, "strands.models.openai", "OpenAIModel")
    return model_class(
        client_args=_client_args("OPENAI_API_KEY", read_timeout),
        model_id=model_id,
        params={"max_tokens": max_tokens, "temperature": temperature},
    )


@_register_provider(LLMProvider.OLLAMA)
def _create_ollama(model_id, max_tokens, temperature, read_timeout, connect_timeout):
    model_class = _optional_model_class(LLMProvider.OLLAMA, "strands.models.ollama", "OllamaModel")
    return model_class(
        host=os.getenv("OLLAMA_HOST", "http://localhost:11434"),
        model_id=model_id,
        max_tokens=max_tokens,
        temperature=temperature,
    )


# =============================================================================
# Public API
# =============================================================================


def create_model(
    model_id: str | None = None,
    max_tokens: int | None = None,
    temperature: float = 0.0,
    read_timeout: float = 120.0,
    connect_timeout: float = 30.0,
):
    """Build the analysis model for the configured provider.

    Args:
        model_id: Explicit model id; resolved via ``get_model_id`` when omitted.
        max_tokens: Response token limit; ``get_default_max_tokens()`` when omitted.
        temperature: Sampling temperature, 0 for repeatable verdicts.
        read_timeout: Seconds to wait for a response.
        connect_timeout: Seconds to wait for a connection.

    Returns:
        A Strands model instance.
    """
    provider = get_active_provider()
    model_id = model_id or get_model_id(provider)
    max_tokens = max_tokens or get_default_max_tokens()

    logger.info(f"Analysis model: provider={provider.value} model_id={model_id} max_tokens={max_tokens}")
    return _PROVIDER_FACTORIES[provider](
        model_id=model_id,
        max_tokens=max_tokens,
        temperature=temperature,
        read_timeout=read_timeout,
        connect_timeout=connect_timeout,
    )
