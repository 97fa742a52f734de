"""Provider Factory - Create a model provider from the environment.

Azure OpenAI wins when both its key and endpoint are set; otherwise an
OpenAI key selects OpenAI. With neither, there is no provider and the
intent parser runs on its deterministic rules alone.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from rdpilot.errors import ConfigurationError, LLMError

from .base import LLMProvider
from .openai import OpenAIChatProvider

logger = logging.getLogger(__name__)

DEFAULT_AZURE_MODEL = "gpt-4"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


@dataclass(frozen=True)
class ModelConfig:
    """Resolved model backend settings.

    Attributes:
        provider: "azure-openai" or "openai".
        api_key: Credential sent with every request.
        model: Model name (the deployment name for Azure).
        endpoint: Base URL; None means the public OpenAI endpoint.
    """

    provider: str
    api_key: str
    model: str
    endpoint: str | None = None

    def __repr__(self) -> str:
        return (
            f"ModelConfig(provider={self.provider!r}, model={self.model!r}, "
            f"endpoint={self.endpoint!r})"
        )


def load_model_config(environ: Mapping[str, str] | None = None) -> ModelConfig | None:
    env = os.environ if environ is None else environ

    azure_key = (env.get("AZURE_OPENAI_API_KEY") or "").strip()
    azure_endpoint = (env.get("AZURE_OPENAI_ENDPOINT") or "").strip()
    if azure_key and azure_endpoint:
        return ModelConfig(
            provider="azure-openai",
            api_key=azure_key,
            model=(env.get("AZURE_OPENAI_MODEL") or DEFAULT_AZURE_MODEL).strip(),
            endpoint=azure_endpoint,
        )

    openai_key = (env.get("OPENAI_API_KEY") or "").strip()
    if openai_key:
        return ModelConfig(
            provider="openai",
            api_key=openai_key,
            model=(env.get("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL).strip(),
            endpoint=(env.get("OPENAI_ENDPOINT") or "").strip() or None,
        )

    return None


def create_provider(config: ModelConfig) -> LLMProvider:
    return OpenAIChatProvider(
        api_key=config.api_key,
        model=config.model,
        endpoint=config.endpoint,
        azure=config.provider == "azure-openai",
    )


def get_provider_or_none(environ: Mapping[str, str] | None = None) -> LLMProvider | None:
    """Get the configured provider, or None for rule-based mode.

    Never raises; configuration problems are logged and treated as absent.
    """
    config = load_model_config(environ)
    if config is None:
        logger.info("No model backend configured; using rule-based parsing")
        return None
    try:
        provider = create_provider(config)
    except (ConfigurationError, LLMError) as exc:
        logger.warning("Model backend misconfigured, using rule-based parsing: %s", exc)
        return None
    logger.info("Using %s model %s", config.provider, config.model)
    return provider
