"""Model providers - optional external backends for intent parsing.

Usage:
    from rdpilot.providers import get_provider_or_none

    provider = get_provider_or_none()  # None -> rule-based mode
"""

from __future__ import annotations

from rdpilot.providers.base import LLMError, LLMProvider, ProviderHealth
from rdpilot.providers.factory import (
    ModelConfig,
    create_provider,
    get_provider_or_none,
    load_model_config,
)
from rdpilot.providers.openai import OpenAIChatProvider, extract_json

__all__ = [
    "LLMError",
    "LLMProvider",
    "ProviderHealth",
    "OpenAIChatProvider",
    "extract_json",
    "ModelConfig",
    "create_provider",
    "get_provider_or_none",
    "load_model_config",
]
