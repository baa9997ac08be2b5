"""
LLM Provider implementations.

Each provider is a small client with a blocking ``generate(prompt)``;
``invoke`` is the one place the generator calls them through.
"""

import logging
from typing import Any, Dict, List

from .base import (
    PROVIDER_ORDER,
    Prompt,
    ProviderClient,
    ProviderError,
    ProviderKind,
    ProviderNotConfigured,
)
from .anthropic_provider import AnthropicProvider
from .openai_provider import OpenAIProvider
from .google_provider import GoogleProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: Dict[ProviderKind, Any] = {
    ProviderKind.ANTHROPIC: AnthropicProvider,
    ProviderKind.OPENAI: OpenAIProvider,
    ProviderKind.GOOGLE: GoogleProvider,
}


def build_providers(settings: Any) -> List[ProviderClient]:
    """
    Build clients for every provider whose credential is present.

    Returns them in the fixed fallback order. A provider whose client
    cannot be constructed is logged and left out.
    """
    credentials = {
        ProviderKind.ANTHROPIC: (settings.anthropic_api_key, settings.anthropic_model),
        ProviderKind.OPENAI: (settings.openai_api_key, settings.openai_model),
        ProviderKind.GOOGLE: (settings.google_api_key, settings.google_model),
    }
    providers: List[ProviderClient] = []
    for kind in PROVIDER_ORDER:
        api_key, model_id = credentials[kind]
        if not api_key:
            logger.info(f"{kind.value} credential not set, provider skipped")
            continue
        try:
            providers.append(PROVIDER_CLASSES[kind](
                api_key=api_key,
                model_id=model_id,
                timeout=settings.provider_timeout_seconds,
            ))
        except Exception as e:
            logger.warning(f"Could not initialize {kind.value} provider: {e}")
    return providers


def invoke(provider: ProviderClient, prompt: Prompt) -> str:
    """Call a provider, normalizing every failure to ProviderError."""
    try:
        return provider.generate(prompt)
    except ProviderError:
        raise
    except Exception as e:
        raise ProviderError(getattr(provider.kind, "value", str(provider.kind)), str(e)) from e


__all__ = [
    "PROVIDER_ORDER",
    "Prompt",
    "ProviderClient",
    "ProviderError",
    "ProviderKind",
    "ProviderNotConfigured",
    "AnthropicProvider",
    "OpenAIProvider",
    "GoogleProvider",
    "build_providers",
    "invoke",
]
