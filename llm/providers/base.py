"""
Provider types shared by the generative-text clients.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, runtime_checkable


class ProviderKind(Enum):
    """Supported generative-text providers."""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"


# Fixed fallback order
PROVIDER_ORDER = (ProviderKind.ANTHROPIC, ProviderKind.OPENAI, ProviderKind.GOOGLE)


class ProviderError(Exception):
    """Timeout, network failure or malformed response from a provider."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class ProviderNotConfigured(ProviderError):
    """Raised when a client is built without its credential."""


@dataclass
class Prompt:
    """A bounded prompt ready for any provider."""
    system: str
    user: str
    max_tokens: int = 500
    temperature: float = 0.7


@runtime_checkable
class ProviderClient(Protocol):
    kind: ProviderKind
    model_id: str

    def generate(self, prompt: Prompt) -> str:
        """Blocking call; raises ProviderError on any failure."""
        ...


def require_key(kind: ProviderKind, api_key: Optional[str]) -> str:
    if not api_key:
        raise ProviderNotConfigured(kind.value, "credential missing")
    return api_key
