"""
Anthropic (Claude) LLM Provider.
"""

import logging
from typing import Optional

import anthropic

from .base import Prompt, ProviderError, ProviderKind, require_key

logger = logging.getLogger(__name__)


class AnthropicProvider:
    """Claude via the Anthropic Messages API."""

    kind = ProviderKind.ANTHROPIC
    DEFAULT_MODEL = "claude-3-5-sonnet-20241022"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_id: str = DEFAULT_MODEL,
        timeout: float = 10.0,
    ):
        self._client = anthropic.Anthropic(
            api_key=require_key(self.kind, api_key),
            timeout=timeout,
            max_retries=0,
        )
        self.model_id = model_id

        logger.info(f"Anthropic provider initialized: {model_id}")

    def generate(self, prompt: Prompt) -> str:
        try:
            response = self._client.messages.create(
                model=self.model_id,
                max_tokens=prompt.max_tokens,
                temperature=prompt.temperature,
                system=prompt.system,
                messages=[{"role": "user", "content": prompt.user}],
            )
        except Exception as e:
            raise ProviderError(self.kind.value, str(e)) from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        if not text:
            raise ProviderError(self.kind.value, "response had no text blocks")
        return text.strip()
