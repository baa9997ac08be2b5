"""
OpenAI LLM Provider.
"""

import logging
from typing import Optional

from openai import OpenAI

from .base import Prompt, ProviderError, ProviderKind, require_key

logger = logging.getLogger(__name__)


class OpenAIProvider:
    """
    OpenAI chat-completions provider.

    Supports GPT-4 and GPT-3.5 models.
    """

    kind = ProviderKind.OPENAI
    DEFAULT_MODEL = "gpt-4-turbo-preview"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_id: str = DEFAULT_MODEL,
        timeout: float = 10.0,
    ):
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key
            model_id: Model ID
            timeout: Per-request timeout in seconds
        """
        self._client = OpenAI(
            api_key=require_key(self.kind, api_key),
            timeout=timeout,
            max_retries=0,
        )
        self.model_id = model_id

        logger.info(f"OpenAI provider initialized: {model_id}")

    def generate(self, prompt: Prompt) -> str:
        """
        Generate a reply.

        Args:
            prompt: System + user prompt with generation limits

        Returns:
            Generated text
        """
        try:
            response = self._client.chat.completions.create(
                model=self.model_id,
                messages=[
                    {"role": "system", "content": prompt.system},
                    {"role": "user", "content": prompt.user},
                ],
                max_tokens=prompt.max_tokens,
                temperature=prompt.temperature,
            )
        except Exception as e:
            raise ProviderError(self.kind.value, str(e)) from e

        if not response.choices or response.choices[0].message.content is None:
            raise ProviderError(self.kind.value, "response had no content")

        return response.choices[0].message.content.strip()
