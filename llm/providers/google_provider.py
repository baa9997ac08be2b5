"""
Google Gemini LLM Provider.
"""

import logging
from typing import Optional

import google.generativeai as genai

from .base import Prompt, ProviderError, ProviderKind, require_key

logger = logging.getLogger(__name__)


class GoogleProvider:
    """
    Gemini via google-generativeai.

    gemini-pro takes no separate system instruction, so the system
    prompt is prepended to the user prompt.
    """

    kind = ProviderKind.GOOGLE
    DEFAULT_MODEL = "gemini-pro"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_id: str = DEFAULT_MODEL,
        timeout: float = 10.0,
    ):
        genai.configure(api_key=require_key(self.kind, api_key))
        self._model = genai.GenerativeModel(model_id)
        self.model_id = model_id
        self.timeout = timeout

        logger.info(f"Google provider initialized: {model_id}")

    def generate(self, prompt: Prompt) -> str:
        try:
            response = self._model.generate_content(
                f"{prompt.system}\n\n{prompt.user}",
                generation_config=genai.types.GenerationConfig(
                    temperature=prompt.temperature,
                    max_output_tokens=prompt.max_tokens,
                ),
                request_options={"timeout": self.timeout},
            )
            # .text raises ValueError when the candidate was blocked
            text = response.text
        except Exception as e:
            raise ProviderError(self.kind.value, str(e)) from e

        if not text:
            raise ProviderError(self.kind.value, "empty response")
        return text.strip()
