"""
Token Estimator for Ofie Assistant.

Provides accurate token counting with tiktoken for OpenAI-style
budgets, and a character heuristic otherwise.
"""

import logging
import re

import tiktoken

logger = logging.getLogger(__name__)

# CJK and other wide scripts tokenize at roughly 2 chars/token
_WIDE_RANGE = re.compile(r"[\u0900-\u097F\u3040-\u30FF\u4E00-\u9FFF\uAC00-\uD7AF]")


class TokenEstimator:
    """
    Estimates token count for text, with provider-aware strategies.

    - openai: tiktoken (cl100k_base), loaded on first use
    - anything else: heuristic (~4 chars/token, ~2 for wide scripts)
    """

    def __init__(self, provider: str = "heuristic"):
        """
        Args:
            provider: "openai" or "heuristic"
        """
        self.provider = provider.lower()
        self._encoding = None
        self._encoding_failed = False

    def _get_encoding(self):
        if self._encoding is None and not self._encoding_failed:
            try:
                self._encoding = tiktoken.get_encoding("cl100k_base")
                logger.info("TokenEstimator: using tiktoken (cl100k_base)")
            except Exception as e:
                # Encoding files are fetched on first use; offline hosts fall back.
                self._encoding_failed = True
                logger.warning(f"tiktoken encoding unavailable, using heuristic: {e}")
        return self._encoding

    def estimate(self, text: str) -> int:
        """
        Estimate token count for text.

        Args:
            text: Input text

        Returns:
            Estimated token count
        """
        if not text:
            return 0

        if self.provider == "openai":
            encoding = self._get_encoding()
            if encoding is not None:
                return len(encoding.encode(text))

        return self._heuristic_estimate(text)

    def _heuristic_estimate(self, text: str) -> int:
        wide_chars = len(_WIDE_RANGE.findall(text))
        narrow_chars = len(text) - wide_chars
        return max(1, int(wide_chars / 2 + narrow_chars / 4))

    def truncate(self, text: str, max_tokens: int) -> str:
        """Cut text down to roughly ``max_tokens`` tokens."""
        if max_tokens <= 0:
            return ""
        if self.estimate(text) <= max_tokens:
            return text
        encoding = self._get_encoding() if self.provider == "openai" else None
        if encoding is not None:
            return encoding.decode(encoding.encode(text)[:max_tokens])
        return text[: max_tokens * 4]
