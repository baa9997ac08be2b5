"""
Response Validation for Ofie Assistant.

Post-generation checks that decide whether provider output is usable
as a reply, or whether the rule-based fallback should answer instead.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List

logger = logging.getLogger(__name__)


@dataclass
class VerificationResult:
    """Result of response validation."""
    passed: bool = True
    flags: List[str] = field(default_factory=list)
    sanitized_response: str = ""
    original_response: str = ""


class ResponseValidator:
    """
    Validates generated replies before they reach the user.

    Checks:
    1. Empty or whitespace-only output
    2. Length bounds
    3. Self-referential disclaimers ("As an AI...")
    """

    DISCLAIMER_PHRASES = (
        "as an ai",
        "i don't have access",
        "i cannot",
        "i apologize, but i",
    )

    _WHITESPACE = re.compile(r"[ \t]+")
    _BLANK_LINES = re.compile(r"\n{3,}")

    def __init__(self, min_length: int = 10, max_length: int = 2000):
        self.min_length = min_length
        self.max_length = max_length

    def verify(self, response: str) -> VerificationResult:
        """
        Run all checks on a generated reply.

        Args:
            response: Provider output

        Returns:
            VerificationResult; passed is False when any flag was raised
        """
        text = self._normalize(response or "")
        result = VerificationResult(original_response=response or "", sanitized_response=text)

        if not text:
            result.flags.append("empty")
        else:
            if len(text) < self.min_length:
                result.flags.append("too_short")
            if len(text) > self.max_length:
                result.flags.append("too_long")
            self._check_disclaimers(result)

        result.passed = len(result.flags) == 0
        if not result.passed:
            logger.warning(f"Response validation flags: {result.flags}")
        return result

    def is_valid(self, response: str) -> bool:
        return self.verify(response).passed

    def _normalize(self, text: str) -> str:
        text = self._WHITESPACE.sub(" ", text.strip())
        return self._BLANK_LINES.sub("\n\n", text)

    def _check_disclaimers(self, result: VerificationResult):
        lowered = result.sanitized_response.lower()
        for phrase in self.DISCLAIMER_PHRASES:
            if phrase in lowered:
                result.flags.append(f"disclaimer:{phrase}")
