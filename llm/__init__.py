"""
LLM Module for Ofie Assistant.

This module handles:
- Provider clients (Anthropic, OpenAI, Google) tried in a fixed order
- Prompt assembly within a token budget
- Validation, caching and the rule-based fallback
- Personalized wording for rule-based replies
"""

from .fallback import RuleBasedSynthesizer
from .generator import GeneratedReply, ReplySource, ResponseGenerator
from .guardrails import ResponseValidator, VerificationResult
from .personality import Personalizer
from .prompt_templates import PromptBuilder, PromptTemplates
from .response_cache import ResponseCache
from .token_estimator import TokenEstimator

__all__ = [
    "GeneratedReply",
    "Personalizer",
    "PromptBuilder",
    "PromptTemplates",
    "ReplySource",
    "ResponseCache",
    "ResponseGenerator",
    "ResponseValidator",
    "RuleBasedSynthesizer",
    "TokenEstimator",
    "VerificationResult",
]
