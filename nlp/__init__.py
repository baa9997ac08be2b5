"""
Language Module for Ofie Assistant.

This module provides the lightweight text understanding used by the
assistant:
- Intent classification (rule/keyword priority list)
- Entity extraction (bedrooms, budget, location, amenities)
- Lexicon sentiment
"""

from .intent_classifier import IntentClassifier, Intent, IntentResult, IntentRule
from .entity_extractor import EntityExtractor, ExtractedEntities, jsonable_entities
from .sentiment import SentimentAnalyzer, Sentiment

__all__ = [
    "IntentClassifier",
    "Intent",
    "IntentResult",
    "IntentRule",
    "EntityExtractor",
    "ExtractedEntities",
    "jsonable_entities",
    "SentimentAnalyzer",
    "Sentiment",
]
