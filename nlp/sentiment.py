"""
Lexicon sentiment scoring for Ofie Assistant.
"""

import re
from enum import Enum
from typing import Iterable


class Sentiment(Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"

    @property
    def score(self) -> int:
        return {"positive": 1, "neutral": 0, "negative": -1}[self.value]


class SentimentAnalyzer:
    """Counts positive vs negative lexicon hits per message."""

    POSITIVE_WORDS = {
        "great", "excellent", "amazing", "good", "nice", "beautiful", "perfect",
        "love", "like", "want", "happy", "excited", "thanks", "thank", "helpful",
    }
    NEGATIVE_WORDS = {
        "bad", "terrible", "awful", "horrible", "hate", "dislike", "problem",
        "problems", "issue", "issues", "broken", "frustrated", "frustrating",
        "angry", "annoyed", "useless", "worst", "ridiculous", "unacceptable",
    }

    _WORD = re.compile(r"[a-z']+")

    def classify(self, text: str) -> Sentiment:
        words = self._WORD.findall(text.lower())
        positive = sum(1 for w in words if w in self.POSITIVE_WORDS)
        negative = sum(1 for w in words if w in self.NEGATIVE_WORDS)
        if positive > negative:
            return Sentiment.POSITIVE
        if negative > positive:
            return Sentiment.NEGATIVE
        return Sentiment.NEUTRAL

    def majority(self, texts: Iterable[str]) -> Sentiment:
        """
        Overall sentiment by majority vote.

        Neutral messages abstain; a tie between positive and negative
        votes is neutral.
        """
        positive = negative = 0
        for text in texts:
            sentiment = self.classify(text)
            if sentiment == Sentiment.POSITIVE:
                positive += 1
            elif sentiment == Sentiment.NEGATIVE:
                negative += 1
        if positive > negative:
            return Sentiment.POSITIVE
        if negative > positive:
            return Sentiment.NEGATIVE
        return Sentiment.NEUTRAL
