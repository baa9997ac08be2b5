"""
Intent Classification for Ofie Assistant.

Bounded rule/keyword matcher: an ordered list of pattern sets checked in
priority order, first match wins.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .entity_extractor import EntityExtractor, jsonable_entities

logger = logging.getLogger(__name__)


class Intent(Enum):
    """Tenant/landlord intent categories."""
    PROPERTY_SEARCH = "property_search"
    PROPERTY_COMPARISON = "property_comparison"
    PROPERTY_DETAILS = "property_details"
    VIEWING_REQUEST = "viewing_request"
    APPLICATION_GUIDANCE = "application_guidance"
    LEASE_CONSULTATION = "lease_consultation"
    MAINTENANCE_REQUEST = "maintenance_request"
    PAYMENT_HELP = "payment_help"
    FINANCIAL_PLANNING = "financial_planning"
    NEIGHBORHOOD_INFO = "neighborhood_info"
    LEGAL_GUIDANCE = "legal_guidance"
    MARKET_INSIGHTS = "market_insights"
    CONTACT_SUPPORT = "contact_support"
    GREETING = "greeting"
    GENERAL_INQUIRY = "general_inquiry"


@dataclass
class IntentResult:
    """Result of intent classification."""
    intent: Intent
    confidence: float
    entities: Dict[str, Any] = field(default_factory=dict)
    matched_keywords: List[str] = field(default_factory=list)
    secondary_intents: List[Intent] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def label(self) -> str:
        return self.intent.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent": self.intent.value,
            "confidence": self.confidence,
            "entities": jsonable_entities(self.entities),
            "matched_keywords": self.matched_keywords,
            "secondary_intents": [i.value for i in self.secondary_intents],
        }


@dataclass
class IntentRule:
    """One pattern set in the priority list."""
    intent: Intent
    primary: List[str]
    secondary: List[str] = field(default_factory=list)
    confidence_base: float = 0.8


# Priority order matters: the first rule with a primary hit wins.
INTENT_RULES: List[IntentRule] = [
    IntentRule(
        Intent.CONTACT_SUPPORT,
        primary=[
            r"\b(human|real person|live agent|agent|representative|customer service|support team)\b",
            r"\b(talk|speak|connect)\b.*\b(someone|person|human|agent|support)\b",
        ],
        secondary=[r"\b(phone|call|email)\b"],
        confidence_base=0.85,
    ),
    IntentRule(
        Intent.LEGAL_GUIDANCE,
        primary=[
            r"\b(legal|laws?|lawyer|attorney|lawsuit|sue|court)\b",
            r"\b(evict|evicted|eviction|discriminat\w*)\b",
            r"\b(tenant rights|my rights|illegal|violation)\b",
        ],
        secondary=[r"\b(landlord|deposit|notice)\b"],
        confidence_base=0.8,
    ),
    IntentRule(
        Intent.MAINTENANCE_REQUEST,
        primary=[
            r"\b(maintenance|repairs?|fix|broken|not working|doesn'?t work|leak(?:s|ing|y)?|clogged?)\b",
            r"\b(emergency|flood(?:ing)?|gas leak|burst pipe|no heat|no hot water|mold)\b",
        ],
        secondary=[
            r"\b(heat(?:er|ing)?|plumbing|toilet|sink|faucet|dishwasher|fridge|refrigerator|stove|oven|washer|dryer|outlet|lock)\b",
            r"\b(urgent|asap|immediately|today)\b",
        ],
        confidence_base=0.9,
    ),
    IntentRule(
        Intent.APPLICATION_GUIDANCE,
        primary=[
            r"\b(apply|applying|application|applications)\b",
            r"\b(approved|approval|application status)\b",
        ],
        secondary=[
            r"\b(documents?|paperwork|requirements|qualify|credit check|background check|references)\b",
            r"\b(how do i|how to|steps|process)\b",
        ],
        confidence_base=0.9,
    ),
    IntentRule(
        Intent.LEASE_CONSULTATION,
        primary=[
            r"\b(lease|leases|leasing|rental agreement|contract)\b",
            r"\b(renew|renewal|terminate|termination|sublet|sublease|move[- ]out)\b",
        ],
        secondary=[r"\b(terms?|clause|notice|month-to-month|security deposit)\b"],
        confidence_base=0.85,
    ),
    IntentRule(
        Intent.VIEWING_REQUEST,
        primary=[
            r"\b(viewing|tour|visit|showing|see the (?:place|apartment|unit|property))\b",
            r"\b(schedule|book|arrange|set up)\b.*\b(view|viewing|tour|visit|showing|appointment)\b",
        ],
        secondary=[
            r"\b(today|tomorrow|weekend|monday|tuesday|wednesday|thursday|friday|saturday|sunday|morning|afternoon|evening)\b",
        ],
        confidence_base=0.85,
    ),
    IntentRule(
        Intent.PAYMENT_HELP,
        primary=[
            r"\b(pay|paying|payment|payments)\b",
            r"\b(rent due|late fee|autopay|auto-pay|receipt|invoice|billing)\b",
        ],
        secondary=[r"\b(card|bank|online|portal|method)\b"],
        confidence_base=0.85,
    ),
    IntentRule(
        Intent.PROPERTY_COMPARISON,
        primary=[
            r"\b(compare|comparing|comparison)\b",
            r"\b(vs\.?|versus|difference between)\b",
            r"\bwhich (?:one|is better|should i)\b",
        ],
        secondary=[r"\b(better|cheaper|bigger|pros and cons)\b"],
        confidence_base=0.85,
    ),
    IntentRule(
        Intent.PROPERTY_DETAILS,
        primary=[
            r"\b(tell me (?:more )?about|more (?:info|information|details)|details)\b",
            r"\b(this|the) (property|place|apartment|unit|listing|house)\b",
            r"\b(available|availability)\b",
        ],
        secondary=[r"\b(amenities|features|square feet|size|included)\b"],
        confidence_base=0.8,
    ),
    IntentRule(
        Intent.PROPERTY_SEARCH,
        primary=[
            r"\b(find|search|searching|looking for|show me|browse)\b",
            r"\b(apartments?|houses?|homes?|condos?|townhouse|studio|loft|rentals?|place to (?:live|rent)|units?)\b",
            r"\b(need|want|looking for|require)\b.*\b(\d+|one|two|three|four)\s*[- ]?(bed|bedroom|br)",
        ],
        secondary=[
            r"(\bunder\b|\bbelow\b|\bbudget\b|\bmax\b|\bup to\b).{0,12}\$?\d|\$\s?\d",
            r"\b(neighborhood|area|location|downtown|near)\b",
            r"\b(parking|pets?|furnished|laundry|gym|pool|balcony)\b",
        ],
        confidence_base=0.9,
    ),
    IntentRule(
        Intent.FINANCIAL_PLANNING,
        primary=[
            r"\b(afford|affordable|budget(?:ing)?|income|salary|savings)\b",
            r"\b(how much (?:rent|can i)|rent to income|cost of living|moving costs?)\b",
        ],
        secondary=[r"\b(save|plan|monthly)\b"],
        confidence_base=0.8,
    ),
    IntentRule(
        Intent.NEIGHBORHOOD_INFO,
        primary=[
            r"\b(neighbou?rhood|area|community|nearby)\b",
            r"\b(safe|safety|crime|schools?|transit|commute|restaurants|grocery|walkable)\b",
        ],
        confidence_base=0.85,
    ),
    IntentRule(
        Intent.MARKET_INSIGHTS,
        primary=[
            r"\b(market|trends?|average rent|rental rates)\b",
            r"\b(good time to (?:rent|move)|going up|going down)\b",
        ],
        confidence_base=0.8,
    ),
    IntentRule(
        Intent.GREETING,
        primary=[r"^\s*(hi|hello|hey|hiya|howdy|good (?:morning|afternoon|evening))\b"],
        confidence_base=0.9,
    ),
]


class IntentClassifier:
    """
    Classifies user intent from messages.

    Rule-based: pattern sets are checked in priority order and the
    first set with a primary hit decides the label. Confidence grows
    with the share of primary and secondary patterns matched.
    """

    DEFAULT_CONFIDENCE = 0.3
    SHORT_MESSAGE_WORDS = 3
    SHORT_MESSAGE_PENALTY = 0.8
    SECONDARY_WEIGHT = 0.2
    CONTINUITY_BOOST = 0.05

    def __init__(
        self,
        rules: Optional[List[IntentRule]] = None,
        entity_extractor: Optional[EntityExtractor] = None,
    ):
        self.rules = rules if rules is not None else INTENT_RULES
        self.entity_extractor = entity_extractor or EntityExtractor()
        self._compiled = [
            (
                rule,
                [re.compile(p, re.IGNORECASE) for p in rule.primary],
                [re.compile(p, re.IGNORECASE) for p in rule.secondary],
            )
            for rule in self.rules
        ]

    def classify(self, text: str, context: Optional[Any] = None) -> IntentResult:
        """
        Classify a message.

        Args:
            text: Non-blank message text
            context: Optional ConversationContext (used for continuity)

        Returns:
            IntentResult with label, confidence in [0, 1] and entities
        """
        entities = self.entity_extractor.extract(text).to_dict()
        word_count = len(text.split())

        winner = None
        secondary_intents: List[Intent] = []
        for rule, primary, secondary in self._compiled:
            primary_hits = [m.group(0) for m in (p.search(text) for p in primary) if m]
            if not primary_hits:
                continue
            if winner is None:
                secondary_hits = [m.group(0) for m in (p.search(text) for p in secondary) if m]
                winner = (rule, primary_hits, secondary_hits, len(primary), len(secondary))
            else:
                secondary_intents.append(rule.intent)

        if winner is None:
            return IntentResult(
                intent=Intent.GENERAL_INQUIRY,
                confidence=self.DEFAULT_CONFIDENCE,
                entities=entities,
            )

        rule, primary_hits, secondary_hits, n_primary, n_secondary = winner
        confidence = rule.confidence_base * (0.6 + 0.4 * len(primary_hits) / n_primary)
        if n_secondary:
            confidence += self.SECONDARY_WEIGHT * len(secondary_hits) / n_secondary
        if word_count < self.SHORT_MESSAGE_WORDS:
            confidence *= self.SHORT_MESSAGE_PENALTY
        last_intent = getattr(context, "last_intent", None) if context is not None else None
        if last_intent == rule.intent.value:
            confidence += self.CONTINUITY_BOOST

        confidence = round(min(max(confidence, 0.0), 1.0), 3)

        logger.debug(f"Intent {rule.intent.value} ({confidence}) from {primary_hits + secondary_hits}")

        return IntentResult(
            intent=rule.intent,
            confidence=confidence,
            entities=entities,
            matched_keywords=[h.lower() for h in primary_hits + secondary_hits],
            secondary_intents=secondary_intents[:3],
        )
