"""
Entity Extraction for Ofie Assistant.

Extracts rental-search entities from tenant messages:
- Bedroom / bathroom counts
- Budget (single figure or range)
- Location, property type, amenities
- Urgency, timeline, square footage, lease length
"""

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


WORD_NUMBERS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
}

PROPERTY_TYPES = {
    "apartment": "apartment", "apartments": "apartment", "apt": "apartment",
    "house": "house", "houses": "house", "home": "house",
    "condo": "condo", "condos": "condo",
    "townhouse": "townhouse", "townhome": "townhouse",
    "studio": "studio", "loft": "loft", "duplex": "duplex",
}

# Words that look like place names after "in"/"near" but are not.
LOCATION_STOPWORDS = {"The", "A", "An", "My", "Your", "This", "That", "It", "I"}


@dataclass
class ExtractedEntities:
    """Container for extracted entities from a message."""

    bedroom_count: Optional[int] = None
    bathroom_count: Optional[float] = None

    budget: Optional[Decimal] = None
    budget_min: Optional[Decimal] = None
    budget_max: Optional[Decimal] = None

    location: Optional[str] = None
    property_type: Optional[str] = None
    amenities: Set[str] = field(default_factory=set)

    urgency: Optional[str] = None          # emergency | high
    timeline: Optional[str] = None
    square_feet: Optional[int] = None
    lease_duration_months: Optional[int] = None

    def has_budget(self) -> bool:
        return self.budget is not None or self.budget_max is not None

    def has_search_criteria(self) -> bool:
        return bool(
            self.bedroom_count is not None or self.has_budget()
            or self.location or self.property_type or self.amenities
        )

    def to_dict(self) -> Dict[str, Any]:
        """Non-empty entities only, with native values (Decimal, set)."""
        values = {
            "bedroom_count": self.bedroom_count,
            "bathroom_count": self.bathroom_count,
            "budget": self.budget,
            "budget_min": self.budget_min,
            "budget_max": self.budget_max,
            "location": self.location,
            "property_type": self.property_type,
            "amenities": set(self.amenities) if self.amenities else None,
            "urgency": self.urgency,
            "timeline": self.timeline,
            "square_feet": self.square_feet,
            "lease_duration_months": self.lease_duration_months,
        }
        return {k: v for k, v in values.items() if v is not None}


def jsonable_entities(entities: Dict[str, Any]) -> Dict[str, Any]:
    """Convert an entity map into JSON-safe values for persistence."""
    out: Dict[str, Any] = {}
    for key, value in entities.items():
        if isinstance(value, Decimal):
            out[key] = int(value) if value == value.to_integral_value() else float(value)
        elif isinstance(value, (set, frozenset)):
            out[key] = sorted(value)
        else:
            out[key] = value
    return out


class EntityExtractor:
    """
    Extracts structured entities from free text.

    Pure regex/keyword heuristics; runs independently of the detected
    intent so a budget is captured even for general questions.
    """

    AMENITY_PATTERNS = {
        "parking": r"\b(parking|garage|carport)\b",
        "pet_friendly": r"\b(pets?|dogs?|cats?|pet[- ]friendly)\b",
        "furnished": r"\bfurnished\b",
        "utilities_included": r"\butilities\b",
        "laundry": r"\b(laundry|washer|dryer|w/d)\b",
        "gym": r"\b(gym|fitness)\b",
        "pool": r"\bpool\b",
        "balcony": r"\b(balcony|patio|terrace)\b",
        "dishwasher": r"\bdishwasher\b",
        "air_conditioning": r"\b(air conditioning|a/c|central air)\b",
    }

    EMERGENCY_PATTERN = r"\b(emergency|flood(?:ing)?|fire|gas leak|burst pipe|no heat|no hot water|sparking)\b"
    HIGH_URGENCY_PATTERN = r"\b(urgent(?:ly)?|asap|immediately|right away)\b"

    def __init__(self):
        self._patterns = self._build_patterns()
        self._amenity_patterns = {
            name: re.compile(p, re.IGNORECASE) for name, p in self.AMENITY_PATTERNS.items()
        }

    def _build_patterns(self) -> Dict[str, re.Pattern]:
        """Compile regex patterns."""
        number = r"(\d+|one|two|three|four|five|six)"
        amount = r"\$?\s?([\d,]+(?:\.\d{1,2})?)\s*(k)?"
        return {
            "bedrooms": re.compile(number + r"\s*[- ]?\s*(?:bed(?:room)?s?|br|bd)\b", re.IGNORECASE),
            "bathrooms": re.compile(r"(\d+(?:\.5)?|one|two|three)\s*[- ]?\s*(?:bath(?:room)?s?|ba)\b", re.IGNORECASE),
            "budget_range": re.compile(r"\bbetween\s+" + amount + r"\s+(?:and|to|-)\s+" + amount, re.IGNORECASE),
            "budget_currency": re.compile(r"\$\s?([\d,]+(?:\.\d{1,2})?)\s*(k)?\b", re.IGNORECASE),
            "budget_words": re.compile(r"\b([\d,]+(?:\.\d{1,2})?)\s*(k)?\s*(?:dollars|usd|bucks)\b", re.IGNORECASE),
            "budget_keyword": re.compile(r"\bbudget\b[^\d$]{0,15}\$?\s?([\d,]+(?:\.\d{1,2})?)\s*(k)?", re.IGNORECASE),
            "location": re.compile(
                r"\b(?:[Ii]n|[Nn]ear|[Aa]round|[Cc]lose to)\s+([A-Z][a-zA-Z]+(?:\s+[A-Z][a-zA-Z]+)*)"
            ),
            "property_type": re.compile(r"\b(" + "|".join(PROPERTY_TYPES) + r")\b", re.IGNORECASE),
            "timeline": re.compile(
                r"\b(immediately|asap|this week|next week|this month|next month|"
                r"in \d+ (?:days?|weeks?|months?))\b",
                re.IGNORECASE,
            ),
            "square_feet": re.compile(r"\b([\d,]+)\s*(?:sq\.?\s*ft|square\s*feet|sqft)\b", re.IGNORECASE),
            "lease_months": re.compile(r"\b(\d+)[\s-]*months?[\s-]+lease\b", re.IGNORECASE),
            "lease_years": re.compile(r"\b(\d+|one|two)[\s-]*years?[\s-]+lease\b", re.IGNORECASE),
            "emergency": re.compile(self.EMERGENCY_PATTERN, re.IGNORECASE),
            "high_urgency": re.compile(self.HIGH_URGENCY_PATTERN, re.IGNORECASE),
        }

    def extract(self, text: str) -> ExtractedEntities:
        """
        Extract entities from a message.

        Args:
            text: Raw message text (case preserved for location detection)

        Returns:
            ExtractedEntities
        """
        entities = ExtractedEntities()
        if not text:
            return entities

        p = self._patterns

        match = p["bedrooms"].search(text)
        if match:
            entities.bedroom_count = self._to_int(match.group(1))

        match = p["bathrooms"].search(text)
        if match:
            raw = match.group(1).lower()
            entities.bathroom_count = float(WORD_NUMBERS.get(raw, raw))

        self._extract_budget(text, entities)

        match = p["location"].search(text)
        if match:
            words = [w for w in match.group(1).split() if w not in LOCATION_STOPWORDS]
            if words:
                entities.location = " ".join(words)

        match = p["property_type"].search(text)
        if match:
            entities.property_type = PROPERTY_TYPES[match.group(1).lower()]

        entities.amenities = {
            name for name, pattern in self._amenity_patterns.items() if pattern.search(text)
        }

        if p["emergency"].search(text):
            entities.urgency = "emergency"
        elif p["high_urgency"].search(text):
            entities.urgency = "high"

        match = p["timeline"].search(text)
        if match:
            entities.timeline = match.group(1).lower()

        match = p["square_feet"].search(text)
        if match:
            entities.square_feet = int(match.group(1).replace(",", ""))

        match = p["lease_months"].search(text)
        if match:
            entities.lease_duration_months = int(match.group(1))
        else:
            match = p["lease_years"].search(text)
            if match:
                entities.lease_duration_months = self._to_int(match.group(1)) * 12

        return entities

    def _extract_budget(self, text: str, entities: ExtractedEntities):
        """Budget range first, then currency-prefixed or worded amounts."""
        match = self._patterns["budget_range"].search(text)
        if match:
            low = self._to_amount(match.group(1), match.group(2))
            high = self._to_amount(match.group(3), match.group(4))
            if low is not None and high is not None:
                entities.budget_min, entities.budget_max = min(low, high), max(low, high)
                entities.budget = entities.budget_max
                return

        for key in ("budget_currency", "budget_keyword", "budget_words"):
            match = self._patterns[key].search(text)
            if match:
                amount = self._to_amount(match.group(1), match.group(2))
                if amount is not None and amount > 0:
                    entities.budget = amount
                    return

    @staticmethod
    def _to_amount(raw: str, thousands: Optional[str]) -> Optional[Decimal]:
        try:
            value = Decimal(raw.replace(",", ""))
        except InvalidOperation:
            logger.debug(f"Unparseable amount: {raw}")
            return None
        if thousands:
            value *= 1000
        return value

    @staticmethod
    def _to_int(raw: str) -> int:
        raw = raw.lower()
        if raw in WORD_NUMBERS:
            return WORD_NUMBERS[raw]
        return int(raw)

    def extract_all(self, texts: List[str]) -> ExtractedEntities:
        """Merge entities across several messages; later messages win."""
        merged = ExtractedEntities()
        for text in texts:
            found = self.extract(text)
            for key, value in vars(found).items():
                if key == "amenities":
                    merged.amenities |= value
                elif value is not None:
                    setattr(merged, key, value)
        return merged
