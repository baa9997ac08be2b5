"""
Personality layer for Ofie Assistant.

Adapts rule-based wording to the user: formality by role and account
age, time-of-day greetings, emoji for casual topics, and an empathy
opener when the user sounds unhappy. Every choice is deterministic.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from conversation.models import ActivityCounts, UserProfile, UserRecord, utcnow
from nlp.sentiment import Sentiment

logger = logging.getLogger(__name__)


class Formality(Enum):
    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"
    CASUAL = "casual"


class TimeOfDay(Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    LATE_NIGHT = "late_night"


@dataclass
class CommunicationStyle:
    formality: Formality
    verbosity: str  # detailed | balanced
    emoji: bool

    def to_dict(self) -> Dict[str, object]:
        return {
            "formality": self.formality.value,
            "verbosity": self.verbosity,
            "emoji": self.emoji,
        }


# Topics where emoji and cheerful openers are out of place
SERIOUS_INTENTS = {"legal_guidance", "maintenance_request", "financial_planning", "contact_support"}
ENTHUSIASTIC_INTENTS = {"property_search", "application_guidance"}
PROFESSIONAL_INTENTS = {"legal_guidance", "lease_consultation"}
SUPPORTIVE_INTENTS = {"maintenance_request", "financial_planning"}

INTENT_EMOJI = {
    "property_search": "🏠",
    "application_guidance": "📋",
    "viewing_request": "📅",
    "payment_help": "💳",
    "neighborhood_info": "🗺️",
}

GREETINGS = {
    TimeOfDay.MORNING: ("Good morning{name}!", "☀️"),
    TimeOfDay.AFTERNOON: ("Good afternoon{name}!", "🌤️"),
    TimeOfDay.EVENING: ("Good evening{name}!", "🌆"),
    TimeOfDay.LATE_NIGHT: ("Up late{name}? Let's make it worth it!", "🌙"),
}

_CONTRACTIONS: List[Tuple[str, str]] = [
    ("I will", "I'll"),
    ("do not", "don't"),
    ("cannot", "can't"),
    ("will not", "won't"),
    ("should not", "shouldn't"),
    ("would not", "wouldn't"),
]


def _replace_words(text: str, pairs: List[Tuple[str, str]]) -> str:
    for old, new in pairs:
        text = re.sub(rf"\b{re.escape(old)}\b", new, text)
        if old[0].islower():
            text = re.sub(rf"\b{re.escape(old.capitalize())}\b", new[0].upper() + new[1:], text)
    return text


def first_name(name: str) -> str:
    parts = (name or "").split()
    return parts[0] if parts else ""


def profile_for_user(user: UserRecord, now: Optional[datetime] = None) -> UserProfile:
    """Minimal profile for callers that only hold the user record."""
    now = now or utcnow()
    return UserProfile(
        user_id=user.id,
        name=user.name,
        role=user.role,
        account_age=now - user.created_at,
        activity=ActivityCounts(),
        preferences=dict(user.preferences or {}),
    )


class Personalizer:
    """
    Applies the assistant's personality to rule-based text.

    Usage:
        personalizer = Personalizer()
        text = personalizer.personalize(text, context.profile, "property_search", Sentiment.NEUTRAL)
    """

    NEW_USER_DAYS = 7
    EMOJI_MAX_ACCOUNT_DAYS = 30
    PROFESSIONAL_MIN_LENGTH = 100

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock

    def style_for(self, profile: UserProfile) -> CommunicationStyle:
        """
        Communication style for a user.

        Landlords get professional wording, users in their first week a
        friendly one, everyone else a casual one. Emoji are used only for
        non-professional users in their first month.
        """
        if profile.role == "landlord":
            formality = Formality.PROFESSIONAL
        elif profile.account_age_days < self.NEW_USER_DAYS:
            formality = Formality.FRIENDLY
        else:
            formality = Formality.CASUAL
        return CommunicationStyle(
            formality=formality,
            verbosity="detailed" if profile.role == "landlord" else "balanced",
            emoji=(
                formality != Formality.PROFESSIONAL
                and profile.account_age_days < self.EMOJI_MAX_ACCOUNT_DAYS
            ),
        )

    def use_emoji(self, profile: UserProfile, intent: Optional[str]) -> bool:
        if intent in SERIOUS_INTENTS:
            return False
        return self.style_for(profile).emoji

    @staticmethod
    def time_of_day(now: datetime) -> TimeOfDay:
        hour = now.hour
        if 5 <= hour <= 11:
            return TimeOfDay.MORNING
        if 12 <= hour <= 17:
            return TimeOfDay.AFTERNOON
        if 18 <= hour <= 21:
            return TimeOfDay.EVENING
        return TimeOfDay.LATE_NIGHT

    def greeting(self, profile: UserProfile, now: Optional[datetime] = None) -> str:
        """
        Time-of-day greeting addressed to the user by first name.

        Args:
            profile: User being greeted
            now: Reference time (defaults to the clock)

        Returns:
            e.g. "Good morning, Jane! Welcome to Ofie!"
        """
        template, emoji = GREETINGS[self.time_of_day(now or self._clock())]
        name = first_name(profile.name)
        text = template.format(name=f", {name}" if name else "")
        if profile.account_age_days < self.NEW_USER_DAYS:
            text += " Welcome to Ofie!"
        if self.style_for(profile).emoji:
            text += f" {emoji}"
        return text

    def empathy_phrase(self, intent: Optional[str], sentiment: Optional[Sentiment]) -> Optional[str]:
        if sentiment == Sentiment.NEGATIVE:
            if intent in SUPPORTIVE_INTENTS:
                return "I understand this can be stressful. Let's tackle it together."
            return "I understand how frustrating this can be."
        if sentiment == Sentiment.POSITIVE and intent in ENTHUSIASTIC_INTENTS:
            return "Fantastic!"
        return None

    def adjust_tone(self, text: str, formality: Formality) -> str:
        if formality == Formality.PROFESSIONAL:
            return _replace_words(text, [(new, old) for old, new in _CONTRACTIONS])
        if formality == Formality.CASUAL:
            return _replace_words(text, _CONTRACTIONS)
        if not re.search(r"[!?.:)]$", text.rstrip()):
            return text.rstrip() + "!"
        return text

    def personalize(
        self,
        text: str,
        profile: UserProfile,
        intent: Optional[str] = None,
        sentiment: Optional[Sentiment] = None,
    ) -> str:
        """
        Apply tone, topic markers, empathy and emoji to a reply.

        Args:
            text: Rule-based reply
            profile: Recipient's profile
            intent: Intent label the reply answers, if any
            sentiment: Sentiment of the user's latest message

        Returns:
            Personalized text (never empty when ``text`` is not)
        """
        style = self.style_for(profile)
        logger.debug(f"Personalizing reply for {profile.user_id}: style={style.formality.value} intent={intent}")
        text = self.adjust_tone(text, style.formality)

        if (
            intent in PROFESSIONAL_INTENTS
            and style.formality == Formality.PROFESSIONAL
            and len(text) > self.PROFESSIONAL_MIN_LENGTH
        ):
            text = f"Here is what you should know:\n\n{text}"

        phrase = self.empathy_phrase(intent, sentiment)
        if phrase:
            text = f"{phrase} {text}"

        emoji = INTENT_EMOJI.get(intent or "")
        if emoji and self.use_emoji(profile, intent):
            head, sep, rest = text.partition("\n")
            text = f"{head} {emoji}{sep}{rest}"
        return text
