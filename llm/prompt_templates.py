"""
Prompt Templates for Ofie Assistant.

Builds the bounded system + user prompt shared by every provider.
"""

import logging
from typing import Any, Dict, List, Optional

from conversation.models import ConversationContext, SubjectEntity, UserProfile

from .providers.base import Prompt
from .token_estimator import TokenEstimator

logger = logging.getLogger(__name__)


def _as_list(value: Any) -> List[str]:
    """Preference values may be stored as a single string or a list."""
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


class PromptTemplates:
    """
    Prompt text for the rental assistant.

    The system prompt is fixed persona + guidelines, extended with a
    role note and, for some intents, extra guidance.
    """

    SYSTEM_PROMPT = """You are {bot_name}, a helpful AI assistant for {platform_name}, a rental property platform that connects tenants and landlords.

Your role:
1. Help tenants find properties, understand applications and navigate their lease
2. Help landlords with listings, tenant screening and property management questions
3. Guide users to the right feature of the platform

Guidelines:
- Be friendly, professional and concise (under 300 words)
- Base answers on the property and conversation details provided
- Never make promises on behalf of landlords or guarantee approval
- Never invent prices, availability or property features
- For complex legal or financial matters, suggest contacting a professional or our support team
- Do not describe yourself as an AI or apologize for limitations; offer a next step instead
- End with a helpful question or suggested action when appropriate"""

    ROLE_NOTES = {
        "tenant": "The user is a tenant looking for, or living in, a rental property.",
        "landlord": "The user is a landlord managing one or more rental properties.",
    }

    INTENT_GUIDANCE = {
        "maintenance_request": "If the issue sounds like an emergency (flooding, gas, fire, no heat), tell the user to contact emergency services or the landlord's emergency line first.",
        "legal_guidance": "Give general information only and recommend consulting a local tenant-rights organization or attorney.",
        "application_guidance": "Explain the application steps and typical documents: ID, proof of income, references.",
        "property_search": "Summarize the user's criteria back to them and suggest refining filters or saving the search.",
        "payment_help": "Point the user to the payments section of their dashboard; never ask for card details in chat.",
    }

    DESCRIPTION_LIMIT = 200

    @classmethod
    def get_system_prompt(
        cls,
        bot_name: str,
        platform_name: str,
        profile: Optional[UserProfile] = None,
        intent: Optional[str] = None,
    ) -> str:
        """Render the system prompt for a user and intent."""
        parts = [cls.SYSTEM_PROMPT.format(bot_name=bot_name, platform_name=platform_name)]
        if profile:
            parts.append(f"You are talking with {profile.name} ({profile.role}).")
            note = cls.ROLE_NOTES.get(profile.role)
            if note:
                parts.append(note)
        if intent and intent in cls.INTENT_GUIDANCE:
            parts.append(cls.INTENT_GUIDANCE[intent])
        return "\n\n".join(parts)

    @classmethod
    def format_subject(cls, subject: SubjectEntity) -> str:
        """Render the listing block."""
        lines = ["Current property being discussed:"]
        lines.append(f"- Title: {subject.title}")
        if subject.location:
            lines.append(f"- Location: {subject.location}")
        if subject.price is not None:
            lines.append(f"- Price: ${subject.price:,.0f}/month")
        if subject.bedrooms is not None:
            lines.append(f"- Bedrooms: {subject.bedrooms}")
        if subject.bathrooms is not None:
            lines.append(f"- Bathrooms: {subject.bathrooms:g}")
        if subject.property_type:
            lines.append(f"- Type: {subject.property_type}")
        if subject.amenities:
            lines.append(f"- Amenities: {', '.join(subject.amenities)}")
        if subject.description:
            description = subject.description
            if len(description) > cls.DESCRIPTION_LIMIT:
                description = description[: cls.DESCRIPTION_LIMIT].rstrip() + "..."
            lines.append(f"- Description: {description}")
        return "\n".join(lines)

    @staticmethod
    def format_preferences(preferences: Dict[str, Any]) -> Optional[str]:
        """Render stored preferences, or None when there is nothing useful."""
        lines = []
        if preferences.get("budget") or preferences.get("max_budget"):
            budget = preferences.get("max_budget") or preferences.get("budget")
            lines.append(f"- Budget: up to ${float(budget):,.0f}")
        if preferences.get("bedrooms"):
            lines.append(f"- Bedrooms: {preferences['bedrooms']}")
        if preferences.get("property_type"):
            lines.append(f"- Property type: {preferences['property_type']}")
        locations = _as_list(preferences.get("locations"))
        if locations:
            lines.append(f"- Preferred locations: {', '.join(locations)}")
        amenities = _as_list(preferences.get("amenities"))
        if amenities:
            lines.append(f"- Preferred amenities: {', '.join(amenities)}")
        if not lines:
            return None
        return "User's preferences:\n" + "\n".join(lines)

    @staticmethod
    def format_intent(intent: str, entities: Dict[str, Any]) -> str:
        text = f"Detected intent: {intent}"
        if entities:
            details = ", ".join(f"{k}={v}" for k, v in sorted(entities.items()))
            text += f" ({details})"
        return text


class PromptBuilder:
    """
    Assembles a Prompt within the input token budget.

    Priority when trimming:
    1. System prompt and current question (never dropped)
    2. Listing / preference / intent sections
    3. Conversation history (oldest lines dropped first)
    """

    def __init__(
        self,
        bot_name: str,
        platform_name: str = "Ofie",
        max_prompt_tokens: int = 3000,
        max_response_tokens: int = 500,
        temperature: float = 0.7,
        token_estimator: Optional[TokenEstimator] = None,
    ):
        self.bot_name = bot_name
        self.platform_name = platform_name
        self.max_prompt_tokens = max_prompt_tokens
        self.max_response_tokens = max_response_tokens
        self.temperature = temperature
        self.token_estimator = token_estimator or TokenEstimator()

    def build(
        self,
        query: str,
        context: ConversationContext,
        intent: Optional[str] = None,
        entities: Optional[Dict[str, Any]] = None,
    ) -> Prompt:
        """
        Build the prompt for one reply.

        Args:
            query: Current user message
            context: Conversation context (history oldest first)
            intent: Classified intent label
            entities: Extracted entities

        Returns:
            Prompt whose system + user text fits max_prompt_tokens
        """
        system = PromptTemplates.get_system_prompt(
            self.bot_name, self.platform_name, context.profile, intent
        )

        history = [f"{turn.sender_name or turn.role.value}: {turn.text}" for turn in context.turns]

        sections: List[str] = []
        if context.subject:
            sections.append(PromptTemplates.format_subject(context.subject))
        preferences = PromptTemplates.format_preferences(context.profile.preferences)
        if preferences:
            sections.append(preferences)
        if intent:
            sections.append(PromptTemplates.format_intent(intent, entities or {}))

        question = f"User's current question: {query}"

        estimate = self.token_estimator.estimate
        fixed = estimate(system) + estimate(question) + sum(estimate(s) for s in sections)
        budget = self.max_prompt_tokens

        # Drop oldest history first
        history_tokens = sum(estimate(line) for line in history)
        while history and fixed + history_tokens > budget:
            history_tokens -= estimate(history.pop(0))

        # Then the optional sections, least useful last in the list
        while sections and fixed > budget:
            fixed -= estimate(sections.pop())

        if fixed > budget:
            room = max(budget - estimate(system), 0)
            question = self.token_estimator.truncate(question, room)
            logger.info(f"Prompt over budget, question truncated to {room} tokens")

        parts: List[str] = []
        if history:
            parts.append("Previous conversation:\n" + "\n".join(history))
        parts.extend(sections)
        parts.append(question)

        return Prompt(
            system=system,
            user="\n\n".join(parts),
            max_tokens=self.max_response_tokens,
            temperature=self.temperature,
        )
