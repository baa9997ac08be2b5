"""
Rule-based reply synthesis for Ofie Assistant.

Used whenever no provider produced a usable reply. Output depends only
on the intent label, extracted entities and (optionally) the context, so
it makes no network calls and cannot fail on external grounds.
"""

import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from conversation.models import ConversationContext
from nlp.sentiment import Sentiment

from .personality import Personalizer

logger = logging.getLogger(__name__)


SUPPORT_EMAIL = "support@ofie.com"
SUPPORT_PHONE = "1-800-OFIE-HELP"

APPLICATION_STEPS = [
    "1. Find a property you love and click 'Apply Now'",
    "2. Fill in your personal, employment and rental history",
    "3. Upload the required documents",
    "4. Pay the application fee, if the landlord charges one",
    "5. Track the decision in 'My Applications'",
]

REQUIRED_DOCUMENTS = [
    "Government-issued photo ID",
    "Proof of income (recent pay stubs or an offer letter)",
    "Previous landlord references",
    "Bank statements for the last 2-3 months",
]

EMERGENCY_ISSUES = [
    "Gas leaks or smell of gas",
    "Flooding or major water leaks",
    "No heat in winter or no running water",
    "Electrical hazards or sparking outlets",
]

ROUTINE_ISSUES = [
    "Dripping faucets and running toilets",
    "Appliance problems",
    "Minor repairs and cosmetic damage",
]

PAYMENT_METHODS = [
    "Credit or debit card",
    "Bank transfer (ACH)",
    "Automatic monthly payments",
]


def _money(value: Any) -> str:
    if isinstance(value, Decimal):
        value = float(value)
    return f"${value:,.0f}"


class RuleBasedSynthesizer:
    """
    Deterministic reply templates keyed by intent label.

    Unknown labels fall through to the general reply. With a context the
    reply is passed through the personalizer for that user.
    """

    def __init__(self, bot_name: str = "Ofie Assistant", personalizer: Optional[Personalizer] = None):
        self.bot_name = bot_name
        self.personalizer = personalizer or Personalizer()
        self._handlers: Dict[str, Callable[[Dict[str, Any], Optional[ConversationContext]], str]] = {
            "property_search": self._property_search,
            "property_details": self._property_details,
            "property_comparison": self._property_comparison,
            "viewing_request": self._viewing_request,
            "application_guidance": self._application_guidance,
            "lease_consultation": self._lease_consultation,
            "maintenance_request": self._maintenance_request,
            "payment_help": self._payment_help,
            "financial_planning": self._financial_planning,
            "neighborhood_info": self._neighborhood_info,
            "legal_guidance": self._legal_guidance,
            "market_insights": self._market_insights,
            "contact_support": self._contact_support,
            "greeting": self._greeting,
        }

    def synthesize(
        self,
        intent: str,
        entities: Optional[Dict[str, Any]] = None,
        context: Optional[ConversationContext] = None,
        sentiment: Optional[Sentiment] = None,
    ) -> str:
        """
        Produce a reply for an intent.

        Args:
            intent: Intent label (e.g. "property_search")
            entities: Extracted entities for the current message
            context: Optional conversation context for personalisation
            sentiment: Sentiment of the message being answered

        Returns:
            Non-empty reply text
        """
        handler = self._handlers.get(intent, self._general)
        text = handler(entities or {}, context)
        if context is None:
            return text
        return self.personalizer.personalize(text, context.profile, intent, sentiment)

    # ── Handlers ──

    def _property_search(self, entities: Dict[str, Any], context: Optional[ConversationContext]) -> str:
        criteria: List[str] = []
        if entities.get("bedroom_count") is not None:
            criteria.append(f"- {entities['bedroom_count']} bedroom(s)")
        if entities.get("bathroom_count") is not None:
            criteria.append(f"- {entities['bathroom_count']:g} bathroom(s)")
        if entities.get("budget_min") is not None and entities.get("budget_max") is not None:
            criteria.append(
                f"- Rent between {_money(entities['budget_min'])} and {_money(entities['budget_max'])}"
            )
        elif entities.get("budget") is not None:
            criteria.append(f"- Maximum rent: {_money(entities['budget'])}")
        if entities.get("property_type"):
            criteria.append(f"- Property type: {entities['property_type']}")
        if entities.get("location"):
            criteria.append(f"- Location: {entities['location']}")
        if entities.get("amenities"):
            criteria.append(f"- Amenities: {', '.join(sorted(entities['amenities']))}")

        reply = "I'd be happy to help you find the perfect property! "
        if criteria:
            reply += "Based on your message, you're looking for:\n"
            reply += "\n".join(criteria)
            reply += "\n\nUse the search filters with these criteria, or save the search to get alerts for new listings."
        else:
            reply += (
                "To narrow things down, could you tell me:\n"
                "- How many bedrooms do you need?\n"
                "- What's your budget range?\n"
                "- Any specific location preferences?\n"
                "- Do you need any specific amenities?"
            )
        return reply

    def _property_details(self, entities: Dict[str, Any], context: Optional[ConversationContext]) -> str:
        subject = context.subject if context else None
        if subject is None:
            return (
                "I'd be happy to share property details! Which property are you interested in? "
                "You can open the listing and message me from there."
            )
        lines = [f"Here are the details for {subject.title}:"]
        if subject.location:
            lines.append(f"- Location: {subject.location}")
        if subject.price is not None:
            lines.append(f"- Rent: {_money(subject.price)}/month")
        if subject.bedrooms is not None:
            lines.append(f"- Bedrooms: {subject.bedrooms}")
        if subject.bathrooms is not None:
            lines.append(f"- Bathrooms: {subject.bathrooms:g}")
        if subject.property_type:
            lines.append(f"- Type: {subject.property_type}")
        if subject.amenities:
            lines.append(f"- Amenities: {', '.join(subject.amenities)}")
        lines.append("\nWould you like to schedule a viewing or ask the landlord a question?")
        return "\n".join(lines)

    def _property_comparison(self, entities: Dict[str, Any], context: Optional[ConversationContext]) -> str:
        return (
            "Comparing properties side by side is a great idea. Add the listings to your favorites, "
            "then open 'Favorites' to compare rent, size, amenities and location. "
            "Which features matter most to you?"
        )

    def _viewing_request(self, entities: Dict[str, Any], context: Optional[ConversationContext]) -> str:
        reply = (
            "To schedule a property viewing, click the 'Schedule Viewing' button on the listing. "
            "You can suggest preferred times and the landlord will confirm availability."
        )
        if entities.get("timeline"):
            reply += f" Mention that you'd like to visit {entities['timeline']} so the landlord can plan ahead."
        return reply

    def _application_guidance(self, entities: Dict[str, Any], context: Optional[ConversationContext]) -> str:
        parts = ["I'll guide you through the rental application process!", "", "Application process:"]
        parts.extend(APPLICATION_STEPS)
        parts.extend(["", "Required documents:"])
        parts.extend(f"- {doc}" for doc in REQUIRED_DOCUMENTS)
        parts.extend(["", "Most landlords look for a monthly income of about 3 times the rent."])
        return "\n".join(parts)

    def _lease_consultation(self, entities: Dict[str, Any], context: Optional[ConversationContext]) -> str:
        reply = (
            "Lease agreements contain important terms like rent amount, lease duration, "
            "security deposit and property rules. Always read carefully before signing and "
            "ask the landlord about anything unclear."
        )
        months = entities.get("lease_duration_months")
        if months:
            reply += f" For a {months}-month lease, check the renewal and early termination clauses too."
        return reply

    def _maintenance_request(self, entities: Dict[str, Any], context: Optional[ConversationContext]) -> str:
        if entities.get("urgency") == "emergency":
            return (
                "EMERGENCY MAINTENANCE\n\n"
                "If this is a true emergency (safety hazard, no heat or water, flooding, gas leak), please:\n"
                "1. Submit an emergency maintenance request immediately\n"
                "2. Contact your landlord directly by phone\n"
                "3. If it's a gas leak or immediate safety hazard, call emergency services (911)\n\n"
                "For non-emergency issues, a regular maintenance request will be handled during business hours."
            )
        parts = ["I can help with maintenance requests! Submit one from the 'Maintenance' section of your dashboard.", ""]
        parts.append("Emergency issues (report immediately):")
        parts.extend(f"- {item}" for item in EMERGENCY_ISSUES)
        parts.extend(["", "Routine issues (handled during business hours):"])
        parts.extend(f"- {item}" for item in ROUTINE_ISSUES)
        return "\n".join(parts)

    def _payment_help(self, entities: Dict[str, Any], context: Optional[ConversationContext]) -> str:
        parts = ["I can help with rent payments! Accepted payment methods:"]
        parts.extend(f"- {method}" for method in PAYMENT_METHODS)
        parts.append(
            "\nRent is due on the date in your lease. Late fees may apply after the grace period, "
            "so setting up automatic payments is the easiest way to stay on time."
        )
        return "\n".join(parts)

    def _financial_planning(self, entities: Dict[str, Any], context: Optional[ConversationContext]) -> str:
        reply = "A common rule of thumb is to keep rent at or below 30% of your gross monthly income."
        budget = entities.get("budget") or entities.get("budget_max")
        if budget is not None:
            income = Decimal(str(budget)) / Decimal("0.3")
            reply += f" For a rent of {_money(budget)}, that means a monthly income of about {_money(income)}."
        reply += " Remember to budget for the security deposit, utilities and renter's insurance as well."
        return reply

    def _neighborhood_info(self, entities: Dict[str, Any], context: Optional[ConversationContext]) -> str:
        place = entities.get("location") or (context.subject.location if context and context.subject else None)
        where = f"around {place}" if place else "in the area"
        return (
            f"Each listing's map view shows nearby schools, transit and shopping {where}. "
            "Property reviews from past tenants are also a good way to learn what the neighborhood is like."
        )

    def _legal_guidance(self, entities: Dict[str, Any], context: Optional[ConversationContext]) -> str:
        return (
            "I can share general information, but legal questions depend on your local laws. "
            "For disputes, evictions or discrimination concerns, please contact a local tenant-rights "
            f"organization or an attorney. Our support team can also help: {SUPPORT_EMAIL} or {SUPPORT_PHONE}."
        )

    def _market_insights(self, entities: Dict[str, Any], context: Optional[ConversationContext]) -> str:
        return (
            "Rental prices vary by neighborhood, season and property type. Comparing similar listings in "
            "your search results is the best way to see what's typical right now. "
            "Would you like help setting up a search?"
        )

    def _contact_support(self, entities: Dict[str, Any], context: Optional[ConversationContext]) -> str:
        return (
            "If you need to speak with a human representative, you can reach us at:\n\n"
            f"- Email: {SUPPORT_EMAIL}\n"
            f"- Phone: {SUPPORT_PHONE}\n"
            "- Live chat: 9 AM - 6 PM EST\n\n"
            "For property-specific questions, you can also message the landlord directly in this conversation."
        )

    def _greeting(self, entities: Dict[str, Any], context: Optional[ConversationContext]) -> str:
        role = context.profile.role if context else "tenant"
        opener = self.personalizer.greeting(context.profile) if context else "Hello!"
        if role == "landlord":
            reply = (
                f"{opener} I'm {self.bot_name}. I can help you manage your properties, "
                "review applications and answer platform questions."
            )
        else:
            reply = (
                f"{opener} I'm {self.bot_name}. I can help you find properties, "
                "apply for rentals and answer questions about the platform."
            )
        return reply + "\n\nWhat can I help you with today?"

    def _general(self, entities: Dict[str, Any], context: Optional[ConversationContext]) -> str:
        return (
            "I'm here to help with your rental needs! Try asking about finding properties, "
            "rental applications, maintenance requests or payments."
        )
