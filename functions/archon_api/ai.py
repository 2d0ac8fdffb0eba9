"""
Generative-AI helpers: quote drafting and the chat assistant with Gemini,
plus feedback capture.
"""

from __future__ import annotations

import logging
import time
from typing import Optional, Protocol

from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from pydantic import BaseModel

from archon_api.errors import BadRequest
from archon_api.resources import utcnow
from archon_api.schemas import (
    AiFeedbackRequest,
    AssistantRequest,
    ChatMessage,
    Dimensions,
    DraftItem,
    GeneratedQuote,
    GenerateQuoteRequest,
)
from archon_api.tenancy import TenantScope

logger = logging.getLogger(__name__)

AI_FEEDBACK_COLLECTION = "aiFeedback"
PRICE_PER_SQUARE_METER = 120
DEFAULT_BASE_PRICE = 5000
# (label, share of the base price)
FALLBACK_BREAKDOWN = (
    ("Voorbereiding en planning", 0.2),
    ("Materialen en grondstoffen", 0.4),
    ("Uitvoering en afwerking", 0.3),
    ("Transport en opruiming", 0.1),
)


class GeminiInvalidResponseException(Exception):
    pass


class QuoteDraft(BaseModel):
    """Structured output requested from the model."""

    description: str
    items: list[DraftItem]
    total: float


class QuoteGenerator(Protocol):
    def generate(self, request: GenerateQuoteRequest) -> GeneratedQuote:
        ...


def _area(dimensions: Optional[Dimensions]) -> Optional[float]:
    if dimensions is None:
        return None
    if dimensions.area:
        return dimensions.area
    if dimensions.width and dimensions.height:
        return round(dimensions.width * dimensions.height, 2)
    return None


def fallback_quote(request: GenerateQuoteRequest) -> GeneratedQuote:
    """Rule-based draft used in stub mode and when the model answers badly."""
    area = _area(request.dimensions)
    base_price = area * PRICE_PER_SQUARE_METER if area else DEFAULT_BASE_PRICE
    items = [
        DraftItem(desc=f"{request.projectType} - {label}", price=round(base_price * share))
        for label, share in FALLBACK_BREAKDOWN
    ]
    description = request.description or f"{request.projectType} project voor {request.client}"
    if area and not request.description:
        description += f" ({area}m²)"
    return GeneratedQuote(
        description=description,
        items=items,
        total=sum(item.price for item in items),
        dimensions=request.dimensions,
    )


def make_quote_prompt(request: GenerateQuoteRequest) -> str:
    lines = [
        "Genereer een professionele offerte voor een bouwproject.",
        "",
        f"Klant: {request.client}",
        f"Type werkzaamheden: {request.projectType}",
    ]
    area = _area(request.dimensions)
    if request.dimensions and request.dimensions.width and request.dimensions.height:
        lines.append(
            f"Afmetingen: {request.dimensions.width}m breed × "
            f"{request.dimensions.height}m hoog ({area}m²)"
        )
    elif area:
        lines.append(f"Oppervlakte: {area}m²")
    if request.description:
        lines.append(f"Beschrijving: {request.description}")
    lines += [
        "",
        "Geef een professionele beschrijving van het project, minimaal drie",
        "werkzaamheden of materialen met realistische Nederlandse marktprijzen",
        "in euro's, en de totaalprijs.",
    ]
    return "\n".join(lines)


class StubQuoteGenerator:
    def generate(self, request: GenerateQuoteRequest) -> GeneratedQuote:
        return fallback_quote(request)


class GeminiQuoteGenerator:
    """Drafts quotes with Gemini structured output."""

    def __init__(self, api_key: str, model: str):
        if not api_key:
            raise ValueError("GEMINI_API_KEY is required for live AI")
        self.model = model
        self._client = genai.Client(api_key=api_key)

    def _call(self, prompt: str) -> QuoteDraft:
        start_time = time.time()
        response = self._client.models.generate_content(
            model=self.model,
            contents=prompt,
            config={
                "response_mime_type": "application/json",
                "response_schema": QuoteDraft,
                "temperature": 0.7,
                "max_output_tokens": 2048,
            },
        )
        logger.info("Gemini quote draft took %.2fs", time.time() - start_time)
        if not isinstance(response.parsed, QuoteDraft) or not response.parsed.items:
            raise GeminiInvalidResponseException()
        return response.parsed

    def generate(self, request: GenerateQuoteRequest) -> GeneratedQuote:
        try:
            draft = self._call(make_quote_prompt(request))
        except GeminiInvalidResponseException:
            logger.warning("Invalid Gemini quote draft, using rule-based pricing")
            return fallback_quote(request)
        return GeneratedQuote(
            description=draft.description or fallback_quote(request).description,
            items=draft.items,
            total=draft.total or sum(item.price for item in draft.items),
            dimensions=request.dimensions,
        )


def generate_quote(generator: QuoteGenerator, request: GenerateQuoteRequest) -> GeneratedQuote:
    if not request.client or not request.projectType:
        raise BadRequest("Client en projectType zijn verplicht")
    return generator.generate(request)


def save_feedback(scope: TenantScope, payload: AiFeedbackRequest) -> dict:
    if not (payload.type and payload.context and payload.aiResponse and payload.userFeedback):
        raise BadRequest("Missing required fields")
    now = utcnow()
    doc_id = scope.collection(AI_FEEDBACK_COLLECTION).add(
        {
            "type": payload.type,
            "context": payload.context,
            "aiResponse": payload.aiResponse,
            "userFeedback": payload.userFeedback,
            "correction": payload.correction,
            "notes": payload.notes,
            "createdAt": now,
            "updatedAt": now,
        }
    )
    logger.info("Stored AI feedback %s for user %s", doc_id, scope.user_id)
    return {"success": True, "message": "Feedback opgeslagen"}


# Assistant

ASSISTANT_SYSTEM_PROMPT = (
    "Je bent ARCHON AI, een Nederlandse assistent voor bouwprofessionals. "
    "Antwoord kort, duidelijk en praktisch, in het Nederlands.\n\n"
    "Je kunt ook offertes maken! Als een gebruiker vraagt om een offerte te "
    "maken, vraag dan naar:\n"
    "- Klantnaam\n"
    "- Type werkzaamheden (bijv. badkamer renovatie, schilderwerk, dakisolatie)\n"
    "- Optioneel: beschrijving, afmetingen (breedte × hoogte in meters), of foto's\n\n"
    "Als de gebruiker alle benodigde informatie geeft, kun je aangeven dat je "
    "de offerte kunt genereren via de API endpoint /api/offertes/generate."
)
# (keywords, reply), first match wins
ASSISTANT_KEYWORD_REPLIES = (
    (
        ("offerte",),
        "Ik kan je helpen een offerte te maken! Ik heb de volgende informatie nodig:\n\n"
        "1. **Klantnaam** - Voor wie is de offerte?\n"
        "2. **Type werkzaamheden** - Wat moet er gebeuren? "
        "(bijv. badkamer renovatie, schilderwerk)\n"
        "3. **Optioneel**: Beschrijving, afmetingen, of foto's\n\n"
        "Je kunt ook de 'AI Offerte' knop gebruiken op de Offertes pagina voor "
        "een volledige wizard met foto-analyse!",
    ),
    (
        ("factuur", "facturen"),
        "Natuurlijk. Gaat het om openstaande facturen, nieuwe facturen of een "
        "overzicht per periode?",
    ),
    (
        ("klant",),
        "Prima. Wil je inzicht in omzet per klant, openstaande posten of "
        "recente projecten?",
    ),
    (
        ("uitgave", "kosten", "cashflow"),
        "Ik kan je helpen je inkomsten en uitgaven op een rij te zetten. Over "
        "welke periode wil je inzicht?",
    ),
)
ASSISTANT_DEFAULT_REPLY = (
    "Begrepen. Kun je in één zin omschrijven wat je precies wilt bereiken? "
    "Dan help ik je stap voor stap verder."
)
CHAT_ROLES = ("user", "assistant")


def keyword_reply(text: str) -> str:
    lower = text.lower()
    for keywords, reply in ASSISTANT_KEYWORD_REPLIES:
        if any(keyword in lower for keyword in keywords):
            return reply
    return ASSISTANT_DEFAULT_REPLY


class Assistant(Protocol):
    def reply(self, history: list[ChatMessage]) -> str:
        ...


class StubAssistant:
    def reply(self, history: list[ChatMessage]) -> str:
        return keyword_reply(history[-1].text)


class GeminiAssistant:
    """Multi-turn chat with Gemini, falling back to keyword replies."""

    def __init__(self, api_key: str, model: str):
        if not api_key:
            raise ValueError("GEMINI_API_KEY is required for live AI")
        self.model = model
        self._client = genai.Client(api_key=api_key)

    def _call(self, history: list[ChatMessage]) -> str:
        start_time = time.time()
        chat = self._client.chats.create(
            model=self.model,
            config=types.GenerateContentConfig(
                system_instruction=ASSISTANT_SYSTEM_PROMPT,
                temperature=0.7,
                max_output_tokens=1024,
            ),
            history=[
                types.Content(
                    role="model" if message.role == "assistant" else "user",
                    parts=[types.Part(text=message.text)],
                )
                for message in history[:-1]
            ],
        )
        response = chat.send_message(history[-1].text)
        logger.info("Gemini assistant reply took %.2fs", time.time() - start_time)
        if not response.text or not response.text.strip():
            raise GeminiInvalidResponseException()
        return response.text

    def reply(self, history: list[ChatMessage]) -> str:
        try:
            return self._call(history)
        except (genai_errors.APIError, GeminiInvalidResponseException) as e:
            logger.warning("Gemini assistant unavailable, using keyword reply: %s", e)
            return keyword_reply(history[-1].text)


def reply_to_chat(assistant: Assistant, request: AssistantRequest) -> dict:
    last = request.messages[-1] if request.messages else None
    if last is None or not isinstance(last.text, str):
        raise BadRequest("Invalid request")
    history = [
        message
        for message in request.messages
        if message.role in CHAT_ROLES and isinstance(message.text, str)
    ]
    # The last message counts even without a role.
    if not history or history[-1] is not last:
        history.append(ChatMessage(role="user", text=last.text))
    return {"reply": assistant.reply(history)}
