"""
Pydantic schemas for the ArchonPro API.

Entity payloads forbid unknown fields; server-owned fields (``id``,
``userId``, ``createdAt``, ``updatedAt``, numbering, status history) are
stripped or stamped by the resource handlers and never accepted here.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ClientType = Literal["zakelijk", "particulier"]
ClientStatus = Literal["actief", "inactief"]
QuoteStatus = Literal["concept", "verzonden", "geaccepteerd", "afgewezen", "verlopen"]
InvoiceStatus = Literal["draft", "openstaand", "betaald", "overtijd"]
ProjectStatus = Literal["Planning", "Actief", "Afgerond", "On Hold"]
MilestoneStatus = Literal["open", "verzonden", "betaald"]


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class LineItem(StrictModel):
    omschrijving: str = Field(..., min_length=1)
    aantal: float = Field(default=1, ge=0)
    prijs: float


class Milestone(StrictModel):
    id: str
    name: str
    amount: float
    dueDate: str
    status: MilestoneStatus = "open"
    percentage: float = Field(..., ge=0, le=100)


# Klanten


class ClientCreate(StrictModel):
    name: str = Field(..., min_length=1)
    company: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    type: ClientType = "particulier"
    status: ClientStatus = "actief"
    avatar: Optional[str] = None


# Update models are dumped with exclude_unset. A field typed without
# Optional keeps its unvalidated None default when omitted, but an explicit
# null fails validation. Only Optional fields can be cleared.
class ClientUpdate(StrictModel):
    name: str = Field(default=None, min_length=1)
    company: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    type: ClientType = None
    status: ClientStatus = None
    avatar: Optional[str] = None


# Offertes


class QuoteCreate(StrictModel):
    nummer: Optional[str] = Field(default=None, min_length=1)
    clientId: Optional[str] = None
    clientName: Optional[str] = None
    titel: Optional[str] = None
    beschrijving: Optional[str] = None
    datum: Optional[str] = None
    geldigTot: Optional[str] = None
    items: list[LineItem] = Field(default_factory=list)
    btwTarief: float = Field(default=21, ge=0, le=100)
    subtotaal: Optional[float] = None
    btwBedrag: Optional[float] = None
    totaal: Optional[float] = None
    status: QuoteStatus = "concept"
    aiRationale: Optional[str] = None
    winProbability: Optional[float] = Field(default=None, ge=0, le=100)


class QuoteUpdate(StrictModel):
    nummer: str = Field(default=None, min_length=1)
    clientId: Optional[str] = None
    clientName: Optional[str] = None
    titel: Optional[str] = None
    beschrijving: Optional[str] = None
    datum: str = Field(default=None, min_length=1)
    geldigTot: Optional[str] = None
    items: list[LineItem] = None
    btwTarief: float = Field(default=None, ge=0, le=100)
    subtotaal: float = None
    btwBedrag: float = None
    totaal: float = None
    status: QuoteStatus = None
    aiRationale: Optional[str] = None
    winProbability: Optional[float] = Field(default=None, ge=0, le=100)
    # Recorded in the status history entry, not stored on the quote.
    statusReason: Optional[str] = None


# Facturen


class InvoiceCreate(StrictModel):
    number: Optional[str] = Field(default=None, min_length=1)
    clientId: Optional[str] = None
    clientName: Optional[str] = None
    quoteId: Optional[str] = None
    date: Optional[str] = None
    dueDate: Optional[str] = None
    items: list[LineItem] = Field(default_factory=list)
    amount: Optional[float] = None
    status: InvoiceStatus = "draft"
    paidAt: Optional[str] = None


class InvoiceUpdate(StrictModel):
    number: str = Field(default=None, min_length=1)
    clientId: Optional[str] = None
    clientName: Optional[str] = None
    quoteId: Optional[str] = None
    date: Optional[str] = None
    dueDate: Optional[str] = None
    items: list[LineItem] = None
    amount: float = None
    status: InvoiceStatus = None
    paidAt: Optional[str] = None


# Projecten


class ProjectCreate(StrictModel):
    name: str = Field(..., min_length=1)
    clientId: Optional[str] = None
    clientName: Optional[str] = None
    location: Optional[str] = None
    budget: float = Field(default=0, ge=0)
    spent: float = Field(default=0, ge=0)
    status: ProjectStatus = "Planning"
    progress: int = Field(default=0, ge=0, le=100)
    deadline: Optional[str] = None
    image: Optional[str] = None
    paymentMilestones: list[Milestone] = Field(default_factory=list)


class ProjectUpdate(StrictModel):
    name: str = Field(default=None, min_length=1)
    clientId: Optional[str] = None
    clientName: Optional[str] = None
    location: Optional[str] = None
    budget: float = Field(default=None, ge=0)
    spent: float = Field(default=None, ge=0)
    status: ProjectStatus = None
    progress: int = Field(default=None, ge=0, le=100)
    deadline: Optional[str] = None
    image: Optional[str] = None
    paymentMilestones: list[Milestone] = None


# Gebruikers


class ProfileUpdate(StrictModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    avatar: Optional[str] = None


# Adapters


class FileUploadRequest(BaseModel):
    name: Optional[str] = None
    contentType: Optional[str] = None
    data: Optional[str] = None


class UploadedFileResponse(BaseModel):
    id: str
    name: str
    contentType: str
    size: int
    url: str
    createdAt: str


class CheckoutRequest(BaseModel):
    planId: Optional[str] = None
    yearly: bool = False


class PortalRequest(BaseModel):
    returnUrl: Optional[str] = None


class SessionResponse(BaseModel):
    url: Optional[str] = None
    sessionId: Optional[str] = None


class AiFeedbackRequest(BaseModel):
    type: Optional[Literal["offerte", "factuur", "advies", "algemeen"]] = None
    context: Optional[str] = None
    aiResponse: Optional[str] = None
    userFeedback: Optional[Literal["positive", "negative", "corrected"]] = None
    correction: Optional[str] = None
    notes: Optional[str] = None


class AiFeedbackResponse(BaseModel):
    success: bool
    message: str


class Dimensions(BaseModel):
    width: Optional[float] = None
    height: Optional[float] = None
    area: Optional[float] = None


class GenerateQuoteRequest(BaseModel):
    client: Optional[str] = None
    projectType: Optional[str] = None
    description: Optional[str] = None
    dimensions: Optional[Dimensions] = None


class DraftItem(BaseModel):
    desc: str
    price: float


class GeneratedQuote(BaseModel):
    description: str
    items: list[DraftItem]
    total: float
    dimensions: Optional[Dimensions] = None


# Assistant


class ChatMessage(BaseModel):
    role: Optional[str] = None
    # Anything but a string is dropped from the history.
    text: Any = None


class AssistantRequest(BaseModel):
    messages: list[ChatMessage] = Field(default_factory=list)


class AssistantResponse(BaseModel):
    reply: str
