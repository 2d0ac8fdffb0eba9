"""
Dependency wiring for the FastAPI app.

Each external client is built once per process behind a guarded accessor
and shared by reference afterwards.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Optional

import firebase_admin
from fastapi import Depends, Header
from firebase_admin import credentials

from archon_api.ai import (
    Assistant,
    GeminiAssistant,
    GeminiQuoteGenerator,
    QuoteGenerator,
    StubAssistant,
    StubQuoteGenerator,
)
from archon_api.auth import (
    CallerIdentity,
    FirebaseTokenVerifier,
    StubTokenVerifier,
    TokenVerifier,
    extract_bearer_token,
)
from archon_api.billing import (
    BillingGateway,
    BillingService,
    StripeBillingGateway,
    StubBillingGateway,
)
from archon_api.config import Settings, get_settings
from archon_api.db import DocumentStore, FirestoreDocumentStore, InMemoryDocumentStore
from archon_api.storage import InMemoryStorageClient, S3StorageClient, StorageClient
from archon_api.tenancy import TenantScope

logger = logging.getLogger(__name__)

_firebase_app: Any = None
_document_store: DocumentStore | None = None
_token_verifier: TokenVerifier | None = None
_storage_client: StorageClient | None = None
_billing_gateway: BillingGateway | None = None
_quote_generator: QuoteGenerator | None = None
_assistant: Assistant | None = None


def _load_service_account(raw: str) -> dict:
    """The key may be raw JSON or base64-encoded JSON."""
    text = raw.strip()
    if not text.startswith("{"):
        try:
            text = base64.b64decode(text).decode("utf-8")
        except ValueError as e:
            raise ValueError("Invalid FIREBASE_SERVICE_ACCOUNT_KEY format") from e
    return json.loads(text)


def get_firebase_app() -> Any:
    global _firebase_app
    if _firebase_app:
        return _firebase_app

    try:
        _firebase_app = firebase_admin.get_app()
        return _firebase_app
    except ValueError:
        pass

    settings = get_settings()
    options = (
        {"projectId": settings.firebase_project_id}
        if settings.firebase_project_id
        else None
    )
    if settings.firebase_service_account_key:
        credential = credentials.Certificate(
            _load_service_account(settings.firebase_service_account_key)
        )
        _firebase_app = firebase_admin.initialize_app(credential, options)
        logger.info("Firebase Admin initialized with service account")
    else:
        # Application default credentials (Cloud Run, GOOGLE_APPLICATION_CREDENTIALS).
        _firebase_app = firebase_admin.initialize_app(options=options)
        logger.info("Firebase Admin initialized with default credentials")
    return _firebase_app


def get_document_store() -> DocumentStore:
    """
    Return a singleton store so stub data persists across requests.
    """
    global _document_store
    if _document_store:
        return _document_store

    if get_settings().mode_for("store") == "live":
        _document_store = FirestoreDocumentStore(get_firebase_app())
    else:
        _document_store = InMemoryDocumentStore()
    return _document_store


def get_token_verifier() -> TokenVerifier:
    global _token_verifier
    if _token_verifier:
        return _token_verifier

    # Auth and Firestore share the Firebase project, so they share a mode.
    if get_settings().mode_for("store") == "live":
        _token_verifier = FirebaseTokenVerifier(get_firebase_app())
    else:
        _token_verifier = StubTokenVerifier()
    return _token_verifier


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.mode_for("storage") == "live":
        if not settings.storage_bucket:
            raise ValueError("STORAGE_BUCKET is required for live storage")
        _storage_client = S3StorageClient(
            bucket=settings.storage_bucket,
            region=settings.storage_region or "",
            endpoint=settings.storage_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.storage_public_base_url or "",
        )
    else:
        _storage_client = InMemoryStorageClient()
    return _storage_client


def get_billing_gateway() -> BillingGateway:
    global _billing_gateway
    if _billing_gateway:
        return _billing_gateway

    settings = get_settings()
    if settings.mode_for("billing") == "live":
        _billing_gateway = StripeBillingGateway(settings.stripe_secret_key or "")
    else:
        _billing_gateway = StubBillingGateway()
    return _billing_gateway


def get_quote_generator() -> QuoteGenerator:
    global _quote_generator
    if _quote_generator:
        return _quote_generator

    settings = get_settings()
    if settings.mode_for("ai") == "live":
        _quote_generator = GeminiQuoteGenerator(
            settings.gemini_api_key or "", settings.gemini_model
        )
    else:
        _quote_generator = StubQuoteGenerator()
    return _quote_generator


def get_assistant() -> Assistant:
    global _assistant
    if _assistant:
        return _assistant

    settings = get_settings()
    if settings.mode_for("ai") == "live":
        _assistant = GeminiAssistant(settings.gemini_api_key or "", settings.gemini_model)
    else:
        _assistant = StubAssistant()
    return _assistant


def init_backends() -> None:
    """Build every client up front so misconfiguration fails at startup."""
    get_document_store()
    get_token_verifier()
    get_storage_client()
    get_billing_gateway()
    get_quote_generator()
    get_assistant()


def get_billing_service(
    gateway: BillingGateway = Depends(get_billing_gateway),
    store: DocumentStore = Depends(get_document_store),
    settings: Settings = Depends(get_settings),
) -> BillingService:
    return BillingService(gateway, store, settings)


def get_caller(
    authorization: Optional[str] = Header(default=None),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> CallerIdentity:
    return verifier.verify(extract_bearer_token(authorization))


def get_tenant_scope(
    caller: CallerIdentity = Depends(get_caller),
    store: DocumentStore = Depends(get_document_store),
) -> TenantScope:
    return TenantScope(store, caller)
