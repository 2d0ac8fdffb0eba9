"""
HTTP routes for the ArchonPro API.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Header, Request
from google.api_core import exceptions as gcloud_exceptions

from archon_api import ai, files
from archon_api.billing import BillingService
from archon_api.config import Settings, get_settings
from archon_api.db import DocumentStore
from archon_api.dependencies import (
    get_assistant,
    get_billing_service,
    get_document_store,
    get_quote_generator,
    get_storage_client,
    get_tenant_scope,
)
from archon_api.errors import NotFound, WebhookError
from archon_api.resources import ResourceHandler, build_handlers, utcnow, validate_payload
from archon_api.schemas import (
    AiFeedbackRequest,
    AiFeedbackResponse,
    AssistantRequest,
    AssistantResponse,
    CheckoutRequest,
    FileUploadRequest,
    GeneratedQuote,
    GenerateQuoteRequest,
    PortalRequest,
    ProfileUpdate,
    SessionResponse,
    UploadedFileResponse,
)
from archon_api.storage import StorageClient
from archon_api.tenancy import TenantScope

logger = logging.getLogger(__name__)

CLIENT_ERRORS_COLLECTION = "clientErrors"
# Stored field -> max length
CLIENT_ERROR_FIELDS = {"url": 2048, "message": 1000, "stack": 4000}
PROFILE_FIELDS = ("name", "email", "phone", "company", "avatar", "plan", "billingStatus")

router = APIRouter()


def build_resource_router(handler: ResourceHandler) -> APIRouter:
    """GET/POST on the collection, GET/PUT/DELETE on one document."""
    resource = APIRouter(prefix=f"/{handler.collection}", tags=[handler.collection])

    @resource.get("")
    def list_documents(scope: TenantScope = Depends(get_tenant_scope)):
        return {handler.collection: handler.list(scope)}

    @resource.post("", status_code=201)
    def create_document(
        payload: dict = Body(...),
        scope: TenantScope = Depends(get_tenant_scope),
    ):
        return handler.create(scope, payload)

    @resource.get("/{doc_id}")
    def get_document(doc_id: str, scope: TenantScope = Depends(get_tenant_scope)):
        return handler.get(scope, doc_id)

    @resource.put("/{doc_id}")
    def update_document(
        doc_id: str,
        payload: dict = Body(...),
        scope: TenantScope = Depends(get_tenant_scope),
    ):
        return handler.update(scope, doc_id, payload)

    @resource.delete("/{doc_id}")
    def delete_document(doc_id: str, scope: TenantScope = Depends(get_tenant_scope)):
        return handler.delete(scope, doc_id)

    return resource


# Registered before the resource routers so it is not shadowed by /offertes/{id}.
@router.post("/offertes/generate", response_model=GeneratedQuote)
def generate_offerte(
    payload: GenerateQuoteRequest,
    scope: TenantScope = Depends(get_tenant_scope),
    generator: ai.QuoteGenerator = Depends(get_quote_generator),
):
    logger.info("Drafting quote for user %s", scope.user_id)
    return ai.generate_quote(generator, payload)


@router.post("/assistant", response_model=AssistantResponse)
def chat_with_assistant(
    payload: AssistantRequest,
    scope: TenantScope = Depends(get_tenant_scope),
    assistant: ai.Assistant = Depends(get_assistant),
):
    logger.info("Assistant chat for user %s", scope.user_id)
    return ai.reply_to_chat(assistant, payload)


for _handler in build_handlers():
    router.include_router(build_resource_router(_handler))


@router.post("/files/upload", response_model=UploadedFileResponse)
def upload_file(
    payload: FileUploadRequest,
    scope: TenantScope = Depends(get_tenant_scope),
    storage: StorageClient = Depends(get_storage_client),
    settings: Settings = Depends(get_settings),
):
    return files.upload_file(scope, storage, payload, settings.max_upload_bytes)


@router.get("/files/{file_id}", response_model=UploadedFileResponse)
def get_file(file_id: str, scope: TenantScope = Depends(get_tenant_scope)):
    return files.get_file(scope, file_id)


@router.delete("/files/{file_id}")
def delete_file(
    file_id: str,
    scope: TenantScope = Depends(get_tenant_scope),
    storage: StorageClient = Depends(get_storage_client),
):
    return files.delete_file(scope, storage, file_id)


@router.post("/billing/checkout", response_model=SessionResponse)
def billing_checkout(
    payload: CheckoutRequest,
    scope: TenantScope = Depends(get_tenant_scope),
    billing: BillingService = Depends(get_billing_service),
):
    return billing.checkout(scope, payload.planId, payload.yearly)


@router.post("/billing/portal", response_model=SessionResponse)
def billing_portal(
    payload: Optional[PortalRequest] = None,
    scope: TenantScope = Depends(get_tenant_scope),
    billing: BillingService = Depends(get_billing_service),
):
    return billing.portal(scope, payload.returnUrl if payload else None)


@router.post("/billing/cancel")
def billing_cancel(
    scope: TenantScope = Depends(get_tenant_scope),
    billing: BillingService = Depends(get_billing_service),
):
    return billing.cancel(scope)


@router.post("/billing/webhook")
async def billing_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None),
    billing: BillingService = Depends(get_billing_service),
):
    payload = await request.body()
    try:
        return billing.handle_webhook(payload, stripe_signature)
    except WebhookError:
        raise
    except Exception as e:
        # A 400 leaves the event unacknowledged so Stripe redelivers it.
        logger.exception("Stripe webhook processing failed")
        raise WebhookError() from e


@router.post("/ai/feedback", response_model=AiFeedbackResponse)
def save_ai_feedback(
    payload: AiFeedbackRequest,
    scope: TenantScope = Depends(get_tenant_scope),
):
    return ai.save_feedback(scope, payload)


@router.get("/gebruikers")
def get_profile(scope: TenantScope = Depends(get_tenant_scope)):
    profile = scope.profile()
    if profile is None:
        raise NotFound("User not found")
    view = {field: profile.get(field) for field in PROFILE_FIELDS}
    return {"id": scope.user_id, **view}


@router.put("/gebruikers")
def update_profile(
    payload: dict = Body(...),
    scope: TenantScope = Depends(get_tenant_scope),
):
    changes = validate_payload(ProfileUpdate, payload).model_dump(exclude_unset=True)
    changes.update(updatedAt=utcnow())
    if scope.caller.email:
        changes.setdefault("email", scope.caller.email)
    scope.merge_profile(changes)
    return get_profile(scope)


def _client_error_record(body: Any) -> dict:
    """Keep only short string fields of a client report."""
    fields = body if isinstance(body, dict) else {}
    record = {}
    for key, limit in CLIENT_ERROR_FIELDS.items():
        value = fields.get(key)
        record[key] = value[:limit] if isinstance(value, str) else None
    return record


@router.post("/errors", status_code=202)
async def report_client_error(
    request: Request,
    store: DocumentStore = Depends(get_document_store),
):
    raw = await request.body()
    try:
        body = json.loads(raw) if raw else None
    except ValueError:
        body = None
    record = _client_error_record(body)
    logger.warning("Client error reported from %s: %s", record["url"], record["message"])
    try:
        store.add(CLIENT_ERRORS_COLLECTION, {**record, "createdAt": utcnow()})
    except gcloud_exceptions.GoogleAPIError:
        # Reporting must not fail the client; the warning above is the record.
        logger.exception("Could not store client error report")
    return {"ok": True}
