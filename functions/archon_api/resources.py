"""
Resource handlers: CRUD semantics shared by every tenant-owned entity.

A handler never trusts client-supplied identity or time. ``id``,
``userId``, ``createdAt`` and ``updatedAt`` are dropped from incoming
payloads and stamped from the verified caller and the server clock.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Type

from pydantic import BaseModel, ValidationError

from archon_api import schemas
from archon_api.errors import BadRequest, NotFound
from archon_api.tenancy import TenantScope

logger = logging.getLogger(__name__)

SERVER_FIELDS = ("id", "userId", "createdAt", "updatedAt")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_number(prefix: str, now: Optional[datetime] = None) -> str:
    """Human-readable document number: ``<prefix><year>-<last 6 ms digits>``."""
    now = now or utcnow()
    millis = int(now.timestamp() * 1000)
    return f"{prefix}{now.year}-{str(millis)[-6:]}"


def compute_totals(items: list[dict], btw_tarief: float) -> tuple[float, float, float]:
    subtotaal = round(sum(item["aantal"] * item["prijs"] for item in items), 2)
    btw_bedrag = round(subtotaal * btw_tarief / 100, 2)
    return subtotaal, btw_bedrag, round(subtotaal + btw_bedrag, 2)


def describe_validation_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"]) or "payload"
    return f"Invalid field '{location}': {first['msg']}"


def validate_payload(
    schema: Type[BaseModel], payload: Any, strip: tuple[str, ...] = SERVER_FIELDS
) -> BaseModel:
    """Drop server-owned keys, then validate what is left against ``schema``."""
    if not isinstance(payload, dict):
        raise BadRequest("Request body must be a JSON object")
    cleaned = {key: value for key, value in payload.items() if key not in strip}
    try:
        return schema.model_validate(cleaned)
    except ValidationError as e:
        raise BadRequest(describe_validation_error(e)) from e


class ResourceHandler:
    """CRUD dispatcher for one tenant-scoped collection."""

    def __init__(
        self,
        collection: str,
        label: str,
        create_schema: Type[BaseModel],
        update_schema: Type[BaseModel],
        order_by: str = "createdAt",
    ):
        self.collection = collection
        self.label = label
        self.create_schema = create_schema
        self.update_schema = update_schema
        self.order_by = order_by

    def prepare_create(self, scope: TenantScope, data: dict, now: datetime) -> dict:
        return data

    def prepare_update(
        self, scope: TenantScope, existing: dict, changes: dict, now: datetime
    ) -> dict:
        return changes

    def list(self, scope: TenantScope) -> list[dict]:
        return scope.collection(self.collection).list(self.order_by)

    def get(self, scope: TenantScope, doc_id: str) -> dict:
        doc = scope.collection(self.collection).get(doc_id)
        if doc is None:
            raise NotFound(f"{self.label} not found")
        return doc

    def create(self, scope: TenantScope, payload: Any) -> dict:
        model = validate_payload(self.create_schema, payload)
        now = utcnow()
        data = self.prepare_create(scope, model.model_dump(), now)
        data.update(userId=scope.user_id, createdAt=now, updatedAt=now)

        collection = scope.collection(self.collection)
        doc_id = collection.add(data)
        logger.info("Created %s %s for user %s", self.label, doc_id, scope.user_id)
        return collection.get(doc_id)

    def update(self, scope: TenantScope, doc_id: str, payload: Any) -> dict:
        model = validate_payload(self.update_schema, payload)
        collection = scope.collection(self.collection)
        existing = collection.get(doc_id)
        if existing is None:
            raise NotFound(f"{self.label} not found")

        now = utcnow()
        changes = self.prepare_update(
            scope, existing, model.model_dump(exclude_unset=True), now
        )
        changes["updatedAt"] = now
        if not collection.update(doc_id, changes):
            raise NotFound(f"{self.label} not found")
        logger.info("Updated %s %s for user %s", self.label, doc_id, scope.user_id)
        return collection.get(doc_id)

    def delete(self, scope: TenantScope, doc_id: str) -> dict:
        if not scope.collection(self.collection).delete(doc_id):
            raise NotFound(f"{self.label} not found")
        logger.info("Deleted %s %s for user %s", self.label, doc_id, scope.user_id)
        return {"message": f"{self.label} deleted successfully"}


class QuoteHandler(ResourceHandler):
    """Offertes: numbering, totals and an append-only status history."""

    def __init__(self):
        super().__init__(
            "offertes",
            "Offerte",
            schemas.QuoteCreate,
            schemas.QuoteUpdate,
            order_by="datum",
        )

    def prepare_create(self, scope: TenantScope, data: dict, now: datetime) -> dict:
        if not data.get("nummer"):
            data["nummer"] = generate_number("O", now)
        if not data.get("datum"):
            data["datum"] = now.date().isoformat()
        self._fill_totals(data, data["items"], data["btwTarief"])
        data["statusHistory"] = [
            {"from": None, "to": data["status"], "by": scope.user_id, "at": now}
        ]
        return data

    def prepare_update(
        self, scope: TenantScope, existing: dict, changes: dict, now: datetime
    ) -> dict:
        reason = changes.pop("statusReason", None)

        if "items" in changes or "btwTarief" in changes:
            items = changes.get("items")
            if items is None:
                items = existing.get("items") or []
            btw_tarief = changes.get("btwTarief")
            if btw_tarief is None:
                btw_tarief = existing.get("btwTarief", 21)
            self._fill_totals(changes, items, btw_tarief)

        new_status = changes.get("status")
        old_status = existing.get("status")
        if new_status and new_status != old_status:
            entry = {"from": old_status, "to": new_status, "by": scope.user_id, "at": now}
            if reason:
                entry["reason"] = reason
            changes["statusHistory"] = list(existing.get("statusHistory") or []) + [entry]
        return changes

    @staticmethod
    def _fill_totals(target: dict, items: list[dict], btw_tarief: float) -> None:
        subtotaal, btw_bedrag, totaal = compute_totals(items, btw_tarief)
        for key, value in (
            ("subtotaal", subtotaal),
            ("btwBedrag", btw_bedrag),
            ("totaal", totaal),
        ):
            if target.get(key) is None:
                target[key] = value


class InvoiceHandler(ResourceHandler):
    """Facturen: numbering and an amount derived from the line items."""

    def __init__(self):
        super().__init__(
            "facturen", "Factuur", schemas.InvoiceCreate, schemas.InvoiceUpdate
        )

    def prepare_create(self, scope: TenantScope, data: dict, now: datetime) -> dict:
        if not data.get("number"):
            data["number"] = generate_number("F", now)
        if data.get("amount") is None:
            data["amount"] = compute_totals(data["items"], 0)[0]
        return data

    def prepare_update(
        self, scope: TenantScope, existing: dict, changes: dict, now: datetime
    ) -> dict:
        if changes.get("items") is not None and changes.get("amount") is None:
            changes["amount"] = compute_totals(changes["items"], 0)[0]
        return changes


def build_handlers() -> list[ResourceHandler]:
    return [
        ResourceHandler("klanten", "Klant", schemas.ClientCreate, schemas.ClientUpdate),
        QuoteHandler(),
        InvoiceHandler(),
        ResourceHandler(
            "projecten", "Project", schemas.ProjectCreate, schemas.ProjectUpdate
        ),
    ]
