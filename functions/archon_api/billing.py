"""
Subscription billing through Stripe.

Checkout, portal and cancel act on the verified caller's own profile. The
webhook trusts nothing until the ``Stripe-Signature`` header checks out
against the configured secret.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional, Protocol

import stripe

from archon_api.config import Settings
from archon_api.db import DocumentStore
from archon_api.errors import ApiError, BadRequest, WebhookError
from archon_api.resources import utcnow
from archon_api.tenancy import USERS_COLLECTION, TenantScope

logger = logging.getLogger(__name__)

WEBHOOK_TOLERANCE_SECONDS = 300


class BillingError(Exception):
    """The payment provider refused or could not complete an operation."""


def normalize_status(status: Optional[str]) -> str:
    if status in ("trialing", "active", "past_due"):
        return status
    if status in ("canceled", "unpaid"):
        return "canceled"
    return "pending"


class BillingGateway(Protocol):
    """Operations the API needs from the payment provider."""

    requires_price_ids: bool

    def create_checkout_session(
        self,
        *,
        uid: str,
        plan: str,
        price_id: Optional[str],
        email: Optional[str],
        customer_id: Optional[str],
        base_url: str,
        trial_days: int,
    ) -> dict:
        ...

    def create_portal_session(
        self, *, customer_id: Optional[str], return_url: str
    ) -> dict:
        ...

    def cancel_subscription(self, subscription_id: Optional[str]) -> dict:
        ...

    def retrieve_subscription(self, subscription_id: str) -> dict:
        ...


class StripeBillingGateway:
    """Live gateway backed by the Stripe API."""

    requires_price_ids = True

    def __init__(self, secret_key: str):
        if not secret_key:
            raise ValueError("STRIPE_SECRET_KEY is required for live billing")
        stripe.api_key = secret_key

    def create_checkout_session(
        self,
        *,
        uid: str,
        plan: str,
        price_id: Optional[str],
        email: Optional[str],
        customer_id: Optional[str],
        base_url: str,
        trial_days: int,
    ) -> dict:
        if not price_id:
            raise BillingError(f"No Stripe price configured for plan {plan}")
        params: dict[str, Any] = {
            "mode": "subscription",
            "client_reference_id": uid,
            "allow_promotion_codes": True,
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": f"{base_url}/modules?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{base_url}/pricing?canceled=1",
            "metadata": {"uid": uid, "plan": plan},
            "subscription_data": {
                "metadata": {"uid": uid, "plan": plan},
                "trial_period_days": trial_days,
            },
        }
        if customer_id:
            params["customer"] = customer_id
        elif email:
            params["customer_email"] = email

        session = stripe.checkout.Session.create(**params)
        customer = session.customer if isinstance(session.customer, str) else None
        return {
            "url": session.url,
            "sessionId": session.id,
            "customerId": customer or customer_id,
        }

    def create_portal_session(
        self, *, customer_id: Optional[str], return_url: str
    ) -> dict:
        if not customer_id:
            raise BillingError("No Stripe customer ID found")
        session = stripe.billing_portal.Session.create(
            customer=customer_id, return_url=return_url
        )
        return {"url": session.url, "sessionId": session.id}

    def cancel_subscription(self, subscription_id: Optional[str]) -> dict:
        if not subscription_id:
            raise BillingError("No active subscription found")
        # Cancel at period end, not immediately.
        subscription = stripe.Subscription.modify(
            subscription_id, cancel_at_period_end=True
        )
        return {
            "id": subscription.id,
            "status": subscription.status,
            "cancelAtPeriodEnd": subscription.cancel_at_period_end,
        }

    def retrieve_subscription(self, subscription_id: str) -> dict:
        subscription = stripe.Subscription.retrieve(subscription_id)
        return {
            "id": subscription.id,
            "status": subscription.status,
            "metadata": dict(subscription.metadata or {}),
            "customer": subscription.customer,
        }


class StubBillingGateway:
    """Synthetic sessions for development; nothing leaves the process."""

    requires_price_ids = False

    def create_checkout_session(
        self,
        *,
        uid: str,
        plan: str,
        price_id: Optional[str],
        email: Optional[str],
        customer_id: Optional[str],
        base_url: str,
        trial_days: int,
    ) -> dict:
        session_id = f"stub_cs_{uuid.uuid4().hex}"
        return {
            "url": f"{base_url}/modules?session_id={session_id}",
            "sessionId": session_id,
            "customerId": customer_id or f"stub_cus_{uid}",
        }

    def create_portal_session(
        self, *, customer_id: Optional[str], return_url: str
    ) -> dict:
        return {"url": return_url, "sessionId": f"stub_bps_{uuid.uuid4().hex}"}

    def cancel_subscription(self, subscription_id: Optional[str]) -> dict:
        return {
            "id": subscription_id or f"stub_sub_{uuid.uuid4().hex}",
            "status": "active",
            "cancelAtPeriodEnd": True,
        }

    def retrieve_subscription(self, subscription_id: str) -> dict:
        return {"id": subscription_id, "status": "active", "metadata": {}, "customer": None}


def parse_webhook_event(
    payload: bytes, signature: Optional[str], secret: Optional[str]
) -> stripe.Event:
    """Verify the provider signature, then decode the event."""
    if not secret:
        logger.error("Stripe webhook received but no webhook secret is configured")
        raise WebhookError()
    if not signature:
        logger.warning("Stripe webhook without signature header")
        raise WebhookError()
    try:
        event = stripe.Webhook.construct_event(
            payload, signature, secret, WEBHOOK_TOLERANCE_SECONDS
        )
    except stripe.SignatureVerificationError as e:
        logger.warning("Stripe webhook signature verification failed: %s", e)
        raise WebhookError() from e
    except ValueError as e:
        # Also covers UnicodeDecodeError.
        logger.warning("Stripe webhook payload could not be parsed: %s", e)
        raise WebhookError() from e
    if not isinstance(event.get("type"), str):
        raise WebhookError()
    return event


class BillingService:
    def __init__(self, gateway: BillingGateway, store: DocumentStore, settings: Settings):
        self.gateway = gateway
        self.store = store
        self.settings = settings

    def checkout(self, scope: TenantScope, plan_id: Optional[str], yearly: bool) -> dict:
        plan = (plan_id or "").strip().lower()
        if not plan:
            raise BadRequest("Missing planId")
        price_id = self.settings.stripe_prices.get(
            f"{plan}_{'yearly' if yearly else 'monthly'}"
        )
        if not price_id and self.gateway.requires_price_ids:
            raise BadRequest(f"Unknown plan: {plan}")

        profile = scope.profile() or {}
        try:
            session = self.gateway.create_checkout_session(
                uid=scope.user_id,
                plan=plan,
                price_id=price_id,
                email=scope.caller.email,
                customer_id=profile.get("stripeCustomerId"),
                base_url=self.settings.app_base_url.rstrip("/"),
                trial_days=self.settings.stripe_trial_days,
            )
        except (stripe.StripeError, BillingError) as e:
            logger.error("Checkout failed for user %s: %s", scope.user_id, e)
            raise ApiError("Failed to create checkout session") from e

        scope.merge_profile(
            {
                "stripeCustomerId": session.get("customerId"),
                "plan": plan,
                "billingStatus": "pending",
                "billingUpdatedAt": utcnow(),
            }
        )
        return {"url": session["url"], "sessionId": session["sessionId"]}

    def portal(self, scope: TenantScope, return_url: Optional[str]) -> dict:
        profile = scope.profile() or {}
        try:
            return self.gateway.create_portal_session(
                customer_id=profile.get("stripeCustomerId"),
                return_url=return_url or self.settings.app_base_url,
            )
        except (stripe.StripeError, BillingError) as e:
            logger.error("Portal session failed for user %s: %s", scope.user_id, e)
            raise ApiError("Failed to create portal session") from e

    def cancel(self, scope: TenantScope) -> dict:
        profile = scope.profile() or {}
        try:
            subscription = self.gateway.cancel_subscription(
                profile.get("stripeSubscriptionId")
            )
        except (stripe.StripeError, BillingError) as e:
            logger.error("Cancel failed for user %s: %s", scope.user_id, e)
            raise ApiError("Failed to cancel subscription") from e

        scope.merge_profile({"billingStatus": "canceled", "billingUpdatedAt": utcnow()})
        return {"subscription": subscription}

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> dict:
        event = parse_webhook_event(
            payload, signature, self.settings.stripe_webhook_secret
        )
        event_type = event["type"]
        obj = (event.get("data") or {}).get("object") or {}
        logger.info("Stripe webhook %s (%s)", event.get("id"), event_type)

        if event_type == "checkout.session.completed":
            uid = obj.get("client_reference_id") or (obj.get("metadata") or {}).get("uid")
            subscription_id = obj.get("subscription")
            status = "active"
            if subscription_id:
                status = normalize_status(
                    self.gateway.retrieve_subscription(subscription_id)["status"]
                )
            self._update_profile(
                uid,
                {
                    "plan": (obj.get("metadata") or {}).get("plan"),
                    "billingStatus": status,
                    "stripeSubscriptionId": subscription_id,
                    "stripeCustomerId": obj.get("customer"),
                },
            )
        elif event_type in (
            "customer.subscription.updated",
            "customer.subscription.deleted",
        ):
            metadata = obj.get("metadata") or {}
            self._update_profile(
                metadata.get("uid"),
                {
                    "plan": metadata.get("plan"),
                    "billingStatus": normalize_status(obj.get("status")),
                    "stripeSubscriptionId": obj.get("id"),
                    "stripeCustomerId": obj.get("customer"),
                },
            )
        elif event_type == "invoice.payment_failed":
            subscription_id = obj.get("subscription")
            if subscription_id:
                subscription = self.gateway.retrieve_subscription(subscription_id)
                self._update_profile(
                    subscription["metadata"].get("uid"),
                    {
                        "billingStatus": "past_due",
                        "stripeSubscriptionId": subscription["id"],
                        "stripeCustomerId": subscription["customer"],
                    },
                )
        return {"received": True}

    def _update_profile(self, uid: Optional[str], data: dict) -> None:
        # The uid comes from a signed event, not from a bearer token.
        if not uid or "/" in uid:
            logger.warning("Stripe webhook event without a usable uid")
            return
        self.store.set(
            USERS_COLLECTION,
            uid,
            {**data, "billingUpdatedAt": utcnow()},
            merge=True,
        )
