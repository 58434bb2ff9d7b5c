import logging
from dataclasses import dataclass, field
from typing import Optional

import stripe

from parcel_api.config import settings
from parcel_api.errors import AdapterError, ValidationError

logger = logging.getLogger(__name__)


def init_stripe(api_key: str = None, timeout: float = None):
    """Configure the process-wide Stripe client once at startup."""
    stripe.api_key = api_key or settings.stripe_secret_key
    stripe.max_network_retries = 0
    stripe.default_http_client = stripe.RequestsClient(timeout=timeout or settings.stripe_timeout)
    if not stripe.api_key:
        logger.warning("STRIPE_SECRET_KEY is not set; checkout calls will be rejected")


def as_dict(obj):
    """Plain nested dicts from a StripeObject, which is not a dict on current SDKs."""
    if hasattr(obj, "to_dict"):
        obj = obj.to_dict()
    if isinstance(obj, dict):
        return {key: as_dict(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [as_dict(value) for value in obj]
    return obj


@dataclass
class CheckoutHandle:
    session_id: str
    url: str


@dataclass
class CheckoutSession:
    session_id: str
    status: Optional[str]            # open | complete | expired
    payment_status: Optional[str]    # paid | unpaid | no_payment_required
    amount_total: Optional[int]      # minor units
    currency: Optional[str]
    customer_email: Optional[str]
    transaction_id: Optional[str]
    metadata: dict = field(default_factory=dict)

    @property
    def paid(self) -> bool:
        return self.payment_status == "paid"

    @classmethod
    def from_stripe(cls, session) -> "CheckoutSession":
        data = as_dict(session)
        customer_email = data.get("customer_email")
        if not customer_email:
            customer_email = (data.get("customer_details") or {}).get("email")
        return cls(
            session_id=data.get("id"),
            status=data.get("status"),
            payment_status=data.get("payment_status"),
            amount_total=data.get("amount_total"),
            currency=data.get("currency"),
            customer_email=customer_email,
            transaction_id=data.get("payment_intent"),
            metadata=data.get("metadata") or {},
        )


class StripeCheckout:
    """Hosted checkout sessions through Stripe Checkout."""

    def create_session(
        self,
        line_items: list,
        mode: str,
        metadata: dict,
        customer_email: str,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutHandle:
        try:
            session = stripe.checkout.Session.create(
                line_items=line_items,
                mode=mode,
                metadata=metadata,
                customer_email=customer_email,
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as exc:
            logger.error("stripe rejected checkout session for %s: %s", metadata, exc.user_message or exc)
            raise AdapterError(f"Checkout provider rejected the session: {exc.user_message or exc}") from exc

        data = as_dict(session)
        logger.info("created checkout session %s for parcel %s", data["id"], metadata.get("parcelId"))
        return CheckoutHandle(session_id=data["id"], url=data["url"])

    def retrieve_session(self, session_id: str) -> CheckoutSession:
        if not session_id:
            raise ValidationError("sessionId is required")
        try:
            session = stripe.checkout.Session.retrieve(session_id)
        except stripe.InvalidRequestError as exc:
            raise AdapterError(f"Unknown or expired checkout session '{session_id}'") from exc
        except stripe.StripeError as exc:
            logger.error("stripe session retrieval failed for %s: %s", session_id, exc)
            raise AdapterError("Checkout provider unavailable") from exc
        return CheckoutSession.from_stripe(session)


def get_checkout() -> StripeCheckout:
    return StripeCheckout()
