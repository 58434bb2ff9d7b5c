import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_CEILING
from typing import Callable, Optional

from parcel_api.errors import (
    AdapterError,
    ConsistencyError,
    DuplicateRecordError,
    NotFoundError,
    ValidationError,
)
from parcel_api.models import new_id, utcnow
from parcel_api.store import RecordStore
from parcel_api.stripe_service import StripeCheckout
from parcel_api.tracking import generate_tracking_id

logger = logging.getLogger(__name__)

# grep marker for operators: parcel/payment state needs manual correction
INCONSISTENCY_MARKER = "settlement-inconsistency"


def settlement_units(charge, exchange_rate) -> int:
    """Whole settlement-currency units for a source-currency charge, rounded up."""
    units = Decimal(str(charge)) / Decimal(str(exchange_rate))
    return int(units.to_integral_value(rounding=ROUND_CEILING))


def minor_units(units: int) -> int:
    return units * 100


@dataclass
class SettlementResult:
    paid: bool
    payment: Optional[dict] = None
    already_settled: bool = False

    @property
    def success(self) -> bool:
        return self.payment is not None


class PaymentWorkflow:
    """Opens checkout sessions for parcels and settles them exactly once per parcel."""

    def __init__(
        self,
        store: RecordStore,
        checkout: StripeCheckout,
        success_url: str,
        cancel_url: str,
        exchange_rate: float = 110,
        currency: str = "usd",
        tracking_ids: Callable[[], str] = generate_tracking_id,
    ):
        self.store = store
        self.checkout = checkout
        self.success_url = success_url
        self.cancel_url = cancel_url
        self.exchange_rate = exchange_rate
        self.currency = currency
        self.tracking_ids = tracking_ids

    def initiate_checkout(self, parcel: dict) -> str:
        charge = parcel.get("charge")
        if isinstance(charge, bool) or not isinstance(charge, (int, float, Decimal)) or charge <= 0:
            raise ValidationError("charge must be a positive number")

        stored = self.store.find_one("parcels", {"id": parcel["id"]})
        if stored is None:
            raise NotFoundError("Parcel Not Found")
        if stored["payment_status"] == "paid":
            raise ConsistencyError("Parcel is already paid")
        if Decimal(str(stored["charge"])) != Decimal(str(charge)):
            raise ValidationError("charge does not match the parcel")
        if stored["sender_email"] != parcel["sender_email"]:
            raise ValidationError("senderEmail does not match the parcel")

        unit_amount = minor_units(settlement_units(charge, self.exchange_rate))
        handle = self.checkout.create_session(
            line_items=[
                {
                    "price_data": {
                        "currency": self.currency,
                        "unit_amount": unit_amount,
                        "product_data": {"name": parcel["parcel_name"]},
                    },
                    "quantity": 1,
                }
            ],
            mode="payment",
            metadata={"parcelId": parcel["id"], "parcelName": parcel["parcel_name"]},
            customer_email=parcel["sender_email"],
            success_url=self.success_url,
            cancel_url=self.cancel_url,
        )
        return handle.url

    def settle_checkout(self, session_id: str) -> SettlementResult:
        session = self.checkout.retrieve_session(session_id)
        paid = session.paid
        tracking_id = self.tracking_ids()

        parcel_id = session.metadata.get("parcelId")
        if not parcel_id:
            raise ValidationError(f"Checkout session {session_id} carries no parcelId")

        existing = self.store.find_one("payments", {"parcel_id": parcel_id})
        if existing is not None:
            logger.info("session %s: parcel %s already settled", session_id, parcel_id)
            return SettlementResult(paid=True, payment=existing, already_settled=True)

        if not paid:
            logger.info("session %s: payment status is %s, nothing to settle", session_id, session.payment_status)
            return SettlementResult(paid=False)

        parcel = self.store.find_one("parcels", {"id": parcel_id})
        if parcel is None:
            logger.error("%s: paid session %s references missing parcel %s", INCONSISTENCY_MARKER, session_id, parcel_id)
            raise ConsistencyError(f"Paid session {session_id} references missing parcel {parcel_id}")

        payment_id = new_id()
        payment = {
            "id": payment_id,
            "parcel_id": parcel_id,
            "parcel_name": session.metadata.get("parcelName"),
            "customer_email": session.customer_email or parcel["sender_email"],
            "amount": (session.amount_total or 0) / 100,
            "currency": session.currency,
            "payment_status": session.payment_status,
            "transaction_id": session.transaction_id,
            "tracking_id": tracking_id,
            "paid_at": utcnow(),
        }

        try:
            with self.store.atomic():
                self.store.insert_one("payments", payment)
                modified = self.store.update_one(
                    "parcels",
                    {"id": parcel_id},
                    {"payment_status": "paid", "tracking_id": tracking_id},
                )
                if not modified:
                    raise ConsistencyError(f"Paid session {session_id} references missing parcel {parcel_id}")
        except DuplicateRecordError:
            # lost the race against a concurrent settlement of the same parcel
            existing = self.store.find_one("payments", {"parcel_id": parcel_id})
            if existing is None:
                logger.error("%s: duplicate insert for parcel %s but no payment found", INCONSISTENCY_MARKER, parcel_id)
                raise ConsistencyError(f"Settlement of parcel {parcel_id} conflicted and must be retried")
            logger.info("session %s: concurrent settlement of parcel %s won", session_id, parcel_id)
            return SettlementResult(paid=True, payment=existing, already_settled=True)
        except ConsistencyError as exc:
            logger.error("%s: session %s: %s", INCONSISTENCY_MARKER, session_id, exc.message)
            raise
        except (AdapterError, ValidationError) as exc:
            logger.error("%s: session %s paid but settlement writes failed: %s", INCONSISTENCY_MARKER, session_id, exc.message)
            raise ConsistencyError(f"Paid session {session_id} could not be recorded; retry settlement") from exc

        logger.info("session %s: parcel %s paid, tracking id %s", session_id, parcel_id, tracking_id)
        return SettlementResult(paid=True, payment=self.store.find_one("payments", {"id": payment_id}))
