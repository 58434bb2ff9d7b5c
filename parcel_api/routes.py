import logging
from typing import List, Literal, Optional
from fastapi import APIRouter, Depends, Query, status

from parcel_api.auth import owner_scope, require_admin, require_owner, verify_token
from parcel_api.config import settings
from parcel_api.errors import NotFoundError, ValidationError
from parcel_api.reconciliation import PaymentWorkflow
from parcel_api.schemas import (
    CheckoutOut,
    ParcelCreate,
    ParcelOut,
    PaymentOut,
    PaymentRequest,
    RiderCreate,
    RiderOut,
    RiderStatusUpdate,
    SettlementOut,
    UserCreate,
    UserOut,
    validate_id,
)
from parcel_api.store import ASCENDING, DESCENDING, RecordStore, get_store
from parcel_api.stripe_service import StripeCheckout, get_checkout

logger = logging.getLogger(__name__)

router = APIRouter()

PARCEL_SORT_FIELDS = {
    "createdAt": "created_at",
    "charge": "charge",
    "parcelName": "parcel_name",
    "paymentStatus": "payment_status",
}


def get_workflow(
    store: RecordStore = Depends(get_store),
    checkout: StripeCheckout = Depends(get_checkout),
) -> PaymentWorkflow:
    return PaymentWorkflow(
        store,
        checkout,
        success_url=settings.success_url,
        cancel_url=settings.cancel_url,
        exchange_rate=settings.exchange_rate,
        currency=settings.settlement_currency,
    )


@router.get("/")
def welcome():
    return {"message": "Welcome to Parcel Delivery API"}


@router.get("/health")
def health():
    return {"status": "healthy"}


# --- users ---

@router.post("/users", response_model=UserOut)
def create_user(
    request: UserCreate,
    email: str = Depends(verify_token),
    store: RecordStore = Depends(get_store),
):
    require_owner(request.email, email)

    existing = store.find_one("users", {"email": request.email})
    if existing:
        return existing

    user_id = store.insert_one("users", request.model_dump())
    logger.info("registered user %s", request.email)
    return store.find_one("users", {"id": user_id})


@router.get("/users/{user_email}/role")
def get_user_role(
    user_email: str,
    email: str = Depends(verify_token),
    store: RecordStore = Depends(get_store),
):
    owner_scope(store, user_email, email)
    user = store.find_one("users", {"email": user_email})
    if not user:
        raise NotFoundError("User Not Found")
    return {"role": user["role"]}


# --- parcels ---

@router.get("/parcels", response_model=List[ParcelOut])
def list_parcels(
    sender_email: Optional[str] = Query(None, alias="senderEmail"),
    sort: str = "createdAt",
    order: Literal["asc", "desc"] = "desc",
    email: str = Depends(verify_token),
    store: RecordStore = Depends(get_store),
):
    if sort not in PARCEL_SORT_FIELDS:
        raise ValidationError(f"Cannot sort parcels by '{sort}'")

    owner = owner_scope(store, sender_email, email)
    filter = {"sender_email": owner} if owner else {}
    direction = ASCENDING if order == "asc" else DESCENDING
    return store.find("parcels", filter, sort=[(PARCEL_SORT_FIELDS[sort], direction)])


@router.get("/parcels/{parcel_id}", response_model=ParcelOut)
def get_parcel(
    parcel_id: str,
    email: str = Depends(verify_token),
    store: RecordStore = Depends(get_store),
):
    parcel = store.find_one("parcels", {"id": validate_id(parcel_id)})
    if not parcel:
        raise NotFoundError("Parcel Not Found")
    owner_scope(store, parcel["sender_email"], email)
    return parcel


@router.post("/parcels", response_model=ParcelOut, status_code=status.HTTP_201_CREATED)
def create_parcel(
    request: ParcelCreate,
    email: str = Depends(verify_token),
    store: RecordStore = Depends(get_store),
):
    require_owner(request.sender_email, email)

    parcel_id = store.insert_one("parcels", request.model_dump())
    logger.info("parcel %s submitted by %s", parcel_id, email)
    return store.find_one("parcels", {"id": parcel_id})


@router.delete("/parcels/{parcel_id}")
def delete_parcel(
    parcel_id: str,
    email: str = Depends(verify_token),
    store: RecordStore = Depends(get_store),
):
    parcel = store.find_one("parcels", {"id": validate_id(parcel_id)})
    if not parcel:
        raise NotFoundError("Parcel Not Found")
    owner_scope(store, parcel["sender_email"], email)

    deleted = store.delete_one("parcels", {"id": parcel_id})
    if not deleted:
        raise NotFoundError("Parcel Not Found")
    logger.info("parcel %s deleted by %s", parcel_id, email)
    return {"deletedCount": deleted}


# --- payments ---

@router.post("/payments", response_model=CheckoutOut)
def create_payment_api(
    request: PaymentRequest,
    email: str = Depends(verify_token),
    workflow: PaymentWorkflow = Depends(get_workflow),
):
    require_owner(request.sender_email, email)

    url = workflow.initiate_checkout({
        "id": validate_id(request.parcel_id),
        "charge": request.charge,
        "parcel_name": request.parcel_name,
        "sender_email": request.sender_email,
    })
    return {"url": url}


@router.patch("/payments", response_model=SettlementOut, response_model_exclude_none=True)
def settle_payment_api(
    session_id: str = Query(..., alias="sessionId", min_length=1),
    email: str = Depends(verify_token),
    workflow: PaymentWorkflow = Depends(get_workflow),
):
    result = workflow.settle_checkout(session_id)
    if not result.success:
        return {"success": False, "paid": result.paid}

    return {
        "success": True,
        "paid": result.paid,
        "already_settled": result.already_settled,
        "tracking_id": result.payment["tracking_id"],
        "transaction_id": result.payment["transaction_id"],
        "payment": result.payment,
    }


@router.get("/payments", response_model=List[PaymentOut])
def list_payments(
    customer_email: Optional[str] = Query(None, alias="customerEmail"),
    email: str = Depends(verify_token),
    store: RecordStore = Depends(get_store),
):
    owner = owner_scope(store, customer_email, email)
    filter = {"customer_email": owner} if owner else {}
    return store.find("payments", filter, sort=[("paid_at", DESCENDING)])


# --- riders ---

@router.post("/riders", response_model=RiderOut, status_code=status.HTTP_201_CREATED)
def apply_as_rider(
    request: RiderCreate,
    email: str = Depends(verify_token),
    store: RecordStore = Depends(get_store),
):
    require_owner(request.email, email)

    rider_id = store.insert_one("riders", request.model_dump())
    logger.info("rider application %s from %s", rider_id, email)
    return store.find_one("riders", {"id": rider_id})


@router.get("/riders", response_model=List[RiderOut])
def list_riders(
    rider_status: Optional[Literal["pending", "approved", "rejected"]] = Query(None, alias="status"),
    rider_email: Optional[str] = Query(None, alias="email"),
    email: str = Depends(verify_token),
    store: RecordStore = Depends(get_store),
):
    filter = {}
    owner = owner_scope(store, rider_email, email)
    if owner:
        filter["email"] = owner
    if rider_status:
        filter["status"] = rider_status
    return store.find("riders", filter, sort=[("created_at", DESCENDING)])


@router.patch("/riders/{rider_id}", response_model=RiderOut)
def update_rider_status(
    rider_id: str,
    request: RiderStatusUpdate,
    admin_email: str = Depends(require_admin),
    store: RecordStore = Depends(get_store),
):
    rider = store.find_one("riders", {"id": validate_id(rider_id)})
    if not rider:
        raise NotFoundError("Rider Not Found")

    with store.atomic():
        store.update_one("riders", {"id": rider_id}, {"status": request.status})
        if request.status == "approved":
            promoted = store.update_one("users", {"email": rider["email"]}, {"role": "rider"})
            if not promoted:
                store.insert_one("users", {"email": rider["email"], "display_name": rider["name"], "role": "rider"})

    logger.info("rider %s %s by %s", rider_id, request.status, admin_email)
    return store.find_one("riders", {"id": rider_id})
