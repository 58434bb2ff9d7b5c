import re
from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from parcel_api.errors import ValidationError

ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


def validate_id(value: str) -> str:
    if not ID_PATTERN.match(value or ""):
        raise ValidationError(f"Malformed identifier '{value}'")
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RequestModel(CamelModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


# --- requests ---

class ParcelCreate(RequestModel):
    sender_email: str = Field(min_length=3)
    sender_name: Optional[str] = None
    sender_address: Optional[str] = None
    receiver_name: Optional[str] = None
    receiver_email: Optional[str] = None
    receiver_address: Optional[str] = None
    parcel_name: str = Field(min_length=1)
    parcel_type: Literal["document", "non-document"] = "document"
    weight: Optional[float] = Field(default=None, gt=0)
    charge: float = Field(gt=0)


class PaymentRequest(RequestModel):
    parcel_id: str
    charge: float = Field(gt=0)
    parcel_name: str = Field(min_length=1)
    sender_email: str = Field(min_length=3)


class UserCreate(RequestModel):
    email: str = Field(min_length=3)
    display_name: Optional[str] = None
    photo_url: Optional[str] = None


class RiderCreate(RequestModel):
    email: str = Field(min_length=3)
    name: str = Field(min_length=1)
    phone: Optional[str] = None
    region: Optional[str] = None
    district: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=18)


class RiderStatusUpdate(RequestModel):
    status: Literal["approved", "rejected"]


# --- responses ---

class ParcelOut(CamelModel):
    id: str
    sender_email: str
    sender_name: Optional[str] = None
    sender_address: Optional[str] = None
    receiver_name: Optional[str] = None
    receiver_email: Optional[str] = None
    receiver_address: Optional[str] = None
    parcel_name: str
    parcel_type: str
    weight: Optional[float] = None
    charge: float
    payment_status: str
    tracking_id: Optional[str] = None
    created_at: datetime


class PaymentOut(CamelModel):
    id: str
    parcel_id: str
    parcel_name: Optional[str] = None
    customer_email: str
    amount: float
    currency: str
    payment_status: str
    transaction_id: Optional[str] = None
    tracking_id: Optional[str] = None
    paid_at: datetime


class UserOut(CamelModel):
    id: str
    email: str
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    role: str
    created_at: datetime


class RiderOut(CamelModel):
    id: str
    email: str
    name: str
    phone: Optional[str] = None
    region: Optional[str] = None
    district: Optional[str] = None
    age: Optional[int] = None
    status: str
    created_at: datetime


class CheckoutOut(BaseModel):
    url: str


class SettlementOut(CamelModel):
    success: bool
    paid: bool
    already_settled: Optional[bool] = None
    tracking_id: Optional[str] = None
    transaction_id: Optional[str] = None
    payment: Optional[PaymentOut] = None
