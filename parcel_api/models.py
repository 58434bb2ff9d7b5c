import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Integer, Float, DateTime
from parcel_api.database import Base


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordMixin:
    def to_dict(self) -> dict:
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}


class Parcel(RecordMixin, Base):
    __tablename__ = "parcels"

    id = Column(String(32), primary_key=True, default=new_id)
    sender_email = Column(String, nullable=False, index=True)
    sender_name = Column(String)
    sender_address = Column(String)
    receiver_name = Column(String)
    receiver_email = Column(String)
    receiver_address = Column(String)
    parcel_name = Column(String, nullable=False)
    parcel_type = Column(String, nullable=False, default="document")   # document | non-document
    weight = Column(Float)
    charge = Column(Float, nullable=False)                             # source currency
    payment_status = Column(String, nullable=False, default="unpaid")  # unpaid | paid
    tracking_id = Column(String, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)


class Payment(RecordMixin, Base):
    __tablename__ = "payments"

    id = Column(String(32), primary_key=True, default=new_id)
    # plain reference, payments outlive parcel deletion
    parcel_id = Column(String(32), unique=True, index=True, nullable=False)
    parcel_name = Column(String)
    customer_email = Column(String, nullable=False, index=True)
    amount = Column(Float, nullable=False)                             # settlement currency
    currency = Column(String, nullable=False)
    payment_status = Column(String, nullable=False)
    transaction_id = Column(String, index=True)                        # Stripe PaymentIntent ID
    tracking_id = Column(String)
    paid_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)


class User(RecordMixin, Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_id)
    email = Column(String, unique=True, index=True, nullable=False)
    display_name = Column(String)
    photo_url = Column(String)
    role = Column(String, nullable=False, default="user")              # user | rider | admin
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Rider(RecordMixin, Base):
    __tablename__ = "riders"

    id = Column(String(32), primary_key=True, default=new_id)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    phone = Column(String)
    region = Column(String)
    district = Column(String)
    age = Column(Integer)
    status = Column(String, nullable=False, default="pending", index=True)  # pending | approved | rejected
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


COLLECTIONS = {
    "parcels": Parcel,
    "payments": Payment,
    "users": User,
    "riders": Rider,
}
