# mentorbot/app/schemas/bookings.py

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class SessionType(str, Enum):
    CHAT = "chat"
    VIDEO = "video"


class MeetingStatus(str, Enum):
    SCHEDULED = "Scheduled"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    NO_SHOW = "No-Show"


class PersonRef(BaseModel):
    id: Optional[str] = Field(default=None, alias="_id")
    name: str = ""
    email: Optional[str] = None
    avatar: Optional[str] = None

    model_config = {"populate_by_name": True}

    @field_validator("name", mode="before")
    @classmethod
    def null_name(cls, v):
        return v or ""


class OrderInfo(BaseModel):
    """Payment order attached to a booking. ``amount`` is in minor units."""
    id: Optional[str] = Field(default=None, alias="_id")
    amount: int = 0
    currency: str = "INR"
    status: Optional[str] = None

    model_config = {"populate_by_name": True}


class Booking(BaseModel):
    """Booking / meeting record, read-only on the client."""
    id: str = Field(alias="_id")
    mentor: PersonRef
    user: Optional[PersonRef] = None
    scheduled_at: datetime = Field(alias="scheduledAt")
    meeting_type: SessionType = Field(default=SessionType.VIDEO, alias="meetingType")
    status: str = MeetingStatus.SCHEDULED.value
    order: Optional[OrderInfo] = None
    topic: Optional[str] = None

    model_config = {"populate_by_name": True}

    @field_validator("meeting_type", mode="before")
    @classmethod
    def default_meeting_type(cls, v):
        return v or SessionType.VIDEO

    @field_validator("status", mode="before")
    @classmethod
    def default_status(cls, v):
        return v or MeetingStatus.SCHEDULED.value

    @field_validator("scheduled_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Timestamps without an offset are UTC."""
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)


class BookingPage(BaseModel):
    items: list[Booking]
    page: int = 1
    limit: int = 50
    total: int = 0


class PaymentOrder(BaseModel):
    """Order descriptor returned by booking creation, handed to the checkout."""
    order_id: str = Field(alias="orderId")
    provider_order_id: str = Field(alias="razorpayOrderId")
    provider_key: Optional[str] = Field(default=None, alias="razorpayKeyId")
    amount: int
    currency: str = "INR"
    mentor_name: Optional[str] = None

    model_config = {"populate_by_name": True}

    @classmethod
    def from_api(cls, data: dict) -> "PaymentOrder":
        mentor = data.get("mentor") or {}
        return cls.model_validate({**data, "mentor_name": mentor.get("name")})


class PaymentResult(BaseModel):
    """Success payload reported by the payment provider's checkout."""
    payment_id: str = Field(alias="razorpay_payment_id")
    provider_order_id: str = Field(alias="razorpay_order_id")
    signature: str = Field(alias="razorpay_signature")

    model_config = {"populate_by_name": True}

    def to_api(self) -> dict:
        return self.model_dump(by_alias=True)
