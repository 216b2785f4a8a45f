"""Pydantic models exposed by the PartyStream API."""
from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from .security import PASSWORD_MIN_LENGTH


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=128)
    role: Literal["host", "dj"] = "host"
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserOut(BaseModel):
    id: str
    email: str
    role: str
    first_name: str
    last_name: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuthResponse(BaseModel):
    user: UserOut
    token: str


class UserProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=128)


class DJProfileCreate(BaseModel):
    stage_name: str = Field(min_length=1, max_length=128)
    hourly_rate: float = Field(gt=0)
    genres: List[str] = Field(default_factory=list)
    bio: str = ""
    experience: str = ""
    equipment: str = ""
    video_links: List[str] = Field(default_factory=list)
    languages: List[str] = Field(default_factory=lambda: ["English"], min_length=1)


class DJProfileUpdate(BaseModel):
    stage_name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    hourly_rate: Optional[float] = Field(default=None, gt=0)
    genres: Optional[List[str]] = None
    bio: Optional[str] = None
    experience: Optional[str] = None
    equipment: Optional[str] = None
    video_links: Optional[List[str]] = None
    languages: Optional[List[str]] = Field(default=None, min_length=1)


class DJProfileOut(BaseModel):
    id: str
    user_id: str
    stage_name: str
    hourly_rate: float
    genres: List[str]
    bio: str
    experience: str
    equipment: str
    video_links: List[str]
    languages: List[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookingCreate(BaseModel):
    dj_profile_id: str
    start_time: datetime
    end_time: datetime
    notes: str = Field(default="", max_length=2000)


class BookingUpdate(BaseModel):
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class BookingStatusUpdate(BaseModel):
    status: str


class BookingOut(BaseModel):
    id: str
    host_id: str
    dj_profile_id: str
    start_time: datetime
    end_time: datetime
    duration_hours: float
    total_amount: float
    status: str
    payment_status: str
    notes: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookedWindow(BaseModel):
    id: str
    start_time: datetime
    end_time: datetime
    status: str

    model_config = ConfigDict(from_attributes=True)


class AvailabilityOut(BaseModel):
    dj_profile_id: str
    start_date: datetime
    end_date: datetime
    booked: List[BookedWindow]


class StreamCreate(BaseModel):
    booking_id: str
    title: Optional[str] = Field(default=None, max_length=255)


class StreamOut(BaseModel):
    id: str
    booking_id: str
    dj_profile_id: str
    host_id: str
    title: str
    status: str
    playback_url: Optional[str]
    viewers_peak: int
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    viewer_count: Optional[int] = None
    health: Optional[str] = None
    ingest_endpoint: Optional[str] = None
    rtmp_url: Optional[str] = None
    stream_key: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentIntentCreate(BaseModel):
    booking_id: str


class PaymentOut(BaseModel):
    id: str
    booking_id: str
    host_id: str
    amount: float
    service_fee: float
    total_amount: float
    currency: str
    payment_intent_id: str
    status: str
    refund_id: Optional[str] = None
    refunded_amount: Optional[float] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentIntentResponse(BaseModel):
    payment: PaymentOut
    client_secret: str


class RefundRequest(BaseModel):
    amount: Optional[float] = Field(default=None, gt=0)
    reason: Literal["duplicate", "fraudulent", "requested_by_customer"] = "requested_by_customer"


class ChatMessageCreate(BaseModel):
    booking_id: str
    content: str = Field(max_length=2000)


class ChatMessageOut(BaseModel):
    id: str
    booking_id: str
    user_id: str
    content: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


__all__ = [
    "AuthResponse",
    "AvailabilityOut",
    "BookedWindow",
    "BookingCreate",
    "BookingOut",
    "BookingStatusUpdate",
    "BookingUpdate",
    "ChangePasswordRequest",
    "ChatMessageCreate",
    "ChatMessageOut",
    "DJProfileCreate",
    "DJProfileOut",
    "DJProfileUpdate",
    "LoginRequest",
    "PaymentIntentCreate",
    "PaymentIntentResponse",
    "PaymentOut",
    "RefundRequest",
    "RegisterRequest",
    "StreamCreate",
    "StreamOut",
    "UserOut",
    "UserProfileUpdate",
]
