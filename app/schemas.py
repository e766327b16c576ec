from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import StrEnum
from typing import Annotated, Literal
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictStr,
    TypeAdapter,
    field_validator,
)
from pydantic.alias_generators import to_camel


class VehicleClass(StrEnum):
    THREE_SEATER = "3-seater"
    FIVE_SEATER = "5-seater"


class RideType(StrEnum):
    HOURLY = "hourly"
    OUTSTATION = "outstation"
    LUXURY = "luxury"


class BookingStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(StrEnum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


# ---------------------------------------------------------------------------
# Itinerary
# ---------------------------------------------------------------------------


class GeoPoint(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: tuple[float, float]  # [lon, lat]


class Place(BaseModel):
    address: str = ""
    location: GeoPoint


# ---------------------------------------------------------------------------
# Add-ons: camelCase on the wire, closed set of keys
# ---------------------------------------------------------------------------


class _AddOnModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid", alias_generator=to_camel, populate_by_name=True
    )


class Placard(_AddOnModel):
    required: StrictBool = False
    text: StrictStr = ""


class Pets(_AddOnModel):
    dogs: StrictBool = False
    cats: StrictBool = False


class BookForOther(_AddOnModel):
    is_booking: StrictBool = False
    other_guest_info: StrictStr = ""


class AddOns(_AddOnModel):
    airport_toll: StrictBool = False
    placard: Placard = Field(default_factory=Placard)
    pets: Pets = Field(default_factory=Pets)
    book_for_other: BookForOther = Field(default_factory=BookForOther)
    child_seat: StrictBool = False


# ---------------------------------------------------------------------------
# Validated booking requests (built by app.validation, never parsed directly)
# ---------------------------------------------------------------------------


class BookingCreateBase(BaseModel):
    pick_up: Place
    drop_off: Place
    stops: list[Place] = Field(default_factory=list, max_length=5)
    passenger_count: int = Field(ge=1, le=5)
    luggage_count: int = Field(ge=0, le=4)
    start_time: datetime
    add_ons: AddOns = Field(default_factory=AddOns)
    vehicle_class: VehicleClass


class HourlyBookingCreate(BookingCreateBase):
    ride_type: Literal["hourly"] = "hourly"
    hours: float = Field(ge=1, le=12)


class OutstationBookingCreate(BookingCreateBase):
    ride_type: Literal["outstation"] = "outstation"
    total_distance_km: float = Field(gt=0, le=350)
    is_round_trip: bool = False
    return_time: datetime | None = None


class LuxuryBookingCreate(BookingCreateBase):
    ride_type: Literal["luxury"] = "luxury"


BookingCreate = HourlyBookingCreate | OutstationBookingCreate | LuxuryBookingCreate


# ---------------------------------------------------------------------------
# Internal record: mirrors the bookings table, payment secrets included
# ---------------------------------------------------------------------------


class BookingRecord(BaseModel):
    id: UUID
    user_id: UUID
    ride_type: RideType
    vehicle_class: VehicleClass
    passenger_count: int
    luggage_count: int
    pick_up: Place
    drop_off: Place
    stops: list[Place]
    add_ons: AddOns
    start_time: datetime
    duration_hrs: float | None = None
    total_distance_km: float | None = None
    is_round_trip: bool = False
    return_time: datetime | None = None

    vehicle_id: UUID | None = None
    car_number: str | None = None
    car_model: str | None = None
    driver_name: str | None = None
    driver_number: str | None = None

    status: BookingStatus
    payment_method: str
    payment_amount: int
    payment_status: PaymentStatus
    payment_order_id: str | None = None
    payment_id: str | None = None
    payment_signature: str | None = None
    payment_receipt: str | None = None

    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("start_time", "return_time", "created_at", "updated_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        # timestamps are stored as UTC; some backends return them naive
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


# ---------------------------------------------------------------------------
# Public responses: tagged union on ride_type, payment ids withheld
# ---------------------------------------------------------------------------


class PaymentInfo(BaseModel):
    method: str
    amount: int  # paise
    status: PaymentStatus
    receipt: str | None = None


class _BookingOutBase(BaseModel):
    id: UUID
    user_id: UUID
    vehicle_class: VehicleClass
    passenger_count: int
    luggage_count: int
    pick_up: Place
    drop_off: Place
    stops: list[Place]
    add_ons: AddOns
    start_time: datetime
    status: BookingStatus
    payment: PaymentInfo
    car_number: str | None = None
    car_model: str | None = None
    driver_name: str | None = None
    driver_number: str | None = None
    created_at: datetime
    updated_at: datetime


class HourlyBooking(_BookingOutBase):
    ride_type: Literal["hourly"]
    duration_hrs: float


class OutstationBooking(_BookingOutBase):
    ride_type: Literal["outstation"]
    total_distance_km: float
    is_round_trip: bool
    return_time: datetime | None = None


class LuxuryBooking(_BookingOutBase):
    ride_type: Literal["luxury"]


BookingOut = Annotated[
    HourlyBooking | OutstationBooking | LuxuryBooking,
    Field(discriminator="ride_type"),
]
booking_out_adapter: TypeAdapter[BookingOut] = TypeAdapter(BookingOut)


def to_public(record: BookingRecord) -> BookingOut:
    """Project the internal record onto its public, ride-type specific shape."""
    data = record.model_dump(mode="json")
    data["payment"] = PaymentInfo(
        method=record.payment_method,
        amount=record.payment_amount,
        status=record.payment_status,
        receipt=record.payment_receipt,
    )
    return booking_out_adapter.validate_python(data)


# ---------------------------------------------------------------------------
# Quotes, checkout and payment verification
# ---------------------------------------------------------------------------


class FareQuote(BaseModel):
    fare: int  # paise
    fare_in_rupees: str
    base_fare: Decimal
    driver_fee: int
    add_ons: int
    vehicle_class: VehicleClass
    service_type: RideType
    stops_count: int
    duration_hrs: float | None = None
    distance_km: float | None = None
    is_round_trip: bool | None = None
    currency: str = "INR"


class PaymentOrder(BaseModel):
    """Order as returned by the payment gateway."""

    order_id: str
    amount: int
    currency: str
    receipt: str


class CheckoutOptions(BaseModel):
    """What the frontend needs to open the gateway's checkout widget."""

    key: str
    amount: int
    currency: str
    order_id: str
    description: str
    callback_url: str
    notes: dict[str, str] = Field(default_factory=dict)


class CheckoutResponse(BaseModel):
    booking: BookingOut
    fare: int
    fare_in_rupees: str
    checkout: CheckoutOptions


class PaymentVerification(BaseModel):
    payment_id: str = Field(min_length=1)
    order_id: str = Field(min_length=1)
    signature: str = Field(min_length=1)


class CancellationResponse(BaseModel):
    booking: BookingOut
    previous_status: BookingStatus
    message: str


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class BookingFilters(BaseModel):
    """Bind to a FastAPI route via Depends(BookingFilters)."""

    ride_type: RideType | None = None
    status: BookingStatus | None = None

    # Pagination
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1, le=50)


class BookingStatistics(BaseModel):
    total_bookings: int
    active_bookings: int
    past_bookings: int


class Pagination(BaseModel):
    current_page: int
    page_size: int
    total_pages: int
    total_bookings: int
    has_next_page: bool
    has_prev_page: bool


class BookingList(BaseModel):
    active: list[BookingOut]
    past: list[BookingOut]
    statistics: BookingStatistics
    pagination: Pagination


# ---------------------------------------------------------------------------
# Fleet
# ---------------------------------------------------------------------------


class VehicleCreate(BaseModel):
    plate_number: str = Field(min_length=1, max_length=20)
    vehicle_class: VehicleClass
    model: str = Field(min_length=1, max_length=100)
    is_luxury: bool = False
    driver_name: str | None = Field(default=None, max_length=100)
    driver_phone: str | None = Field(default=None, pattern=r"^\+91[6-9]\d{9}$")
    owner_name: str | None = Field(default=None, max_length=100)
    owner_phone: str | None = Field(default=None, pattern=r"^\+91[6-9]\d{9}$")


class VehicleResponse(BaseModel):
    id: UUID
    plate_number: str
    vehicle_class: VehicleClass
    model: str
    is_luxury: bool
    is_available: bool
    driver_name: str | None = None
    driver_phone: str | None = None
    owner_name: str | None = None
    owner_phone: str | None = None
    release_at: datetime | None = None
    held_by_booking_id: UUID | None = None

    model_config = ConfigDict(from_attributes=True)
