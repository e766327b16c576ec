from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, status

from app.deps import (
    CurrentUser,
    can_admin_delete_ride,
    can_admin_write_ride,
    can_cancel_ride,
    can_read_or_admin_ride,
    can_write_ride,
    get_booking_lifecycle,
    is_ride_admin,
)
from app.lifecycle import BookingLifecycle
from app.schemas import (
    BookingFilters,
    BookingList,
    BookingOut,
    BookingStatusUpdate,
    CancellationResponse,
    CheckoutResponse,
    FareQuote,
    PaymentVerification,
)

router = APIRouter(prefix="/bookings", tags=["bookings"])

# Create/quote bodies are validated field by field in app.validation so the
# first failing rule decides the message; they arrive here as raw JSON objects
# and are documented through examples instead of a request model.
_RIDE_EXAMPLE: dict[str, Any] = {
    "pickUp": {
        "address": "Station Square, Bhubaneswar",
        "location": {"type": "Point", "coordinates": [85.8166, 20.2945]},
    },
    "dropOff": {
        "address": "Jagannath Temple, Puri",
        "location": {"type": "Point", "coordinates": [85.8312, 19.8135]},
    },
    "stops": [],
    "passengerCount": 2,
    "luggageCount": 1,
    "startTime": "2026-06-04T10:00:00Z",
    "addOns": {"airportToll": False, "childSeat": True},
}

HOURLY_EXAMPLES = {
    "hourly": {
        "summary": "Two hour city rental",
        "value": {**_RIDE_EXAMPLE, "hours": 2},
    }
}
OUTSTATION_EXAMPLES = {
    "one_way": {
        "summary": "One-way outstation trip",
        "value": {**_RIDE_EXAMPLE, "totalDistance": 60, "isRoundTrip": False},
    },
    "round_trip": {
        "summary": "Round trip, returnTime required",
        "value": {
            **_RIDE_EXAMPLE,
            "totalDistance": 120,
            "isRoundTrip": True,
            "returnTime": "2026-06-05T18:00:00Z",
        },
    },
}
LUXURY_EXAMPLES = {
    "luxury": {"summary": "Luxury car transfer", "value": _RIDE_EXAMPLE},
}

HourlyBody = Annotated[
    dict[str, Any],
    Body(description="Hourly rental request (camelCase)", openapi_examples=HOURLY_EXAMPLES),
]
OutstationBody = Annotated[
    dict[str, Any],
    Body(
        description="Outstation trip request (camelCase)",
        openapi_examples=OUTSTATION_EXAMPLES,
    ),
]
LuxuryBody = Annotated[
    dict[str, Any],
    Body(description="Luxury ride request (camelCase)", openapi_examples=LUXURY_EXAMPLES),
]


# ---------------------------------------------------------------------------
# Fare quotes (no persistence)
# ---------------------------------------------------------------------------


@router.post(
    "/charges/hourly-rental",
    response_model=FareQuote,
    dependencies=[Depends(can_write_ride)],
)
async def quote_hourly_rental(
    data: HourlyBody,
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
) -> FareQuote:
    return await lifecycle.quote_hourly(data)


@router.post(
    "/charges/outstation",
    response_model=FareQuote,
    dependencies=[Depends(can_write_ride)],
)
async def quote_outstation(
    data: OutstationBody,
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
) -> FareQuote:
    return await lifecycle.quote_outstation(data)


@router.post(
    "/charges/luxury",
    response_model=FareQuote,
    dependencies=[Depends(can_write_ride)],
)
async def quote_luxury(
    data: LuxuryBody,
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
) -> FareQuote:
    return await lifecycle.quote_luxury(data)


# ---------------------------------------------------------------------------
# Booking creation → checkout options for the payment widget
# ---------------------------------------------------------------------------


@router.post(
    "/hourly-rental",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_hourly_rental(
    data: HourlyBody,
    current_user: CurrentUser = Depends(can_write_ride),
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
) -> CheckoutResponse:
    return await lifecycle.create_hourly(data, current_user)


@router.post(
    "/outstation",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_outstation(
    data: OutstationBody,
    current_user: CurrentUser = Depends(can_write_ride),
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
) -> CheckoutResponse:
    return await lifecycle.create_outstation(data, current_user)


@router.post(
    "/luxury",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_luxury(
    data: LuxuryBody,
    current_user: CurrentUser = Depends(can_write_ride),
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
) -> CheckoutResponse:
    return await lifecycle.create_luxury(data, current_user)


@router.post("/{booking_id}/verify-payment", response_model=BookingOut)
async def verify_payment(
    booking_id: UUID,
    payload: PaymentVerification,
    current_user: CurrentUser = Depends(can_write_ride),
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
) -> BookingOut:
    return await lifecycle.verify_payment(booking_id, payload, current_user)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("/", response_model=BookingList)
async def list_bookings(
    filters: BookingFilters = Depends(),
    current_user: CurrentUser = Depends(can_read_or_admin_ride),
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
) -> BookingList:
    return await lifecycle.list_bookings(
        filters, current_user, admin=is_ride_admin(current_user)
    )


@router.get("/{booking_id}", response_model=BookingOut)
async def get_booking(
    booking_id: UUID,
    current_user: CurrentUser = Depends(can_read_or_admin_ride),
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
) -> BookingOut:
    return await lifecycle.get_booking(
        booking_id, current_user, admin=is_ride_admin(current_user)
    )


# ---------------------------------------------------------------------------
# Cancellation & admin operations
# ---------------------------------------------------------------------------


@router.put("/{booking_id}/cancel", response_model=CancellationResponse)
async def cancel_booking(
    booking_id: UUID,
    current_user: CurrentUser = Depends(can_cancel_ride),
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
) -> CancellationResponse:
    return await lifecycle.cancel_booking(booking_id, current_user)


@router.patch(
    "/{booking_id}/status",
    response_model=BookingOut,
    dependencies=[Depends(can_admin_write_ride)],
)
async def update_booking_status(
    booking_id: UUID,
    payload: BookingStatusUpdate,
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
) -> BookingOut:
    return await lifecycle.update_status(booking_id, payload.status)


@router.delete(
    "/{booking_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(can_admin_delete_ride)],
)
async def delete_booking(
    booking_id: UUID,
    lifecycle: BookingLifecycle = Depends(get_booking_lifecycle),
) -> None:
    await lifecycle.delete_booking(booking_id)
