"""
Ordered validation of raw booking requests.

Checks run in a fixed order and the first failure wins: callers only ever see
one error message per request. Field names follow the camelCase wire format.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import ValidationError

from app import settings
from app.errors import BookingValidationError, NoSuitableVehicle
from app.geo import distance_km
from app.pricing import ALLOWED_ADD_ONS, OUTSTATION_MAX_KM, classify
from app.schemas import (
    AddOns,
    GeoPoint,
    HourlyBookingCreate,
    LuxuryBookingCreate,
    OutstationBookingCreate,
    Place,
    VehicleClass,
)

HOURLY_LEAD_TIME = timedelta(hours=48)
OUTSTATION_LEAD_TIME = timedelta(hours=24)
LUXURY_LEAD_TIME = timedelta(hours=48)

MAX_STOPS = 5
MAX_PASSENGERS = 5
MAX_LUGGAGE = 4
SERVICE_RADIUS_KM = 350


@dataclass
class ValidatedFields:
    pick_up: Place
    drop_off: Place
    passenger_count: int
    luggage_count: int
    start_time: datetime
    add_ons: AddOns
    vehicle_class: VehicleClass
    stops: list[Place] = field(default_factory=list)

    def as_kwargs(self) -> dict[str, Any]:
        return {
            "pick_up": self.pick_up,
            "drop_off": self.drop_off,
            "stops": self.stops,
            "passenger_count": self.passenger_count,
            "luggage_count": self.luggage_count,
            "start_time": self.start_time,
            "add_ons": self.add_ons,
            "vehicle_class": self.vehicle_class,
        }


# ---------------------------------------------------------------------------
# Primitive helpers
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return False
    # json.loads accepts NaN and Infinity
    return math.isfinite(value)


def _as_whole(value: Any) -> int | None:
    """int for whole numbers (3 or 3.0), None otherwise."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def parse_datetime(value: Any) -> datetime | None:
    """Aware UTC datetime from a datetime or ISO-8601 string; None if unparseable."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _address(place: Any) -> str | None:
    if not isinstance(place, Mapping):
        return None
    address = place.get("address")
    if not isinstance(address, str) or not address.strip():
        return None
    return address.strip()


def location_error(location: Any, field_name: str) -> str | None:
    if not isinstance(location, Mapping):
        return f"{field_name} location is required"

    coordinates = location.get("coordinates")
    if not isinstance(coordinates, list | tuple):
        return f"{field_name} coordinates must be an array"
    if len(coordinates) != 2:
        return (
            f"{field_name} coordinates must have exactly 2 values [longitude, latitude]"
        )

    lon, lat = coordinates
    if not _is_number(lon) or not _is_number(lat):
        return f"{field_name} coordinates must be numbers"
    if not -180 <= lon <= 180 or not -90 <= lat <= 90:
        return f"{field_name} coordinates are out of valid range"
    return None


def add_ons_error(add_ons: Any) -> str | None:
    if add_ons is None:
        return None
    if not isinstance(add_ons, Mapping):
        return "AddOns must be an object"

    unknown = [key for key in add_ons if key not in ALLOWED_ADD_ONS]
    if unknown:
        return (
            f"Invalid addOn properties: {', '.join(unknown)}. "
            f"Allowed properties: {', '.join(ALLOWED_ADD_ONS)}"
        )

    try:
        AddOns.model_validate(add_ons)
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(part) for part in first["loc"])
        return f"addOns.{where}: {first['msg']}"
    return None


def _place(raw: Mapping[str, Any]) -> Place:
    return Place(
        address=(raw.get("address") or "").strip(),
        location=GeoPoint(coordinates=tuple(raw["location"]["coordinates"])),
    )


# ---------------------------------------------------------------------------
# Shared validator
# ---------------------------------------------------------------------------


def validate_common(
    data: Mapping[str, Any],
    *,
    lead_time: timedelta,
    now: datetime | None = None,
) -> ValidatedFields:
    """
    Validate the fields every ride product shares.

    Order: counts present → addresses → start time and lead time → stops
    list → add-ons → coordinates → count ranges → vehicle class.
    """
    now = now or datetime.now(timezone.utc)

    passenger_count = data.get("passengerCount")
    luggage_count = data.get("luggageCount")
    if passenger_count is None or luggage_count is None:
        raise BookingValidationError("Passenger and luggage counts are required")
    passengers = _as_whole(passenger_count)
    luggage = _as_whole(luggage_count)
    if passengers is None or luggage is None:
        raise BookingValidationError("Passenger and luggage counts must be whole numbers")

    pick_up = data.get("pickUp")
    drop_off = data.get("dropOff")
    if _address(pick_up) is None:
        raise BookingValidationError("Pickup address is required")
    if _address(drop_off) is None:
        raise BookingValidationError("Dropoff address is required")

    start_time = parse_datetime(data.get("startTime"))
    if start_time is None:
        raise BookingValidationError("Valid start time is required")
    if start_time < now + lead_time:
        hours = int(lead_time.total_seconds() // 3600)
        raise BookingValidationError(
            f"startTime must be at least {hours} hours in the future"
        )

    stops = data.get("stops")
    if stops is None:
        stops = []
    if not isinstance(stops, list):
        raise BookingValidationError("Stops must be an array")
    if len(stops) > MAX_STOPS:
        raise BookingValidationError(f"Maximum {MAX_STOPS} stops allowed")

    add_ons = data.get("addOns")
    error = add_ons_error(add_ons)
    if error:
        raise BookingValidationError(error)

    for place, name in ((pick_up, "Pickup"), (drop_off, "Dropoff")):
        error = location_error(place.get("location"), name)
        if error:
            raise BookingValidationError(error)
    for index, stop in enumerate(stops, start=1):
        if not isinstance(stop, Mapping):
            raise BookingValidationError(f"Stop {index} must be an object")
        address = stop.get("address")
        if address is not None and not isinstance(address, str):
            raise BookingValidationError(f"Stop {index} address must be a string")
        error = location_error(stop.get("location"), f"Stop {index}")
        if error:
            raise BookingValidationError(error)

    if not 1 <= passengers <= MAX_PASSENGERS:
        raise BookingValidationError(
            f"Passenger count must be between 1 and {MAX_PASSENGERS}"
        )
    if not 0 <= luggage <= MAX_LUGGAGE:
        raise BookingValidationError(
            f"Luggage count must be between 0 and {MAX_LUGGAGE}"
        )

    vehicle_class = classify(passengers, luggage)
    if vehicle_class is None:
        raise NoSuitableVehicle(
            f"No vehicle available for {passengers} passengers "
            f"and {luggage} luggage items"
        )

    return ValidatedFields(
        pick_up=_place(pick_up),
        drop_off=_place(drop_off),
        stops=[_place(stop) for stop in stops],
        passenger_count=passengers,
        luggage_count=luggage,
        start_time=start_time,
        add_ons=AddOns.model_validate(add_ons or {}),
        vehicle_class=vehicle_class,
    )


# ---------------------------------------------------------------------------
# Product validators
# ---------------------------------------------------------------------------


def validate_hourly(
    data: Mapping[str, Any], now: datetime | None = None
) -> HourlyBookingCreate:
    common = validate_common(data, lead_time=HOURLY_LEAD_TIME, now=now)

    hours = data.get("hours")
    if hours is None:
        raise BookingValidationError("Hours are required for hourly rental")
    if not _is_number(hours) or not 1 <= hours <= 12:
        raise BookingValidationError("Hours must be a number between 1 and 12")

    return HourlyBookingCreate(**common.as_kwargs(), hours=hours)


def validate_outstation(
    data: Mapping[str, Any],
    now: datetime | None = None,
    service_center: tuple[float, float] | None = None,
) -> OutstationBookingCreate:
    common = validate_common(data, lead_time=OUTSTATION_LEAD_TIME, now=now)

    total_distance = data.get("totalDistance")
    if total_distance is None:
        raise BookingValidationError("Total distance is required for outstation trips")
    if not _is_number(total_distance) or total_distance <= 0:
        raise BookingValidationError("Total distance must be a positive number")
    if total_distance > OUTSTATION_MAX_KM:
        raise BookingValidationError(
            f"Outstation trips cannot exceed {OUTSTATION_MAX_KM}km"
        )

    is_round_trip = data.get("isRoundTrip", False)
    if not isinstance(is_round_trip, bool):
        raise BookingValidationError("isRoundTrip must be a boolean")

    return_time = None
    if is_round_trip:
        raw_return = data.get("returnTime")
        if not raw_return:
            raise BookingValidationError("Return time is required for round trips")
        return_time = parse_datetime(raw_return)
        if return_time is None:
            raise BookingValidationError("Valid return time is required for round trips")
        if return_time <= common.start_time:
            raise BookingValidationError("Return time must be after start time")

    center = service_center or settings.SERVICE_CENTER
    from_center = distance_km(center, common.drop_off.location.coordinates)
    if from_center > SERVICE_RADIUS_KM:
        raise BookingValidationError(
            f"Drop-off location is {from_center:.1f}km from service center "
            f"(max {SERVICE_RADIUS_KM}km)"
        )

    return OutstationBookingCreate(
        **common.as_kwargs(),
        total_distance_km=total_distance,
        is_round_trip=is_round_trip,
        return_time=return_time,
    )


def validate_luxury(
    data: Mapping[str, Any], now: datetime | None = None
) -> LuxuryBookingCreate:
    common = validate_common(data, lead_time=LUXURY_LEAD_TIME, now=now)
    return LuxuryBookingCreate(**common.as_kwargs())
