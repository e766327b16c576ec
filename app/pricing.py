"""
Vehicle allocation and fare rules.

Every fare leaves this module as an integer amount of paise (1 INR = 100
paise); the payment gateway only accepts integer minor units.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from decimal import ROUND_CEILING, Decimal
from typing import Any

from pydantic import BaseModel, Field

from app import settings
from app.errors import InvalidInput
from app.schemas import AddOns, VehicleClass

# Max luggage per passenger count. Iteration order matters: the smaller car wins.
VEHICLE_CAPACITY: dict[VehicleClass, dict[int, int]] = {
    VehicleClass.THREE_SEATER: {1: 3, 2: 3, 3: 2},
    VehicleClass.FIVE_SEATER: {1: 5, 2: 5, 3: 4, 4: 3, 5: 2},
}

HOURLY_RATE = 750  # INR per hour
MIN_HOURS = 1
MAX_HOURS = 12

OUTSTATION_MAX_KM = 350
# (upper bound km, one-way INR/km); rates beyond OUTSTATION_MAX_KM are kept
# for when the service cap is raised
OUTSTATION_RATE_TIERS: tuple[tuple[int, int], ...] = (
    (30, 79),
    (75, 72),
    (100, 67),
    (150, 64),
    (200, 60),
    (250, 57),
    (325, 52),
    (400, 45),
    (500, 41),
)
DRIVER_FEE = 200  # INR, charged on every outstation trip
DRIVER_FEE_PER_EXTRA_BLOCK = 750  # INR per 12h block on long round trips
DRIVER_BLOCK_HOURS = 12

AIRPORT_TOLL = 200
PLACARD = 500
CAT = 500
DOG = 750
CHILD_SEAT = 500

ALLOWED_ADD_ONS: tuple[str, ...] = (
    "airportToll",
    "placard",
    "pets",
    "bookForOther",
    "childSeat",
)

PAISE_PER_RUPEE = 100


class FareBreakdown(BaseModel):
    """Fare components in rupees plus the payable total in paise."""

    base_fare: Decimal = Field(ge=0)
    driver_fee: int = Field(ge=0)
    add_ons: int = Field(ge=0)
    total: int = Field(ge=0)  # paise

    @property
    def total_rupees(self) -> str:
        return f"{Decimal(self.total) / PAISE_PER_RUPEE:.2f}"


# ---------------------------------------------------------------------------
# Vehicle classification
# ---------------------------------------------------------------------------


def classify(passenger_count: int, luggage_count: int) -> VehicleClass | None:
    """Smallest vehicle class that fits the party, or None if nothing does."""
    if luggage_count < 0:
        return None
    for vehicle_class, limits in VEHICLE_CAPACITY.items():
        max_luggage = limits.get(passenger_count)
        if max_luggage is not None and luggage_count <= max_luggage:
            return vehicle_class
    return None


# ---------------------------------------------------------------------------
# Add-ons
# ---------------------------------------------------------------------------


def _coerce_add_ons(add_ons: AddOns | Mapping[str, Any] | None) -> AddOns:
    if add_ons is None:
        return AddOns()
    if isinstance(add_ons, AddOns):
        return add_ons
    return AddOns.model_validate(add_ons)


def add_on_surcharge(add_ons: AddOns | Mapping[str, Any] | None) -> int:
    """Flat INR surcharge; every selected extra is charged independently."""
    extras = _coerce_add_ons(add_ons)
    total = 0
    if extras.airport_toll:
        total += AIRPORT_TOLL
    if extras.placard.required:
        total += PLACARD
    if extras.pets.cats:
        total += CAT
    if extras.pets.dogs:
        total += DOG
    if extras.child_seat:
        total += CHILD_SEAT
    return total


# ---------------------------------------------------------------------------
# Fares
# ---------------------------------------------------------------------------


def _to_paise(rupees: Decimal) -> int:
    return int((rupees * PAISE_PER_RUPEE).to_integral_value(rounding=ROUND_CEILING))


def _require_vehicle_class(vehicle_class: VehicleClass | str | None) -> VehicleClass:
    if not vehicle_class:
        raise InvalidInput("vehicle class is required")
    try:
        return VehicleClass(vehicle_class)
    except ValueError:
        allowed = ", ".join(f"'{c.value}'" for c in VehicleClass)
        raise InvalidInput(
            f"Invalid vehicle class '{vehicle_class}'. Allowed values are {allowed}."
        ) from None


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float | Decimal) and not isinstance(value, bool)


def hourly_breakdown(
    hours: float,
    vehicle_class: VehicleClass | str | None,
    add_ons: AddOns | Mapping[str, Any] | None = None,
) -> FareBreakdown:
    _require_vehicle_class(vehicle_class)
    if not _is_number(hours) or not MIN_HOURS <= hours <= MAX_HOURS:
        raise InvalidInput(
            f"Invalid hours. Duration must be between {MIN_HOURS} and {MAX_HOURS} hours."
        )

    base = Decimal(str(hours)) * HOURLY_RATE
    extras = add_on_surcharge(add_ons)
    return FareBreakdown(
        base_fare=base,
        driver_fee=0,
        add_ons=extras,
        total=_to_paise(base + extras),
    )


def hourly_fare(
    hours: float,
    vehicle_class: VehicleClass | str | None,
    add_ons: AddOns | Mapping[str, Any] | None = None,
) -> int:
    """Hourly rental fare in paise."""
    return hourly_breakdown(hours, vehicle_class, add_ons).total


def per_km_rates(distance_km: float) -> tuple[Decimal, Decimal]:
    """
    One-way and round-trip INR/km rates for a distance bracket.
    The round-trip rate is charged on top of the one-way rate.
    """
    for upper_km, rate in OUTSTATION_RATE_TIERS:
        if distance_km <= upper_km:
            one_way = Decimal(rate)
            return one_way, one_way / 2
    raise InvalidInput(
        f"Distance exceeds maximum allowed limit of {OUTSTATION_RATE_TIERS[-1][0]}km."
    )


def driver_fee(
    is_round_trip: bool,
    start_time: datetime | None,
    return_time: datetime | None,
) -> int:
    if not is_round_trip:
        return DRIVER_FEE
    if return_time is None or start_time is None:
        raise InvalidInput("returnTime is required for round trips.")
    hours_between = (return_time - start_time).total_seconds() / 3600
    if hours_between < 0:
        raise InvalidInput("Return time cannot be before start time.")
    if hours_between <= DRIVER_BLOCK_HOURS:
        return DRIVER_FEE
    return DRIVER_FEE + int(hours_between // DRIVER_BLOCK_HOURS) * DRIVER_FEE_PER_EXTRA_BLOCK


def outstation_breakdown(
    distance_km: float,
    vehicle_class: VehicleClass | str | None,
    is_round_trip: bool,
    start_time: datetime | None,
    return_time: datetime | None = None,
    add_ons: AddOns | Mapping[str, Any] | None = None,
) -> FareBreakdown:
    _require_vehicle_class(vehicle_class)
    if start_time is None:
        raise InvalidInput("startTime is required.")
    if not _is_number(distance_km) or distance_km <= 0:
        raise InvalidInput("Invalid totalDistance. It must be greater than 0.")
    if distance_km > OUTSTATION_MAX_KM:
        raise InvalidInput(f"Outstation trips cannot exceed {OUTSTATION_MAX_KM}km.")

    one_way, round_trip = per_km_rates(distance_km)
    rate = one_way + round_trip if is_round_trip else one_way
    base = Decimal(str(distance_km)) * rate
    fee = driver_fee(is_round_trip, start_time, return_time)
    extras = add_on_surcharge(add_ons)

    return FareBreakdown(
        base_fare=base,
        driver_fee=fee,
        add_ons=extras,
        total=_to_paise(base + fee + extras),
    )


def outstation_fare(
    distance_km: float,
    vehicle_class: VehicleClass | str | None,
    is_round_trip: bool,
    start_time: datetime | None,
    return_time: datetime | None = None,
    add_ons: AddOns | Mapping[str, Any] | None = None,
) -> int:
    """Outstation trip fare in paise."""
    return outstation_breakdown(
        distance_km, vehicle_class, is_round_trip, start_time, return_time, add_ons
    ).total


def luxury_breakdown(
    vehicle_class: VehicleClass | str | None,
    add_ons: AddOns | Mapping[str, Any] | None = None,
    base_fare: int | None = None,
) -> FareBreakdown:
    _require_vehicle_class(vehicle_class)
    base = Decimal(settings.LUXURY_BASE_FARE if base_fare is None else base_fare)
    extras = add_on_surcharge(add_ons)
    return FareBreakdown(
        base_fare=base,
        driver_fee=0,
        add_ons=extras,
        total=_to_paise(base + extras),
    )


def luxury_fare(
    vehicle_class: VehicleClass | str | None,
    add_ons: AddOns | Mapping[str, Any] | None = None,
    base_fare: int | None = None,
) -> int:
    """Fixed-fare luxury booking in paise."""
    return luxury_breakdown(vehicle_class, add_ons, base_fare).total
