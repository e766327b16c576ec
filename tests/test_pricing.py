"""Tests for app/pricing.py: classification, add-ons and fares (all in paise)."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError

from app.errors import InvalidInput
from app.pricing import (
    add_on_surcharge,
    classify,
    driver_fee,
    hourly_breakdown,
    hourly_fare,
    luxury_fare,
    outstation_breakdown,
    outstation_fare,
    per_km_rates,
)
from app.schemas import AddOns, VehicleClass

from .factories import NOW

T0 = NOW


# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------


class TestClassify:
    @pytest.mark.parametrize(
        "passengers, luggage, expected",
        [
            (1, 3, VehicleClass.THREE_SEATER),
            (2, 3, VehicleClass.THREE_SEATER),
            (3, 2, VehicleClass.THREE_SEATER),
            (3, 3, VehicleClass.FIVE_SEATER),
            (1, 5, VehicleClass.FIVE_SEATER),
            (4, 3, VehicleClass.FIVE_SEATER),
            (5, 2, VehicleClass.FIVE_SEATER),
            (4, 0, VehicleClass.FIVE_SEATER),
        ],
    )
    def test_smallest_fitting_class(self, passengers, luggage, expected):
        assert classify(passengers, luggage) == expected

    @pytest.mark.parametrize(
        "passengers, luggage", [(5, 3), (4, 4), (1, 6), (6, 0), (0, 0), (2, -1)]
    )
    def test_no_class_fits(self, passengers, luggage):
        assert classify(passengers, luggage) is None

    def test_class_values_are_wire_strings(self):
        assert classify(3, 2) == "3-seater"
        assert classify(3, 3) == "5-seater"


# ---------------------------------------------------------------------------
# add-ons
# ---------------------------------------------------------------------------


class TestAddOnSurcharge:
    def test_nothing_selected(self):
        assert add_on_surcharge({}) == 0
        assert add_on_surcharge(None) == 0

    def test_every_extra_is_additive(self):
        add_ons = {
            "airportToll": True,
            "placard": {"required": True, "text": "Mr. Das"},
            "pets": {"dogs": True, "cats": True},
            "childSeat": True,
        }
        assert add_on_surcharge(add_ons) == 200 + 500 + 750 + 500 + 500

    def test_placard_text_without_required_is_free(self):
        assert add_on_surcharge({"placard": {"text": "Mr. Das"}}) == 0

    def test_book_for_other_is_free(self):
        add_ons = {"bookForOther": {"isBooking": True, "otherGuestInfo": "Asha"}}
        assert add_on_surcharge(add_ons) == 0

    def test_accepts_model_instance(self):
        assert add_on_surcharge(AddOns(airport_toll=True)) == 200

    def test_unknown_key_rejected(self):
        with pytest.raises(ValidationError):
            add_on_surcharge({"wifi": True})


# ---------------------------------------------------------------------------
# hourly
# ---------------------------------------------------------------------------


class TestHourlyFare:
    def test_two_hours_three_seater(self):
        assert hourly_fare(2, "3-seater", {}) == 150000

    def test_one_hour_with_toll_and_child_seat(self):
        add_ons = {"airportToll": True, "childSeat": True}
        assert hourly_fare(1, "5-seater", add_ons) == 145000

    def test_fractional_hours(self):
        assert hourly_fare(1.5, VehicleClass.THREE_SEATER) == 112500

    def test_vehicle_class_does_not_change_rate(self):
        assert hourly_fare(3, "3-seater") == hourly_fare(3, "5-seater")

    def test_breakdown_components(self):
        breakdown = hourly_breakdown(2, "3-seater", {"childSeat": True})
        assert breakdown.base_fare == Decimal(1500)
        assert breakdown.add_ons == 500
        assert breakdown.driver_fee == 0
        assert breakdown.total == 200000
        assert breakdown.total_rupees == "2000.00"

    @pytest.mark.parametrize("hours", [0, 0.5, 12.5, 13, -1, "2", None])
    def test_hours_out_of_range(self, hours):
        with pytest.raises(InvalidInput):
            hourly_fare(hours, "3-seater")

    @pytest.mark.parametrize("vehicle_class", [None, "", "7-seater"])
    def test_unknown_vehicle_class(self, vehicle_class):
        with pytest.raises(InvalidInput):
            hourly_fare(2, vehicle_class)


# ---------------------------------------------------------------------------
# outstation
# ---------------------------------------------------------------------------


class TestPerKmRates:
    @pytest.mark.parametrize(
        "distance, one_way",
        [(1, 79), (30, 79), (31, 72), (75, 72), (100, 67), (150, 64), (200, 60),
         (250, 57), (325, 52), (400, 45), (500, 41)],
    )
    def test_tiers(self, distance, one_way):
        rate, round_trip = per_km_rates(distance)
        assert rate == one_way
        assert round_trip == Decimal(one_way) / 2

    def test_rates_decrease_with_distance(self):
        rates = [per_km_rates(d)[0] for d in (30, 75, 100, 150, 200, 250, 325, 400, 500)]
        assert rates == sorted(rates, reverse=True)

    def test_beyond_table(self):
        with pytest.raises(InvalidInput):
            per_km_rates(501)


class TestDriverFee:
    def test_one_way_is_flat(self):
        assert driver_fee(False, T0, None) == 200

    @pytest.mark.parametrize(
        "hours, expected",
        [(6, 200), (12, 200), (13, 950), (24, 1700), (30, 1700), (36, 2450)],
    )
    def test_round_trip_blocks(self, hours, expected):
        assert driver_fee(True, T0, T0 + timedelta(hours=hours)) == expected

    def test_round_trip_requires_return_time(self):
        with pytest.raises(InvalidInput):
            driver_fee(True, T0, None)

    def test_return_before_start(self):
        with pytest.raises(InvalidInput):
            driver_fee(True, T0, T0 - timedelta(hours=1))


class TestOutstationFare:
    def test_one_way_thirty_km(self):
        # 30 km × 79 + flat driver fee
        assert outstation_fare(30, "3-seater", False, T0, None, {}) == 257000

    def test_round_trip_same_day(self):
        fare = outstation_fare(30, "3-seater", True, T0, T0 + timedelta(hours=6), {})
        assert fare == round(30 * (79 + 39.5)) * 100 + 200 * 100

    def test_round_trip_thirty_hours_adds_extra_driver_blocks(self):
        fare = outstation_fare(100, "5-seater", True, T0, T0 + timedelta(hours=30), {})
        base = 100 * (67 + 33.5)
        assert fare == int((base + 200 + 1500) * 100)

    def test_add_ons_included(self):
        fare = outstation_fare(30, "3-seater", False, T0, None, {"airportToll": True})
        assert fare == 257000 + 20000

    def test_fractional_distance_rounds_up_to_whole_paise(self):
        # 10.333 km × 79 = 816.307 INR → 81630.7 paise → 81631
        breakdown = outstation_breakdown(10.333, "3-seater", False, T0)
        assert breakdown.total == 81631 + 20000

    def test_service_cap_wins_over_rate_table(self):
        assert outstation_fare(350, "3-seater", False, T0) > 0
        with pytest.raises(InvalidInput):
            outstation_fare(351, "3-seater", False, T0)

    @pytest.mark.parametrize("distance", [0, -5, None, "30"])
    def test_invalid_distance(self, distance):
        with pytest.raises(InvalidInput):
            outstation_fare(distance, "3-seater", False, T0)

    def test_missing_start_time(self):
        with pytest.raises(InvalidInput):
            outstation_fare(30, "3-seater", False, None)

    def test_round_trip_without_return_time(self):
        with pytest.raises(InvalidInput):
            outstation_fare(30, "3-seater", True, T0, None)

    def test_missing_vehicle_class(self):
        with pytest.raises(InvalidInput):
            outstation_fare(30, None, False, T0)


# ---------------------------------------------------------------------------
# luxury
# ---------------------------------------------------------------------------


class TestLuxuryFare:
    def test_fixed_base_fare(self):
        assert luxury_fare("5-seater") == 499900

    def test_add_ons_on_top(self):
        assert luxury_fare("3-seater", {"placard": {"required": True}}) == 549900

    def test_base_fare_override(self):
        assert luxury_fare("3-seater", base_fare=8000) == 800000

    def test_requires_vehicle_class(self):
        with pytest.raises(InvalidInput):
            luxury_fare(None)
