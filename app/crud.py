from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import HTTPException, status
from tortoise.exceptions import IntegrityError

from app.errors import DuplicatePayment
from app.models import Booking, Vehicle
from app.schemas import (
    BookingCreate,
    BookingFilters,
    BookingRecord,
    BookingStatus,
    PaymentOrder,
    PaymentStatus,
    RideType,
    VehicleClass,
    VehicleCreate,
    VehicleResponse,
)

# Statuses a customer may still cancel from; re-checked inside the UPDATE
CANCELLABLE_STATUSES = [BookingStatus.PENDING, BookingStatus.CONFIRMED]
CANCELLABLE_PAYMENT_STATUSES = [PaymentStatus.PENDING, PaymentStatus.FAILED]


def _record(inst: Booking) -> BookingRecord:
    return BookingRecord.model_validate(inst, from_attributes=True)


class BookingCRUD:
    async def create_booking(
        self,
        payload: BookingCreate,
        user_id: UUID,
        amount: int,
        vehicle: VehicleResponse | None = None,
        booking_id: UUID | None = None,
    ) -> BookingRecord:
        """Persist a new booking as pending / payment pending."""
        extra: dict = {}
        if booking_id is not None:
            extra["id"] = booking_id
        if payload.ride_type == "hourly":
            extra["duration_hrs"] = payload.hours
        elif payload.ride_type == "outstation":
            extra["total_distance_km"] = payload.total_distance_km
            extra["is_round_trip"] = payload.is_round_trip
            extra["return_time"] = payload.return_time
        if vehicle is not None:
            extra.update(
                vehicle_id=vehicle.id,
                car_number=vehicle.plate_number,
                car_model=vehicle.model,
                driver_name=vehicle.driver_name,
                driver_number=vehicle.driver_phone,
            )

        inst = await Booking.create(
            user_id=user_id,
            ride_type=RideType(payload.ride_type),
            vehicle_class=payload.vehicle_class,
            passenger_count=payload.passenger_count,
            luggage_count=payload.luggage_count,
            pick_up=payload.pick_up.model_dump(mode="json"),
            drop_off=payload.drop_off.model_dump(mode="json"),
            stops=[s.model_dump(mode="json") for s in payload.stops],
            add_ons=payload.add_ons.model_dump(mode="json"),
            start_time=payload.start_time,
            status=BookingStatus.PENDING,
            payment_amount=amount,
            payment_status=PaymentStatus.PENDING,
            **extra,
        )
        return _record(inst)

    async def get_booking(
        self, booking_id: UUID, user_id: UUID | None = None
    ) -> BookingRecord | None:
        if user_id is not None:
            inst = await Booking.get_or_none(id=booking_id, user_id=user_id)
        else:
            inst = await Booking.get_or_none(id=booking_id)
        if not inst:
            return None
        return _record(inst)

    async def list_bookings(
        self,
        filters: BookingFilters,
        user_id: UUID | None = None,
    ) -> tuple[list[BookingRecord], int]:
        """Return one page of bookings (newest first) and the unpaged total."""
        qs = Booking.all()

        if user_id is not None:
            qs = qs.filter(user_id=user_id)
        if filters.ride_type is not None:
            qs = qs.filter(ride_type=filters.ride_type)
        if filters.status is not None:
            qs = qs.filter(status=filters.status)

        total = await qs.count()
        offset = (filters.page - 1) * filters.page_size
        bookings = await qs.offset(offset).limit(filters.page_size)
        return [_record(b) for b in bookings], total

    async def attach_order(
        self, booking_id: UUID, order: PaymentOrder
    ) -> BookingRecord | None:
        updated = await Booking.filter(id=booking_id).update(
            payment_order_id=order.order_id,
            payment_receipt=order.receipt,
            payment_amount=order.amount,
        )
        if not updated:
            return None
        return await self.get_booking(booking_id)

    async def find_by_payment_id(self, payment_id: str) -> BookingRecord | None:
        inst = await Booking.get_or_none(payment_id=payment_id)
        if not inst:
            return None
        return _record(inst)

    async def mark_paid(
        self, booking_id: UUID, payment_id: str, signature: str
    ) -> BookingRecord | None:
        """
        pending → paid/confirmed as a single conditional UPDATE.
        Returns None when the payment was no longer pending (lost a race).
        """
        try:
            updated = await Booking.filter(
                id=booking_id, payment_status=PaymentStatus.PENDING
            ).update(
                payment_status=PaymentStatus.PAID,
                payment_id=payment_id,
                payment_signature=signature,
                status=BookingStatus.CONFIRMED,
            )
        except IntegrityError:
            # unique payment_id: another booking recorded it concurrently
            raise DuplicatePayment() from None
        if not updated:
            return None
        return await self.get_booking(booking_id)

    async def cancel_booking(self, booking_id: UUID) -> BookingRecord | None:
        updated = await Booking.filter(
            id=booking_id,
            status__in=CANCELLABLE_STATUSES,
            payment_status__in=CANCELLABLE_PAYMENT_STATUSES,
        ).update(status=BookingStatus.CANCELLED)
        if not updated:
            return None
        return await self.get_booking(booking_id)

    async def update_booking_status(
        self, booking_id: UUID, new_status: BookingStatus
    ) -> BookingRecord | None:
        inst = await Booking.get_or_none(id=booking_id)
        if not inst:
            return None
        inst.status = new_status  # type: ignore
        await inst.save(update_fields=["status", "updated_at"])
        return _record(inst)

    async def delete_booking(self, booking_id: UUID) -> bool:
        deleted = await Booking.filter(id=booking_id).delete()
        return deleted > 0


class VehicleCRUD:
    async def create_vehicle(self, payload: VehicleCreate) -> VehicleResponse:
        try:
            inst = await Vehicle.create(**payload.model_dump())
        except IntegrityError:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Vehicle {payload.plate_number} is already registered",
            ) from None
        return VehicleResponse.model_validate(inst, from_attributes=True)

    async def list_vehicles(
        self,
        vehicle_class: VehicleClass | None = None,
        is_available: bool | None = None,
        is_luxury: bool | None = None,
    ) -> list[VehicleResponse]:
        qs = Vehicle.all()
        if vehicle_class is not None:
            qs = qs.filter(vehicle_class=vehicle_class)
        if is_available is not None:
            qs = qs.filter(is_available=is_available)
        if is_luxury is not None:
            qs = qs.filter(is_luxury=is_luxury)
        return [
            VehicleResponse.model_validate(v, from_attributes=True) for v in await qs
        ]

    async def claim(
        self, vehicle_class: VehicleClass, booking_id: UUID, luxury: bool = False
    ) -> VehicleResponse | None:
        """
        Take one available vehicle of the class out of the pool for `booking_id`.
        Each candidate is claimed with UPDATE ... WHERE is_available = true, so
        two concurrent bookings can never hold the same plate.
        """
        candidates = await Vehicle.filter(
            vehicle_class=vehicle_class, is_luxury=luxury, is_available=True
        ).values_list("id", flat=True)

        for vehicle_id in candidates:
            claimed = await Vehicle.filter(id=vehicle_id, is_available=True).update(
                is_available=False, release_at=None, held_by_booking_id=booking_id
            )
            if claimed:
                inst = await Vehicle.get(id=vehicle_id)
                return VehicleResponse.model_validate(inst, from_attributes=True)
        return None

    async def release(self, vehicle_id: UUID, booking_id: UUID) -> bool:
        """
        Hand the vehicle back, but only while `booking_id` still holds it.
        A stale booking can never free a car another booking has claimed since.
        """
        updated = await Vehicle.filter(
            id=vehicle_id, held_by_booking_id=booking_id
        ).update(is_available=True, release_at=None, held_by_booking_id=None)
        return updated > 0

    async def force_release(self, vehicle_id: UUID) -> bool:
        """Fleet override: free the vehicle whoever holds it."""
        updated = await Vehicle.filter(id=vehicle_id).update(
            is_available=True, release_at=None, held_by_booking_id=None
        )
        return updated > 0

    async def schedule_release(
        self, vehicle_id: UUID, booking_id: UUID, release_at: datetime
    ) -> bool:
        updated = await Vehicle.filter(
            id=vehicle_id, is_available=False, held_by_booking_id=booking_id
        ).update(release_at=release_at)
        return updated > 0

    async def release_due(self, now: datetime) -> int:
        # claim() clears release_at, so a deadline always belongs to the current holder
        return await Vehicle.filter(
            is_available=False, release_at__lte=now
        ).update(is_available=True, release_at=None, held_by_booking_id=None)


booking_crud = BookingCRUD()
vehicle_crud = VehicleCRUD()
