"""
Booking lifecycle: validate → classify → price → persist → claim vehicle →
payment order → verify payment, with compensation when the order step fails.

Every collaborator is injected, so the whole flow runs against in-memory
fakes in tests and against Tortoise / httpx / Redis in the service.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Protocol
from uuid import UUID, uuid4

from loguru import logger

from app import emails, settings
from app.errors import (
    AlreadyProcessed,
    BookingNotFound,
    CancellationNotAllowed,
    DuplicatePayment,
    Forbidden,
    InvalidSignature,
    InvalidTransition,
    NoAvailableVehicle,
    OrderMismatch,
    PaymentGatewayError,
)
from app.pricing import (
    FareBreakdown,
    hourly_breakdown,
    luxury_breakdown,
    outstation_breakdown,
)
from app.schemas import (
    BookingCreate,
    BookingFilters,
    BookingList,
    BookingOut,
    BookingRecord,
    BookingStatistics,
    BookingStatus,
    CancellationResponse,
    CheckoutOptions,
    CheckoutResponse,
    FareQuote,
    Pagination,
    PaymentOrder,
    PaymentStatus,
    PaymentVerification,
    RideType,
    VehicleClass,
    VehicleResponse,
    to_public,
)
from app.validation import validate_hourly, validate_luxury, validate_outstation

if TYPE_CHECKING:
    from app.deps import CurrentUser

CURRENCY = "INR"
NO_CANCEL_WINDOW_HOURS = 2

_TERMINAL_STATUSES = {BookingStatus.COMPLETED, BookingStatus.CANCELLED}

# Operational transitions driven by dispatch / admins
_ADMIN_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.ONGOING},
    BookingStatus.ONGOING: {BookingStatus.COMPLETED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}


# ---------------------------------------------------------------------------
# Collaborator contracts
# ---------------------------------------------------------------------------


class BookingStore(Protocol):
    async def create_booking(
        self,
        payload: BookingCreate,
        user_id: UUID,
        amount: int,
        vehicle: VehicleResponse | None = None,
        booking_id: UUID | None = None,
    ) -> BookingRecord: ...

    async def get_booking(
        self, booking_id: UUID, user_id: UUID | None = None
    ) -> BookingRecord | None: ...

    async def list_bookings(
        self, filters: BookingFilters, user_id: UUID | None = None
    ) -> tuple[list[BookingRecord], int]: ...

    async def attach_order(
        self, booking_id: UUID, order: PaymentOrder
    ) -> BookingRecord | None: ...

    async def find_by_payment_id(self, payment_id: str) -> BookingRecord | None: ...

    async def mark_paid(
        self, booking_id: UUID, payment_id: str, signature: str
    ) -> BookingRecord | None: ...

    async def cancel_booking(self, booking_id: UUID) -> BookingRecord | None: ...

    async def update_booking_status(
        self, booking_id: UUID, new_status: BookingStatus
    ) -> BookingRecord | None: ...

    async def delete_booking(self, booking_id: UUID) -> bool: ...


class VehicleInventory(Protocol):
    """Every write is keyed by the holding booking; a stale holder matches nothing."""

    async def claim(
        self, vehicle_class: VehicleClass, booking_id: UUID, luxury: bool = False
    ) -> VehicleResponse | None: ...

    async def release(self, vehicle_id: UUID, booking_id: UUID) -> bool: ...

    async def schedule_release(
        self, vehicle_id: UUID, booking_id: UUID, release_at: datetime
    ) -> bool: ...

    async def release_due(self, now: datetime) -> int: ...


class PaymentGateway(Protocol):
    key_id: str

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None = None,
    ) -> PaymentOrder: ...

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool: ...


class Notifier(Protocol):
    async def send(self, to_address: str, subject: str, html_body: str) -> bool: ...


class UserDirectory(Protocol):
    async def get_user(self, user_id: UUID, caller: CurrentUser) -> dict | None: ...


class PaymentLocks(Protocol):
    async def acquire(self, payment_id: str) -> bool: ...

    async def release(self, payment_id: str) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _rupees(paise: int) -> str:
    return f"{paise / 100:.2f}"


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class BookingLifecycle:
    def __init__(
        self,
        store: BookingStore,
        inventory: VehicleInventory,
        gateway: PaymentGateway,
        notifier: Notifier,
        users: UserDirectory,
        locks: PaymentLocks,
        clock: Callable[[], datetime] = _utcnow,
        service_center: tuple[float, float] | None = None,
    ) -> None:
        self.store = store
        self.inventory = inventory
        self.gateway = gateway
        self.notifier = notifier
        self.users = users
        self.locks = locks
        self.clock = clock
        self.service_center = service_center or settings.SERVICE_CENTER

    # -- quotes ---------------------------------------------------------------

    def _quote(self, payload: BookingCreate, breakdown: FareBreakdown) -> FareQuote:
        quote = FareQuote(
            fare=breakdown.total,
            fare_in_rupees=breakdown.total_rupees,
            base_fare=breakdown.base_fare,
            driver_fee=breakdown.driver_fee,
            add_ons=breakdown.add_ons,
            vehicle_class=payload.vehicle_class,
            service_type=RideType(payload.ride_type),
            stops_count=len(payload.stops),
        )
        if payload.ride_type == RideType.HOURLY:
            quote.duration_hrs = payload.hours
        elif payload.ride_type == RideType.OUTSTATION:
            quote.distance_km = payload.total_distance_km
            quote.is_round_trip = payload.is_round_trip
        return quote

    async def quote_hourly(self, data: Mapping[str, Any]) -> FareQuote:
        payload = validate_hourly(data, now=self.clock())
        return self._quote(
            payload,
            hourly_breakdown(payload.hours, payload.vehicle_class, payload.add_ons),
        )

    async def quote_outstation(self, data: Mapping[str, Any]) -> FareQuote:
        payload = validate_outstation(
            data, now=self.clock(), service_center=self.service_center
        )
        return self._quote(
            payload,
            outstation_breakdown(
                payload.total_distance_km,
                payload.vehicle_class,
                payload.is_round_trip,
                payload.start_time,
                payload.return_time,
                payload.add_ons,
            ),
        )

    async def quote_luxury(self, data: Mapping[str, Any]) -> FareQuote:
        payload = validate_luxury(data, now=self.clock())
        return self._quote(
            payload, luxury_breakdown(payload.vehicle_class, payload.add_ons)
        )

    # -- create ---------------------------------------------------------------

    async def create_hourly(
        self, data: Mapping[str, Any], user: CurrentUser
    ) -> CheckoutResponse:
        payload = validate_hourly(data, now=self.clock())
        fare = hourly_breakdown(
            payload.hours, payload.vehicle_class, payload.add_ons
        ).total

        booking = await self.store.create_booking(payload, user.id, fare)
        logger.info(
            "Hourly booking {} created for user {} ({} paise)", booking.id, user.id, fare
        )
        return await self.request_payment(
            booking, user, description=f"Hourly Rental Booking - {payload.hours:g} hours"
        )

    async def create_outstation(
        self, data: Mapping[str, Any], user: CurrentUser
    ) -> CheckoutResponse:
        payload = validate_outstation(
            data, now=self.clock(), service_center=self.service_center
        )
        fare = outstation_breakdown(
            payload.total_distance_km,
            payload.vehicle_class,
            payload.is_round_trip,
            payload.start_time,
            payload.return_time,
            payload.add_ons,
        ).total

        booking = await self._create_with_vehicle(payload, user, fare, luxury=False)
        trip = "(Round Trip)" if payload.is_round_trip else "(One Way)"
        release_at = payload.return_time if payload.is_round_trip else payload.start_time
        return await self.request_payment(
            booking,
            user,
            description=f"Outstation Booking - {payload.total_distance_km:g}km {trip}",
            release_at=release_at,
        )

    async def create_luxury(
        self, data: Mapping[str, Any], user: CurrentUser
    ) -> CheckoutResponse:
        payload = validate_luxury(data, now=self.clock())
        fare = luxury_breakdown(payload.vehicle_class, payload.add_ons).total

        booking = await self._create_with_vehicle(payload, user, fare, luxury=True)
        return await self.request_payment(
            booking,
            user,
            description=f"Luxury Booking - {booking.car_model}",
            release_at=payload.start_time,
        )

    async def _create_with_vehicle(
        self,
        payload: BookingCreate,
        user: CurrentUser,
        fare: int,
        luxury: bool,
    ) -> BookingRecord:
        booking_id = uuid4()
        vehicle = await self.inventory.claim(
            payload.vehicle_class, booking_id, luxury=luxury
        )
        if vehicle is None:
            raise NoAvailableVehicle(
                f"No {'luxury ' if luxury else ''}{payload.vehicle_class} vehicle "
                "is available right now"
            )
        logger.info("Vehicle {} claimed for {} booking", vehicle.plate_number, payload.ride_type)

        try:
            booking = await self.store.create_booking(
                payload, user.id, fare, vehicle=vehicle, booking_id=booking_id
            )
        except Exception:
            # claim and insert are separate writes: hand the car back
            await self._release_vehicle(vehicle.id, booking_id)
            raise

        logger.info(
            "{} booking {} created for user {} ({} paise)",
            payload.ride_type.capitalize(),
            booking.id,
            user.id,
            fare,
        )
        return booking

    # -- payment order --------------------------------------------------------

    async def request_payment(
        self,
        booking: BookingRecord,
        user: CurrentUser,
        description: str,
        release_at: datetime | None = None,
    ) -> CheckoutResponse:
        """
        Open a gateway order for the booking's amount.
        On any failure the booking is deleted and its vehicle released before
        PaymentGatewayError is raised: the client never sees a half-created booking.
        """
        notes = {
            "bookingId": str(booking.id),
            "userId": str(user.id),
            "bookingType": str(booking.ride_type),
            "carType": str(booking.vehicle_class),
        }
        try:
            order = await self.gateway.create_order(
                booking.payment_amount,
                CURRENCY,
                receipt=f"rcpt_{booking.id.hex[:24]}",
                notes=notes,
            )
            updated = await self.store.attach_order(booking.id, order)
            if updated is None:
                raise PaymentGatewayError("Booking vanished before the order was attached")
        except Exception as exc:
            logger.error("Order creation failed for booking {}: {}", booking.id, exc)
            await self._rollback(booking)
            if isinstance(exc, PaymentGatewayError):
                raise
            raise PaymentGatewayError(f"Failed to create payment order: {exc}") from exc

        logger.info("Order {} attached to booking {}", order.order_id, booking.id)

        if updated.vehicle_id is not None and release_at is not None:
            await self.release_vehicle_on_schedule(
                updated.vehicle_id, updated.id, release_at
            )
        await self._notify(user, *emails.booking_created(updated))

        return CheckoutResponse(
            booking=to_public(updated),
            fare=updated.payment_amount,
            fare_in_rupees=_rupees(updated.payment_amount),
            checkout=CheckoutOptions(
                key=self.gateway.key_id,
                amount=order.amount,
                currency=order.currency,
                order_id=order.order_id,
                description=description,
                callback_url=f"{settings.backend_url}/bookings/{updated.id}/verify-payment",
                notes=notes,
            ),
        )

    async def _rollback(self, booking: BookingRecord) -> None:
        try:
            await self.store.delete_booking(booking.id)
        except Exception:
            logger.exception("Rollback: could not delete booking {}", booking.id)
        if booking.vehicle_id is not None:
            await self._release_vehicle(booking.vehicle_id, booking.id)
        logger.info("Rolled back booking {}", booking.id)

    # -- verification ---------------------------------------------------------

    async def verify_payment(
        self,
        booking_id: UUID,
        verification: PaymentVerification,
        user: CurrentUser,
    ) -> BookingOut:
        payment_id = verification.payment_id
        order_id = verification.order_id

        if not self.gateway.verify_signature(
            order_id, payment_id, verification.signature
        ):
            raise InvalidSignature()

        if not await self.locks.acquire(payment_id):
            raise DuplicatePayment("Payment is already being verified")
        try:
            existing = await self.store.find_by_payment_id(payment_id)
            if existing is not None and existing.id != booking_id:
                raise DuplicatePayment()

            booking = await self.store.get_booking(booking_id)
            if booking is None:
                raise BookingNotFound()
            if booking.payment_order_id != order_id:
                raise OrderMismatch()
            if booking.user_id != user.id:
                raise Forbidden("Unauthorized payment verification")
            if booking.payment_status != PaymentStatus.PENDING:
                raise AlreadyProcessed(f"Payment already {booking.payment_status}")

            updated = await self.store.mark_paid(
                booking_id, payment_id, verification.signature
            )
            if updated is None:
                raise AlreadyProcessed()
        finally:
            await self.locks.release(payment_id)

        logger.info(
            "Payment verified for booking {} (order={}, payment={}, user={})",
            booking_id,
            order_id,
            payment_id,
            user.id,
        )
        await self._notify(user, *emails.payment_confirmed(updated))
        return to_public(updated)

    # -- cancellation ---------------------------------------------------------

    async def cancel_booking(
        self, booking_id: UUID, user: CurrentUser
    ) -> CancellationResponse:
        booking = await self.store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound()
        if booking.user_id != user.id:
            raise Forbidden("Unauthorized access to booking")

        if booking.status == BookingStatus.CANCELLED:
            raise CancellationNotAllowed("Booking is already cancelled")
        if booking.status == BookingStatus.COMPLETED:
            raise CancellationNotAllowed("Cannot cancel completed booking")
        if booking.status == BookingStatus.ONGOING:
            raise CancellationNotAllowed("Cannot cancel ongoing booking")

        if booking.payment_status not in (PaymentStatus.PENDING, PaymentStatus.FAILED):
            raise CancellationNotAllowed(
                f"Cannot cancel booking with payment status: {booking.payment_status}. "
                "Only bookings with pending or failed payments can be cancelled."
            )

        hours_until_start = (booking.start_time - self.clock()).total_seconds() / 3600
        if 0 < hours_until_start <= NO_CANCEL_WINDOW_HOURS:
            raise CancellationNotAllowed(
                f"Cannot cancel booking within {NO_CANCEL_WINDOW_HOURS} hours of start time"
            )

        updated = await self.store.cancel_booking(booking_id)
        if updated is None:
            raise CancellationNotAllowed("Booking changed while cancelling, try again")
        if updated.vehicle_id is not None:
            await self._release_vehicle(updated.vehicle_id, updated.id)

        logger.info(
            "Booking {} cancelled by user {} (was {}, payment {})",
            booking_id,
            user.id,
            booking.status,
            booking.payment_status,
        )
        await self._notify(user, *emails.booking_cancelled(updated))
        return CancellationResponse(
            booking=to_public(updated),
            previous_status=booking.status,
            message=(
                "Booking cancelled successfully. No refund required as payment "
                f"was {booking.payment_status}."
            ),
        )

    # -- vehicles -------------------------------------------------------------

    async def _release_vehicle(self, vehicle_id: UUID, booking_id: UUID) -> None:
        try:
            if await self.inventory.release(vehicle_id, booking_id):
                logger.info("Vehicle {} released by booking {}", vehicle_id, booking_id)
            else:
                logger.debug(
                    "Vehicle {} no longer held by booking {}", vehicle_id, booking_id
                )
        except Exception:
            logger.exception("Could not release vehicle {}", vehicle_id)

    async def release_vehicle_on_schedule(
        self, vehicle_id: UUID, booking_id: UUID, release_at: datetime
    ) -> None:
        """Record when `booking_id` hands its vehicle back to the pool. Never raises."""
        try:
            await self.inventory.schedule_release(vehicle_id, booking_id, release_at)
            logger.debug("Vehicle {} scheduled for release at {}", vehicle_id, release_at)
        except Exception:
            logger.exception("Scheduling release of vehicle {} failed", vehicle_id)

    async def release_due_vehicles(self) -> int:
        released = await self.inventory.release_due(self.clock())
        if released:
            logger.info("Released {} vehicle(s) past their release time", released)
        return released

    # -- reads & admin --------------------------------------------------------

    async def get_booking(
        self, booking_id: UUID, user: CurrentUser, admin: bool = False
    ) -> BookingOut:
        booking = await self.store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound()
        if not admin and booking.user_id != user.id:
            raise Forbidden("Unauthorized access to booking")
        return to_public(booking)

    async def list_bookings(
        self, filters: BookingFilters, user: CurrentUser, admin: bool = False
    ) -> BookingList:
        records, total = await self.store.list_bookings(
            filters, user_id=None if admin else user.id
        )

        active: list[BookingOut] = []
        past: list[BookingOut] = []
        for record in records:
            if record.status in _TERMINAL_STATUSES:
                past.append(to_public(record))
            else:
                active.append(to_public(record))

        total_pages = math.ceil(total / filters.page_size)
        return BookingList(
            active=active,
            past=past,
            statistics=BookingStatistics(
                total_bookings=total,
                active_bookings=len(active),
                past_bookings=len(past),
            ),
            pagination=Pagination(
                current_page=filters.page,
                page_size=filters.page_size,
                total_pages=total_pages,
                total_bookings=total,
                has_next_page=filters.page < total_pages,
                has_prev_page=filters.page > 1,
            ),
        )

    async def update_status(
        self, booking_id: UUID, new_status: BookingStatus
    ) -> BookingOut:
        booking = await self.store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound()

        allowed = _ADMIN_TRANSITIONS.get(booking.status, set())
        if new_status not in allowed:
            raise InvalidTransition(
                f"Cannot transition from '{booking.status}' to '{new_status}'. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )

        updated = await self.store.update_booking_status(booking_id, new_status)
        if updated is None:
            raise BookingNotFound()
        if new_status in _TERMINAL_STATUSES and updated.vehicle_id is not None:
            await self._release_vehicle(updated.vehicle_id, updated.id)

        logger.info("Booking {}: {} -> {}", booking_id, booking.status, new_status)
        return to_public(updated)

    async def delete_booking(self, booking_id: UUID) -> None:
        booking = await self.store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound()
        await self.store.delete_booking(booking_id)
        if booking.vehicle_id is not None and booking.status not in _TERMINAL_STATUSES:
            await self._release_vehicle(booking.vehicle_id, booking.id)
        logger.info("Booking {} deleted", booking_id)

    # -- notifications --------------------------------------------------------

    async def _notify(self, user: CurrentUser, subject: str, html_body: str) -> None:
        """Best effort: every failure is logged and dropped."""
        try:
            profile = await self.users.get_user(user.id, user)
            email = (profile or {}).get("email")
            if not email:
                logger.debug("No e-mail on file for user {}, skipping notification", user.id)
                return
            await self.notifier.send(email, subject, html_body)
        except Exception:
            logger.exception("Notification for user {} failed", user.id)
