from fastapi import HTTPException, status


class BookingError(HTTPException):
    """
    Base class for every business-rule failure raised by the booking engine.
    Subclasses pin the HTTP status so routers can let them propagate as-is.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_detail: str = "Booking request failed"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(
            status_code=type(self).status_code,
            detail=detail or self.default_detail,
        )


# ---------------------------------------------------------------------------
# Request shape / business rules
# ---------------------------------------------------------------------------


class BookingValidationError(BookingError):
    default_detail = "Invalid booking request"


class InvalidInput(BookingValidationError):
    default_detail = "Invalid fare input"


class NoSuitableVehicle(BookingError):
    default_detail = "No vehicle suits the requested passengers and luggage"


class NoAvailableVehicle(BookingError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "No vehicle of the required class is available"


class BookingNotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Booking not found"


class CancellationNotAllowed(BookingError):
    default_detail = "Booking cannot be cancelled"


class InvalidTransition(BookingError):
    default_detail = "Invalid status transition"


# ---------------------------------------------------------------------------
# Upstream payment gateway
# ---------------------------------------------------------------------------


class PaymentGatewayError(BookingError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Failed to create payment order"


# ---------------------------------------------------------------------------
# Payment verification integrity failures (terminal, never retried)
# ---------------------------------------------------------------------------


class InvalidSignature(BookingError):
    default_detail = "Invalid payment signature"


class DuplicatePayment(BookingError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Payment already processed"


class OrderMismatch(BookingError):
    default_detail = "Order ID mismatch"


class Forbidden(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Booking belongs to another user"


class AlreadyProcessed(BookingError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Payment already processed for this booking"
