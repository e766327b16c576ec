from app.schemas import BookingRecord

_RIDE_NAMES = {
    "hourly": "Hourly rental",
    "outstation": "Outstation trip",
    "luxury": "Luxury ride",
}


def _rupees(paise: int) -> str:
    return f"₹{paise / 100:,.2f}"


def _summary(booking: BookingRecord) -> str:
    return (
        f"<p><b>{_RIDE_NAMES[booking.ride_type]}</b> ({booking.vehicle_class})<br>"
        f"From: {booking.pick_up.address}<br>"
        f"To: {booking.drop_off.address}<br>"
        f"Start: {booking.start_time:%d %b %Y %H:%M} UTC<br>"
        f"Fare: {_rupees(booking.payment_amount)}</p>"
    )


def booking_created(booking: BookingRecord) -> tuple[str, str]:
    subject = "Your ride booking is awaiting payment"
    body = (
        "<p>We have reserved your ride. Complete the payment to confirm it.</p>"
        + _summary(booking)
    )
    return subject, body


def payment_confirmed(booking: BookingRecord) -> tuple[str, str]:
    subject = "Your ride is confirmed"
    body = "<p>Payment received, your ride is confirmed.</p>" + _summary(booking)
    if booking.car_number:
        body += f"<p>Vehicle: {booking.car_model} ({booking.car_number})</p>"
    return subject, body


def booking_cancelled(booking: BookingRecord) -> tuple[str, str]:
    return "Your ride booking was cancelled", _summary(booking)
