from enum import StrEnum


class RideScope(StrEnum):
    # Customer scopes
    READ = "rides:read"  # view own ride bookings
    WRITE = "rides:write"  # quote and book a ride
    CANCEL = "rides:cancel"  # cancel own unpaid booking

    # Operations / admin scopes
    ADMIN = "admin:rides"
    ADMIN_READ = "admin:rides:read"
    ADMIN_WRITE = "admin:rides:write"  # mark rides ongoing / completed
    ADMIN_DELETE = "admin:rides:delete"
    FLEET = "admin:fleet"  # register vehicles, force-release them


RIDE_SCOPE_DESCRIPTIONS: dict[str, str] = {
    RideScope.READ: "View your own ride bookings.",
    RideScope.WRITE: "Get fare quotes and book hourly, outstation or luxury rides.",
    RideScope.CANCEL: "Cancel your own booking while its payment is pending.",
    RideScope.ADMIN_READ: "Read any ride booking regardless of owner (admin).",
    RideScope.ADMIN_WRITE: "Move rides through ongoing / completed (admin).",
    RideScope.ADMIN_DELETE: "Hard-delete any ride booking (admin).",
    RideScope.FLEET: "Register vehicles and manage their availability (admin).",
}
