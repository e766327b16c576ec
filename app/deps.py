import hashlib
import hmac
from dataclasses import dataclass, field
from functools import lru_cache
from urllib.parse import quote, unquote
from uuid import UUID

import httpx
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from loguru import logger

from app import settings
from app.cache import payment_locks
from app.crud import booking_crud, vehicle_crud
from app.errors import PaymentGatewayError
from app.lifecycle import BookingLifecycle
from app.schemas import PaymentOrder
from app.scopes import RIDE_SCOPE_DESCRIPTIONS, RideScope

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.users_ms_url}/auth/token",
    scopes=RIDE_SCOPE_DESCRIPTIONS,
)


@dataclass
class CurrentUser:
    id: UUID
    username: str
    scopes: list[str] = field(default_factory=list)


def get_current_user(
    x_user_id: str = Header(...),
    x_username: str = Header(...),
    x_user_scopes: str = Header(default=""),
) -> CurrentUser:
    """
    Reads the headers injected by Traefik after forwardAuth validation.
    The JWT has already been verified, we just trust these headers.
    NOTE: This only works behind Traefik. Run with that assumption.
    """
    try:
        user_id = UUID(x_user_id)
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identity from gateway",
        ) from None

    scopes = x_user_scopes.split(" ") if x_user_scopes else []

    return CurrentUser(id=user_id, username=unquote(x_username), scopes=scopes)


def require_scopes(*required: str):
    """
    Factory that returns a dependency enforcing one or more scopes.

    Usage:
        @router.get("/protected")
        async def route(user = Depends(require_scopes("rides:read"))):
            ...
    """

    async def _dep(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        missing = [s for s in required if s not in current_user.scopes]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing required scopes: {', '.join(missing)}",
            )
        return current_user

    return _dep


def _forwarded_headers(user: CurrentUser) -> dict[str, str]:
    return {
        "X-User-Id": str(user.id),
        "X-Username": quote(user.username),
        "X-User-Scopes": " ".join(user.scopes),
    }


# ---------------------------------------------------------------------------
# Pre-built scope dependencies
# ---------------------------------------------------------------------------

can_write_ride = require_scopes(RideScope.WRITE)
can_cancel_ride = require_scopes(RideScope.CANCEL)
can_admin_write_ride = require_scopes(RideScope.ADMIN_WRITE)
can_admin_delete_ride = require_scopes(RideScope.ADMIN_DELETE)
can_manage_fleet = require_scopes(RideScope.FLEET)


# ---------------------------------------------------------------------------
# UsersClient: thin async wrapper around users-ms internal API
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _get_users_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.users_ms_url,
        timeout=httpx.Timeout(5.0),
        follow_redirects=True,
    )


class UsersClient:
    """
    Resolves contact details for notifications.
    Forwards Traefik-injected user headers so users-ms auth deps work normally.
    """

    @property
    def _client(self) -> httpx.AsyncClient:
        return _get_users_http_client()

    async def get_user(self, user_id: UUID, caller: CurrentUser) -> dict | None:
        """Fetch one user. Fails silently, a missing contact only skips the e-mail."""
        try:
            resp = await self._client.get(
                f"/users/{user_id}", headers=_forwarded_headers(caller)
            )
            if resp.status_code >= 400 or not resp.content:
                return None
            return resp.json()
        except (httpx.RequestError, ValueError):
            logger.warning("users-ms lookup failed for user_id={}", user_id)
            return None


_users_client = UsersClient()


def get_users_client() -> UsersClient:
    return _users_client


# ---------------------------------------------------------------------------
# NotificationsClient: fire-and-forget e-mail via notifications-ms
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _get_notifications_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.notifications_ms_url,
        timeout=httpx.Timeout(5.0),
        follow_redirects=True,
    )


class NotificationsClient:
    """
    Failures are swallowed: a lost e-mail must never fail a booking.
    """

    @property
    def _client(self) -> httpx.AsyncClient:
        return _get_notifications_http_client()

    async def send(self, to_address: str, subject: str, html_body: str) -> bool:
        try:
            resp = await self._client.post(
                "/notifications/email",
                json={"to": to_address, "subject": subject, "html": html_body},
            )
        except httpx.RequestError:
            logger.warning("Notification to {} failed", to_address, exc_info=True)
            return False
        if resp.status_code >= 400:
            logger.warning(
                "notifications-ms returned {} for {}", resp.status_code, to_address
            )
            return False
        return True


_notifications_client = NotificationsClient()


def get_notifications_client() -> NotificationsClient:
    return _notifications_client


# ---------------------------------------------------------------------------
# PaymentGatewayClient: orders + signature checks against the card gateway
# ---------------------------------------------------------------------------


def compute_signature(order_id: str, payment_id: str, secret: str) -> str:
    """Hex HMAC-SHA256 of ``order_id|payment_id``, as the gateway signs it."""
    body = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


@lru_cache(maxsize=1)
def _get_payment_gateway_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.payment_gateway_url,
        auth=(settings.payment_key_id, settings.payment_key_secret),
        timeout=httpx.Timeout(10.0),
    )


class PaymentGatewayClient:
    """
    Thin async wrapper around the gateway's orders API.
    Unlike the other clients, errors are raised: a booking without an order
    must be rolled back by the caller.
    """

    def __init__(self, key_id: str | None = None, key_secret: str | None = None):
        self.key_id = key_id if key_id is not None else settings.payment_key_id
        self._secret = (
            key_secret if key_secret is not None else settings.payment_key_secret
        )

    @property
    def _client(self) -> httpx.AsyncClient:
        return _get_payment_gateway_http_client()

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None = None,
    ) -> PaymentOrder:
        if not self.key_id or not self._secret:
            raise PaymentGatewayError("Payment gateway configuration error")
        try:
            resp = await self._client.post(
                "/orders",
                json={
                    "amount": int(round(amount)),
                    "currency": currency,
                    "receipt": receipt,
                    "notes": notes or {},
                },
            )
        except httpx.RequestError as exc:
            raise PaymentGatewayError(f"Payment gateway unreachable: {exc}") from exc

        if resp.status_code >= 400:
            try:
                description = resp.json().get("error", {}).get("description")
            except ValueError:
                description = None
            raise PaymentGatewayError(
                description or f"Payment gateway returned {resp.status_code}"
            )

        data = resp.json()
        return PaymentOrder(
            order_id=data["id"],
            amount=data["amount"],
            currency=data["currency"],
            receipt=data["receipt"],
        )

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not self._secret:
            return False
        expected = compute_signature(order_id, payment_id, self._secret)
        return hmac.compare_digest(expected, signature)


_payment_gateway_client = PaymentGatewayClient()


def get_payment_gateway() -> PaymentGatewayClient:
    return _payment_gateway_client


async def can_read_or_admin_ride(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """
    Passes if the user can read own rides (customer) or any ride (admin).
    - rides:read           → customer sees own bookings
    - admin:rides[:read]   → admin sees all
    """
    if not (RideScope.READ in current_user.scopes or is_ride_admin(current_user)):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=(
                f"Requires '{RideScope.READ}' (customers) "
                f"or '{RideScope.ADMIN_READ}' (admin)."
            ),
        )
    return current_user


def is_ride_admin(user: CurrentUser) -> bool:
    return RideScope.ADMIN in user.scopes or RideScope.ADMIN_READ in user.scopes


# ---------------------------------------------------------------------------
# BookingLifecycle wiring
# ---------------------------------------------------------------------------


def get_booking_lifecycle(
    gateway: PaymentGatewayClient = Depends(get_payment_gateway),
    notifier: NotificationsClient = Depends(get_notifications_client),
    users: UsersClient = Depends(get_users_client),
) -> BookingLifecycle:
    return BookingLifecycle(
        store=booking_crud,
        inventory=vehicle_crud,
        gateway=gateway,
        notifier=notifier,
        users=users,
        locks=payment_locks,
    )
