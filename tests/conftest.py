"""
Shared pytest fixtures available to every test file automatically.
No imports needed in test files: pytest discovers this by convention.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.deps import (
    can_admin_delete_ride,
    can_admin_write_ride,
    can_cancel_ride,
    can_manage_fleet,
    can_read_or_admin_ride,
    can_write_ride,
    get_booking_lifecycle,
    get_current_user,
)
from app.routers import booking, vehicle

from .factories import make_admin, make_customer

# ---------------------------------------------------------------------------
# Default lifecycle mock: every operation is an AsyncMock the test configures
# ---------------------------------------------------------------------------

_LIFECYCLE_METHODS = (
    "quote_hourly",
    "quote_outstation",
    "quote_luxury",
    "create_hourly",
    "create_outstation",
    "create_luxury",
    "verify_payment",
    "cancel_booking",
    "get_booking",
    "list_bookings",
    "update_status",
    "delete_booking",
)


def make_lifecycle_mock() -> MagicMock:
    mock = MagicMock()
    for name in _LIFECYCLE_METHODS:
        setattr(mock, name, AsyncMock(return_value=None))
    return mock


# ---------------------------------------------------------------------------
# App builder: used by all client fixtures
# ---------------------------------------------------------------------------


def _include_routers(app: FastAPI) -> None:
    app.include_router(booking.router)
    app.include_router(vehicle.router)


def build_app(current_user, lifecycle=None) -> FastAPI:
    """
    Fresh FastAPI app with auth/scope dependencies overridden to return
    `current_user` unconditionally.

    Pass `lifecycle` to inject a configured mock; defaults to one whose
    operations all return None.
    """
    app = FastAPI()
    _include_routers(app)

    async def _user():
        return current_user

    for dep in (
        can_read_or_admin_ride,
        can_write_ride,
        can_cancel_ride,
        can_admin_write_ride,
        can_admin_delete_ride,
        can_manage_fleet,
        get_current_user,
    ):
        app.dependency_overrides[dep] = _user

    lc = lifecycle if lifecycle is not None else make_lifecycle_mock()
    app.dependency_overrides[get_booking_lifecycle] = lambda: lc
    return app


# ---------------------------------------------------------------------------
# Reusable client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def lifecycle():
    return make_lifecycle_mock()


@pytest.fixture()
def customer_client(lifecycle):
    return TestClient(build_app(make_customer(), lifecycle), raise_server_exceptions=True)


@pytest.fixture()
def admin_client(lifecycle):
    return TestClient(build_app(make_admin(), lifecycle), raise_server_exceptions=True)


@pytest.fixture()
def anon_app(lifecycle):
    """
    App with only the lifecycle overridden.
    Use this when you want real scope/auth deps to run so you can assert 401/403/422.
    """
    app = FastAPI()
    _include_routers(app)
    app.dependency_overrides[get_booking_lifecycle] = lambda: lifecycle
    return app


@pytest.fixture()
def client_factory():
    def _make(current_user, lifecycle=None) -> TestClient:
        return TestClient(
            build_app(current_user, lifecycle=lifecycle),
            raise_server_exceptions=True,
        )

    return _make
