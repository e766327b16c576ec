from contextlib import asynccontextmanager

from fastapi import FastAPI
from tortoise.contrib.fastapi import RegisterTortoise

from app import settings
from app.cache import get_redis
from app.deps import (
    get_booking_lifecycle,
    get_notifications_client,
    get_payment_gateway,
    get_users_client,
)
from app.routers import booking, vehicle
from app.sweeper import ReleaseSweeper

TORTOISE_MODULES = {"models": ["app.models"]}


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with RegisterTortoise(
        app,
        db_url=settings.db_url,
        modules=TORTOISE_MODULES,
        generate_schemas=True,
    ):
        lifecycle = get_booking_lifecycle(
            gateway=get_payment_gateway(),
            notifier=get_notifications_client(),
            users=get_users_client(),
        )
        sweeper = ReleaseSweeper(lifecycle, settings.RELEASE_SWEEP_INTERVAL)
        app.state.sweeper = sweeper
        await sweeper.start()

        yield

        await sweeper.stop()
        await get_redis().aclose()


app = FastAPI(
    title="Rides Bookings Service",
    version="1.0.0",
    description="Fares, vehicle allocation and booking lifecycle for ride bookings",
    lifespan=lifespan,
)

app.include_router(booking.router)
app.include_router(vehicle.router)


@app.get("/health")
async def health_check():
    return {"status": "ok"}
