from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger

from app.crud import VehicleCRUD, vehicle_crud
from app.deps import can_manage_fleet
from app.schemas import VehicleClass, VehicleCreate, VehicleResponse

router = APIRouter(
    prefix="/vehicles",
    tags=["vehicles"],
    dependencies=[Depends(can_manage_fleet)],
)


def get_vehicle_crud() -> VehicleCRUD:
    return vehicle_crud


@router.post("/", response_model=VehicleResponse, status_code=status.HTTP_201_CREATED)
async def create_vehicle(
    payload: VehicleCreate,
    crud: VehicleCRUD = Depends(get_vehicle_crud),
) -> VehicleResponse:
    vehicle = await crud.create_vehicle(payload)
    logger.info("Vehicle {} added to the fleet", vehicle.plate_number)
    return vehicle


@router.get("/", response_model=list[VehicleResponse])
async def list_vehicles(
    vehicle_class: VehicleClass | None = None,
    is_available: bool | None = None,
    is_luxury: bool | None = None,
    crud: VehicleCRUD = Depends(get_vehicle_crud),
) -> list[VehicleResponse]:
    return await crud.list_vehicles(
        vehicle_class=vehicle_class, is_available=is_available, is_luxury=is_luxury
    )


@router.post("/{vehicle_id}/release", status_code=status.HTTP_204_NO_CONTENT)
async def release_vehicle(
    vehicle_id: UUID,
    crud: VehicleCRUD = Depends(get_vehicle_crud),
) -> None:
    """Force a vehicle back into the pool, e.g. after a trip ended early."""
    if not await crud.force_release(vehicle_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Vehicle not found"
        )
    logger.info("Vehicle {} force-released", vehicle_id)
