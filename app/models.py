from tortoise import fields
from tortoise.models import Model

from app.schemas import BookingStatus, PaymentStatus, RideType, VehicleClass


class Vehicle(Model):
    id = fields.UUIDField(primary_key=True)

    plate_number = fields.CharField(max_length=20, unique=True)
    vehicle_class = fields.CharEnumField(VehicleClass)
    model = fields.CharField(max_length=100)
    is_luxury = fields.BooleanField(default=False)

    # flipped with a conditional UPDATE only, see VehicleCRUD.claim
    is_available = fields.BooleanField(default=True, db_index=True)
    # persisted release deadline, swept by the background release job
    release_at = fields.DatetimeField(null=True, db_index=True)
    # booking currently holding the car; releases only match their own holder
    held_by_booking_id = fields.UUIDField(null=True, db_index=True)

    driver_name = fields.CharField(max_length=100, null=True)
    driver_phone = fields.CharField(max_length=15, null=True)
    owner_name = fields.CharField(max_length=100, null=True)
    owner_phone = fields.CharField(max_length=15, null=True)

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:  # type: ignore
        table = "vehicles"
        ordering = ["plate_number"]


class Booking(Model):
    id = fields.UUIDField(primary_key=True)
    user_id = fields.UUIDField(db_index=True)

    ride_type = fields.CharEnumField(RideType, db_index=True)
    vehicle_class = fields.CharEnumField(VehicleClass)
    passenger_count = fields.SmallIntField()
    luggage_count = fields.SmallIntField()

    # {"address": str, "location": {"type": "Point", "coordinates": [lon, lat]}}
    pick_up = fields.JSONField()
    drop_off = fields.JSONField()
    stops = fields.JSONField(default=list)
    add_ons = fields.JSONField(default=dict)

    start_time = fields.DatetimeField()
    duration_hrs = fields.FloatField(null=True)  # hourly
    total_distance_km = fields.FloatField(null=True)  # outstation
    is_round_trip = fields.BooleanField(default=False)  # outstation
    return_time = fields.DatetimeField(null=True)  # outstation

    vehicle: fields.ForeignKeyNullableRelation[Vehicle] = fields.ForeignKeyField(
        "models.Vehicle", related_name="bookings", null=True, on_delete=fields.SET_NULL
    )
    car_number = fields.CharField(max_length=20, null=True)  # snapshot
    car_model = fields.CharField(max_length=100, null=True)
    driver_name = fields.CharField(max_length=100, null=True)
    driver_number = fields.CharField(max_length=15, null=True)

    status = fields.CharEnumField(BookingStatus, default=BookingStatus.PENDING, db_index=True)

    payment_method = fields.CharField(max_length=20, default="gateway")
    payment_amount = fields.IntField()  # paise
    payment_status = fields.CharEnumField(PaymentStatus, default=PaymentStatus.PENDING)
    payment_order_id = fields.CharField(max_length=64, null=True, db_index=True)
    payment_id = fields.CharField(max_length=64, null=True, unique=True)
    payment_signature = fields.CharField(max_length=128, null=True)
    payment_receipt = fields.CharField(max_length=64, null=True)

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:  # type: ignore
        table = "ride_bookings"
        ordering = ["-created_at"]
