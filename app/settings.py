import os

db_url = os.environ.get("DB_URL", "sqlite://:memory:")
users_ms_url = os.environ.get("USERS_MS_URL", "http://localhost:8000")
notifications_ms_url = os.environ.get("NOTIFICATIONS_MS_URL", "http://localhost:8005")
payment_gateway_url = os.environ.get(
    "PAYMENT_GATEWAY_URL", "https://api.razorpay.com/v1"
)
payment_key_id = os.environ.get("PAYMENT_KEY_ID", "")
payment_key_secret = os.environ.get("PAYMENT_KEY_SECRET", "")
backend_url = os.environ.get("BACKEND_URL", "http://localhost:8004")
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

# [lon, lat] of the dispatch hub; outstation drop-offs must stay within range
SERVICE_CENTER = (
    float(os.environ.get("SERVICE_CENTER_LON", "85.8166")),
    float(os.environ.get("SERVICE_CENTER_LAT", "20.2945")),
)
LUXURY_BASE_FARE = int(os.environ.get("LUXURY_BASE_FARE", "4999"))  # rupees
RELEASE_SWEEP_INTERVAL = float(os.environ.get("RELEASE_SWEEP_INTERVAL", "60"))
