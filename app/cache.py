from loguru import logger
from redis.asyncio import Redis

from app.settings import REDIS_URL

_redis: Redis | None = None
PAYMENT_LOCK_TTL = 30  # seconds


def get_redis() -> Redis:
    global _redis
    if _redis is None:
        _redis = Redis.from_url(REDIS_URL, decode_responses=True)
    return _redis


def _payment_lock_key(payment_id: str) -> str:
    return f"payment-lock:{payment_id}"


class PaymentLocks:
    """
    Short-lived in-flight lock per gateway payment id.
    Fails open when Redis is down: the unique payment_id column still
    rejects the second writer.
    """

    async def acquire(self, payment_id: str) -> bool:
        try:
            acquired = await get_redis().set(
                _payment_lock_key(payment_id), "1", nx=True, ex=PAYMENT_LOCK_TTL
            )
        except Exception:
            logger.warning("Redis lock failed, relying on DB uniqueness for {}", payment_id)
            return True
        if not acquired:
            logger.debug("Payment {} is already being verified", payment_id)
        return bool(acquired)

    async def release(self, payment_id: str) -> None:
        try:
            await get_redis().delete(_payment_lock_key(payment_id))
        except Exception:
            logger.warning("Redis unlock failed for payment {}", payment_id)


payment_locks = PaymentLocks()
