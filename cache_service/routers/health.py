from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from redis import Redis
from redis.exceptions import RedisError

from ..redis_client import get_redis_client

router = APIRouter(prefix="/health", tags=["Health"])


# ---------------------------------------------------------
# Health Check Endpoint
# ---------------------------------------------------------
@router.get("")
def health_check():
    """
    Basic health check endpoint to verify server status.

    Returns:
        dict: Simple status message indicating the server is running.
    """
    return {"status": "Cache Service API Server is Running"}


# ---------------------------------------------------------
# Cache Health Check Endpoint
# ---------------------------------------------------------
@router.get("/cache")
def cache_health_check(redis_client: Optional[Redis] = Depends(get_redis_client)):
    """
    Verify that the shared Redis connection answers PING.

    Args:
        redis_client (Redis): Dependency injected client, None when caching is disabled.

    Returns:
        dict: 'disabled' when no Redis credentials are configured, 'ok' otherwise.

    Raises:
        HTTPException: If Redis cannot be reached (503 Service Unavailable)
    """
    if redis_client is None:
        return {"status": "disabled"}

    try:
        redis_client.ping()
    except RedisError as e:
        raise HTTPException(status_code=503, detail=f"Redis Unavailable: {str(e)}")

    return {"status": "ok"}
