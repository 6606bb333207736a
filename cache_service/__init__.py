from .redis_client import CacheConnectionManager, get_connection_manager, get_redis_client

__all__ = ["CacheConnectionManager", "get_connection_manager", "get_redis_client"]
