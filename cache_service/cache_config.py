from typing import Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, SecretStr

from .config import Settings

DEFAULT_REDIS_PORT = 6379


# ---------------------------------------------------------
# Validated Connection Configuration
# ---------------------------------------------------------
class CacheConfiguration(BaseModel):
    """
    Complete set of parameters needed to open a Redis connection.

    Attributes:
        host (str): Redis hostname
        port (int): Redis port
        password (SecretStr): Redis password
        tls_enabled (bool): Whether the connection is wrapped in TLS
    """

    model_config = ConfigDict(frozen=True)

    host: str
    port: int = DEFAULT_REDIS_PORT
    password: SecretStr
    tls_enabled: bool = False


class MissingConfiguration(BaseModel):
    """
    Marker for an incomplete or unusable configuration. Caching is disabled.

    Attributes:
        missing (tuple): Names of the environment variables that were not set
        invalid (tuple): Names of the environment variables whose value could not be used
    """

    model_config = ConfigDict(frozen=True)

    missing: Tuple[str, ...] = ()
    invalid: Tuple[str, ...] = ()


ResolvedConfiguration = Union[CacheConfiguration, MissingConfiguration]


# ---------------------------------------------------------
# Resolution
# ---------------------------------------------------------
def parse_port(value: str) -> Optional[int]:
    """
    Parse a TCP port number.

    Args:
        value (str): Raw port value from the environment

    Returns:
        int: The port, or None if it is not an integer between 1 and 65535
    """
    try:
        port = int(value.strip())
    except ValueError:
        return None
    return port if 0 < port < 65536 else None


def resolve_cache_configuration(settings: Settings) -> ResolvedConfiguration:
    """
    Validate the Redis part of the settings.

    Args:
        settings (Settings): The application settings

    Returns:
        CacheConfiguration if host, port and password are all present and usable, MissingConfiguration otherwise.
    """
    password = settings.redis_password.get_secret_value() if settings.redis_password else ""

    missing = []
    invalid = []
    if not settings.redis_host:
        missing.append("REDIS_HOST")

    port = None
    if not settings.redis_port:
        missing.append("REDIS_PORT")
    else:
        port = parse_port(settings.redis_port)
        if port is None:
            invalid.append("REDIS_PORT")

    if not password:
        missing.append("REDIS_PASSWORD")

    if missing or invalid:
        return MissingConfiguration(missing=tuple(missing), invalid=tuple(invalid))

    return CacheConfiguration(
        host=settings.redis_host,
        port=port,
        password=settings.redis_password,
        tls_enabled=settings.redis_tls_enabled,
    )
