from redis import Redis


def build_redis(url: str, socket_timeout: float = 2.0) -> Redis:
    """Create a Redis client; decoded str responses, short socket timeouts."""
    return Redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
    )
