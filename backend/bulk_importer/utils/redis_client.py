"""Redis client construction shared by progress snapshots and health checks."""

from __future__ import annotations

import ssl
from typing import Any

from redis import Redis


def create_redis_client(url: str, **kwargs: Any) -> Redis:
    """Create a Redis client, relaxing certificate checks for TLS endpoints.

    Managed Redis providers (Upstash and similar) hand out ``redis://`` URLs
    that actually require TLS, so those are upgraded to ``rediss://``.
    """
    if ".upstash.io" in url and url.startswith("redis://"):
        url = url.replace("redis://", "rediss://", 1)

    if url.startswith("rediss://"):
        kwargs.setdefault("ssl_cert_reqs", ssl.CERT_NONE)

    kwargs.setdefault("socket_connect_timeout", 2)
    return Redis.from_url(url, **kwargs)
