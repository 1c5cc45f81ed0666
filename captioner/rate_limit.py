# ─────────────────────────────────────────────────────────────────────────────
# Rate Limiting — client identity, slowapi route limiter, caption quota
# ─────────────────────────────────────────────────────────────────────────────
# Extracted to its own module to avoid circular imports between main.py
# (which imports route modules) and route modules (which need the limiter).
#
# Two layers, both keyed by client_identity():
#   limiter             slowapi, coarse DoS guard on the HTTP route
#   CaptionRateLimiter  limits fixed window, the per-identity caption quota
#                       whose remaining count is returned to the client
#
# State is in-process memory only. A restart forgets every window.
# ─────────────────────────────────────────────────────────────────────────────


import threading
from contextvars import ContextVar

from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter
from slowapi import Limiter
from starlette.requests import Request

UNKNOWN_IDENTITY = "unknown"
DEFAULT_ROUTE_LIMIT = "60/minute"

_CAPTION_NAMESPACE = "caption"


def client_identity(request: Request) -> str:
    """Rate-limit key: X-Forwarded-For, then X-Real-IP, then "unknown".

    Only the first (client-most) hop of X-Forwarded-For is used. Callers
    without either header share the "unknown" bucket.
    """
    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    real_ip = request.headers.get("x-real-ip", "").strip()
    return real_ip or UNKNOWN_IDENTITY


limiter = Limiter(key_func=client_identity)

# slowapi hands a dynamic limit provider nothing but the key, so the serving
# app's RATE_LIMIT travels in a context variable set per request.
_route_limit: ContextVar[str] = ContextVar("route_limit", default=DEFAULT_ROUTE_LIMIT)


async def bind_route_limit(request: Request) -> None:
    """Router dependency: publish this app's RATE_LIMIT for the current request.

    Must stay async. FastAPI runs sync dependencies in a worker thread, whose
    context changes never reach the endpoint.
    """
    _route_limit.set(request.app.state.settings.rate_limit)


def route_limit() -> str:
    """Dynamic limit for @limiter.limit: the RATE_LIMIT of the app serving the request."""
    return _route_limit.get()


class CaptionRateLimiter:
    """Per-identity caption quota over a fixed window.

    check_limit() is the server variant: the hit is counted inside the call.
    Increment and ceiling comparison run under one lock, so concurrent
    requests for one identity can neither double-count nor slip past the
    ceiling.
    """

    def __init__(self, rate_limit: str = "10/hour") -> None:
        self._item = parse(rate_limit)
        self._storage = MemoryStorage()
        self._strategy = FixedWindowRateLimiter(self._storage)
        # Makes hit-then-compare one step even when requests run in threads.
        self._lock = threading.Lock()

    @property
    def ceiling(self) -> int:
        return self._item.amount

    @property
    def window_seconds(self) -> int:
        return self._item.get_expiry()

    def check_limit(self, identity: str) -> bool:
        """Count one request for identity; False once the ceiling is passed."""
        with self._lock:
            return self._strategy.hit(self._item, _CAPTION_NAMESPACE, identity)

    def get_remaining(self, identity: str) -> int:
        """Requests left in the identity's current window (never negative)."""
        stats = self._strategy.get_window_stats(self._item, _CAPTION_NAMESPACE, identity)
        return max(0, stats.remaining)

    def reset_time(self, identity: str) -> float:
        """Epoch seconds at which the identity's window resets."""
        stats = self._strategy.get_window_stats(self._item, _CAPTION_NAMESPACE, identity)
        return stats.reset_time

    def reset(self) -> None:
        self._storage.reset()
