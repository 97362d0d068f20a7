# ===== clinicbook/api/middleware/rate_limit_middleware.py =====
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple
import logging
import math
import threading
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from clinicbook.core.results import ErrorCode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    name: str
    window_seconds: int
    max_requests: int


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    policy: RateLimitPolicy
    remaining: int
    reset_at: float
    retry_after_seconds: int

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Policy": self.policy.name,
            "X-RateLimit-Limit": str(self.policy.max_requests),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
            "Retry-After": str(self.retry_after_seconds),
        }


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-client rate limiting for /api/v1/ routes.

    Public booking routes and authenticated clinic routes get separate
    budgets. Counters are fixed one-minute windows keyed by policy and
    client IP, kept in process memory.
    """

    def __init__(
            self,
            app,
            public_per_minute: int = 50,
            private_per_minute: int = 100,
            clock: Callable[[], float] = time.time
    ):
        super().__init__(app)
        self.public_policy = RateLimitPolicy("publicApi", 60, public_per_minute)
        self.private_policy = RateLimitPolicy("privateApi", 60, private_per_minute)
        self.clock = clock
        self.counters: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()

    def resolve_policy(self, path: str) -> Optional[RateLimitPolicy]:
        if not path.startswith("/api/v1/"):
            return None
        if path.startswith("/api/v1/public/"):
            return self.public_policy
        return self.private_policy

    @staticmethod
    def client_identifier(request: Request) -> str:
        forwarded_for = request.headers.get("X-Forwarded-For", "")
        candidate = forwarded_for.split(",")[0].strip() or request.headers.get("X-Real-IP", "").strip()
        if candidate:
            return candidate
        return request.client.host if request.client else "anonymous"

    def consume(self, key: str, policy: RateLimitPolicy) -> RateLimitResult:
        now = self.clock()
        with self._lock:
            count, reset_at = self.counters.get(key, (0, 0.0))
            if reset_at <= now:
                count, reset_at = 0, now + policy.window_seconds
            count += 1
            self.counters[key] = (count, reset_at)

        return RateLimitResult(
            allowed=count <= policy.max_requests,
            policy=policy,
            remaining=max(policy.max_requests - count, 0),
            reset_at=reset_at,
            retry_after_seconds=max(math.ceil(reset_at - now), 1),
        )

    async def dispatch(self, request: Request, call_next):
        policy = self.resolve_policy(request.url.path)
        if policy is None:
            return await call_next(request)

        identifier = self.client_identifier(request)
        result = self.consume(f"{policy.name}:{identifier}", policy)

        if not result.allowed:
            logger.warning(f"Rate limit {policy.name} exceeded for {identifier}")
            return JSONResponse(
                status_code=429,
                content={
                    "code": ErrorCode.RATE_LIMITED.value,
                    "message": "Too many requests. Please retry shortly.",
                },
                headers=result.headers(),
            )

        response = await call_next(request)
        for header, value in result.headers().items():
            response.headers[header] = value
        return response
