"""
Resilience primitives for calling unreliable providers.

Classes:
    ExponentialBackoff: Jittered exponential delay sequence
    RetryPolicy: Bounded retry configuration
    TokenBucket: Per-provider rate limiter
    CircuitBreaker: Per-provider failure isolation
    ResilienceRegistry: Owner of per-provider limiters and breakers

Example:
    from resilient_ingest.resilience import ResilienceRegistry, RetryPolicy, retry

    registry = ResilienceRegistry()
    breaker = registry.circuit_breaker("hnrss.org")
    limiter = registry.rate_limiter("hnrss.org")

    async def attempt():
        await limiter.acquire()
        return await fetch()

    items = await breaker.execute(
        lambda: retry(attempt, "feed:hnrss.org", RetryPolicy(max_attempts=3)),
        "feed:hnrss.org",
    )
"""

from resilient_ingest.resilience.backoff import ExponentialBackoff
from resilient_ingest.resilience.circuit_breaker import CircuitBreaker, CircuitState
from resilient_ingest.resilience.rate_limiter import TokenBucket
from resilient_ingest.resilience.registry import ResilienceRegistry
from resilient_ingest.resilience.retry import RetryPolicy, is_permanent_error, retry

__all__ = [
    "ExponentialBackoff",
    "RetryPolicy",
    "retry",
    "is_permanent_error",
    "TokenBucket",
    "CircuitBreaker",
    "CircuitState",
    "ResilienceRegistry",
]
