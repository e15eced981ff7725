"""
Registry of per-provider rate limiters and circuit breakers.

One registry is constructed at process start and injected into the
ingestion service; limiter and breaker state therefore lives exactly as
long as the registry does, and tests get isolation by building their own.
"""

import time
from collections.abc import Callable
from typing import Any

from resilient_ingest.config.settings import Settings
from resilient_ingest.resilience.circuit_breaker import (
    CircuitBreaker,
    StateChangeHook,
)
from resilient_ingest.resilience.rate_limiter import TokenBucket


class ResilienceRegistry:
    """
    Lazily creates and keeps one TokenBucket and one CircuitBreaker per provider.

    Creation happens without any await point, so two coroutines asking for
    the same provider always get the same instance.

    Usage:
        registry = ResilienceRegistry.from_settings(get_settings())
        limiter = registry.rate_limiter("polygon", requests_per_minute=5)
        breaker = registry.circuit_breaker("polygon")
    """

    def __init__(
        self,
        default_requests_per_minute: int = 60,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        on_state_change: StateChangeHook | None = None,
    ):
        self.default_requests_per_minute = default_requests_per_minute
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._on_state_change = on_state_change

        self._limiters: dict[str, TokenBucket] = {}
        self._breakers: dict[str, CircuitBreaker] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        on_state_change: StateChangeHook | None = None,
    ) -> "ResilienceRegistry":
        """Create a registry configured from application settings."""
        return cls(
            default_requests_per_minute=settings.default_requests_per_minute,
            failure_threshold=settings.circuit_failure_threshold,
            reset_timeout=settings.circuit_reset_timeout_seconds,
            on_state_change=on_state_change,
        )

    def rate_limiter(
        self,
        provider: str,
        requests_per_minute: int | None = None,
    ) -> TokenBucket:
        """
        Get the limiter for a provider, creating it on first use.

        The first caller's requests_per_minute wins; later values are ignored.
        """
        limiter = self._limiters.get(provider)
        if limiter is None:
            limiter = TokenBucket(
                requests_per_minute or self.default_requests_per_minute,
                clock=self._clock,
            )
            self._limiters[provider] = limiter
        return limiter

    def circuit_breaker(self, provider: str) -> CircuitBreaker:
        """Get the circuit breaker for a provider, creating it on first use."""
        breaker = self._breakers.get(provider)
        if breaker is None:
            breaker = CircuitBreaker(
                name=provider,
                failure_threshold=self.failure_threshold,
                reset_timeout=self.reset_timeout,
                clock=self._clock,
                on_state_change=self._on_state_change,
            )
            self._breakers[provider] = breaker
        return breaker

    @property
    def providers(self) -> list[str]:
        """All providers seen so far."""
        return sorted(set(self._limiters) | set(self._breakers))

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Limiter and breaker status for every known provider."""
        return {
            provider: {
                "rate_limiter": (
                    self._limiters[provider].status()
                    if provider in self._limiters
                    else None
                ),
                "circuit_breaker": (
                    self._breakers[provider].snapshot()
                    if provider in self._breakers
                    else None
                ),
            }
            for provider in self.providers
        }
