"""Failover chain for classifier backends."""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from loguru import logger

from query_router.errors import AllProvidersFailedError, BackendUnavailableError
from query_router.models import LLMProvider

T = TypeVar("T")


@dataclass
class ProviderTier:
    """A single tier in the failover chain."""

    name: str              # e.g. "local", "remote"
    provider: LLMProvider
    model: str
    timeout_s: float | None = None  # per-attempt bound, None = no bound


class CircuitBreaker:
    """Per-tier circuit breaker: opens after repeated failures, auto-resets after cooldown."""

    def __init__(
        self,
        failure_threshold: int = 3,
        window_s: float = 300.0,
        cooldown_s: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._failure_threshold = failure_threshold
        self._window_s = window_s
        self._cooldown_s = cooldown_s
        self._clock = clock
        self._states: dict[str, dict] = {}  # tier name -> {failures: [...timestamps], state, opened_at}

    def _get(self, name: str) -> dict:
        if name not in self._states:
            self._states[name] = {"failures": [], "state": "closed", "opened_at": 0.0}
        return self._states[name]

    def state(self, name: str) -> str:
        return self._get(name)["state"]

    def is_open(self, name: str) -> bool:
        """Check if circuit is open (should skip tier)."""
        s = self._get(name)
        if s["state"] == "closed":
            return False
        if s["state"] == "open":
            if self._clock() - s["opened_at"] >= self._cooldown_s:
                s["state"] = "half-open"
                logger.info(f"CircuitBreaker: {name} -> half-open (probe allowed)")
                return False
            return True
        # half-open: allow one probe
        return False

    def record_success(self, name: str) -> None:
        s = self._get(name)
        s["failures"] = []
        if s["state"] != "closed":
            logger.info(f"CircuitBreaker: {name} -> closed (recovered)")
        s["state"] = "closed"
        s["opened_at"] = 0.0

    def record_failure(self, name: str) -> None:
        """Record a failure; may trip the circuit."""
        s = self._get(name)
        now = self._clock()
        s["failures"] = [t for t in s["failures"] if now - t < self._window_s][-49:]
        s["failures"].append(now)

        if s["state"] == "half-open":
            s["state"] = "open"
            s["opened_at"] = now
            logger.warning(f"CircuitBreaker: {name} -> open (probe failed)")
        elif len(s["failures"]) >= self._failure_threshold and s["state"] != "open":
            s["state"] = "open"
            s["opened_at"] = now
            logger.warning(
                f"CircuitBreaker: {name} -> open ({len(s['failures'])} failures in {self._window_s}s)"
            )


class FailoverChain:
    """Try backend tiers in order until one yields a parsable answer."""

    def __init__(self, breaker: CircuitBreaker | None = None) -> None:
        self._breaker = breaker or CircuitBreaker()

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def try_providers(
        self,
        chain: list[ProviderTier],
        messages: list[dict[str, Any]],
        parse: Callable[[str], T],
        **kwargs: Any,
    ) -> tuple[T, ProviderTier, int]:
        """Attempt each tier in sequence.

        ``parse`` turns the raw completion into a result; if it raises, the
        tier counts as failed and the next one is tried. A tier that exceeds
        its ``timeout_s`` also counts as failed.

        Returns:
            Tuple of (parsed result, tier_that_succeeded, latency_ms).

        Raises:
            AllProvidersFailedError: If every tier failed or was skipped.
        """
        last_error: Exception | None = None

        for tier in chain:
            if not tier.provider.available:
                logger.debug(f"Classifier: skipping {tier.name} (unavailable)")
                continue
            if self._breaker.is_open(tier.name):
                logger.info(f"CircuitBreaker: skipping {tier.name} (circuit open)")
                continue

            start = time.monotonic()
            try:
                response = await asyncio.wait_for(
                    tier.provider.chat(messages=messages, model=tier.model, **kwargs),
                    timeout=tier.timeout_s,
                )
                if response.finish_reason == "error":
                    raise BackendUnavailableError(response.content or "backend returned an error")
                result = parse(response.content or "")
                latency_ms = int((time.monotonic() - start) * 1000)
                self._breaker.record_success(tier.name)
                return result, tier, latency_ms

            except Exception as e:
                latency_ms = int((time.monotonic() - start) * 1000)
                last_error = e
                self._breaker.record_failure(tier.name)
                logger.warning(f"Classifier {tier.name} ({tier.model}) failed in {latency_ms}ms: {e!r}")
                continue

        raise AllProvidersFailedError(f"All classifier backends failed. Last error: {last_error}")
