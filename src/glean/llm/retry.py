"""Retry policy shared by the LLM, embedding and Readwise clients."""

from __future__ import annotations

from dataclasses import dataclass

from tenacity import wait_exponential, wait_none
from tenacity.wait import wait_base


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try a call and how long to back off between tries.

    Clients build their tenacity ``AsyncRetrying`` loops from this, so tests
    can hand in ``RetryPolicy.immediate()`` and never sleep.
    """

    max_attempts: int = 3
    multiplier: float = 1.0
    min_wait: float = 2.0
    max_wait: float = 30.0
    respect_retry_after: bool = True  # honour server Retry-After hints

    def wait(self) -> wait_base:
        if self.max_wait <= 0:
            return wait_none()
        return wait_exponential(
            multiplier=self.multiplier, min=self.min_wait, max=self.max_wait
        )

    @classmethod
    def immediate(cls, max_attempts: int = 3) -> RetryPolicy:
        """A policy that retries without waiting."""
        return cls(
            max_attempts=max_attempts,
            multiplier=0,
            min_wait=0,
            max_wait=0,
            respect_retry_after=False,
        )
