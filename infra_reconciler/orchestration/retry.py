"""Orchestration layer — Retry policy for provider calls.

Only ``TransientProviderError`` is retried.  Delays grow exponentially and
carry symmetric relative jitter:

    delay(n) = base * factor ** (n - 1) * uniform(1 - jitter, 1 + jitter)

where ``n`` is the 1-indexed retry number.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field

from infra_reconciler.config import ExecutorConfig
from infra_reconciler.exceptions import TransientProviderError


@dataclass
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    factor: float = 2.0
    jitter: float = 0.2
    rng: random.Random = field(default_factory=random.Random, repr=False)

    @classmethod
    def from_config(cls, config: ExecutorConfig) -> "RetryPolicy":
        return cls(
            max_retries=config.max_retries,
            base_delay=config.backoff_base_seconds,
            factor=config.backoff_factor,
            jitter=config.backoff_jitter,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for_retry(self, retry: int) -> float:
        """Return the delay in seconds before the *retry*-th retry (1-indexed)."""
        nominal = self.base_delay * (self.factor ** (retry - 1))
        if self.jitter:
            nominal *= self.rng.uniform(1 - self.jitter, 1 + self.jitter)
        return nominal

    def should_retry(self, exc: BaseException, retries_done: int) -> bool:
        return isinstance(exc, TransientProviderError) and retries_done < self.max_retries
