import logging

import backoff

log = logging.getLogger(__name__)


class RetryPolicy:
    """
    Delay before the next attempt after consecutive failures.

    Exponential in the failure count, capped at `max_delay`, with full
    jitter (uniform in [0, capped]) and never below `min_delay`. The
    scheduler owns one instance and calls `reset()` after a good cycle.
    """

    def __init__(self, min_delay: float, max_delay: float, base: float = 2.0, jitter=backoff.full_jitter):
        if max_delay < min_delay:
            raise ValueError("max_delay must be >= min_delay")
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.base = base
        self.jitter = jitter
        self.failures = 0

    def _ceiling(self) -> float:
        # base**n overflows float quickly; cap the exponent instead of the result
        exponent = min(self.failures, 64)
        return min(self.max_delay, max(self.min_delay, 1.0) * self.base ** exponent)

    def next_delay(self) -> float:
        """Record one more failure and return how long to wait."""
        self.failures += 1
        delay = self.jitter(self._ceiling()) if self.jitter else self._ceiling()
        return min(self.max_delay, max(self.min_delay, delay))

    def reset(self) -> None:
        if self.failures:
            log.info("Recovered after %d failed cycle(s)", self.failures)
        self.failures = 0
