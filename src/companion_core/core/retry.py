"""Reconnect delay policies.

The connection state machine only asks a policy how long to wait before the
next attempt; swapping the policy never changes the transitions themselves.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class ReconnectPolicy(Protocol):
    """Decides the delay before reconnect attempt number ``attempt``.

    ``attempt`` counts consecutive closes since the last successful open,
    starting at 1.
    """

    def delay_for(self, attempt: int) -> float: ...


class FixedInterval:
    """Flat retry: same delay every time, no jitter, no attempt cap."""

    def __init__(self, delay: float = 2.0):
        if delay < 0:
            raise ValueError("delay must be non-negative")
        self.delay = delay

    def delay_for(self, attempt: int) -> float:
        return self.delay

    def __repr__(self) -> str:
        return f"FixedInterval(delay={self.delay})"


class ExponentialBackoff:
    """Growing delay for deployments where the agent is expensive to hammer."""

    def __init__(
        self,
        initial_delay: float = 1.0,
        backoff_factor: float = 2.0,
        max_delay: float = 60.0,
    ):
        """
        Args:
            initial_delay: Delay before the first retry in seconds
            backoff_factor: Multiplier applied per consecutive failure
            max_delay: Upper bound for any single delay
        """
        self.initial_delay = initial_delay
        self.backoff_factor = backoff_factor
        self.max_delay = max_delay

    def delay_for(self, attempt: int) -> float:
        exponent = max(attempt, 1) - 1
        return min(self.initial_delay * (self.backoff_factor ** exponent), self.max_delay)

    def __repr__(self) -> str:
        return (
            f"ExponentialBackoff(initial_delay={self.initial_delay}, "
            f"backoff_factor={self.backoff_factor}, max_delay={self.max_delay})"
        )
