"""
Reconnect backoff.

The delay starts at the configured initial value and is multiplied after
every reconnect attempt, up to a cap. It goes back to the initial value
only when a new subscribe session starts, not when a reconnect succeeds,
so a flapping connection keeps backing off.
"""

from exoquic.config import ConnectionSettings


class ReconnectBackoff:
    """
    Exponential reconnect delay without jitter.

    Example:
        >>> backoff = ReconnectBackoff(ConnectionSettings())
        >>> [backoff.advance() for _ in range(4)]
        [1.0, 1.5, 2.25, 3.375]
    """

    def __init__(self, settings: ConnectionSettings) -> None:
        self._initial = settings.reconnect_delay
        self._maximum = settings.max_reconnect_delay
        self._multiplier = settings.backoff_multiplier
        self._current = self._initial
        self.attempts = 0

    @property
    def current(self) -> float:
        """Delay in seconds before the next reconnect attempt."""
        return self._current

    def advance(self) -> float:
        """
        Consume the current delay and grow it for the next attempt.

        Returns:
            The delay to wait for this attempt
        """
        delay = self._current
        self._current = min(self._current * self._multiplier, self._maximum)
        self.attempts += 1
        return delay

    def reset(self) -> None:
        """Go back to the initial delay."""
        self._current = self._initial
        self.attempts = 0


__all__ = ["ReconnectBackoff"]
