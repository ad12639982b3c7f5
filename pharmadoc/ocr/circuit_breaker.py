"""One-way circuit breaker for the remote recognition provider.

Once the remote provider fails for a structural reason (revoked key,
exhausted quota, disabled billing) it stays disabled until the process
restarts. The breaker is shared by concurrent requests, so the single
``AVAILABLE -> DISABLED`` transition happens under a lock.
"""

import threading
from enum import StrEnum

from pharmadoc.utils.logger import get_logger

logger = get_logger(__name__)


class BreakerState(StrEnum):
    AVAILABLE = "available"
    DISABLED = "disabled"


class CircuitBreaker:
    """Monotonic availability flag for a provider.

    Args:
        name: Provider name used in log messages.
    """

    def __init__(self, name: str = "remote") -> None:
        self.name = name
        self._lock = threading.Lock()
        self._state = BreakerState.AVAILABLE
        self._reason: str | None = None

    @property
    def state(self) -> BreakerState:
        return self._state

    @property
    def reason(self) -> str | None:
        return self._reason

    @property
    def is_available(self) -> bool:
        return self._state is BreakerState.AVAILABLE

    def trip(self, reason: str) -> bool:
        """Disable the provider for the rest of the process lifetime.

        Args:
            reason: Failure message that triggered the trip.

        Returns:
            ``True`` if this call performed the transition, ``False`` if the
            breaker was already disabled.
        """
        with self._lock:
            if self._state is BreakerState.DISABLED:
                return False
            self._state = BreakerState.DISABLED
            self._reason = reason
        logger.warning("Disabling %s provider for this process: %s", self.name, reason)
        return True
