"""
Circuit breaker guarding the ledger's database calls.

Every repository call goes through ``db_circuit_breaker.call``.  After
``failure_threshold`` consecutive connection-level failures the circuit
opens and ledger operations fail fast with :class:`CircuitBreakerError`
(HTTP 503 with ``Retry-After``) instead of queueing behind a dead database.

   - CLOSED    → normal operation; connection failures are counted.
   - OPEN      → every call is rejected until ``recovery_timeout`` elapses.
   - HALF_OPEN → exactly one probe call is let through; concurrent callers
                 are still rejected.  Success closes the circuit, failure
                 re-opens it for another full timeout.

Domain errors (``NotFoundException``, ``AlreadyFundedException``...) and
``IntegrityError`` are not connection failures and never trip the breaker.
The ledger never retries on its own: a rejected call surfaces to the caller,
which owns the retry policy.
"""

import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Tuple, Type

from sqlalchemy.exc import InterfaceError, OperationalError

from invoice_ledger.core.config import settings

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerError(Exception):
    """Raised when a call is rejected because the circuit is open."""

    def __init__(self, name: str, retry_after: float):
        self.name = name
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker '{name}' is OPEN, failing fast. "
            f"Retry after {retry_after:.1f}s."
        )


class CircuitBreaker:
    """
    Async circuit breaker.

    Parameters
    ----------
    name : str
        Identifier used in logs, errors and ``/health`` (e.g. ``"database"``).
    failure_threshold : int
        Consecutive failures that open the circuit.
    recovery_timeout : float
        Seconds spent OPEN before a probe is allowed.
    expected_exceptions : tuple
        Exception types that count as failures.  Everything else passes
        through without touching the counters.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        expected_exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exceptions = expected_exceptions

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._rejected_count = 0
        self._last_failure_time: float = 0.0
        self._probe_in_flight = False

    # ── State ──

    @property
    def state(self) -> CircuitState:
        """Current state; an OPEN circuit whose timeout has run out reads HALF_OPEN."""
        if self._state == CircuitState.OPEN and self._retry_after() <= 0:
            self._move_to(CircuitState.HALF_OPEN)
        return self._state

    def _retry_after(self) -> float:
        return self.recovery_timeout - (time.monotonic() - self._last_failure_time)

    def _move_to(self, state: CircuitState) -> None:
        if state == self._state:
            return
        log = logger.error if state == CircuitState.OPEN else logger.info
        log(
            "Circuit '%s' %s → %s (failures=%d/%d)",
            self.name,
            self._state.value,
            state.value,
            self._failure_count,
            self.failure_threshold,
        )
        self._state = state

    def _record_success(self) -> None:
        self._failure_count = 0
        self._success_count += 1
        self._move_to(CircuitState.CLOSED)

    def _record_failure(self, exc: BaseException) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._move_to(CircuitState.OPEN)
        else:
            logger.warning(
                "Circuit '%s' failure %d/%d: %s",
                self.name,
                self._failure_count,
                self.failure_threshold,
                exc,
            )

    def _reject(self) -> CircuitBreakerError:
        self._rejected_count += 1
        return CircuitBreakerError(self.name, max(self._retry_after(), 0.0))

    # ── Public API ──

    async def call(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """
        Await ``func(*args, **kwargs)`` through the breaker.

        Raises :class:`CircuitBreakerError` while the circuit is OPEN, and
        while another caller's HALF_OPEN probe is still running.
        """
        state = self.state
        if state == CircuitState.OPEN:
            raise self._reject()

        probing = state == CircuitState.HALF_OPEN
        if probing:
            if self._probe_in_flight:
                raise self._reject()
            self._probe_in_flight = True

        try:
            result = await func(*args, **kwargs)
        except self.expected_exceptions as exc:
            self._record_failure(exc)
            raise
        finally:
            if probing:
                self._probe_in_flight = False

        self._record_success()
        return result

    def reset(self) -> None:
        """Force the circuit back to CLOSED (operator tooling and tests)."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = 0.0
        self._probe_in_flight = False

    def get_status(self) -> dict:
        """Breaker state for ``/health``."""
        state = self.state
        return {
            "name": self.name,
            "state": state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
            "success_count": self._success_count,
            "rejected_count": self._rejected_count,
            "recovery_timeout_s": self.recovery_timeout,
            "retry_after_s": round(max(self._retry_after(), 0.0), 1)
            if state == CircuitState.OPEN
            else 0.0,
        }


# ── Global breaker for every ledger repository call ──
db_circuit_breaker = CircuitBreaker(
    name="database",
    failure_threshold=settings.CB_FAILURE_THRESHOLD,
    recovery_timeout=settings.CB_RECOVERY_TIMEOUT,
    expected_exceptions=(
        ConnectionError,
        OSError,
        TimeoutError,
        OperationalError,
        InterfaceError,
    ),
)
