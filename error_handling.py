"""
Error types and circuit breaker for Vibe Check Service
"""
import logging
import time
from typing import Any, Callable, Dict, Optional, TypeVar

T = TypeVar('T')

logger = logging.getLogger("vibecheck.errors")


class VibeCheckError(Exception):
    """Base exception for service errors; rendered as {"error", "details"}"""
    status_code = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidRequestError(VibeCheckError):
    """Missing or malformed input"""
    status_code = 400


class AuthenticationError(VibeCheckError):
    """No caller identity was supplied"""
    status_code = 401


class PermissionDeniedError(VibeCheckError):
    """Caller identity does not own the resource"""
    status_code = 403


class QuizNotFoundError(VibeCheckError):
    status_code = 404


class SubmissionNotFoundError(VibeCheckError):
    status_code = 404


class ConfigurationError(VibeCheckError):
    """Missing or invalid credentials/settings"""
    pass


class PersistenceError(VibeCheckError):
    """Datastore write failed; the transaction was rolled back"""
    pass


class GenerationError(VibeCheckError):
    """Base exception for generative model errors"""
    pass


class QuotaExceededError(GenerationError):
    """Raised when the provider reports quota or rate limit exhaustion"""
    pass


class GenerationAPIError(GenerationError):
    """Raised for any other provider failure"""
    pass


class GenerationUnavailableError(GenerationError):
    """Raised while the circuit breaker is open"""
    pass


class QuizGenerationError(GenerationError):
    """Raised when generated content cannot be turned into a valid quiz"""
    pass


class VibeAnalysisError(VibeCheckError):
    """Vibe analysis failed; the submission it belongs to is still recorded"""
    pass


class CircuitBreaker:
    """
    Fail-fast guard around the model provider.

    CLOSED passes calls through. After ``failure_threshold`` consecutive
    failures the breaker goes OPEN and rejects calls with
    ``GenerationUnavailableError`` until ``timeout`` seconds have passed, then
    lets calls through as HALF_OPEN. ``success_threshold`` successes close it
    again; one failure re-opens it.
    """

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"

    def __init__(
        self,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        timeout: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.timeout = timeout
        self._clock = clock

        self.state = self.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at: Optional[float] = None

    def _check_open(self) -> None:
        if self.state != self.OPEN:
            return
        remaining = self.timeout - (self._clock() - self.opened_at)
        if remaining > 0:
            raise GenerationUnavailableError(
                f"Generation service unavailable for {remaining:.0f} more seconds after repeated failures"
            )
        logger.info("Circuit breaker half-open, letting a trial call through")
        self.state = self.HALF_OPEN
        self.success_count = 0

    def _trip(self) -> None:
        self.state = self.OPEN
        self.opened_at = self._clock()
        self.failure_count = 0
        self.success_count = 0

    def call(self, func: Callable[..., T], *args, **kwargs) -> T:
        self._check_open()
        try:
            result = func(*args, **kwargs)
        except Exception:
            self.failure_count += 1
            if self.state == self.HALF_OPEN:
                logger.warning("Circuit breaker re-opened: trial call failed")
                self._trip()
            elif self.failure_count >= self.failure_threshold:
                logger.warning("Circuit breaker opened after %d consecutive failures", self.failure_count)
                self._trip()
            raise

        self.failure_count = 0
        if self.state == self.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                logger.info("Circuit breaker closed, provider recovered")
                self.state = self.CLOSED
                self.success_count = 0
        return result

    def get_state(self) -> Dict[str, Any]:
        return {
            "state": self.state,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "opened_at": self.opened_at,
        }
