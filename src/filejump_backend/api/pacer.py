"""Paced retries for FileJump API calls."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, TypeVar

import httpx
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from filejump_backend.api.client import FileJumpApiError, FileJumpDecodeError

if TYPE_CHECKING:
    from filejump_backend.config import BackendConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MIN_SLEEP = 0.01
DEFAULT_MAX_SLEEP = 2.0
DEFAULT_RETRIES = 10

# HTTP status codes that are always retried
RETRY_ERROR_CODES = frozenset(
    {
        429,  # Too Many Requests
        500,  # Internal Server Error
        502,  # Bad Gateway
        503,  # Service Unavailable
        504,  # Gateway Timeout
        509,  # Bandwidth Limit Exceeded
    }
)

# Substring of WWW-Authenticate sent with a 401 when the token has expired
EXPIRED_TOKEN_MARKER = "expired_token"

_TRANSIENT_TRANSPORT_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)


class OperationCancelledError(Exception):
    """Raised when the caller's cancellation token is set."""


def is_transport_retryable(exc: BaseException) -> bool:
    """Generic transport-level predicate: timeouts and dropped connections."""
    return isinstance(exc, _TRANSIENT_TRANSPORT_ERRORS)


def is_expired_token(exc: BaseException | None) -> bool:
    """Return True for a 401 whose challenge reports an expired token."""
    return (
        isinstance(exc, FileJumpApiError)
        and exc.status_code == 401
        and EXPIRED_TOKEN_MARKER in exc.headers.get("WWW-Authenticate", "")
    )


def should_retry(exc: BaseException) -> bool:
    """Decide whether a failed call deserves another attempt.

    Args:
        exc: Exception raised by the call.

    Returns:
        True for transport failures, undecodable responses, retryable HTTP
        status codes and expired-token challenges. False for everything else,
        including cancellation.
    """
    if isinstance(exc, OperationCancelledError):
        return False
    if is_transport_retryable(exc) or isinstance(exc, FileJumpDecodeError):
        return True
    if isinstance(exc, FileJumpApiError):
        return exc.status_code in RETRY_ERROR_CODES or is_expired_token(exc)
    return False


class Pacer:
    """Wraps API calls with exponential backoff, jitter and cancellation."""

    def __init__(
        self,
        min_sleep: float = DEFAULT_MIN_SLEEP,
        max_sleep: float = DEFAULT_MAX_SLEEP,
        retries: int = DEFAULT_RETRIES,
        sleep: Callable[[float], object] | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        """Initialise the pacer.

        Args:
            min_sleep: Lower bound of the delay between attempts, in seconds.
            max_sleep: Upper bound of the delay between attempts, in seconds.
            retries: Maximum number of attempts per call.
            sleep: Sleep function override. By default the pacer waits on the
                caller's cancellation token so that cancelling interrupts the delay.
            log: Logger for retry warnings; defaults to the module logger.
        """
        self._min_sleep = min_sleep
        self._max_sleep = max_sleep
        self._retries = retries
        self._sleep = sleep
        self._log = log or logger

    def call(self, fn: Callable[[], T], cancel: threading.Event | None = None) -> T:
        """Run fn, retrying while should_retry() says so.

        Args:
            fn: Zero-argument callable performing one network call.
            cancel: Optional cancellation token, checked before every attempt.

        Returns:
            Whatever fn returns on its first successful attempt.

        Raises:
            OperationCancelledError: If cancel is set before an attempt.
            Exception: The last error from fn when it is not retryable or
                attempts are exhausted.
        """
        token = cancel if cancel is not None else threading.Event()
        retrying = Retrying(
            retry=retry_if_exception(should_retry),
            stop=stop_after_attempt(self._retries),
            wait=wait_random_exponential(
                multiplier=self._min_sleep, min=self._min_sleep, max=self._max_sleep
            ),
            sleep=self._sleep if self._sleep is not None else token.wait,
            before_sleep=self._log_retry,
            reraise=True,
        )
        return retrying(self._attempt, fn, token)

    def call_no_retry(self, fn: Callable[[], T], cancel: threading.Event | None = None) -> T:
        """Run fn exactly once, honouring cancellation.

        Used where the request body is a stream that cannot be replayed.
        """
        token = cancel if cancel is not None else threading.Event()
        return self._attempt(fn, token)

    @staticmethod
    def _attempt(fn: Callable[[], T], token: threading.Event) -> T:
        if token.is_set():
            raise OperationCancelledError("operation cancelled")
        return fn()

    def _log_retry(self, state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome is not None else None
        delay = state.next_action.sleep if state.next_action is not None else 0.0
        if is_expired_token(exc):
            self._log.warning(
                "[pacer] access token reported expired, retrying; attempt:%d;delay:%.3f",
                state.attempt_number,
                delay,
            )
            return
        self._log.warning(
            "[pacer] retrying after transient failure; attempt:%d;delay:%.3f;error:%s",
            state.attempt_number,
            delay,
            exc,
        )


def pacer_from_config(config: BackendConfig, log: logging.Logger | None = None) -> Pacer:
    """Construct a Pacer from backend configuration."""
    return Pacer(
        min_sleep=config.min_sleep,
        max_sleep=config.max_sleep,
        retries=config.low_level_retries,
        log=log,
    )
