"""Retrying call wrapper with exponential backoff."""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional, TypeVar

from finder.errors import MeetingSearchError, SearchCancelledError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class BackoffExecutor:
    """Runs an attempt until it succeeds, fails permanently, or retries run out."""

    CANCEL_POLL_SECONDS = 0.05

    def __init__(self, max_retries: int = 3, base_delay: float = 1.0):
        """
        Initialize the executor.

        Args:
            max_retries: Retries after the first attempt (default: 3)
            base_delay: Delay before the first retry in seconds (default: 1)
        """
        self.max_retries = max_retries
        self.base_delay = base_delay

    def execute(
        self,
        attempt: Callable[[], T],
        cancel_event: Optional[threading.Event] = None
    ) -> T:
        """
        Call attempt with retries.

        Errors marked non-retryable are raised immediately. Anything else is
        retried after base_delay * 2**n seconds until max_retries is used up,
        then the last error is raised.

        Args:
            attempt: Zero-argument callable performing one request
            cancel_event: Optional event; setting it aborts waiting at once

        Returns:
            Result of the first successful attempt

        Raises:
            SearchCancelledError: If cancel_event is set
            Exception: The non-retryable or last error from attempt
        """
        total_attempts = self.max_retries + 1

        for attempt_index in range(total_attempts):
            self._check_cancelled(cancel_event)
            try:
                return self._run_attempt(attempt, cancel_event)

            except SearchCancelledError:
                raise

            except Exception as e:
                if not self.is_retryable(e):
                    logger.warning(
                        f"Non-retryable error on attempt {attempt_index + 1}: {e}",
                        extra={'error_type': type(e).__name__}
                    )
                    raise

                if attempt_index < self.max_retries:
                    delay = self.base_delay * (2 ** attempt_index)
                    logger.warning(
                        f"Request failed (attempt {attempt_index + 1}/{total_attempts}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    self._sleep(delay, cancel_event)
                else:
                    logger.error(
                        f"All {total_attempts} attempts failed. Last error: {e}"
                    )
                    raise

    def is_retryable(self, error: Exception) -> bool:
        """Typed search errors decide for themselves; anything else is treated as transient."""
        if isinstance(error, MeetingSearchError):
            return error.retryable
        return True

    def _run_attempt(
        self,
        attempt: Callable[[], T],
        cancel_event: Optional[threading.Event]
    ) -> T:
        if cancel_event is None:
            return attempt()

        # Run on a worker so the caller can stop waiting as soon as cancel is set.
        # The abandoned request is still bounded by its own timeout.
        pool = ThreadPoolExecutor(max_workers=1)
        try:
            future = pool.submit(attempt)
            while True:
                try:
                    return future.result(timeout=self.CANCEL_POLL_SECONDS)
                except FutureTimeoutError:
                    if future.done():
                        # Finished after the poll timed out: its own value or error
                        return future.result()
                    if cancel_event.is_set():
                        future.cancel()
                        logger.info("Search cancelled during request")
                        raise SearchCancelledError("Search was cancelled")
        finally:
            pool.shutdown(wait=False)

    def _sleep(self, delay: float, cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is None:
            time.sleep(delay)
            return

        if cancel_event.wait(delay):
            logger.info("Search cancelled while waiting to retry")
            raise SearchCancelledError("Search was cancelled")

    def _check_cancelled(self, cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise SearchCancelledError("Search was cancelled")
