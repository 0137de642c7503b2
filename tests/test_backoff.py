"""Unit tests for BackoffExecutor."""
import threading
import time
from concurrent.futures import TimeoutError as FutureTimeoutError
from unittest.mock import Mock, call, patch

import pytest

from finder.backoff import BackoffExecutor
from finder.errors import (
    AuthenticationError,
    EndpointNotFoundError,
    MalformedResponseError,
    RequestTimeoutError,
    SearchCancelledError,
    UpstreamError,
)


class TestBackoffExecutor:
    """Test cases for BackoffExecutor class."""

    @patch('finder.backoff.time.sleep')
    def test_success_on_first_attempt(self, mock_sleep):
        """Test that a successful attempt returns immediately."""
        attempt = Mock(return_value=['meeting'])

        result = BackoffExecutor().execute(attempt)

        assert result == ['meeting']
        assert attempt.call_count == 1
        mock_sleep.assert_not_called()

    @patch('finder.backoff.time.sleep')
    def test_retry_then_success(self, mock_sleep):
        """Test retry logic succeeds after initial failures."""
        attempt = Mock(side_effect=[
            UpstreamError('Directory error: 500', status_code=500),
            RequestTimeoutError('Directory request timed out'),
            ['meeting'],
        ])

        result = BackoffExecutor().execute(attempt)

        assert result == ['meeting']
        assert attempt.call_count == 3
        assert mock_sleep.call_args_list == [call(1.0), call(2.0)]

    @patch('finder.backoff.time.sleep')
    def test_permanent_timeout_exhausts_retries(self, mock_sleep):
        """Test that a call that always times out gets max_retries + 1 attempts."""
        attempt = Mock(side_effect=RequestTimeoutError('Directory request timed out'))

        with pytest.raises(RequestTimeoutError):
            BackoffExecutor(max_retries=3, base_delay=1.0).execute(attempt)

        assert attempt.call_count == 4
        delays = [args[0] for args, _ in mock_sleep.call_args_list]
        assert delays == [1.0, 2.0, 4.0]
        assert sum(delays) >= 1.0 * (2 ** 0 + 2 ** 1 + 2 ** 2)

    @patch('finder.backoff.time.sleep')
    def test_last_error_is_raised(self, mock_sleep):
        """Test that the error from the final attempt propagates."""
        last = UpstreamError('Directory error: 503', status_code=503)
        attempt = Mock(side_effect=[
            RequestTimeoutError('timed out'),
            UpstreamError('Directory error: 500', status_code=500),
            last,
        ])

        with pytest.raises(UpstreamError) as exc_info:
            BackoffExecutor(max_retries=2).execute(attempt)

        assert exc_info.value is last

    @patch('finder.backoff.time.sleep')
    def test_authentication_error_not_retried(self, mock_sleep):
        """Test that a 401 results in exactly one attempt."""
        attempt = Mock(side_effect=AuthenticationError('rejected', status_code=401))

        with pytest.raises(AuthenticationError):
            BackoffExecutor().execute(attempt)

        assert attempt.call_count == 1
        mock_sleep.assert_not_called()

    @patch('finder.backoff.time.sleep')
    @pytest.mark.parametrize('error', [
        EndpointNotFoundError('missing', status_code=404),
        MalformedResponseError('Invalid JSON response from directory'),
    ])
    def test_other_permanent_errors_not_retried(self, mock_sleep, error):
        """Test that not-found and malformed responses are not retried."""
        attempt = Mock(side_effect=error)

        with pytest.raises(type(error)):
            BackoffExecutor().execute(attempt)

        assert attempt.call_count == 1

    @patch('finder.backoff.time.sleep')
    def test_untyped_errors_are_retried(self, mock_sleep):
        """Test that unexpected exceptions count as transient."""
        attempt = Mock(side_effect=[ConnectionResetError('reset'), 'ok'])

        assert BackoffExecutor().execute(attempt) == 'ok'
        assert attempt.call_count == 2

    def test_cancel_during_retry_delay_is_immediate(self):
        """Test that cancelling while waiting to retry does not wait out the delay."""
        cancel_event = threading.Event()

        def attempt():
            cancel_event.set()
            raise UpstreamError('Directory error: 500', status_code=500)

        started = time.monotonic()
        with pytest.raises(SearchCancelledError):
            BackoffExecutor(base_delay=30).execute(attempt, cancel_event=cancel_event)

        assert time.monotonic() - started < 5

    def test_cancel_during_attempt_is_immediate(self):
        """Test that cancelling stops waiting for an in-flight request."""
        cancel_event = threading.Event()
        release = threading.Event()

        def attempt():
            release.wait(10)
            return 'late'

        timer = threading.Timer(0.1, cancel_event.set)
        timer.start()
        started = time.monotonic()
        try:
            with pytest.raises(SearchCancelledError):
                BackoffExecutor().execute(attempt, cancel_event=cancel_event)
            assert time.monotonic() - started < 5
        finally:
            release.set()
            timer.cancel()

    def test_already_cancelled_makes_no_attempt(self):
        """Test that a pre-cancelled search never calls the attempt."""
        cancel_event = threading.Event()
        cancel_event.set()
        attempt = Mock(return_value='ok')

        with pytest.raises(SearchCancelledError):
            BackoffExecutor().execute(attempt, cancel_event=cancel_event)

        attempt.assert_not_called()

    def test_attempt_result_returned_with_cancel_event(self):
        """Test that an unset cancel event does not change the outcome."""
        cancel_event = threading.Event()

        result = BackoffExecutor().execute(lambda: [1, 2], cancel_event=cancel_event)

        assert result == [1, 2]

    @patch('finder.backoff.ThreadPoolExecutor')
    def test_attempt_finishing_after_poll_timeout_keeps_result(self, mock_pool_class):
        """Test an attempt that completes just as the poll times out is not retried."""
        future = Mock()
        future.result.side_effect = [FutureTimeoutError(), 'ok']
        future.done.return_value = True
        mock_pool_class.return_value.submit.return_value = future
        attempt = Mock(return_value='ok')

        result = BackoffExecutor().execute(attempt, cancel_event=threading.Event())

        assert result == 'ok'
        assert mock_pool_class.return_value.submit.call_count == 1

    def test_builtin_timeout_from_attempt_is_raised_with_cancel_event(self):
        """Test a TimeoutError raised by the attempt itself surfaces as that error."""
        attempt = Mock(side_effect=TimeoutError('socket timed out'))

        with pytest.raises(TimeoutError, match='socket timed out'):
            BackoffExecutor(max_retries=1, base_delay=0).execute(
                attempt, cancel_event=threading.Event()
            )

        assert attempt.call_count == 2
