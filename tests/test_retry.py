"""
Tests for fixed-delay retry supervision
"""

import logging
from unittest.mock import Mock, call, patch

import pytest

from cronjob_runner.core.exceptions import RetriesExhaustedError
from cronjob_runner.supervisor.retry import RetryPlan, retry_with_fixed_delay, run_with_retry


class TestRunWithRetry:
    """Test run_with_retry attempt counting and delays"""

    def test_success_on_first_attempt_does_not_sleep(self):
        sleep = Mock()
        operation = Mock(return_value="ok")

        assert run_with_retry(operation, 3, 60, sleep=sleep) == "ok"
        assert operation.call_count == 1
        sleep.assert_not_called()

    def test_success_on_later_attempt(self):
        sleep = Mock()
        operation = Mock(side_effect=[ConnectionError("down"), ConnectionError("down"), "ok"])

        assert run_with_retry(operation, 3, 5, sleep=sleep) == "ok"
        assert operation.call_count == 3
        assert sleep.call_args_list == [call(5), call(5)]

    def test_exhaustion_raises_and_skips_final_sleep(self):
        sleep = Mock()
        operation = Mock(side_effect=ConnectionError("down"))

        with pytest.raises(RetriesExhaustedError) as exc_info:
            run_with_retry(operation, 3, 60, sleep=sleep, operation_name="heartbeat")

        assert operation.call_count == 3
        # No sleep after the last attempt.
        assert sleep.call_count == 2
        assert exc_info.value.attempts == 3
        assert exc_info.value.operation == "heartbeat"
        assert isinstance(exc_info.value.last_error, ConnectionError)
        assert exc_info.value.__cause__ is exc_info.value.last_error
        assert str(exc_info.value) == "heartbeat failed after 3 attempt(s): last error: down"

    def test_single_attempt_means_no_retry(self):
        sleep = Mock()
        operation = Mock(side_effect=RuntimeError("boom"))

        with pytest.raises(RetriesExhaustedError) as exc_info:
            run_with_retry(operation, 1, 60, sleep=sleep)

        assert operation.call_count == 1
        sleep.assert_not_called()
        assert exc_info.value.attempts == 1

    def test_false_return_counts_as_failure(self):
        sleep = Mock()
        operation = Mock(return_value=False)

        with pytest.raises(RetriesExhaustedError) as exc_info:
            run_with_retry(operation, 2, 1, sleep=sleep)

        assert operation.call_count == 2
        assert exc_info.value.last_error is None
        assert exc_info.value.__cause__ is None

    @pytest.mark.parametrize("result", [None, 0, "", [], True])
    def test_returns_other_than_false_are_success(self, result):
        sleep = Mock()
        operation = Mock(return_value=result)

        assert run_with_retry(operation, 3, 1, sleep=sleep) == result
        assert operation.call_count == 1

    def test_zero_delay_still_sleeps_between_attempts(self):
        sleep = Mock()
        operation = Mock(side_effect=[ValueError("x"), "ok"])

        run_with_retry(operation, 2, 0, sleep=sleep)

        sleep.assert_called_once_with(0)

    def test_base_exceptions_are_not_retried(self):
        sleep = Mock()
        operation = Mock(side_effect=KeyboardInterrupt)

        with pytest.raises(KeyboardInterrupt):
            run_with_retry(operation, 3, 1, sleep=sleep)

        assert operation.call_count == 1
        sleep.assert_not_called()

    def test_logs_attempt_index_and_delay(self, caplog):
        operation = Mock(side_effect=[ConnectionError("refused"), "ok"])

        with caplog.at_level(logging.INFO):
            run_with_retry(operation, 3, 60, sleep=Mock(), operation_name="Health check")

        assert "Health check failed (ConnectionError: refused), retrying in 60 seconds (attempt 1/3)" in caplog.text
        assert "Health check succeeded on attempt 2/3" in caplog.text

    def test_logs_error_when_exhausted(self, caplog):
        operation = Mock(side_effect=OSError("nope"))

        with caplog.at_level(logging.ERROR):
            with pytest.raises(RetriesExhaustedError):
                run_with_retry(operation, 2, 0.5, sleep=Mock(), operation_name="Health check")

        assert "All 2 attempts failed for Health check" in caplog.text

    def test_uses_callable_name_when_not_given(self, caplog):
        def check_service():
            raise ConnectionError("down")

        with caplog.at_level(logging.WARNING):
            with pytest.raises(RetriesExhaustedError) as exc_info:
                run_with_retry(check_service, 2, 1, sleep=Mock())

        assert exc_info.value.operation == "check_service"
        assert "check_service failed" in caplog.text

    def test_default_sleep_is_time_sleep(self):
        operation = Mock(side_effect=[ConnectionError("down"), "ok"])

        with patch("time.sleep") as mock_sleep:
            run_with_retry(operation, 2, 7)

        mock_sleep.assert_called_once_with(7)

    @pytest.mark.parametrize("max_attempts", [0, -1, 1.5, True, None])
    def test_invalid_attempt_count_is_rejected(self, max_attempts):
        operation = Mock()

        with pytest.raises(ValueError, match="max_attempts"):
            run_with_retry(operation, max_attempts, 1, sleep=Mock())

        operation.assert_not_called()

    @pytest.mark.parametrize("delay", [-1, float("nan"), float("inf")])
    def test_invalid_delay_is_rejected(self, delay):
        operation = Mock()
        sleep = Mock()

        with pytest.raises(ValueError, match="delay"):
            run_with_retry(operation, 3, delay, sleep=sleep)

        operation.assert_not_called()
        sleep.assert_not_called()


class TestRetryPlan:
    def test_attempts_are_numbered_from_one(self):
        plan = RetryPlan(max_attempts=2, delay=0)

        assert plan.next_attempt() == 1
        assert not plan.exhausted
        assert plan.next_attempt() == 2
        assert plan.exhausted


class TestRetryDecorator:
    """Test the retry_with_fixed_delay decorator"""

    def test_retries_then_succeeds(self):
        call_count = 0

        @retry_with_fixed_delay(max_attempts=3, delay=0.01)
        def flaky_func():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ConnectionError("Network error")
            return "success"

        with patch("time.sleep") as mock_sleep:
            assert flaky_func() == "success"

        assert call_count == 3
        assert mock_sleep.call_count == 2

    def test_each_call_gets_fresh_budget(self):
        outcomes = iter([ValueError("a"), "first", ValueError("b"), "second"])

        @retry_with_fixed_delay(max_attempts=2, delay=0)
        def func():
            outcome = next(outcomes)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        with patch("time.sleep"):
            assert func() == "first"
            assert func() == "second"

    def test_passes_arguments_through(self):
        @retry_with_fixed_delay(max_attempts=1, delay=0)
        def add(a, b=0):
            return a + b

        assert add(2, b=3) == 5

    def test_preserves_function_metadata(self):
        @retry_with_fixed_delay(max_attempts=2, delay=0)
        def documented_func():
            """Function docstring"""
            return True

        assert documented_func.__name__ == "documented_func"
        assert documented_func.__doc__ == "Function docstring"

    def test_invalid_budget_fails_at_decoration_time(self):
        with pytest.raises(ValueError):
            retry_with_fixed_delay(max_attempts=0, delay=1)
