"""Unit tests for confluence_client.retry_logic module."""

import pytest
from unittest.mock import Mock, patch

from src.confluence_client import retry_logic
from src.confluence_client.errors import ApiError, PageNotFoundError, RateLimitError
from src.confluence_client.retry_logic import retry_on_rate_limit


class _HTTPError(Exception):
    """Stand-in for requests.HTTPError carrying a response."""

    def __init__(self, status_code, headers=None):
        super().__init__(f"HTTP {status_code}")
        self.response = Mock(status_code=status_code, headers=headers or {})


class TestRetryOnRateLimit:
    """Test cases for retry_on_rate_limit."""

    @patch('src.confluence_client.retry_logic.time.sleep')
    def test_returns_result_without_retry(self, mock_sleep):
        func = Mock(return_value="ok")

        assert retry_on_rate_limit(func, "a", key="b") == "ok"
        func.assert_called_once_with("a", key="b")
        mock_sleep.assert_not_called()

    @patch('src.confluence_client.retry_logic.time.sleep')
    def test_retries_then_succeeds(self, mock_sleep):
        func = Mock(side_effect=[_HTTPError(429), _HTTPError(429), "ok"])

        assert retry_on_rate_limit(func) == "ok"
        assert func.call_count == 3
        assert mock_sleep.call_count == 2

    @patch('src.confluence_client.retry_logic.time.sleep')
    def test_gives_up_after_max_retries(self, mock_sleep):
        func = Mock(side_effect=_HTTPError(429))

        with pytest.raises(RateLimitError):
            retry_on_rate_limit(func)

        assert func.call_count == retry_logic.MAX_RETRIES + 1
        assert mock_sleep.call_count == retry_logic.MAX_RETRIES

    @patch('src.confluence_client.retry_logic.time.sleep')
    def test_honours_retry_after_header(self, mock_sleep):
        func = Mock(side_effect=[_HTTPError(429, {'Retry-After': '7'}), "ok"])

        retry_on_rate_limit(func)

        mock_sleep.assert_called_once_with(7.0)

    @patch('src.confluence_client.retry_logic.time.sleep')
    def test_final_error_carries_retry_after(self, mock_sleep):
        func = Mock(side_effect=_HTTPError(429, {'Retry-After': '3'}))

        with pytest.raises(RateLimitError) as exc_info:
            retry_on_rate_limit(func)

        assert exc_info.value.retry_after == 3.0

    @patch('src.confluence_client.retry_logic.random.uniform', side_effect=lambda low, high: high)
    @patch('src.confluence_client.retry_logic.time.sleep')
    def test_backoff_is_exponential_and_capped(self, mock_sleep, mock_uniform):
        func = Mock(side_effect=_HTTPError(429))

        with pytest.raises(RateLimitError):
            retry_on_rate_limit(func)

        delays = [c.args[0] for c in mock_sleep.call_args_list]
        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0]
        assert all(d <= retry_logic.MAX_DELAY for d in delays)

    @patch('src.confluence_client.retry_logic.time.sleep')
    def test_other_errors_are_not_retried(self, mock_sleep):
        func = Mock(side_effect=_HTTPError(500))

        with pytest.raises(_HTTPError):
            retry_on_rate_limit(func)

        func.assert_called_once()
        mock_sleep.assert_not_called()

    @patch('src.confluence_client.retry_logic.time.sleep')
    def test_translated_errors_mentioning_429_are_not_retried(self, mock_sleep):
        """An ID containing 429 must not be mistaken for a rate limit."""
        func = Mock(side_effect=PageNotFoundError("4290"))

        with pytest.raises(PageNotFoundError):
            retry_on_rate_limit(func)

        mock_sleep.assert_not_called()

    @patch('src.confluence_client.retry_logic.time.sleep')
    def test_rate_limit_error_is_retried(self, mock_sleep):
        func = Mock(side_effect=[RateLimitError(retry_after=0.5), "ok"])

        assert retry_on_rate_limit(func) == "ok"
        mock_sleep.assert_called_once_with(0.5)


class TestIsRateLimitError:
    """Test cases for rate limit detection."""

    def test_detects_message_patterns(self):
        assert retry_logic._is_rate_limit_error(Exception("Too Many Requests"))
        assert retry_logic._is_rate_limit_error(Exception("Rate limit exceeded"))

    def test_ignores_unrelated_rate_limit_mentions(self):
        assert not retry_logic._is_rate_limit_error(Exception("see rate limit docs"))

    def test_ignores_api_errors(self):
        assert not retry_logic._is_rate_limit_error(ApiError(500, "429 pages"))
