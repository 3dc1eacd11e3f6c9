# tests/test_base_scraper.py

"""Tests for BaseScraper resilience features."""

import time
import unittest
from unittest.mock import MagicMock, patch

from curl_cffi import requests as curl_requests

from src.scrapers.base_scraper import BaseScraper
from src.scrapers.errors import TransientFetchError


class _StubScraper(BaseScraper):
    """Concrete scraper exposing protected members for testing."""

    def _get_homepage(self) -> str:
        return "https://example.com"

    # --- Public accessors for protected state ---

    @property
    def circuit_open(self) -> bool:
        """Expose circuit breaker flag."""
        return self._circuit_open

    @circuit_open.setter
    def circuit_open(self, value: bool) -> None:
        self._circuit_open = value

    @property
    def circuit_opened_at(self) -> float:
        """Expose circuit breaker timestamp."""
        return self._circuit_opened_at

    @circuit_opened_at.setter
    def circuit_opened_at(self, value: float) -> None:
        self._circuit_opened_at = value

    @property
    def consecutive_failures(self) -> int:
        """Expose failure counter."""
        return self._consecutive_failures

    @consecutive_failures.setter
    def consecutive_failures(self, value: int) -> None:
        self._consecutive_failures = value

    @property
    def request_timeout(self) -> int:
        """Expose request timeout."""
        return self._request_timeout

    @request_timeout.setter
    def request_timeout(self, value: int) -> None:
        self._request_timeout = value

    @property
    def current_delay(self) -> float:
        """Expose adaptive delay."""
        return self._current_delay

    @current_delay.setter
    def current_delay(self, value: float) -> None:
        self._current_delay = value

    def fetch_get(
        self,
        url: str,
        headers: dict[str, str],
        passthrough: tuple[int, ...] = (),
    ) -> curl_requests.Response:
        """Public wrapper for _fetch_get."""
        return self._fetch_get(url, headers, passthrough)

    def get_page(self, url: str) -> str:
        """Public wrapper for _get_page."""
        return self._get_page(url)

    def wait(self) -> None:
        """Public wrapper for _wait."""
        self._wait()

    def escalate_delay(self) -> None:
        """Public wrapper for _escalate_delay."""
        self._escalate_delay()


def _resp(status: int, text: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    return resp


@patch("src.scrapers.base_scraper.curl_requests.Session")
class TestCircuitBreaker(unittest.TestCase):
    """Circuit breaker opens after consecutive failures."""

    def test_circuit_opens_after_threshold(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """After CIRCUIT_BREAKER_THRESHOLD failures, requests are skipped."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(500)

        scraper = _StubScraper("test")
        scraper.session = mock_session
        threshold = scraper.settings.CIRCUIT_BREAKER_THRESHOLD

        for _ in range(threshold):
            with self.assertRaises(TransientFetchError):
                scraper.fetch_get("https://example.com", {})

        self.assertTrue(scraper.circuit_open)

        # Subsequent calls short-circuit immediately
        mock_session.get.reset_mock()
        with self.assertRaises(TransientFetchError):
            scraper.fetch_get("https://example.com", {})
        mock_session.get.assert_not_called()

    def test_success_resets_counter(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """A successful fetch resets the failure counter."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        retries = 3
        mock_session.get.side_effect = (
            [_resp(500)] * retries + [_resp(200, '{"ok": true}')]
        )

        scraper = _StubScraper("test")
        scraper.session = mock_session
        # First call exhausts retries → 1 failure
        with self.assertRaises(TransientFetchError):
            scraper.fetch_get("https://example.com", {})
        self.assertEqual(scraper.consecutive_failures, 1)

        # Second call succeeds on first try → reset
        result = scraper.fetch_get("https://example.com", {})
        self.assertEqual(result.status_code, 200)
        self.assertEqual(scraper.consecutive_failures, 0)

    @patch("src.scrapers.base_scraper.cloudscraper.create_scraper")
    def test_circuit_affects_get_page(
        self,
        mock_cloudscraper: MagicMock,
        mock_session_cls: MagicMock,
    ) -> None:
        """Circuit breaker skips _get_page entirely, fallback included."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session

        scraper = _StubScraper("test")
        scraper.session = mock_session
        scraper.circuit_open = True
        scraper.circuit_opened_at = time.time()

        with self.assertRaises(TransientFetchError):
            scraper.get_page("https://example.com")
        mock_session.get.assert_not_called()
        mock_cloudscraper.assert_not_called()


@patch("src.scrapers.base_scraper.curl_requests.Session")
class TestCircuitBreakerCooldown(unittest.TestCase):
    """Circuit breaker half-open reset after cooldown."""

    def test_circuit_resets_after_cooldown(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """After cooldown, a probe goes through and success resets it."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(200, '{"ok": true}')

        scraper = _StubScraper("test")
        scraper.session = mock_session
        scraper.circuit_open = True
        cooldown = scraper.settings.CIRCUIT_BREAKER_COOLDOWN
        scraper.circuit_opened_at = time.time() - cooldown - 1

        scraper.fetch_get("https://example.com", {})
        mock_session.get.assert_called()
        self.assertFalse(scraper.circuit_open)
        self.assertEqual(scraper.consecutive_failures, 0)

    def test_circuit_reopens_on_probe_failure(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """If the probe after cooldown fails, circuit re-opens."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(500)

        scraper = _StubScraper("test")
        scraper.session = mock_session
        scraper.circuit_open = True
        cooldown = scraper.settings.CIRCUIT_BREAKER_COOLDOWN
        scraper.circuit_opened_at = time.time() - cooldown - 1
        threshold = scraper.settings.CIRCUIT_BREAKER_THRESHOLD
        scraper.consecutive_failures = threshold - 1

        with self.assertRaises(TransientFetchError):
            scraper.fetch_get("https://example.com", {})
        self.assertTrue(scraper.circuit_open)


@patch("src.scrapers.base_scraper.curl_requests.Session")
class TestPassthroughStatus(unittest.TestCase):
    """Statuses a caller asks for come back without retries."""

    def test_404_returned_once(
        self, mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(404, "Not Found")

        scraper = _StubScraper("test")
        scraper.session = mock_session
        result = scraper.fetch_get(
            "https://example.com", {}, passthrough=(404,)
        )
        self.assertEqual(result.status_code, 404)
        self.assertEqual(mock_session.get.call_count, 1)

    def test_404_retried_without_passthrough(
        self, mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(404, "Not Found")

        scraper = _StubScraper("test")
        scraper.session = mock_session
        with self.assertRaises(TransientFetchError):
            scraper.fetch_get("https://example.com", {})
        self.assertEqual(
            mock_session.get.call_count, scraper.settings.MAX_RETRIES
        )


@patch("src.scrapers.base_scraper.curl_requests.Session")
class TestAdaptiveDelay(unittest.TestCase):
    """Rate-limiting detection escalates the delay."""

    def test_429_escalates_delay(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """A 429 response doubles the current delay."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(429)

        scraper = _StubScraper("test")
        scraper.session = mock_session
        original = scraper.current_delay

        with self.assertRaises(TransientFetchError):
            scraper.fetch_get("https://example.com", {})

        self.assertGreater(scraper.current_delay, original)

    def test_success_resets_delay(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """A successful response resets delay to baseline."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(200, '{"products": []}')

        scraper = _StubScraper("test")
        scraper.session = mock_session
        scraper.current_delay = 16.0  # pre-escalated

        scraper.fetch_get("https://example.com", {})

        self.assertEqual(
            scraper.current_delay,
            scraper.settings.REQUEST_DELAY,
        )

    def test_delay_capped_at_max(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """Delay never exceeds REQUEST_DELAY * MAX_DELAY_MULTIPLIER."""
        mock_session_cls.return_value = MagicMock()

        scraper = _StubScraper("test")
        max_delay = (
            scraper.settings.REQUEST_DELAY
            * scraper.settings.MAX_DELAY_MULTIPLIER
        )

        for _ in range(20):
            scraper.escalate_delay()

        self.assertLessEqual(scraper.current_delay, max_delay)


@patch("src.scrapers.base_scraper.curl_requests.Session")
class TestCaptchaDetection(unittest.TestCase):
    """CAPTCHA detection in non-JSON responses."""

    def test_captcha_html_triggers_retry(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """An HTML response with 'captcha' fails validation."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.side_effect = [
            _resp(200, "<html>Please solve the captcha</html>"),
            _resp(200, '{"ok": true}'),
        ]

        scraper = _StubScraper("test")
        scraper.session = mock_session
        scraper.fetch_get("https://example.com", {})
        self.assertEqual(mock_session.get.call_count, 2)

    def test_json_response_skips_captcha_check(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """JSON responses bypass the CAPTCHA keyword check."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(
            200, '{"title": "CAPTCHA Puzzle Book", "currentPrice": 10}'
        )

        scraper = _StubScraper("test")
        scraper.session = mock_session
        result = scraper.fetch_get("https://example.com", {})
        self.assertEqual(result.status_code, 200)
        self.assertEqual(mock_session.get.call_count, 1)

    def test_cloudflare_challenge_never_accepted(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """A challenge page on every attempt ends in a transient error."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(
            200, "<html><title>Just a moment...</title></html>"
        )

        scraper = _StubScraper("test")
        scraper.session = mock_session
        with self.assertRaises(TransientFetchError):
            scraper.fetch_get("https://example.com", {})


@patch("src.scrapers.base_scraper.curl_requests.Session")
class TestGetPageFallback(unittest.TestCase):
    """_get_page falls back to cloudscraper when curl_cffi gives up."""

    @patch("src.scrapers.base_scraper.cloudscraper.create_scraper")
    def test_fallback_used_after_primary_fails(
        self,
        mock_create: MagicMock,
        mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(503)
        mock_create.return_value.get.return_value = _resp(
            200, "<html><body>ok</body></html>"
        )

        scraper = _StubScraper("test")
        scraper.session = mock_session
        html = scraper.get_page("https://example.com/p/1")
        self.assertIn("ok", html)
        mock_create.return_value.get.assert_called_once()

    @patch("src.scrapers.base_scraper.cloudscraper.create_scraper")
    def test_fallback_non_200_raises(
        self,
        mock_create: MagicMock,
        mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(503)
        mock_create.return_value.get.return_value = _resp(502)

        scraper = _StubScraper("test")
        scraper.session = mock_session
        with self.assertRaises(TransientFetchError):
            scraper.get_page("https://example.com/p/1")


@patch("src.scrapers.base_scraper.curl_requests.Session")
class TestWaitMethod(unittest.TestCase):
    """The _wait() method uses the adaptive delay."""

    @patch("src.scrapers.base_scraper.time.sleep")
    def test_wait_uses_current_delay(
        self,
        mock_sleep: MagicMock,
        mock_session_cls: MagicMock,
    ) -> None:
        """_wait() sleeps for _current_delay seconds."""
        mock_session_cls.return_value = MagicMock()
        scraper = _StubScraper("test")
        scraper.current_delay = 5.0
        scraper.wait()
        mock_sleep.assert_called_with(5.0)


@patch("src.scrapers.base_scraper.curl_requests.Session")
class TestRequestTimeout(unittest.TestCase):
    """Per-client timeout override on BaseScraper."""

    def test_timeout_defaults_to_settings(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """Default request_timeout matches Settings.REQUEST_TIMEOUT."""
        mock_session_cls.return_value = MagicMock()
        scraper = _StubScraper("test")
        self.assertEqual(
            scraper.request_timeout,
            scraper.settings.REQUEST_TIMEOUT,
        )

    def test_overridden_timeout_used_in_fetch(
        self, mock_session_cls: MagicMock,
    ) -> None:
        """fetch_get uses the overridden timeout value."""
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(200, '{"ok": true}')

        scraper = _StubScraper("test")
        scraper.session = mock_session
        scraper.request_timeout = 25

        scraper.fetch_get("https://example.com", {})
        call_kwargs = mock_session.get.call_args
        self.assertEqual(call_kwargs.kwargs["timeout"], 25)


if __name__ == "__main__":
    unittest.main()
