# src/scrapers/base_scraper.py

"""Resilient HTTP base shared by the marketplace clients."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import cloudscraper  # type: ignore[import-untyped]
from curl_cffi import requests as curl_requests

from src.config.settings import Settings
from src.scrapers.errors import TransientFetchError


class BaseScraper(ABC):
    """Browser-impersonating session with retries and a circuit breaker.

    ``_fetch_get`` returns the response for 200 and for the statuses a
    subclass asks to see (e.g. 404); anything else is retried and, once
    attempts run out, raised as :class:`TransientFetchError`.
    """

    def __init__(self, source_name: str) -> None:
        self.source_name = source_name
        self.logger = logging.getLogger(
            f"nellis_scanner.{source_name}"
        )
        self.settings = Settings()
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )
        self._current_delay: float = (
            self.settings.REQUEST_DELAY
        )
        self._consecutive_failures: int = 0
        self._circuit_open: bool = False
        self._circuit_opened_at: float = 0.0
        self._request_timeout: int = (
            self.settings.REQUEST_TIMEOUT
        )

    def _wait(self) -> None:
        """Sleep using the current (possibly escalated) delay."""
        time.sleep(self._current_delay)

    # Cloudflare challenge page markers (checked before keyword scan)
    _CF_CHALLENGE_MARKERS: list[str] = [
        "challenges.cloudflare.com",
        "cdn-cgi/challenge-platform",
        "just a moment",
        "cf-turnstile",
        "cf_chl_opt",
    ]

    def _validate_response(
        self, resp: curl_requests.Response,
    ) -> bool:
        """Check for Cloudflare challenge pages and CAPTCHA indicators."""
        text = resp.text
        if text.lstrip().startswith(("{", "[")):
            return True
        lower = text.lower()

        for marker in self._CF_CHALLENGE_MARKERS:
            if marker in lower:
                self.logger.warning(
                    "[%s] Cloudflare challenge detected "
                    "(marker: '%s')",
                    self.source_name,
                    marker,
                )
                return False

        # Product pages mention "verify" etc. in scripts; only scan
        # small bodies for CAPTCHA wording
        has_body_content = (
            "<body" in lower and len(text) > 5000
        )
        if not has_body_content:
            for keyword in self.settings.CAPTCHA_KEYWORDS:
                if keyword in lower:
                    self.logger.warning(
                        "[%s] CAPTCHA keyword '%s' "
                        "detected",
                        self.source_name,
                        keyword,
                    )
                    return False
        return True

    def _check_circuit(self) -> bool:
        """Return True if the circuit breaker blocks this request.

        After CIRCUIT_BREAKER_COOLDOWN seconds the breaker enters
        a half-open state, allowing a single probe request through.
        """
        if not self._circuit_open:
            return False
        elapsed = time.time() - self._circuit_opened_at
        if elapsed >= self.settings.CIRCUIT_BREAKER_COOLDOWN:
            self.logger.info(
                "[%s] Circuit breaker half-open after %.0fs",
                self.source_name,
                elapsed,
            )
            self._circuit_open = False
            return False
        return True

    def _record_success(self) -> None:
        """Reset failure counters after a successful fetch."""
        self._consecutive_failures = 0
        self._circuit_open = False
        self._circuit_opened_at = 0.0
        self._current_delay = self.settings.REQUEST_DELAY

    def _record_failure(self) -> None:
        """Track failure and open circuit breaker if needed."""
        self._consecutive_failures += 1
        threshold = (
            self.settings.CIRCUIT_BREAKER_THRESHOLD
        )
        if self._consecutive_failures >= threshold:
            self._circuit_open = True
            self._circuit_opened_at = time.time()
            self.logger.error(
                "[%s] Circuit breaker opened after %d "
                "consecutive failures",
                self.source_name,
                self._consecutive_failures,
            )

    def _escalate_delay(self) -> None:
        """Double the current delay up to the configured max."""
        max_delay = (
            self.settings.REQUEST_DELAY
            * self.settings.MAX_DELAY_MULTIPLIER
        )
        self._current_delay = min(
            self._current_delay * 2, max_delay
        )
        self.logger.warning(
            "[%s] Rate-limited, delay escalated to %.1fs",
            self.source_name,
            self._current_delay,
        )

    def _fetch_get(
        self,
        url: str,
        headers: dict[str, str],
        passthrough: tuple[int, ...] = (),
    ) -> curl_requests.Response:
        """GET with retries, adaptive delay, and circuit breaker.

        Statuses listed in *passthrough* are returned to the caller
        without retrying.
        """
        if self._check_circuit():
            raise TransientFetchError(
                f"[{self.source_name}] circuit open, skipped {url}"
            )
        last_problem = "no attempt made"
        for attempt in range(self.settings.MAX_RETRIES):
            try:
                resp = self.session.get(
                    url,
                    headers=headers,
                    timeout=self._request_timeout,
                )
                if resp.status_code == 200:
                    if not self._validate_response(resp):
                        last_problem = "challenge page"
                        self._escalate_delay()
                        time.sleep(self._current_delay)
                        continue
                    self._record_success()
                    return resp
                if resp.status_code in passthrough:
                    self._record_success()
                    return resp
                last_problem = f"HTTP {resp.status_code}"
                self.logger.warning(
                    "[%s] HTTP %d on attempt %d for %s",
                    self.source_name,
                    resp.status_code,
                    attempt + 1,
                    url,
                )
                if resp.status_code in (429, 403):
                    self._escalate_delay()
                    time.sleep(self._current_delay)
            except Exception as exc:
                last_problem = str(exc)
                self.logger.warning(
                    "[%s] Request error on attempt %d: %s",
                    self.source_name,
                    attempt + 1,
                    exc,
                    exc_info=True,
                )
                time.sleep(
                    self._current_delay * (attempt + 1)
                )
        self._record_failure()
        raise TransientFetchError(
            f"[{self.source_name}] GET {url} failed after "
            f"{self.settings.MAX_RETRIES} attempts: {last_problem}"
        )

    def _get_page(self, url: str) -> str:
        """Fetch an HTML page, falling back to cloudscraper on failure."""
        if self._check_circuit():
            raise TransientFetchError(
                f"[{self.source_name}] circuit open, skipped {url}"
            )
        headers: dict[str, str] = {
            **self.settings.DEFAULT_HEADERS,
            "Referer": self._get_homepage(),
        }
        self._wait()

        # Primary: curl_cffi (browser-impersonating TLS)
        try:
            return self._fetch_get(url, headers).text
        except TransientFetchError as primary_exc:
            self.logger.info(
                "[%s] curl_cffi exhausted (%s), falling back to cloudscraper",
                self.source_name,
                primary_exc,
            )

        # Fallback: cloudscraper (JS challenge solver)
        try:
            _cs: Any = cloudscraper
            scraper: Any = _cs.create_scraper()
            fallback_resp: Any = scraper.get(
                url,
                headers=headers,
                timeout=self._request_timeout,
            )
        except Exception as e:
            self.logger.error(
                "[%s] cloudscraper fallback also failed: %s",
                self.source_name,
                e,
                exc_info=True,
            )
            raise TransientFetchError(
                f"[{self.source_name}] GET {url} failed: {e}"
            ) from e
        if fallback_resp.status_code != 200:
            raise TransientFetchError(
                f"[{self.source_name}] GET {url} failed: "
                f"HTTP {fallback_resp.status_code} via cloudscraper"
            )
        return str(fallback_resp.text)

    @abstractmethod
    def _get_homepage(self) -> str:
        """Return the homepage URL for the Referer header."""
        ...
