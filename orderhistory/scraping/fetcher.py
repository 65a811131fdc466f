"""
orderhistory/scraping/fetcher.py

Page fetcher: one `requests.Session` per scrape process, with browser
cookies, a per-request timeout, HTTP status classification and detection
of the site's sign-in page.
"""

from __future__ import annotations

import asyncio
import logging
from http.cookiejar import LoadError, MozillaCookieJar
from pathlib import Path
from typing import Protocol

import requests
from bs4 import BeautifulSoup

from orderhistory.config import ScraperSettings
from orderhistory.logging_utils import log_event
from orderhistory.scraping.errors import (
    FetchFailedError,
    SignInRequiredError,
    TransientFetchError,
)
from orderhistory.scraping.types import RawResponse

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
SIGNIN_PATH_MARKERS = ("/ap/signin", "/ap/mfa", "/ap/cvf")
# Never succeed on retry; every other requests failure is treated as transient.
MALFORMED_URL_ERRORS = (
    requests.exceptions.InvalidURL,
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
)


class Fetcher(Protocol):
    async def fetch(self, url: str) -> RawResponse:
        ...

    def clear_session(self) -> None:
        ...


def is_signin_page(final_url: str, html: str) -> bool:
    """
    True when the response is the site's sign-in (or MFA) page instead of
    the requested content.
    """

    lowered = final_url.lower()
    if any(marker in lowered for marker in SIGNIN_PATH_MARKERS):
        return True
    if "signin" not in html.lower():
        return False
    soup = BeautifulSoup(html, "html.parser")
    return soup.find("form", attrs={"name": "signIn"}) is not None


def classify_response(url: str, response: requests.Response) -> RawResponse:
    """
    Map a completed HTTP response to a RawResponse or a fetch error.
    """

    status_code = response.status_code
    if status_code in RETRYABLE_STATUS_CODES:
        raise TransientFetchError(
            url,
            f"Retryable status={status_code} url={url}",
            status_code=status_code,
        )
    if status_code >= 400:
        raise FetchFailedError(
            url,
            f"Non-retryable status={status_code} url={url}",
            attempts=1,
            status_code=status_code,
        )

    final_url = response.url or url
    text = response.text
    if is_signin_page(final_url, text):
        raise SignInRequiredError(url)
    return RawResponse(url=url, text=text, status_code=status_code, final_url=final_url)


class PageFetcher:
    """
    Blocking `requests` fetches run in worker threads via `asyncio.to_thread`.
    """

    def __init__(
        self,
        *,
        settings: ScraperSettings,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.request_headers = {
            "User-Agent": settings.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8",
        }
        if settings.cookies_path:
            self.load_cookies(settings.cookies_path)

    def load_cookies(self, path: str) -> int:
        """
        Load a Netscape-format cookie file exported from the browser.
        Returns the number of cookies loaded.
        """

        cookie_file = Path(path).expanduser()
        jar = MozillaCookieJar(str(cookie_file))
        try:
            jar.load(ignore_discard=True, ignore_expires=True)
        except (OSError, LoadError) as exc:
            log_event(
                logger,
                logging.WARNING,
                "cookie_load_failed",
                path=str(cookie_file),
                error=str(exc),
            )
            return 0
        for cookie in jar:
            self.session.cookies.set_cookie(cookie)
        log_event(logger, logging.INFO, "cookies_loaded", path=str(cookie_file), count=len(jar))
        return len(jar)

    def clear_session(self) -> None:
        """
        Drop every session cookie, which logs the scraper out of the site.
        """

        self.session.cookies.clear()
        log_event(logger, logging.INFO, "session_cookies_cleared")

    def fetch_sync(self, url: str) -> RawResponse:
        try:
            response = self.session.get(
                url,
                headers=self.request_headers,
                timeout=self.settings.timeout_seconds,
                allow_redirects=True,
            )
        except MALFORMED_URL_ERRORS as exc:
            raise FetchFailedError(url, f"{type(exc).__name__} url={url}: {exc}", attempts=1) from exc
        except requests.RequestException as exc:
            # Timeouts, refused connections and bodies cut off mid-transfer.
            raise TransientFetchError(url, f"{type(exc).__name__} url={url}: {exc}") from exc
        return classify_response(url, response)

    async def fetch(self, url: str) -> RawResponse:
        return await asyncio.to_thread(self.fetch_sync, url)

    def close(self) -> None:
        self.session.close()
