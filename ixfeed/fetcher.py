"""
1.0 HTTP Fetcher Module
Fetches feed and sitemap documents with retry logic.

Key features:
- Automatic retry on transient failures (429, 500, 502, 503, 504)
- Exponential backoff between retries
- Configurable timeout and user agent
- Session reuse for connection pooling
- Optional download delay between requests of one run
"""

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
import logging
import time
from typing import Optional, Dict, Any, Tuple

from ixfeed import __version__
from ixfeed.errors import DecodeError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = f"ixfeed/{__version__}"


class Fetcher:
    """
    2.0 Fetcher Class
    Fetches feed/sitemap content with built-in retry logic.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        2.1 Initialize the Fetcher with retry strategy.

        Args:
            config: Configuration dictionary with optional keys:
                - user_agent: Custom user agent string
                - timeout: Request timeout in seconds (default: 30)
                - max_retries: Number of retry attempts (default: 3)
                - download_delay: Delay between requests in seconds (default: 0)
        """
        config = config or {}

        self.user_agent = config.get("user_agent") or DEFAULT_USER_AGENT
        if not isinstance(self.user_agent, str) or not self.user_agent.strip():
            self.user_agent = DEFAULT_USER_AGENT
            logger.warning(f"Invalid user_agent in config. Using default: {self.user_agent}")

        self.timeout = config.get("timeout", 30)
        self.max_retries = config.get("max_retries", 3)
        self.download_delay = float(config.get("download_delay", 0) or 0)

        # 2.1.1 Track requests for delay logic
        self.request_count = 0
        self.last_request_time = 0.0

        self.session = self._create_session_with_retries()

        logger.debug(
            f"Fetcher initialized: "
            f"User-Agent={self.user_agent[:50]}, "
            f"timeout={self.timeout}s, "
            f"delay={self.download_delay}s"
        )

    def _create_session_with_retries(self) -> requests.Session:
        """
        2.2 Create a requests Session with automatic retry logic.

        Retry strategy:
        - Retries on: 429 (rate limit), 500, 502, 503, 504 (server errors)
        - Backoff: 1s, 2s, 4s between retries (exponential)
        - Only safe methods; nothing here ever POSTs

        Returns:
            Configured requests.Session object
        """
        session = requests.Session()

        retry_strategy = Retry(
            total=self.max_retries,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["HEAD", "GET"],
            raise_on_status=False,  # Don't raise, let us handle it
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        session.headers.update({"User-Agent": self.user_agent})

        return session

    def _apply_politeness_delay(self) -> None:
        """2.3 Apply delay between requests of the same run."""
        if self.request_count == 0 or self.download_delay <= 0:
            self.request_count += 1
            self.last_request_time = time.time()
            return

        elapsed = time.time() - self.last_request_time
        wait_time = max(0, self.download_delay - elapsed)

        if wait_time > 0:
            time.sleep(wait_time)

        self.request_count += 1
        self.last_request_time = time.time()

    def fetch(self, url: str, timeout: Optional[int] = None) -> bytes:
        """
        2.4 Fetch the raw body of a feed or sitemap.

        Args:
            url: The URL to fetch
            timeout: Optional override for request timeout

        Returns:
            Response body as bytes

        Raises:
            DecodeError: invalid URL, non-200 status or transport failure
        """
        if not url or not url.startswith(("http://", "https://")):
            raise DecodeError(f"Invalid URL: {url}", url=url)

        self._apply_politeness_delay()

        timeout = timeout or self.timeout

        logger.debug(f"Fetching: {url}")

        try:
            # Retries handled automatically by adapter
            response = self.session.get(url, timeout=timeout)
        except requests.exceptions.Timeout:
            raise DecodeError(f"Timeout fetching {url} after {timeout}s", url=url)
        except requests.exceptions.ConnectionError as e:
            raise DecodeError(f"Connection error fetching {url}: {e}", url=url)
        except requests.exceptions.RequestException as e:
            raise DecodeError(f"Request error fetching {url}: {e}", url=url)

        if response.status_code != 200:
            raise DecodeError(
                f"Failed to fetch {url}: HTTP {response.status_code}", url=url
            )

        logger.debug(
            f"Successfully fetched {url} "
            f"(status={response.status_code}, size={len(response.content):,} bytes)"
        )
        return response.content

    def probe(self, url: str, timeout: int = 15) -> Tuple[Optional[int], str]:
        """
        2.5 Check that a source URL is reachable.

        Returns:
            (status_code, content_type); status_code is None when unreachable
        """
        try:
            response = self.session.get(url, timeout=timeout)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Could not access URL {url}: {e}")
            return None, ""
        return response.status_code, response.headers.get("content-type", "")

    def close(self) -> None:
        self.session.close()
