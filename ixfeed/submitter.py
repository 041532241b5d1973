"""
1.0 Submission Gateway
Sends batches to an IndexNow-compatible endpoint.

- More than one URL: POST https://{endpoint}/indexnow with {host, key, urlList}
- Exactly one URL:   GET  https://{endpoint}/indexnow?url=...&key=...

200 and 202 mean the batch was accepted. Every other status is a failure of
that batch only. Submissions are never retried here: runs are scheduled by the
operator, who retries on 429 or server errors.
"""

import logging
from typing import Dict, Optional, Tuple

import requests

from ixfeed.errors import SubmissionError
from ixfeed.fetcher import DEFAULT_USER_AGENT
from ixfeed.models import Batch, Outcome

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30

# 1.1 Status code -> (label, meaning, how-to-fix hints)
STATUS_HELP: Dict[int, Tuple[str, str, Tuple[str, ...]]] = {
    200: ("200 OK", "Submission successful.", ()),
    202: ("202 Accepted", "Accepted, URL received.", ()),
    400: ("400 Bad Request", "Invalid format or malformed request.", (
        "Check that your feed URLs are valid and properly formatted.",
        "Ensure URLs use https:// or http:// scheme.",
        "Verify your host configuration matches your domain.",
    )),
    401: ("401 Unauthorized", "Invalid or missing API key.", (
        "Verify your API key is correct.",
        "Make sure the key file exists at https://yourdomain.com/{key}.txt",
        "The key file must contain only the key value, nothing else.",
        "Run 'ixfeed --config' to update your API key.",
    )),
    403: ("403 Forbidden", "Key mismatch or invalid host.", (
        "Ensure your API key file is accessible at https://{host}/{key}.txt",
        "Check that the host in your config matches the URLs you're submitting.",
        "Verify the key file contains the exact key value (no extra whitespace).",
        "Run 'ixfeed --show' to check your current configuration.",
    )),
    422: ("422 Unprocessable Entity", "URLs don't belong to the host or key mismatch.", (
        "All URLs must belong to the same host specified in your config.",
        "Check that your feed/sitemap only contains URLs from your domain.",
        "Run 'ixfeed --config' and verify the 'host' setting.",
    )),
    429: ("429 Too Many Requests", "Rate limit exceeded.", (
        "Wait some time before retrying (usually a few minutes to hours).",
        "Consider submitting fewer URLs at once.",
        "IndexNow has rate limits - space out your submissions.",
    )),
}

CONFIG_ERROR_STATUSES = (400, 401, 403, 422)


def describe_status(status: Optional[int]) -> str:
    if status is None:
        return "no response"
    label, meaning, _ = STATUS_HELP.get(status, (str(status), "Unexpected response.", ()))
    return f"{label} - {meaning}"


def log_status(status: Optional[int], context: str) -> None:
    """1.2 Report a gateway response the way an operator needs to read it."""
    message = f"{describe_status(status)} ({context})"
    if status in (200, 202):
        logger.info(message)
        return

    if status == 429:
        logger.warning(message)
    else:
        logger.error(message)

    hints = STATUS_HELP.get(status, ("", "", ()))[2] if status is not None else ()
    if hints:
        logger.error("How to fix:")
        for i, hint in enumerate(hints, start=1):
            logger.error(f"  {i}. {hint}")


def raise_for_outcome(outcome: Outcome) -> None:
    """1.3 Raise SubmissionError unless the batch was acknowledged (200/202)."""
    if outcome.ok:
        return
    batch = outcome.batch
    raise SubmissionError(
        f"Batch {batch.index}/{batch.total} rejected: {outcome.message}",
        status_code=outcome.status,
        batch_index=batch.index,
    )


class Submitter:
    """
    2.0 Submitter Class
    One HTTP request per batch; returns an Outcome instead of raising.
    """

    def __init__(self, timeout: int = DEFAULT_TIMEOUT, user_agent: Optional[str] = None,
                 session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": user_agent or DEFAULT_USER_AGENT})

    def submit(self, batch: Batch, api_key: str, host: str, endpoint: str) -> Outcome:
        """
        2.1 Submit one batch.

        Args:
            batch: URLs to submit (1..max_batch_size)
            api_key: IndexNow key of the site
            host: Site host the URLs belong to
            endpoint: Search engine host, e.g. api.indexnow.org

        Returns:
            Outcome with the HTTP status (None on transport failure)
        """
        submit_url = f"https://{endpoint}/indexnow"
        context = f"batch {batch.index}/{batch.total}, {len(batch)} URL(s)"

        try:
            if len(batch) == 1:
                response = self.session.get(
                    submit_url,
                    params={"url": batch.urls[0], "key": api_key},
                    timeout=self.timeout,
                )
            else:
                payload = {"host": host, "key": api_key, "urlList": list(batch.urls)}
                response = self.session.post(
                    submit_url,
                    json=payload,
                    headers={"Content-Type": "application/json; charset=utf-8"},
                    timeout=self.timeout,
                )
        except requests.exceptions.RequestException as e:
            logger.error(f"Request error submitting {context} to {endpoint}: {e}")
            return Outcome(batch=batch, status=None, accepted_count=0, message=str(e))

        status = response.status_code
        log_status(status, context)
        outcome = Outcome(
            batch=batch,
            status=status,
            accepted_count=len(batch) if status in (200, 202) else 0,
            message=describe_status(status),
        )
        return outcome

    def close(self) -> None:
        self.session.close()
