"""
Upstream client for the chart data endpoint (Google Apps Script JSON API).
"""
import logging
from typing import Any, Optional

import requests
from dotenv import load_dotenv
from tenacity import (
    Retrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from app.errors import UpstreamFetchError
from config.settings import settings

load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("upstream")

RETRY_WAIT = wait_exponential(multiplier=0.5, min=0.5, max=4)


class TransientUpstreamError(UpstreamFetchError):
    """Connection failure, timeout or 5xx; worth another attempt."""


def _get_json(url: str, timeout: float) -> Any:
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        logger.warning(f"Chart data request failed: {e}")
        raise TransientUpstreamError(f"Request to upstream failed: {e}") from e

    if response.status_code >= 500:
        raise TransientUpstreamError(
            f"Upstream returned {response.status_code}", status_code=response.status_code
        )
    if not response.ok:
        raise UpstreamFetchError(
            f"Upstream returned {response.status_code}", status_code=response.status_code
        )

    try:
        return response.json()
    except ValueError as e:
        raise UpstreamFetchError(f"Upstream returned invalid JSON: {e}") from e


def fetch_chart_data(
    url: Optional[str] = None,
    timeout: Optional[float] = None,
    attempts: Optional[int] = None,
) -> Any:
    """
    Fetch the chart data payload.

    Args:
        url: Endpoint (defaults to settings.upstream_url)
        timeout: Per-attempt timeout in seconds
        attempts: Total attempts; only transient failures are retried

    Returns:
        Decoded JSON payload

    Raises:
        UpstreamFetchError: On any failure once attempts are exhausted
    """
    url = url or settings.upstream_url
    timeout = timeout or settings.upstream_timeout_seconds
    attempts = attempts or settings.upstream_retry_attempts

    retryer = Retrying(
        stop=stop_after_attempt(max(1, attempts)),
        wait=RETRY_WAIT,
        retry=retry_if_exception_type(TransientUpstreamError),
        reraise=True,
    )
    logger.info("Fetching fresh chart data from upstream")
    return retryer(_get_json, url, timeout)
