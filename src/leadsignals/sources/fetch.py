"""HTTP fetching of JSON feeds with retries."""

import time
from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from leadsignals import __version__

logger = structlog.get_logger()

USER_AGENT = f"LeadSignalsBot/{__version__} (+https://github.com/lead-signals/lead-signals)"


@dataclass(frozen=True)
class JsonFetchResult:
    """Result of fetching a JSON document."""

    url: str
    status_code: int
    data: Any | None
    error: str | None = None
    elapsed_ms: int | None = None


def _is_retryable_http_status(status_code: int) -> bool:
    return status_code in {408, 425, 429, 500, 502, 503, 504}


def _should_retry(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return _is_retryable_http_status(exc.response.status_code)
    return False


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(min=1, max=8),
    retry=retry_if_exception(_should_retry),
    reraise=True,
)
def _get(
    url: str,
    params: dict[str, Any] | None,
    headers: dict[str, str],
    timeout_seconds: float,
    transport: httpx.BaseTransport | None,
) -> tuple[httpx.Response, int]:
    """GET ``url`` and return the response with its wall-clock duration in milliseconds."""
    with httpx.Client(timeout=timeout_seconds, follow_redirects=True, headers=headers, transport=transport) as client:
        started = time.monotonic()
        response = client.get(url, params=params)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        if _is_retryable_http_status(response.status_code):
            logger.warning("Retryable HTTP error", url=url, status=response.status_code)
            response.raise_for_status()
        return response, elapsed_ms


def fetch_json(
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 20.0,
    transport: httpx.BaseTransport | None = None,
) -> JsonFetchResult:
    """GET a JSON document. Never raises; failures are reported in ``error``."""
    request_headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
    if headers:
        request_headers.update(headers)

    try:
        response, elapsed_ms = _get(url, params, request_headers, timeout_seconds, transport)
    except httpx.HTTPStatusError as e:
        status_code = e.response.status_code
        logger.error("HTTP error after retries", url=url, status=status_code)
        return JsonFetchResult(url=url, status_code=status_code, data=None, error=f"HTTP {status_code}")
    except httpx.HTTPError as e:
        logger.error("Request error", url=url, error=str(e))
        return JsonFetchResult(url=url, status_code=0, data=None, error=str(e) or e.__class__.__name__)

    if response.status_code >= 400:
        logger.warning("HTTP error (non-retryable)", url=url, status=response.status_code)
        return JsonFetchResult(
            url=str(response.url),
            status_code=response.status_code,
            data=None,
            error=f"HTTP {response.status_code}",
            elapsed_ms=elapsed_ms,
        )

    try:
        data = response.json()
    except ValueError as e:
        logger.warning("Invalid JSON", url=url, error=str(e))
        return JsonFetchResult(
            url=str(response.url),
            status_code=response.status_code,
            data=None,
            error=f"Invalid JSON: {e}",
            elapsed_ms=elapsed_ms,
        )

    return JsonFetchResult(url=str(response.url), status_code=response.status_code, data=data, elapsed_ms=elapsed_ms)
