"""Shared httpx transport for the remote collaborators.

Each client owns a pair of exceptions: a retryable "unavailable" one
(429, 5xx, connection errors, read timeouts) and a non-retryable "error"
one. This module maps transport outcomes onto that pair and wraps a send
in tenacity retry with exponential backoff.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_with_retry(
    send: Callable[[], Awaitable[T]],
    *,
    unavailable: type[Exception],
    attempts: int,
    delay: float,
    backoff: float,
    label: str,
) -> T:
    """Retry ``send`` while it raises ``unavailable``; re-raise the last failure."""

    @retry(
        retry=retry_if_exception_type(unavailable),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(
            multiplier=delay,
            exp_base=backoff,
            max=20,
        ),
        reraise=True,
        before_sleep=lambda state: logger.warning(
            "%s unavailable, retrying in %.1fs (attempt %d/%d)",
            label,
            state.next_action.sleep,  # type: ignore[union-attr]
            state.attempt_number,
            attempts,
        ),
    )
    async def _do_send() -> T:
        return await send()

    return await _do_send()


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    unavailable: type[Exception],
    error: type[Exception],
    label: str,
    conflict_ok: bool = False,
    **kwargs: Any,
) -> Any:
    """POST once and return the decoded JSON body of a 200 response.

    With ``conflict_ok`` a 409 returns None: a create retried after the
    first attempt already landed.
    """
    try:
        resp = await client.post(url, **kwargs)
    except (httpx.ConnectError, httpx.ConnectTimeout) as e:
        logger.warning("%s connection failed: %s", label, e)
        raise unavailable(f"Cannot connect to {label}: {e}") from e
    except httpx.ReadTimeout as e:
        logger.warning("%s read timeout: %s", label, e)
        raise unavailable(f"{label} read timeout: {e}") from e
    except httpx.HTTPError as e:
        logger.error("%s HTTP error: %s", label, e)
        raise error(f"{label} HTTP error: {e}") from e

    if resp.status_code == 429 or resp.status_code >= 500:
        detail = error_detail(resp)
        logger.warning("%s returned %d: %s", label, resp.status_code, detail)
        raise unavailable(detail)

    if resp.status_code == 409 and conflict_ok:
        logger.info("%s reported the document already exists", label)
        return None

    if resp.status_code != 200:
        detail = error_detail(resp)
        logger.error("%s error %d: %s", label, resp.status_code, detail)
        raise error(detail)

    try:
        return resp.json()
    except ValueError as e:
        logger.error("%s returned a non-JSON body", label)
        raise error(f"{label} returned a non-JSON body") from e


def error_detail(resp: httpx.Response) -> str:
    """Pull the provider message out of an ``{"error": {"message": ...}}`` body."""
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and isinstance(error.get("message"), str) and error["message"]:
        return error["message"]
    return f"HTTP {resp.status_code}"
