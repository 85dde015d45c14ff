"""HTTP executor: runs a template with bounded retries and exponential backoff."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

import httpx

from cronx.config.constants import BODYLESS_METHODS, DEFAULT_MAX_BODY_CHARS
from cronx.scheduler.models import (
    ApiKeyAuth,
    BasicAuth,
    BearerAuth,
    ExecutionResult,
    HttpTemplate,
    NoAuth,
)

logger = logging.getLogger("cronx.scheduler.executor")

Sleep = Callable[[float], Awaitable[None]]


def backoff_delay(attempt_index: int) -> float:
    """Seconds to wait after failed attempt *attempt_index* (0-based)."""
    return float(2**attempt_index)


def build_request_kwargs(template: HttpTemplate) -> dict:
    """Translate a template into keyword arguments for ``AsyncClient.request``."""
    headers = dict(template.headers)
    params: dict[str, str] = {}
    auth: httpx.BasicAuth | None = None

    match template.auth:
        case NoAuth():
            pass
        case BearerAuth(token=token):
            headers["Authorization"] = f"Bearer {token}"
        case BasicAuth(username=username, password=password):
            auth = httpx.BasicAuth(username, password)
        case ApiKeyAuth(location="header", key=key, value=value):
            headers[key] = value
        case ApiKeyAuth(location="query", key=key, value=value):
            params[key] = value

    kwargs: dict = {
        "method": template.method,
        "url": template.url,
        "headers": headers,
    }
    if params:
        kwargs["params"] = params
    if auth is not None:
        kwargs["auth"] = auth
    if template.body is not None and template.method not in BODYLESS_METHODS:
        kwargs["content"] = template.body
    return kwargs


class HttpExecutor:
    """Sends a template's request and classifies the response.

    Never raises for network problems: every outcome comes back as an
    ``ExecutionResult`` so one broken target cannot disturb the scheduler.
    """

    def __init__(
        self,
        max_body_chars: int = DEFAULT_MAX_BODY_CHARS,
        sleep: Sleep | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._max_body_chars = max_body_chars
        self._sleep = sleep or asyncio.sleep
        self._transport = transport

    async def execute(self, template: HttpTemplate, max_retries: int) -> ExecutionResult:
        """Run *template*, retrying up to *max_retries* extra times on failure."""
        max_retries = max(0, max_retries)
        result = ExecutionResult(success=False)

        for attempt in range(max_retries + 1):
            result = await self._attempt(template)
            result.attempts = attempt + 1
            if result.success:
                break

            if attempt < max_retries:
                delay = backoff_delay(attempt)
                logger.warning(
                    "Request for template %s failed (status=%s, error=%s), "
                    "retry %d/%d in %.0fs",
                    template.id,
                    result.status_code,
                    result.error,
                    attempt + 1,
                    max_retries,
                    delay,
                )
                await self._sleep(delay)

        return result

    async def _attempt(self, template: HttpTemplate) -> ExecutionResult:
        """One network round trip."""
        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(template.timeout_seconds),
                follow_redirects=template.follow_redirects,
                verify=template.validate_ssl,
                transport=self._transport,
            ) as client:
                response = await client.request(**build_request_kwargs(template))
        except httpx.TimeoutException as exc:
            detail = str(exc)
            error = f"Request timed out after {template.timeout_seconds}s"
            return ExecutionResult(
                success=False,
                duration_ms=_elapsed_ms(started),
                error=f"{error}: {detail}" if detail else error,
                timed_out=True,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            return ExecutionResult(
                success=False,
                duration_ms=_elapsed_ms(started),
                error=str(exc) or exc.__class__.__name__,
            )
        except Exception as exc:
            logger.exception("Unexpected error requesting %s", template.url)
            return ExecutionResult(
                success=False,
                duration_ms=_elapsed_ms(started),
                error=f"{exc.__class__.__name__}: {exc}",
            )

        expected = template.expected_status_codes or [200]
        return ExecutionResult(
            success=response.status_code in expected,
            duration_ms=_elapsed_ms(started),
            status_code=response.status_code,
            status_text=response.reason_phrase,
            body=self._snapshot_body(response),
            headers=dict(response.headers),
        )

    def _snapshot_body(self, response: httpx.Response) -> str:
        text = response.text
        if len(text) > self._max_body_chars:
            return text[: self._max_body_chars]
        return text


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
