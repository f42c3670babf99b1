"""
HTTP request execution for the extract endpoint.

A call moves through compose -> send -> (succeeded | retrying | failed).
Only rate limiting (HTTP 429) is retried, with exponential backoff and
jitter; every other failure is classified into a `ParsefyError` and raised.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
)

from parsefy.errors import APIError, ParsefyError
from parsefy.files import NormalizedFile

logger = logging.getLogger(__name__)

R = TypeVar("R")

DEFAULT_MAX_RETRIES = 3
BASE_RETRY_DELAY = 1.0  # seconds
MAX_RETRY_DELAY = 30.0  # seconds
JITTER_RATIO = 0.1


@dataclass(frozen=True)
class MultipartPayload:
    """Form fields and file part of an extract request."""

    files: dict[str, tuple[str, bytes, str]]
    data: dict[str, str] = field(default_factory=dict)


def compose_payload(
    file: NormalizedFile,
    schema: dict[str, Any],
    *,
    confidence_threshold: float,
    enable_verification: bool = False,
) -> MultipartPayload:
    """Build the multipart body for ``POST /v1/extract``."""
    data = {
        "output_schema": json.dumps(schema),
        "confidence_threshold": str(confidence_threshold),
    }
    if enable_verification:
        data["enable_verification"] = "true"
    return MultipartPayload(files={"file": file.as_multipart()}, data=data)


def backoff_delay(
    attempt: int,
    *,
    base: float = BASE_RETRY_DELAY,
    cap: float = MAX_RETRY_DELAY,
    rand: Callable[[], float] = random.random,
) -> float:
    """
    Seconds to wait before retry number `attempt` (0-indexed).

    Exponential in the attempt number, plus up to 10% random jitter,
    capped at `cap`.
    """
    exponential = base * 2**attempt
    jitter = rand() * JITTER_RATIO * exponential
    return min(exponential + jitter, cap)


def _is_rate_limited(exc: BaseException) -> bool:
    return isinstance(exc, APIError) and exc.is_rate_limited


def decode_error_body(response: httpx.Response) -> Any:
    """
    Best-effort decoding of an error response body.

    Tries JSON, then plain text, then the status line. Never raises.
    """
    try:
        return response.json()
    except ValueError:
        pass

    try:
        text = response.text
    except (UnicodeDecodeError, httpx.HTTPError):
        text = ""
    if text.strip():
        return text

    return f"{response.status_code} {response.reason_phrase}".strip()


def _error_message(body: Any) -> str | None:
    if isinstance(body, str):
        return body
    if not isinstance(body, dict):
        return None

    for key in ("message", "detail", "error"):
        value = body.get(key)
        if isinstance(value, str) and value:
            return value
        if isinstance(value, dict) and isinstance(value.get("message"), str):
            return value["message"]
    return None


class RequestExecutor:
    """
    Sends extract requests and applies the retry policy.

    Args:
        url: Full URL of the extract endpoint.
        timeout: Per-attempt timeout in seconds.
        max_retries: Retries allowed after the first attempt (429 only).
        sleep: Blocking sleep used between sync retries.
        async_sleep: Sleep coroutine used between async retries.
        rand: Source of jitter in [0, 1).
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float,
        max_retries: int = DEFAULT_MAX_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
        async_sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
    ):
        self.url = url
        self.timeout = timeout
        self.max_retries = max_retries
        self._sleep = sleep
        self._async_sleep = async_sleep
        self._rand = rand

    def _wait(self, retry_state: RetryCallState) -> float:
        return backoff_delay(retry_state.attempt_number - 1, rand=self._rand)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "Rate limited by Parsefy API, retrying in %.2fs (retry %d/%d)",
            retry_state.next_action.sleep,  # type: ignore[union-attr]
            retry_state.attempt_number,
            self.max_retries,
        )

    def _retry_options(self) -> dict[str, Any]:
        return {
            "retry": retry_if_exception(_is_rate_limited),
            "stop": stop_after_attempt(self.max_retries + 1),
            "wait": self._wait,
            "before_sleep": self._log_retry,
            "reraise": True,
        }

    def execute(
        self,
        client: httpx.Client,
        payload: MultipartPayload,
        transform: Callable[[dict[str, Any]], R],
    ) -> R:
        """Send `payload`, retrying on 429, and return `transform(body)`."""
        retrying = Retrying(sleep=self._sleep, **self._retry_options())
        response = retrying(self._send, client, payload)
        return self._decode(response, transform)

    async def execute_async(
        self,
        client: httpx.AsyncClient,
        payload: MultipartPayload,
        transform: Callable[[dict[str, Any]], R],
    ) -> R:
        """Async version of `execute`."""
        retrying = AsyncRetrying(sleep=self._async_sleep, **self._retry_options())
        response = await retrying(self._send_async, client, payload)
        return self._decode(response, transform)

    def _send(self, client: httpx.Client, payload: MultipartPayload) -> httpx.Response:
        logger.debug("POST %s", self.url)
        # httpx timeouts are per phase; the deadline bounds the whole attempt.
        deadline = time.monotonic() + self.timeout
        try:
            with client.stream(
                "POST",
                self.url,
                files=payload.files,
                data=payload.data,
                timeout=self.timeout,
            ) as streamed:
                chunks = []
                for chunk in streamed.iter_raw():
                    if time.monotonic() > deadline:
                        raise self._timeout_error()
                    chunks.append(chunk)
                if time.monotonic() > deadline:
                    raise self._timeout_error()
                response = httpx.Response(
                    streamed.status_code,
                    headers=streamed.headers,
                    content=b"".join(chunks),
                    request=streamed.request,
                )
        except httpx.HTTPError as exc:
            raise self._transport_error(exc) from exc
        return self._check_status(response)

    async def _send_async(
        self,
        client: httpx.AsyncClient,
        payload: MultipartPayload,
    ) -> httpx.Response:
        logger.debug("POST %s", self.url)
        try:
            # httpx timeouts are per phase; wait_for bounds the whole attempt.
            response = await asyncio.wait_for(
                client.post(
                    self.url,
                    files=payload.files,
                    data=payload.data,
                    timeout=self.timeout,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise self._timeout_error() from exc
        except httpx.HTTPError as exc:
            raise self._transport_error(exc) from exc
        return self._check_status(response)

    def _timeout_error(self) -> ParsefyError:
        logger.warning("Request to %s timed out after %ss", self.url, self.timeout)
        return ParsefyError(f"Request timed out after {self.timeout}s", "TIMEOUT")

    def _transport_error(self, exc: httpx.HTTPError) -> ParsefyError:
        if isinstance(exc, httpx.TimeoutException):
            return self._timeout_error()
        if isinstance(exc, httpx.TransportError):
            logger.warning("Could not reach %s: %s", self.url, exc)
            return ParsefyError(
                f"Network error: Unable to connect to the Parsefy API ({exc})",
                "NETWORK_ERROR",
            )
        return ParsefyError(f"Unexpected error: {exc}", "UNKNOWN_ERROR")

    def _check_status(self, response: httpx.Response) -> httpx.Response:
        logger.debug("Parsefy API responded with status %d", response.status_code)
        if response.is_success:
            return response

        body = decode_error_body(response)
        message = f"API request failed with status {response.status_code}"
        detail = _error_message(body)
        if detail:
            message = f"{message}: {detail}"

        raise APIError(message=message, status_code=response.status_code, response=body)

    def _decode(
        self,
        response: httpx.Response,
        transform: Callable[[dict[str, Any]], R],
    ) -> R:
        try:
            body = response.json()
        except ValueError as exc:
            raise ParsefyError(
                f"Could not decode API response as JSON: {exc}", "PARSE_ERROR"
            ) from exc

        if not isinstance(body, dict):
            raise ParsefyError(
                f"Expected a JSON object from the API, got {type(body).__name__}",
                "TRANSFORM_ERROR",
            )

        try:
            return transform(body)
        except (KeyError, TypeError, ValueError) as exc:
            raise ParsefyError(
                f"API response does not match the expected format: {exc}",
                "TRANSFORM_ERROR",
            ) from exc
