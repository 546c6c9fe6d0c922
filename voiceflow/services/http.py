"""
Resilient HTTP calls.

Every outbound API call goes through the same retry policy: HTTP 429 and
503 responses, and requests that never got a response, are retried with
exponential backoff up to a fixed number of attempts. Any other response
is returned to the caller immediately.
"""

import asyncio
import logging
from dataclasses import dataclass
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, TypeVar

import httpx

from ..exceptions import NetworkError, RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({429, 503})

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass
class RetryPolicy:
    """Bounded retry counter with exponential backoff."""
    max_attempts: int = 3
    base_delay: float = 0.5
    timeout: float = 30.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay cannot be negative, got {self.base_delay}")

    def delay_for(self, attempt: int) -> float:
        """Backoff before retrying after the given zero-based attempt."""
        return self.base_delay * (2 ** attempt)

    def with_timeout(self, timeout: float) -> "RetryPolicy":
        """Copy of this policy with a different per-request timeout."""
        return RetryPolicy(self.max_attempts, self.base_delay, timeout)


async def resilient_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    policy: Optional[RetryPolicy] = None,
    service: str = "API",
    sleep: SleepFunc = asyncio.sleep,
    **kwargs: Any
) -> httpx.Response:
    """
    Send a request, retrying on 429/503 and transport failures.

    Args:
        client: httpx client used to send the request
        method: HTTP method
        url: Request URL
        policy: Retry policy (attempt count, base delay, timeout)
        service: Service name used in raised errors
        sleep: Awaitable sleep function, replaceable in tests
        **kwargs: Passed through to ``client.request``

    Returns:
        The first response whose status is not retryable.

    Raises:
        RetryExhaustedError: If every attempt returned 429 or 503.
        NetworkError: If every attempt failed before a response arrived.
    """
    policy = policy or RetryPolicy()
    last_response: Optional[httpx.Response] = None
    last_error: Optional[Exception] = None

    for attempt in range(policy.max_attempts):
        try:
            response = await client.request(method, url, timeout=policy.timeout, **kwargs)
        except httpx.TransportError as e:
            logger.warning(f"{service} request failed (attempt {attempt + 1}/{policy.max_attempts}): {e}")
            last_error = e
            last_response = None
        else:
            if response.status_code not in RETRYABLE_STATUS_CODES:
                return response
            logger.info(
                f"{service} returned {response.status_code} "
                f"(attempt {attempt + 1}/{policy.max_attempts})"
            )
            last_response = response
            last_error = None

        if attempt < policy.max_attempts - 1:
            await sleep(policy.delay_for(attempt))

    if last_response is not None:
        raise RetryExhaustedError(
            service,
            last_response.status_code,
            policy.max_attempts,
            body=last_response.text
        )
    raise NetworkError(service, last_error)


def is_retryable_sdk_error(error: Exception) -> bool:
    """
    Default classifier for SDK exceptions.

    Status errors from the openai and anthropic SDKs expose ``status_code``.
    Services add their SDK's connection error class on top of this.
    """
    if isinstance(error, httpx.TransportError):
        return True
    return getattr(error, "status_code", None) in RETRYABLE_STATUS_CODES


async def call_with_retries(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: Optional[RetryPolicy] = None,
    is_retryable: Callable[[Exception], bool] = is_retryable_sdk_error,
    service: str = "API",
    sleep: SleepFunc = asyncio.sleep
) -> T:
    """
    Run an SDK call under the same retry policy as ``resilient_request``.

    Args:
        operation: Zero-argument coroutine factory performing one attempt
        policy: Retry policy
        is_retryable: Decides whether a raised exception is worth retrying
        service: Service name for log messages
        sleep: Awaitable sleep function, replaceable in tests

    Returns:
        The operation's result.

    Raises:
        The last exception raised by the operation once attempts run out,
        or the first non-retryable one.
    """
    policy = policy or RetryPolicy()

    for attempt in range(policy.max_attempts):
        try:
            return await operation()
        except Exception as e:
            if not is_retryable(e) or attempt == policy.max_attempts - 1:
                raise
            logger.info(
                f"{service} call failed with retryable error "
                f"(attempt {attempt + 1}/{policy.max_attempts}): {e}"
            )
            await sleep(policy.delay_for(attempt))

    raise RuntimeError("unreachable")


@asynccontextmanager
async def client_session(client: Optional[httpx.AsyncClient] = None) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the given client, or a fresh one that is closed afterwards."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient() as new_client:
        yield new_client
