"""Tests for the shared retry policy."""

import httpx
import pytest

from conftest import FakeStatusError, RecordingSleep, mock_client
from voiceflow.exceptions import NetworkError, RetryExhaustedError
from voiceflow.services.http import (
    RetryPolicy,
    call_with_retries,
    is_retryable_sdk_error,
    resilient_request,
)


def scripted(*outcomes):
    """Handler answering each request with the next status code or exception."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        outcome = outcomes[len(calls)]
        calls.append(request)
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, text=f"status {outcome}")

    return handler, calls


class TestRetryPolicy:

    def test_exponential_delays(self):
        policy = RetryPolicy()
        assert [policy.delay_for(a) for a in range(3)] == [0.5, 1.0, 2.0]

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_with_timeout_keeps_attempts(self):
        policy = RetryPolicy(max_attempts=5, base_delay=0.1).with_timeout(99.0)
        assert (policy.max_attempts, policy.base_delay, policy.timeout) == (5, 0.1, 99.0)


@pytest.mark.asyncio
class TestResilientRequest:

    async def test_success_on_first_attempt(self):
        handler, calls = scripted(200)
        sleep = RecordingSleep()
        async with mock_client(handler) as client:
            response = await resilient_request(client, "GET", "https://api.test/x", sleep=sleep)
        assert response.status_code == 200
        assert len(calls) == 1
        assert sleep.delays == []

    async def test_retries_429_then_succeeds(self):
        handler, calls = scripted(429, 503, 200)
        sleep = RecordingSleep()
        async with mock_client(handler) as client:
            response = await resilient_request(client, "POST", "https://api.test/x", sleep=sleep, json={"a": 1})
        assert response.status_code == 200
        assert len(calls) == 3
        assert sleep.delays == [0.5, 1.0]

    async def test_exhausted_status_raises_without_final_sleep(self):
        handler, calls = scripted(503, 503, 503)
        sleep = RecordingSleep()
        async with mock_client(handler) as client:
            with pytest.raises(RetryExhaustedError) as exc_info:
                await resilient_request(client, "GET", "https://api.test/x", service="Demo", sleep=sleep)
        assert len(calls) == 3
        assert sleep.delays == [0.5, 1.0]
        assert exc_info.value.status_code == 503
        assert exc_info.value.attempts == 3
        assert exc_info.value.service == "Demo"
        assert "503" in exc_info.value.message

    async def test_non_retryable_status_returned_immediately(self):
        handler, calls = scripted(500)
        sleep = RecordingSleep()
        async with mock_client(handler) as client:
            response = await resilient_request(client, "GET", "https://api.test/x", sleep=sleep)
        assert response.status_code == 500
        assert len(calls) == 1
        assert sleep.delays == []

    async def test_transport_error_is_retried(self):
        handler, calls = scripted(httpx.ConnectError("refused"), 200)
        sleep = RecordingSleep()
        async with mock_client(handler) as client:
            response = await resilient_request(client, "GET", "https://api.test/x", sleep=sleep)
        assert response.status_code == 200
        assert sleep.delays == [0.5]

    async def test_transport_errors_exhausted_raise_network_error(self):
        handler, calls = scripted(*[httpx.ReadTimeout("slow")] * 3)
        sleep = RecordingSleep()
        async with mock_client(handler) as client:
            with pytest.raises(NetworkError) as exc_info:
                await resilient_request(client, "GET", "https://api.test/x", sleep=sleep)
        assert len(calls) == 3
        assert isinstance(exc_info.value.cause, httpx.ReadTimeout)

    async def test_last_failure_decides_error_type(self):
        handler, calls = scripted(429, 429, httpx.ConnectError("down"))
        async with mock_client(handler) as client:
            with pytest.raises(NetworkError):
                await resilient_request(client, "GET", "https://api.test/x", sleep=RecordingSleep())

    async def test_custom_attempt_count(self):
        handler, calls = scripted(429, 429, 429, 429, 200)
        sleep = RecordingSleep()
        policy = RetryPolicy(max_attempts=5, base_delay=0.1)
        async with mock_client(handler) as client:
            response = await resilient_request(client, "GET", "https://api.test/x", policy=policy, sleep=sleep)
        assert response.status_code == 200
        assert sleep.delays == pytest.approx([0.1, 0.2, 0.4, 0.8])


class TestSdkErrorClassification:

    def test_retryable_statuses(self):
        assert is_retryable_sdk_error(FakeStatusError(429))
        assert is_retryable_sdk_error(FakeStatusError(503))
        assert not is_retryable_sdk_error(FakeStatusError(401))

    def test_transport_errors(self):
        assert is_retryable_sdk_error(httpx.ConnectTimeout("slow"))
        assert not is_retryable_sdk_error(ValueError("bad"))


@pytest.mark.asyncio
class TestCallWithRetries:

    async def test_retries_until_success(self):
        outcomes = [FakeStatusError(429), FakeStatusError(503), "ok"]
        sleep = RecordingSleep()

        async def operation():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        assert await call_with_retries(operation, sleep=sleep) == "ok"
        assert sleep.delays == [0.5, 1.0]

    async def test_non_retryable_raised_at_once(self):
        sleep = RecordingSleep()
        calls = []

        async def operation():
            calls.append(1)
            raise FakeStatusError(400)

        with pytest.raises(FakeStatusError):
            await call_with_retries(operation, sleep=sleep)
        assert len(calls) == 1
        assert sleep.delays == []

    async def test_reraises_last_error_when_exhausted(self):
        sleep = RecordingSleep()
        errors = [FakeStatusError(429), FakeStatusError(429), FakeStatusError(503)]

        async def operation():
            raise errors.pop(0)

        with pytest.raises(FakeStatusError) as exc_info:
            await call_with_retries(operation, sleep=sleep)
        assert exc_info.value.status_code == 503
        assert sleep.delays == [0.5, 1.0]
