from __future__ import annotations

import json
from typing import Any, Dict, List

import httpx
import pytest

from src.extraction.errors import ErrorKind, ExtractionError
from src.extraction.gemini_transport import (
    RETRY_INFO_TYPE,
    GeminiTransport,
    classify_failure,
    parse_retry_delay,
)
from src.utils.config import GeminiConfig
from src.utils.throttle import RequestThrottler

DAILY_QUOTA_BODY = {
    "error": {
        "code": 429,
        "message": "You exceeded your current quota, please check your plan and billing details.",
        "status": "RESOURCE_EXHAUSTED",
        "details": [
            {
                "@type": "type.googleapis.com/google.rpc.QuotaFailure",
                "violations": [
                    {
                        "quotaMetric": "generativelanguage.googleapis.com/generate_content_free_tier_requests",
                        "quotaId": "GenerateRequestsPerDayPerProjectPerModel-FreeTier",
                        "quotaValue": "20",
                    }
                ],
            },
            {"@type": RETRY_INFO_TYPE, "retryDelay": "41s"},
        ],
    }
}

PER_MINUTE_BODY = {
    "error": {
        "code": 429,
        "message": "Resource has been exhausted (e.g. check quota).",
        "status": "RESOURCE_EXHAUSTED",
        "details": [
            {
                "@type": "type.googleapis.com/google.rpc.QuotaFailure",
                "violations": [
                    {
                        "quotaId": "GenerateRequestsPerMinutePerProjectPerModel-FreeTier",
                        "quotaValue": "5",
                    }
                ],
            },
            {"@type": RETRY_INFO_TYPE, "retryDelay": "7s"},
        ],
    }
}

SUCCESS_BODY = {"candidates": [{"content": {"parts": [{"text": '{"variety": "Basmati"}'}]}}]}


def _no_wait_throttler() -> RequestThrottler:
    return RequestThrottler(0.0)


class _Recorder:
    def __init__(self) -> None:
        self.sleeps: List[float] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


def _transport(responses: List[httpx.Response], recorder: _Recorder, **config: Any):
    requests: List[httpx.Request] = []
    queue = list(responses)

    async def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return queue.pop(0)

    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url="https://example.com/v1beta",
        params={"key": "test-key"},
    )
    cfg = GeminiConfig(api_key="test-key", **config)
    transport = GeminiTransport(cfg, _no_wait_throttler(), client=client, sleep_fn=recorder.sleep)
    return transport, requests


# -----------------------
# classify_failure
# -----------------------
def test_daily_quota_detail_is_fatal() -> None:
    decision = classify_failure(429, json.dumps(DAILY_QUOTA_BODY))

    assert decision.retryable is False
    assert decision.kind is ErrorKind.DAILY_QUOTA_EXCEEDED


def test_flat_quota_detail_with_daily_ceiling_is_fatal() -> None:
    body = {"error": {"message": "quota", "details": [{"quotaValue": "20"}]}}

    decision = classify_failure(429, body)

    assert decision.kind is ErrorKind.DAILY_QUOTA_EXCEEDED


def test_per_minute_limit_is_retryable_with_hint() -> None:
    decision = classify_failure(429, json.dumps(PER_MINUTE_BODY))

    assert decision.retryable is True
    assert decision.wait_hint == 7.0


def test_per_minute_quota_at_daily_ceiling_value_is_retryable() -> None:
    body = {
        "error": {
            "message": "Resource has been exhausted",
            "details": [
                {
                    "violations": [
                        {
                            "quotaId": "GenerateRequestsPerMinutePerProjectPerModel",
                            "quotaValue": "20",
                        }
                    ]
                }
            ],
        }
    }

    decision = classify_failure(429, body)

    assert decision.retryable is True
    assert decision.kind is None


def test_per_day_entry_wins_over_per_minute_entry() -> None:
    body = {
        "error": {
            "message": "quota",
            "details": [
                {"quotaId": "GenerateRequestsPerMinutePerProjectPerModel", "quotaValue": "5"},
                {"quotaId": "GenerateRequestsPerDayPerProjectPerModel", "quotaValue": "250"},
            ],
        }
    }

    assert classify_failure(429, body).kind is ErrorKind.DAILY_QUOTA_EXCEEDED


def test_daily_wording_without_details_is_fatal() -> None:
    body = {"error": {"message": "Daily limit reached for this model."}}

    assert classify_failure(429, body).kind is ErrorKind.DAILY_QUOTA_EXCEEDED


def test_plain_429_is_retryable_without_hint() -> None:
    decision = classify_failure(429, "Too Many Requests")

    assert decision.retryable is True
    assert decision.wait_hint is None


def test_other_status_is_transport_failure() -> None:
    decision = classify_failure(500, '{"error": {"message": "Internal error"}}')

    assert decision.retryable is False
    assert decision.kind is ErrorKind.TRANSPORT_FAILURE
    assert "500" in decision.message


@pytest.mark.parametrize(
    "value,expected",
    [("13s", 13.0), ("1.5s", 1.5), (4, 4.0), ("soon", None), (None, None)],
)
def test_parse_retry_delay(value: Any, expected: Any) -> None:
    assert parse_retry_delay(value) == expected


# -----------------------
# send()
# -----------------------
@pytest.mark.asyncio
async def test_send_returns_body_and_posts_expected_payload() -> None:
    recorder = _Recorder()
    transport, requests = _transport([httpx.Response(200, json=SUCCESS_BODY)], recorder)

    body = await transport.send("PROMPT TEXT")

    assert json.loads(body) == SUCCESS_BODY
    assert len(requests) == 1
    request = requests[0]
    assert request.method == "POST"
    assert request.url.path == "/v1beta/models/gemini-2.5-flash:generateContent"
    assert request.url.params["key"] == "test-key"
    assert json.loads(request.content) == {"contents": [{"parts": [{"text": "PROMPT TEXT"}]}]}
    assert recorder.sleeps == []


@pytest.mark.asyncio
async def test_daily_quota_fails_on_first_attempt_without_retries() -> None:
    recorder = _Recorder()
    transport, requests = _transport([httpx.Response(429, json=DAILY_QUOTA_BODY)], recorder)

    with pytest.raises(ExtractionError) as excinfo:
        await transport.send("prompt")

    assert excinfo.value.kind is ErrorKind.DAILY_QUOTA_EXCEEDED
    assert excinfo.value.status_code == 429
    assert len(requests) == 1
    assert recorder.sleeps == []


@pytest.mark.asyncio
async def test_per_minute_limit_then_success_sleeps_once() -> None:
    recorder = _Recorder()
    no_hint = {"error": {"code": 429, "message": "Resource has been exhausted"}}
    transport, requests = _transport(
        [httpx.Response(429, json=no_hint), httpx.Response(200, json=SUCCESS_BODY)],
        recorder,
    )

    body = await transport.send("prompt")

    assert json.loads(body) == SUCCESS_BODY
    assert len(requests) == 2
    assert recorder.sleeps == [2.0]


@pytest.mark.asyncio
async def test_server_retry_hint_overrides_backoff() -> None:
    recorder = _Recorder()
    transport, _ = _transport(
        [httpx.Response(429, json=PER_MINUTE_BODY), httpx.Response(200, json=SUCCESS_BODY)],
        recorder,
    )

    await transport.send("prompt")

    assert recorder.sleeps == [7.0]


@pytest.mark.asyncio
async def test_rate_limit_exhausts_attempts() -> None:
    recorder = _Recorder()
    limited = {"error": {"code": 429, "message": "Resource has been exhausted"}}
    transport, requests = _transport(
        [httpx.Response(429, json=limited) for _ in range(3)], recorder, max_attempts=3
    )

    with pytest.raises(ExtractionError) as excinfo:
        await transport.send("prompt")

    assert excinfo.value.kind is ErrorKind.RATE_LIMIT_EXCEEDED_AFTER_RETRIES
    assert len(requests) == 3
    assert recorder.sleeps == [2.0, 4.0]


@pytest.mark.asyncio
async def test_server_error_is_not_retried() -> None:
    recorder = _Recorder()
    transport, requests = _transport(
        [httpx.Response(503, text="upstream unavailable")], recorder
    )

    with pytest.raises(ExtractionError) as excinfo:
        await transport.send("prompt")

    assert excinfo.value.kind is ErrorKind.TRANSPORT_FAILURE
    assert excinfo.value.status_code == 503
    assert excinfo.value.body == "upstream unavailable"
    assert len(requests) == 1


@pytest.mark.asyncio
async def test_network_failure_is_surfaced() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="https://example.com/v1beta"
    )
    transport = GeminiTransport(
        GeminiConfig(api_key="k"), _no_wait_throttler(), client=client
    )

    with pytest.raises(ExtractionError) as excinfo:
        await transport.send("prompt")

    assert excinfo.value.kind is ErrorKind.NETWORK_FAILURE


@pytest.mark.asyncio
async def test_retries_reacquire_throttle_slot() -> None:
    acquisitions: Dict[str, int] = {"count": 0}

    class CountingThrottler(RequestThrottler):
        async def acquire(self) -> None:
            acquisitions["count"] += 1
            await super().acquire()

    recorder = _Recorder()
    limited = {"error": {"code": 429, "message": "Resource has been exhausted"}}
    responses = [httpx.Response(429, json=limited), httpx.Response(200, json=SUCCESS_BODY)]

    async def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="https://example.com/v1beta"
    )
    transport = GeminiTransport(
        GeminiConfig(api_key="k"), CountingThrottler(0.0), client=client, sleep_fn=recorder.sleep
    )

    await transport.send("prompt")

    assert acquisitions["count"] == 2
