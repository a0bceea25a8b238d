#!/usr/bin/env python3
"""
AIバックエンド実行器（ResilientRequestExecutor）とリトライの単体テスト

実行: pytest tests/test_executor.py
"""

import asyncio
import json
import os
import sys

import httpx
import pytest

# プロジェクトルートをパスに追加
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.exceptions import NetworkError, NonRetryableError, RetryExhaustedError, UpstreamOverloadedError
from core.executor import ResilientRequestExecutor
from core.retry import is_retryable_message, retry_with_backoff, should_retry

ENDPOINT = "http://backend.test/api/ai"


def run_async(coro):
    """同期テストから async 関数を実行"""
    return asyncio.run(coro)


class RecordingSleep:
    """バックオフの待機時間を記録するだけの sleep"""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def make_executor(handler, sleep=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ResilientRequestExecutor(endpoint=ENDPOINT, client=client, sleep=sleep or RecordingSleep())


# --- 1. リトライポリシー ---

def test_retryable_message_markers():
    assert is_retryable_message("The model is overloaded. Please try again later.")
    assert is_retryable_message("503 Service Unavailable")
    assert not is_retryable_message("Invalid API key")
    assert not is_retryable_message("")


def test_should_retry_only_transient_errors():
    assert should_retry(UpstreamOverloadedError("overloaded"))
    assert should_retry(NetworkError("connection reset"))
    assert not should_retry(NonRetryableError("bad gateway page"))
    assert not should_retry(ValueError("boom"))


def test_retry_with_backoff_doubles_delay_and_stops_at_limit():
    sleep = RecordingSleep()
    calls = []

    async def operation():
        calls.append(1)
        raise UpstreamOverloadedError("overloaded")

    with pytest.raises(UpstreamOverloadedError):
        run_async(retry_with_backoff(operation, max_attempts=3, initial_delay=1.0, sleep=sleep))

    assert len(calls) == 3
    assert sleep.delays == [1.0, 2.0]


def test_retry_with_backoff_returns_first_success():
    sleep = RecordingSleep()
    outcomes = [UpstreamOverloadedError("overloaded"), "ok"]

    async def operation():
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    assert run_async(retry_with_backoff(operation, sleep=sleep)) == "ok"
    assert sleep.delays == [1.0]


def test_retry_with_backoff_rejects_zero_attempts():
    async def operation():
        return None

    with pytest.raises(ValueError):
        run_async(retry_with_backoff(operation, max_attempts=0))


# --- 2. ResilientRequestExecutor ---

def test_success_short_circuits():
    requests = []

    def handler(request):
        requests.append(json.loads(request.content))
        return httpx.Response(200, json={"result": [{"recipeName": "Kimchi Stew"}]})

    sleep = RecordingSleep()
    executor = make_executor(handler, sleep)
    envelope = run_async(executor.execute("getRecipeRecommendations", {"ingredients": ["Kimchi"]}))

    assert envelope == {"result": [{"recipeName": "Kimchi Stew"}]}
    assert len(requests) == 1
    assert requests[0] == {"action": "getRecipeRecommendations", "payload": {"ingredients": ["Kimchi"]}}
    assert sleep.delays == []


def test_overloaded_three_times_exhausts_with_backoff():
    """3回とも overloaded の場合、1.0s → 2.0s の待機後に RetryExhaustedError"""
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(503, json={"error": "The model is overloaded. Please try again later."})

    sleep = RecordingSleep()
    executor = make_executor(handler, sleep)

    with pytest.raises(RetryExhaustedError) as exc_info:
        run_async(executor.execute("getRecipeDetails", {"recipeName": "Bibimbap"}))

    assert len(calls) == 3
    assert sleep.delays == [1.0, 2.0]
    assert exc_info.value.attempts == 3
    assert exc_info.value.status_code == 503
    assert "overloaded" in exc_info.value.message


def test_overloaded_then_success():
    responses = [
        httpx.Response(500, json={"error": "503 UNAVAILABLE"}),
        httpx.Response(200, json={"result": "hello"}),
    ]

    def handler(request):
        return responses.pop(0)

    sleep = RecordingSleep()
    executor = make_executor(handler, sleep)

    assert run_async(executor.execute("chatWithAIChef", {"message": "hi"})) == {"result": "hello"}
    assert sleep.delays == [1.0]


def test_non_json_error_body_is_not_retried():
    """プロキシのHTMLエラーページ等はリトライしない"""
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(502, text="<html>Bad Gateway</html>")

    sleep = RecordingSleep()
    executor = make_executor(handler, sleep)

    with pytest.raises(NonRetryableError) as exc_info:
        run_async(executor.execute("getRecipeRecommendations", {}))

    assert len(calls) == 1
    assert sleep.delays == []
    assert exc_info.value.message == "<html>Bad Gateway</html>"
    assert exc_info.value.status_code == 502


def test_empty_non_json_error_uses_status_message():
    executor = make_executor(lambda request: httpx.Response(504, text=""))

    with pytest.raises(NonRetryableError) as exc_info:
        run_async(executor.execute("getRecipeRecommendations", {}))

    assert exc_info.value.message == "API call failed with status: 504"


def test_json_error_without_marker_is_not_retried():
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(400, json={"error": "Invalid action: cookDinner"})

    executor = make_executor(handler)

    with pytest.raises(NonRetryableError) as exc_info:
        run_async(executor.execute("cookDinner", {}))

    assert len(calls) == 1
    assert exc_info.value.message == "Invalid action: cookDinner"


def test_network_error_is_retried_then_raised():
    calls = []

    def handler(request):
        calls.append(1)
        raise httpx.ConnectError("connection refused", request=request)

    sleep = RecordingSleep()
    executor = make_executor(handler, sleep)

    with pytest.raises(NetworkError):
        run_async(executor.execute("analyzeReceipt", {"base64Image": "abc"}))

    assert len(calls) == 3
    assert sleep.delays == [1.0, 2.0]
