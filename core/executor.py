"""
ResilientRequestExecutor: single logical request to the AI backend.

This component posts ``{action, payload}`` to the backend endpoint, classifies
failures, and delegates retry/backoff to ``core.retry``.
"""

import json
from typing import Any, Dict, Optional

import httpx

from config.constants import (
    AI_BACKEND_URL,
    AI_REQUEST_TIMEOUT,
    BACKOFF_FACTOR,
    INITIAL_BACKOFF_SECONDS,
    MAX_ATTEMPTS,
)
from config.loggers import GenericLogger
from .exceptions import (
    NetworkError,
    NonRetryableError,
    RetryExhaustedError,
    UpstreamOverloadedError,
)
from .retry import SleepFunc, is_retryable_message, retry_with_backoff, should_retry


class ResilientRequestExecutor:
    """Executes AI backend actions with bounded retries."""

    def __init__(
        self,
        endpoint: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        max_attempts: int = MAX_ATTEMPTS,
        initial_delay: float = INITIAL_BACKOFF_SECONDS,
        sleep: Optional[SleepFunc] = None,
        timeout: float = AI_REQUEST_TIMEOUT,
    ):
        self.endpoint = endpoint or AI_BACKEND_URL
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.sleep = sleep
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout
        self.logger = GenericLogger("core", "executor")

    async def execute(self, action: str, payload: Dict[str, Any]) -> Any:
        """
        Execute one logical request against the AI backend.

        Args:
            action: Backend action name (e.g. getRecipeRecommendations)
            payload: JSON-serializable action payload

        Returns:
            The parsed success envelope, normally ``{"result": ...}``

        Raises:
            RetryExhaustedError: upstream stayed overloaded for every attempt
            NonRetryableError: unexpected or malformed upstream response
            NetworkError: transport failure on the final attempt
        """
        self.logger.info(f"🚀 [EXECUTOR] {action} を開始します")

        async def attempt() -> Any:
            return await self._send_once(action, payload)

        try:
            result = await retry_with_backoff(
                attempt,
                policy=should_retry,
                max_attempts=self.max_attempts,
                initial_delay=self.initial_delay,
                backoff_factor=BACKOFF_FACTOR,
                sleep=self.sleep,
                label=action,
            )
        except UpstreamOverloadedError as e:
            self.logger.error(f"❌ [EXECUTOR] {action} failed after {self.max_attempts} attempts: {e.message}")
            raise RetryExhaustedError(
                e.message,
                attempts=self.max_attempts,
                status_code=e.status_code,
                action=action,
            ) from e
        except (NonRetryableError, NetworkError) as e:
            self.logger.error(f"❌ [EXECUTOR] {action} failed: {e.message}")
            raise

        self.logger.info(f"✅ [EXECUTOR] {action} が正常に完了しました")
        return result

    async def _send_once(self, action: str, payload: Dict[str, Any]) -> Any:
        """Single HTTP attempt; every failure is mapped onto the error taxonomy."""
        client = await self._get_client()
        try:
            response = await client.post(
                self.endpoint,
                json={"action": action, "payload": payload},
                headers={"Content-Type": "application/json"},
            )
        except httpx.TransportError as e:
            raise NetworkError(str(e) or type(e).__name__, action=action) from e

        if response.is_success:
            try:
                return response.json()
            except ValueError as e:
                raise NonRetryableError(
                    response.text or f"Malformed response for {action}",
                    status_code=response.status_code,
                    action=action,
                ) from e

        status_message = f"API call failed with status: {response.status_code}"
        error_text = response.text

        try:
            error_data = json.loads(error_text)
        except ValueError:
            # Proxy or timeout pages are not model issues
            raise NonRetryableError(error_text or status_message, status_code=response.status_code, action=action)

        error_message = ""
        if isinstance(error_data, dict):
            error_message = str(error_data.get("error") or "")

        if is_retryable_message(error_message):
            raise UpstreamOverloadedError(error_message, status_code=response.status_code, action=action)

        raise NonRetryableError(error_message or status_message, status_code=response.status_code, action=action)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ResilientRequestExecutor":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
