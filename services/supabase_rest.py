#!/usr/bin/env python3
"""
SupabaseRestClient - PostgREST 直接呼び出しクライアント

Uniform ``request`` primitive over ``{SUPABASE_URL}/rest/v1``. Non-2xx answers
raise ``RemoteRequestError``; an unconfigured client turns every call into a
no-op that warns once.
"""

import json
from typing import Any, Dict, Optional

import httpx

from config.constants import (
    PREFER_MERGE_DUPLICATES,
    PREFER_RETURN_REPRESENTATION,
    SUPABASE_ANON_KEY,
    SUPABASE_REQUEST_TIMEOUT,
    SUPABASE_URL,
)
from config.loggers import GenericLogger
from core.exceptions import RemoteRequestError, RemoteUnavailableError


class SupabaseRestClient:
    """Supabase REST (PostgREST) 呼び出しの共通処理"""

    def __init__(
        self,
        url: Optional[str] = None,
        anon_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = SUPABASE_REQUEST_TIMEOUT,
    ):
        self.url = (SUPABASE_URL if url is None else url).rstrip("/")
        self.anon_key = SUPABASE_ANON_KEY if anon_key is None else anon_key
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._warned_unconfigured = False
        self.logger = GenericLogger("service", "supabase_rest")

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.anon_key)

    @property
    def rest_url(self) -> str:
        return f"{self.url}/rest/v1" if self.url else ""

    def _headers(self, method: str, merge_duplicates: bool) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.anon_key}",
        }
        directives = []
        if merge_duplicates:
            directives.append(PREFER_MERGE_DUPLICATES)
        if method in ("POST", "PATCH"):
            directives.append(PREFER_RETURN_REPRESENTATION)
        if directives:
            headers["Prefer"] = ",".join(directives)
        return headers

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        merge_duplicates: bool = False,
    ) -> Any:
        """
        Supabase REST リクエストを実行

        Args:
            path: Resource path with query string, e.g. ``/user_ingredients?user_id=eq.42``
            method: HTTP method
            body: JSON-serializable request body
            merge_duplicates: Upsert with merge-by-unique-key semantics

        Returns:
            Parsed JSON body, or None for an empty body or an unconfigured client

        Raises:
            RemoteRequestError: non-2xx response
            RemoteUnavailableError: transport failure
        """
        method = method.upper()

        if not self.is_configured:
            if not self._warned_unconfigured:
                self.logger.warning("⚠️ [SUPABASE] SUPABASE_URL / SUPABASE_ANON_KEY are not set; remote sync is disabled")
                self._warned_unconfigured = True
            return None

        url = f"{self.rest_url}{path}"
        self.logger.debug(f"🔍 [SUPABASE] {method} {path}")

        client = await self._get_client()
        try:
            response = await client.request(
                method,
                url,
                headers=self._headers(method, merge_duplicates),
                content=json.dumps(body) if body is not None else None,
            )
        except httpx.TransportError as e:
            self.logger.error(f"❌ [SUPABASE] {method} {path} に接続できませんでした: {e}")
            raise RemoteUnavailableError(f"Supabase unreachable: {e}") from e

        text = response.text
        if not response.is_success:
            self.logger.error(f"❌ [SUPABASE] {method} {path} failed: {response.status_code} - {text}")
            raise RemoteRequestError(response.status_code, text or response.reason_phrase, path=path)

        if not text:
            return None
        return json.loads(text)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
