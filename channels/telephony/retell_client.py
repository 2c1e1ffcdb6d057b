"""
Retell Voice Client — outbound phone calls driven by a Retell agent.

Call flow:
1. create_call() → Retell dials the contact from our number with our agent
2. Lifecycle webhooks (call_started, call_ended, call_analyzed) arrive at
   the configured webhook path
3. get_call() returns call detail; the transcript appears some time after
   the call ends, once Retell has finished processing it

API Docs: https://docs.retellai.com/api-references/create-phone-call
"""
from __future__ import annotations

from typing import Any, Optional

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.errors import ProviderError
from models.schemas import CallDetail

logger = structlog.get_logger()


class RetellClient:
    """Retell REST API client for call creation and lookup."""

    BASE_URL = "https://api.retellai.com"

    def __init__(
        self,
        api_key: str,
        base_url: str = BASE_URL,
        timeout_s: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=httpx.Timeout(self.timeout_s, connect=min(self.timeout_s, 10.0)),
            )
        return self._client

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        client = await self._get_client()
        resp = await client.request(method, path, **kwargs)
        if resp.status_code >= 400:
            logger.error(
                "retell_api_error",
                status=resp.status_code,
                body=resp.text[:500],
                path=path,
            )
            raise ProviderError(
                f"Retell {method} {path} failed: HTTP {resp.status_code}",
                status_code=resp.status_code,
                retryable=resp.status_code >= 500,
            )
        return resp.json()

    # GETs are idempotent, so a dropped connection gets one more try.
    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(min=0.5, max=2),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _get(self, path: str) -> dict[str, Any]:
        return await self._request("GET", path)

    # ── Call Management ─────────────────────────────────────

    async def create_call(
        self,
        from_number: str,
        to_number: str,
        agent_id: str,
        metadata: dict[str, Any] = None,
    ) -> str:
        """
        Place an outbound call. Never retried: a retry could dial twice.

        Returns:
            the Retell call_id
        """
        payload = {
            "from_number": from_number,
            "to_number": to_number,
            "override_agent_id": agent_id,
            "metadata": metadata or {},
        }
        logger.info("retell_create_call", to=to_number, agent_id=agent_id)
        try:
            result = await self._request("POST", "/v2/create-phone-call", json=payload)
        except httpx.HTTPError as e:
            raise ProviderError(f"Retell create-phone-call failed: {e}") from e

        call_id = result.get("call_id")
        if not call_id:
            raise ProviderError("Retell create-phone-call returned no call_id")
        return call_id

    async def get_call(self, call_id: str) -> CallDetail:
        """Fetch call detail, including the transcript once it is ready."""
        try:
            result = await self._get(f"/v2/get-call/{call_id}")
        except httpx.HTTPError as e:
            raise ProviderError(f"Retell get-call failed for {call_id}: {e}") from e
        return CallDetail.model_validate(result)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
