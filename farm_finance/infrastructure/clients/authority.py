"""Authority API HTTP client used by observers to proxy commands and fetch state"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from farm_finance.config import settings
from farm_finance.domain.exceptions import AuthorityAPIError
from farm_finance.infrastructure.observability.metrics import state_fetch_failures_counter


class AuthorityClient:
    """
    Client for the authoritative finance service.

    Observers never mutate local finance state; every command is forwarded
    here and the authority's answer is returned unchanged.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.authority_api_base).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = settings.state_fetch_max_retries
        self.backoff_base = settings.state_fetch_backoff_base
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    async def _send(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Send one command to the authority.

        Raises:
            AuthorityAPIError: On timeout, transport failure, HTTP errors, or a non-JSON body
        """
        async with self._client() as client:
            try:
                response = await client.request(method, path, json=json)
                response.raise_for_status()
                return response.json()

            except httpx.TimeoutException as e:
                raise AuthorityAPIError(f"Authority API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise AuthorityAPIError(
                    f"Authority API error: {e.response.status_code}", status_code=e.response.status_code
                ) from e
            except httpx.RequestError as e:
                raise AuthorityAPIError(f"Authority API unreachable: {e}") from e
            except ValueError as e:
                raise AuthorityAPIError(f"Invalid response from authority: {e}") from e

    async def fetch_state(self) -> Dict[str, Any]:
        """
        Fetch the full finance state broadcast on join.

        Retry strategy:
        - Exponential backoff: base * 2^(attempt-1)
        - Retries on transport failures and 5xx responses; 4xx fails at once
        """
        attempt = 0
        while True:
            try:
                return await self._send("GET", "/v1/state")
            except AuthorityAPIError as e:
                attempt += 1
                state_fetch_failures_counter.inc()

                retryable = e.status_code is None or e.status_code >= 500
                if not retryable or attempt >= self.max_retries:
                    raise

                backoff = self.backoff_base * (2 ** (attempt - 1))
                logging.warning(
                    f"State fetch failed, retrying in {backoff}s",
                    extra={"attempt": attempt, "error": str(e)},
                )
                await asyncio.sleep(backoff)

    async def create_finance_deal(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._send("POST", "/v1/deals/finance", json=payload)

    async def create_lease_deal(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._send("POST", "/v1/deals/lease", json=payload)

    async def create_cash_loan(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._send("POST", "/v1/deals/loan", json=payload)

    async def make_payment(self, deal_id: str, amount: float) -> Dict[str, Any]:
        return await self._send("POST", f"/v1/deals/{deal_id}/payments", json={"amount": amount})

    async def set_payment_mode(self, deal_id: str, mode: int, custom_amount: float | None = None) -> Dict[str, Any]:
        return await self._send(
            "PUT", f"/v1/deals/{deal_id}/payment-mode", json={"mode": mode, "custom_amount": custom_amount}
        )

    async def set_payment_multiplier(self, deal_id: str, multiplier: float) -> Dict[str, Any]:
        return await self._send("PUT", f"/v1/deals/{deal_id}/multiplier", json={"multiplier": multiplier})

    async def cancel(self, deal_id: str) -> Dict[str, Any]:
        return await self._send("POST", f"/v1/deals/{deal_id}/cancel")

    async def resolve_lease(self, deal_id: str, action: str, renewal_term_months: int | None = None) -> Dict[str, Any]:
        return await self._send(
            "POST",
            f"/v1/deals/{deal_id}/lease-resolution",
            json={"action": action, "renewal_term_months": renewal_term_months},
        )
