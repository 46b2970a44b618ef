from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-Ticket-API-Key"


class TicketBackendError(RuntimeError):
    pass


class TicketBackendClient:
    """Hands finished submissions to the external ticket/appeal backend."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.strip().rstrip("/")
        self.api_key = (api_key or "").strip()
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def create_appeal(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._post_json("/appeals", payload)

    def submit_ticket(self, ticket_id: str, submission: dict[str, Any]) -> dict[str, Any]:
        clean_ticket_id = str(ticket_id or "").strip()
        if not clean_ticket_id:
            raise TicketBackendError("ticket_id is required.")
        return self._post_json(f"/tickets/{quote(clean_ticket_id, safe='')}/submit", submission)

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": "IntakeForms/1.0",
        }
        if self.api_key:
            headers[API_KEY_HEADER] = self.api_key
        return headers

    def _post_json(self, path: str, request_payload: dict[str, Any]) -> dict[str, Any]:
        if not self.configured:
            raise TicketBackendError("Ticket backend URL is not configured.")
        url = f"{self.base_url}{path}"
        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self.transport) as client:
                response = client.post(url, headers=self._headers(), json=request_payload)
        except httpx.HTTPError as exc:
            raise TicketBackendError(f"HTTP request failed: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise TicketBackendError(
                f"Ticket backend returned HTTP {response.status_code}: {response.text[:300]}"
            )
        logger.info("Forwarded submission to %s (HTTP %s)", url, response.status_code)
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise TicketBackendError("Ticket backend returned a non-JSON body.") from exc
        if not isinstance(body, dict):
            raise TicketBackendError("Ticket backend returned an unexpected JSON payload.")
        return body
