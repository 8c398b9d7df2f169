"""Nylas v3 mailbox provider."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from loguru import logger

from inboxflow.application.ports.mailbox import MailboxPage, MailboxProvider, OutgoingMessage
from inboxflow.domain.entities.email_message import MailboxMessage


def _addresses(participants: list[dict[str, Any]] | None) -> tuple[str, ...]:
    return tuple(p["email"] for p in participants or () if p.get("email"))


def to_mailbox_message(data: dict[str, Any]) -> MailboxMessage:
    """Map a Nylas message object onto the domain entity."""
    senders = _addresses(data.get("from"))
    date = data.get("date")
    received_at = datetime.fromtimestamp(date, tz=timezone.utc) if date else datetime.now(timezone.utc)
    return MailboxMessage(
        message_id=data["id"],
        subject=data.get("subject") or "",
        body=data.get("body") or data.get("snippet") or "",
        sender=senders[0] if senders else "",
        to=_addresses(data.get("to")),
        received_at=received_at,
        thread_id=data.get("thread_id"),
    )


class NylasMailboxProvider(MailboxProvider):
    """Read and send mail for a Nylas grant over the v3 REST API.

    HTTP errors are raised as-is; the activity invoker decides whether a
    status code or transport failure is worth retrying.
    """

    def __init__(
        self,
        api_key: str,
        api_uri: str = "https://api.us.nylas.com",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        if not api_key:
            raise ValueError("NYLAS_API_KEY is required")
        self.api_uri = api_uri.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _url(self, grant_id: str, path: str) -> str:
        return f"{self.api_uri}/v3/grants/{grant_id}{path}"

    async def _request(self, method: str, url: str, **kwargs) -> dict[str, Any]:
        response = await self._client.request(method, url, headers=self._headers, **kwargs)
        if response.status_code >= 400:
            logger.error(f"Nylas API error: {response.status_code} - {response.text}")
        response.raise_for_status()
        return response.json()

    async def fetch_page(self, grant_id: str, cursor: Optional[str], limit: int) -> MailboxPage:
        params: dict[str, Any] = {"limit": limit}
        if cursor:
            params["page_token"] = cursor

        payload = await self._request("GET", self._url(grant_id, "/messages"), params=params)
        items = tuple(to_mailbox_message(m) for m in payload.get("data", []))
        next_cursor = payload.get("next_cursor") or None
        logger.debug(f"Fetched {len(items)} messages for {grant_id} (next={next_cursor})")
        return MailboxPage(items=items, next_cursor=next_cursor)

    async def get_message(self, grant_id: str, message_id: str) -> MailboxMessage:
        payload = await self._request("GET", self._url(grant_id, f"/messages/{message_id}"))
        return to_mailbox_message(payload["data"])

    async def send_message(self, grant_id: str, message: OutgoingMessage) -> str:
        body: dict[str, Any] = {
            "to": [{"email": address} for address in message.to],
            "subject": message.subject,
            "body": message.body,
        }
        if message.in_reply_to:
            body["reply_to_message_id"] = message.in_reply_to

        logger.info(f"Sending message for {grant_id} to {list(message.to)}")
        payload = await self._request("POST", self._url(grant_id, "/messages/send"), json=body)
        message_id = payload["data"]["id"]
        logger.info(f"Message sent: {message_id}")
        return message_id

    async def aclose(self) -> None:
        await self._client.aclose()
