from __future__ import annotations

import logging
from typing import Any

import httpx

from digest_bot.errors import ChannelConflictError, ChannelUnauthorizedError, DeliveryError

logger = logging.getLogger(__name__)

TELEGRAM_TEXT_LIMIT = 4096


def _truncate_text(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    if limit <= 3:
        return value[:limit]
    return value[: limit - 3].rstrip() + "..."


def split_message(text: str, limit: int = TELEGRAM_TEXT_LIMIT) -> list[str]:
    """Split on paragraph boundaries so each chunk fits in one Telegram message."""
    if len(text) <= limit:
        return [text]

    chunks: list[str] = []
    current = ""
    for block in text.split("\n\n"):
        candidate = f"{current}\n\n{block}" if current else block
        if len(candidate) <= limit:
            current = candidate
            continue
        if current:
            chunks.append(current)
        current = _truncate_text(block, limit)
    if current:
        chunks.append(current)
    return chunks


class TelegramChannel:
    def __init__(
        self,
        client: httpx.AsyncClient,
        token: str,
        parse_mode: str | None = "HTML",
        base_url: str = "https://api.telegram.org",
    ) -> None:
        self.client = client
        self.token = token
        self.parse_mode = parse_mode
        self.base_url = base_url.rstrip("/")

    def _url(self, method: str) -> str:
        return f"{self.base_url}/bot{self.token}/{method}"

    async def _call(self, method: str, payload: dict[str, Any], timeout: float | None = None) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"json": payload}
        if timeout is not None:
            kwargs["timeout"] = timeout
        response = await self.client.post(self._url(method), **kwargs)
        try:
            data = response.json()
        except ValueError:
            data = {"ok": False, "description": response.text[:200]}

        if response.status_code == 401:
            raise ChannelUnauthorizedError(data.get("description", "Unauthorized"))
        if response.status_code == 409:
            raise ChannelConflictError(data.get("description", "Conflict"))
        if not response.is_success or not data.get("ok"):
            description = data.get("description") or f"HTTP {response.status_code}"
            retry_after = (data.get("parameters") or {}).get("retry_after")
            if retry_after:
                description = f"{description} (retry after {retry_after}s)"
            raise httpx.HTTPStatusError(description, request=response.request, response=response)
        return data

    async def get_me(self) -> dict[str, Any]:
        data = await self._call("getMe", {})
        return dict(data.get("result") or {})

    async def get_updates(self, offset: int | None, poll_timeout: int = 30) -> list[dict[str, Any]]:
        payload: dict[str, Any] = {"timeout": poll_timeout, "allowed_updates": ["message"]}
        if offset is not None:
            payload["offset"] = offset
        data = await self._call("getUpdates", payload, timeout=poll_timeout + 10)
        return list(data.get("result") or [])

    async def send(self, recipient: str, text: str) -> None:
        chunks = split_message(text)
        for index, chunk in enumerate(chunks, start=1):
            payload: dict[str, Any] = {
                "chat_id": recipient,
                "text": chunk,
                "disable_web_page_preview": True,
            }
            if self.parse_mode:
                payload["parse_mode"] = self.parse_mode
            try:
                await self._call("sendMessage", payload)
            except (httpx.HTTPError, ChannelUnauthorizedError, ChannelConflictError) as exc:
                if len(chunks) > 1:
                    detail = f"part {index}/{len(chunks)} failed, {index - 1} delivered: {exc}"
                    raise DeliveryError(recipient, detail) from exc
                raise DeliveryError(recipient, str(exc)) from exc
