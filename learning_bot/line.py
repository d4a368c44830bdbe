from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from .config import (
    LINE_CHANNEL_ACCESS_TOKEN,
    LINE_API_BASE,
    LINE_DATA_API_BASE,
    LINE_HTTP_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)


class LineMessagingClient:
  """Thin LINE Messaging API client: reply, push and message content."""

  def __init__(self,
               access_token: str = LINE_CHANNEL_ACCESS_TOKEN,
               session: Optional[requests.Session] = None) -> None:
    self.access_token = access_token
    self.session = session or requests.Session()

  def _headers(self) -> Dict[str, str]:
    if not self.access_token:
      raise RuntimeError("LINE_CHANNEL_ACCESS_TOKEN is not set")
    return {"Authorization": f"Bearer {self.access_token}"}

  def _post_message_sync(self, endpoint: str, payload: Dict[str, Any]) -> None:
    resp = self.session.post(f"{LINE_API_BASE}/v2/bot/message/{endpoint}",
                             json=payload,
                             headers=self._headers(),
                             timeout=LINE_HTTP_TIMEOUT_SECONDS)
    if not resp.ok:
      logger.error("LINE %s failed: %s %s", endpoint, resp.status_code, resp.text)
    resp.raise_for_status()

  def _content_sync(self, message_id: str) -> bytes:
    resp = self.session.get(
        f"{LINE_DATA_API_BASE}/v2/bot/message/{message_id}/content",
        headers=self._headers(),
        timeout=LINE_HTTP_TIMEOUT_SECONDS)
    resp.raise_for_status()
    return resp.content

  async def reply(self, reply_token: str, text: str) -> None:
    if not text or not text.strip():
      logger.warning("Refusing to send an empty reply")
      return
    payload = {
        "replyToken": reply_token,
        "messages": [{"type": "text", "text": text}],
    }
    await asyncio.to_thread(self._post_message_sync, "reply", payload)

  async def push(self, user_id: str, text: str) -> None:
    if not text or not text.strip():
      logger.warning("Refusing to push an empty message to %s", user_id)
      return
    payload = {
        "to": user_id,
        "messages": [{"type": "text", "text": text}],
    }
    await asyncio.to_thread(self._post_message_sync, "push", payload)

  async def get_message_content(self, message_id: str) -> bytes:
    return await asyncio.to_thread(self._content_sync, message_id)
