from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from .utils import _log_debug

logger = logging.getLogger(__name__)

HELP_COMMANDS = ("/help", "幫助", "說明")
STATUS_COMMANDS = ("/status", "狀態")

UNSUPPORTED_MESSAGE_REPLY = "🤖 目前只支援文字訊息。"
IMAGE_DOWNLOAD_FAILED_REPLY = "📷 抱歉，處理您的圖片時發生錯誤，請稍後再試。"
EVENT_FAILED_REPLY = "😅 抱歉，處理您的訊息時發生錯誤，請稍後再試。"
STATUS_REPLY = ("🤖 LINE Calendar Bot 運作正常\n"
                "📅 Google Calendar 連接正常\n"
                "✅ 準備為您服務！")
HELP_REPLY = """🤖 AI 學習助理使用說明

🧠 學習功能
1️⃣ 傳送圖片：課堂筆記、活動海報、書籍內頁都可以，我會先整理內容。
2️⃣ 筆記加工：整理完後可以說「做成心智圖」、「出幾題考我」、「幫我摘要」。

📂 學習目標
• 建立：「建立目標：準備期末考，截止日期 6/20」
• 規劃：「幫我規劃『準備期末考』」
• 歸檔：（整理完筆記後）「把筆記歸檔到『準備期末考』」

📅 行事曆
• 查詢：「今天有什麼行程？」、「這週有什麼安排？」
• 新增：「明天下午三點演算法小考」
• 刪除：「取消明天的會議」

❓ 其他
• 「幫助」或「/help」：顯示這份說明
• 「/status」：檢查服務狀態

現在就傳一張筆記照片給我試試看吧！"""


class LineEventHandler:
  """Turns LINE webhook events into replies.

  Text goes through the conversation state machine; images are handed to
  the background dispatcher and acknowledged right away.
  """

  def __init__(self, store: Any, state_machine: Any, dispatcher: Any,
               line: Any) -> None:
    self.store = store
    self.state_machine = state_machine
    self.dispatcher = dispatcher
    self.line = line

  async def handle_events(self, events: List[Dict[str, Any]]) -> None:
    await asyncio.gather(*(self.handle_event(event) for event in events))

  async def handle_event(self, event: Dict[str, Any]) -> None:
    reply_token = event.get("replyToken")
    try:
      source = event.get("source") or {}
      external_id = source.get("userId")
      if event.get("type") != "message" or not external_id:
        _log_debug(f"[LINE] ignoring event type={event.get('type')}")
        return

      message = event.get("message") or {}
      message_type = message.get("type")
      if message_type == "text":
        reply = await self.handle_text(external_id, message.get("text") or "")
      elif message_type == "image":
        reply = await self.handle_image(external_id, message.get("id") or "")
      else:
        reply = UNSUPPORTED_MESSAGE_REPLY

      if reply_token:
        await self.line.reply(reply_token, reply)
    except Exception:
      logger.exception("Handling LINE event failed")
      await self._reply_failure(reply_token)

  async def _reply_failure(self, reply_token: Optional[str]) -> None:
    if not reply_token:
      return
    try:
      await self.line.reply(reply_token, EVENT_FAILED_REPLY)
    except Exception:
      logger.exception("Sending the failure reply failed")

  async def handle_text(self, external_id: str, text: str) -> str:
    command = text.strip()
    logger.info("Text message from %s: %s", external_id, command)
    if command in HELP_COMMANDS:
      return HELP_REPLY
    if command in STATUS_COMMANDS:
      return STATUS_REPLY

    row, user = await self.store.find_or_create_user(external_id)
    return await self.state_machine.handle(row, user, text)

  async def handle_image(self, external_id: str, message_id: str) -> str:
    logger.info("Image message %s from %s", message_id, external_id)
    try:
      image = await self.line.get_message_content(message_id)
      row, user = await self.store.find_or_create_user(external_id)
    except Exception:
      logger.exception("Fetching image %s failed", message_id)
      return IMAGE_DOWNLOAD_FAILED_REPLY
    return self.dispatcher.submit_image(row, user, image)
