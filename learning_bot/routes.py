from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .agent.conversation import ConversationStateMachine
from .agent.dispatcher import BackgroundDispatcher
from .agent.oracle import IntentOracle
from .agent.plan_engine import PlanLifecycleEngine
from .gcal import GoogleCalendarStore
from .line import LineMessagingClient
from .line_handler import LineEventHandler
from .sheets import GoogleSheetStore
from .utils import _now_iso

logger = logging.getLogger(__name__)

router = APIRouter()

_event_handler: Optional[LineEventHandler] = None


class LineWebhookPayload(BaseModel):
  model_config = ConfigDict(extra="ignore")

  destination: Optional[str] = None
  events: List[Dict[str, Any]] = Field(default_factory=list)


def build_event_handler() -> LineEventHandler:
  store = GoogleSheetStore()
  calendar = GoogleCalendarStore()
  oracle = IntentOracle()
  line = LineMessagingClient()
  state_machine = ConversationStateMachine(store, calendar, oracle,
                                           PlanLifecycleEngine(calendar, store))
  dispatcher = BackgroundDispatcher(oracle, state_machine, store, line)
  return LineEventHandler(store, state_machine, dispatcher, line)


def get_event_handler() -> LineEventHandler:
  global _event_handler
  if _event_handler is None:
    _event_handler = build_event_handler()
  return _event_handler


async def drain_background_tasks() -> None:
  if _event_handler is not None:
    await _event_handler.dispatcher.drain()


# -------------------------
# Health
# -------------------------
@router.get("/")
def health():
  return {
      "status": "ok",
      "message": "LINE learning assistant is running!",
      "timestamp": _now_iso(),
  }


# -------------------------
# LINE webhook
# -------------------------
@router.post("/webhook")
async def line_webhook(payload: LineWebhookPayload,
                       handler: LineEventHandler = Depends(get_event_handler)):
  logger.info("Received %s webhook event(s)", len(payload.events))
  if payload.events:
    try:
      await handler.handle_events(payload.events)
    except Exception:
      logger.exception("Webhook handling failed")
  return JSONResponse({"status": "ok"})
