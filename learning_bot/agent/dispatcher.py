from __future__ import annotations

import asyncio
import logging
from typing import Any, Set

from ..models import User
from .state import dump_state

logger = logging.getLogger(__name__)

IMAGE_ACK_REPLY = "👌 已收到您的圖片，正在請 AI 大腦進行分析，請稍候..."
IMAGE_FAILURE_PUSH = "😵 抱歉，AI 大腦在分析您的圖片時似乎遇到了一點困難，請稍後再試一次。"


class BackgroundDispatcher:
  """Runs image analysis off the webhook path.

  submit_image() returns the acknowledgement immediately; the analysis
  result (or an apology) is pushed to the user exactly once later.
  """

  def __init__(self, oracle: Any, state_machine: Any, store: Any,
               line: Any) -> None:
    self.oracle = oracle
    self.state_machine = state_machine
    self.store = store
    self.line = line
    self._tasks: Set[asyncio.Task] = set()

  @property
  def pending(self) -> int:
    return len(self._tasks)

  def submit_image(self, row: int, user: User, image: bytes) -> str:
    task = asyncio.create_task(self._run(row, user, image))
    self._tasks.add(task)
    task.add_done_callback(self._tasks.discard)
    return IMAGE_ACK_REPLY

  async def _run(self, row: int, user: User, image: bytes) -> None:
    message = IMAGE_FAILURE_PUSH
    try:
      intent = await self.oracle.analyze_image_and_plan(image)
      transition = await self.state_machine.handle_image_intent(user, intent)
      if transition.state is not None:
        await self.store.set_state(row, dump_state(transition.state))
      message = transition.reply or IMAGE_FAILURE_PUSH
    except Exception:
      logger.exception("Background image analysis failed for user #%s", user.id)
      message = IMAGE_FAILURE_PUSH
    finally:
      try:
        await self.line.push(user.external_id, message)
      except Exception:
        logger.exception("Pushing image result to %s failed", user.external_id)

  async def drain(self) -> None:
    """Wait for every in-flight task; used on shutdown and in tests."""
    while self._tasks:
      await asyncio.gather(*list(self._tasks), return_exceptions=True)
