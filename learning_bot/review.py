"""Weekly learning progress review.

Run as ``python -m learning_bot.review`` from a scheduler. Every user with
in-progress objectives gets one pushed report.
"""
from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime
from typing import Any, List, Optional, Sequence, Tuple

from .config import REVIEW_PUSH_DELAY_SECONDS, missing_env_vars
from .models import EventStatusBatch, LearningObjective
from .utils import _format_date_short

logger = logging.getLogger(__name__)

REVIEW_HEADER = "早安！☀️ 這是您本週的學習進度回顧：\n"
OVERDUE_CLOSING = "\n需要我幫您將過期的任務重新安排到本週嗎？"
ON_TRACK_CLOSING = "\n做得很好，繼續保持這個節奏！💪"


def build_review_report(
    sections: Sequence[Tuple[LearningObjective, Optional[EventStatusBatch]]]
) -> str:
  """sections pairs each objective with its event statuses (None: nothing linked)."""
  report = REVIEW_HEADER
  has_overdue = False
  for objective, batch in sections:
    report += f"\n🎯 **目標：{objective.title}**\n"
    if batch is None:
      report += "   - 您還沒有為這個目標安排任何具體行程喔！\n"
      continue

    if batch.overdue:
      has_overdue = True
      report += f"   - 🔴 **注意！有 {len(batch.overdue)} 個任務已過期：**\n"
      for event in batch.overdue:
        report += f"     - {event.summary}\n"

    if batch.upcoming:
      report += "   - 🟢 **本週即將進行：**\n"
      for event in batch.upcoming:
        start, _ = event.start.resolve()
        day = _format_date_short(start.date()) if start else ""
        report += f"     - {day} - {event.summary}\n"
    elif not batch.overdue:
      report += "   - 👍 本週沒有即將到來的行程，一切都在您的掌握中！\n"

  return report + (OVERDUE_CLOSING if has_overdue else ON_TRACK_CLOSING)


async def _sections_for(objectives: List[LearningObjective], calendar: Any,
                        now: Optional[datetime]):
  sections = []
  for objective in objectives:
    if not objective.linked_event_ids:
      sections.append((objective, None))
      continue
    batch = await calendar.get_status_batch(objective.linked_event_ids, now)
    sections.append((objective, batch))
  return sections


async def run_review(store: Any, calendar: Any, line: Any,
                     now: Optional[datetime] = None,
                     push_delay: float = REVIEW_PUSH_DELAY_SECONDS) -> int:
  """Push one report per user with active objectives; returns the push count."""
  users = await store.get_all_users()
  logger.info("Weekly review: %s user(s) to check", len(users))
  pushed = 0
  for user in users:
    try:
      objectives = await store.get_active_objectives(user.id)
      if not objectives:
        logger.info("User #%s has no active objectives, skipped", user.id)
        continue
      report = build_review_report(await _sections_for(objectives, calendar, now))
      await line.push(user.external_id, report)
      pushed += 1
      if push_delay:
        await asyncio.sleep(push_delay)
    except Exception:
      logger.exception("Weekly review failed for user #%s (%s)", user.id,
                       user.external_id)
  return pushed


def main() -> int:
  logging.basicConfig(level=logging.INFO,
                      format="%(asctime)s %(levelname)s %(name)s: %(message)s")
  missing = missing_env_vars()
  if missing:
    logger.error("Missing environment variables: %s", ", ".join(missing))
    return 1

  from .gcal import GoogleCalendarStore
  from .line import LineMessagingClient
  from .sheets import GoogleSheetStore

  try:
    pushed = asyncio.run(
        run_review(GoogleSheetStore(), GoogleCalendarStore(),
                   LineMessagingClient()))
  except Exception:
    logger.exception("Weekly review task failed")
    return 1
  logger.info("Weekly review finished, %s report(s) pushed", pushed)
  return 0


if __name__ == "__main__":
  sys.exit(main())
