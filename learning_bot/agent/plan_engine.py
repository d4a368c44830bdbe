from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from ..config import (
    TAIPEI,
    TIMEZONE_NAME,
    PLAN_DAY_START_HOUR,
    DEFAULT_STEP_DURATION_HOURS,
)
from ..models import PlanStep
from ..utils import _parse_iso_date, _parse_iso_datetime, _tomorrow_at

logger = logging.getLogger(__name__)


class StepOutcome(BaseModel):
  summary: str
  created: bool
  event_id: Optional[str] = None
  objective_id: Optional[int] = None
  error: Optional[str] = None


class CommitResult(BaseModel):
  created_count: int = 0
  outcomes: List[StepOutcome] = Field(default_factory=list)

  @property
  def total(self) -> int:
    return len(self.outcomes)


def next_weekday(cursor: datetime) -> Tuple[datetime, datetime]:
  """Return (assigned, next_cursor): the first Mon-Fri at or after cursor, and the day after it."""
  assigned = cursor
  while assigned.weekday() >= 5:
    assigned = assigned + timedelta(days=1)
  return assigned, assigned + timedelta(days=1)


def resolve_step_start(step: PlanStep,
                       cursor: datetime) -> Tuple[Optional[datetime], datetime]:
  """Start for one step plus the cursor for the next undated step.

  Dated steps start at the configured hour of their date, timed steps at
  their own time; neither moves the cursor. A present but unreadable
  value yields None.
  """
  if step.date:
    step_date = _parse_iso_date(step.date)
    if step_date is None:
      return None, cursor
    return datetime(step_date.year,
                    step_date.month,
                    step_date.day,
                    PLAN_DAY_START_HOUR,
                    tzinfo=TAIPEI), cursor
  if step.start_time:
    return _parse_iso_datetime(step.start_time), cursor
  return next_weekday(cursor)


def build_event_body(summary: str,
                     start: datetime,
                     duration_hours: Optional[float] = None) -> Dict[str, Any]:
  local_start = start.astimezone(TAIPEI)
  local_end = local_start + timedelta(
      hours=duration_hours or DEFAULT_STEP_DURATION_HOURS)
  return {
      "summary": summary,
      "start": {"dateTime": local_start.isoformat(), "timeZone": TIMEZONE_NAME},
      "end": {"dateTime": local_end.isoformat(), "timeZone": TIMEZONE_NAME},
  }


def is_plan_complete(plan: Sequence[PlanStep]) -> bool:
  return all(step.is_complete for step in plan)


def attach_objective(plan: Sequence[PlanStep], objective_id: int) -> List[PlanStep]:
  return [step.model_copy(update={"objective_id": objective_id}) for step in plan]


def postprocess_image_plan(plan: Sequence[PlanStep]) -> List[PlanStep]:
  """Drop unnamed steps and repeated (summary, date) pairs.

  Named steps without a date survive so the user can fill the date in.
  """
  seen = set()
  cleaned: List[PlanStep] = []
  for step in plan:
    if not step.summary.strip():
      continue
    key = (step.summary, step.date)
    if key in seen:
      continue
    seen.add(key)
    cleaned.append(step)
  return cleaned


def commit_reply(result: CommitResult) -> str:
  if result.created_count > 0:
    return f"✅ 太棒了！已為您將 {result.created_count} 個任務行程新增到您的 Google Calendar！"
  return "⚠️ 雖然收到了您的指令，但沒有成功新增任何行程，請檢查後再試。"


class PlanLifecycleEngine:
  """Commits confirmed plans into calendar events and objective links."""

  def __init__(self, calendar: Any, store: Any) -> None:
    self.calendar = calendar
    self.store = store

  async def confirm(self,
                    plan: Sequence[PlanStep],
                    now: Optional[datetime] = None) -> CommitResult:
    result = CommitResult()
    cursor = _tomorrow_at(PLAN_DAY_START_HOUR, now)

    for step in plan:
      start, cursor = resolve_step_start(step, cursor)
      if start is None:
        result.outcomes.append(
            StepOutcome(summary=step.summary, created=False, error="invalid date"))
        continue
      body = build_event_body(step.summary, start, step.duration_hours)
      try:
        created = await self.calendar.create_event(body)
      except Exception as exc:
        logger.exception("Event creation failed for plan step %r", step.summary)
        result.outcomes.append(
            StepOutcome(summary=step.summary, created=False, error=str(exc)))
        continue
      result.created_count += 1
      result.outcomes.append(
          StepOutcome(summary=step.summary,
                      created=True,
                      event_id=created.id,
                      objective_id=step.objective_id))

    for outcome in result.outcomes:
      if not outcome.created or outcome.objective_id is None or not outcome.event_id:
        continue
      try:
        await self.store.link_event_to_objective(outcome.objective_id,
                                                 outcome.event_id)
      except Exception:
        logger.exception("Linking event %s to objective #%s failed",
                         outcome.event_id, outcome.objective_id)
    return result
