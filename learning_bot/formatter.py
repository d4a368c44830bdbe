from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import date, datetime
from typing import List, Optional, Sequence, Tuple

from .models import CalendarEvent, PlanStep
from .utils import (
    _format_date_long,
    _format_date_short,
    _format_datetime,
    _format_hours,
    _format_time,
    _parse_iso_datetime,
    _parse_iso_date,
)

EMPTY_EVENTS_MESSAGE = "📅 太好了，這段時間內沒有任何安排！"
PLAN_GREETING = "這是為您建議的計畫草案，您覺得如何？\n\n"
PLAN_CLOSING = "如果您同意這個規劃，請回覆「好」，我就會將它排入您的行事曆！(或提出您的修改意見)"
TEMPLATE_HEADER = "好的，我從圖片中找到了這些活動，但有些日期不清楚，能請您幫忙提供嗎？\n\n"
TEMPLATE_PLACEHOLDER = "【請幫我填寫這個日期】"
TEMPLATE_EXAMPLE = "您可以像這樣回覆：『事件1的日期是8/18，事件2是8/20』"
UNDATED_LABEL = "日期未定"

logger = logging.getLogger(__name__)


def _event_time_suffix(event: CalendarEvent) -> str:
  start, all_day = event.start.resolve()
  if start is None:
    return ""
  if all_day:
    return " (全天)"
  end, end_all_day = event.end.resolve()
  if end is None or end_all_day:
    return f"\n   🕐 {_format_time(start)}"
  return f"\n   🕐 {_format_time(start)} - {_format_time(end)}"


def _group_by_date(
    events: Sequence[CalendarEvent]) -> "OrderedDict[Optional[date], List[CalendarEvent]]":
  """Undated events go last, under a None key, in their original order."""
  keyed: List[Tuple[datetime, int, CalendarEvent]] = []
  undated: List[CalendarEvent] = []
  for position, event in enumerate(events):
    start, _ = event.start.resolve()
    if start is None:
      logger.warning("Event %s has no readable start time", event.id)
      undated.append(event)
      continue
    keyed.append((start, position, event))
  keyed.sort(key=lambda item: (item[0], item[1]))

  grouped: "OrderedDict[Optional[date], List[CalendarEvent]]" = OrderedDict()
  for start, _, event in keyed:
    grouped.setdefault(start.date(), []).append(event)
  if undated:
    grouped[None] = undated
  return grouped


def _day_label(day: Optional[date], long: bool = False) -> str:
  if day is None:
    return UNDATED_LABEL
  return _format_date_long(day) if long else _format_date_short(day)


def format_events(events: Sequence[CalendarEvent]) -> str:
  """Render events grouped by local date, sorted by start time."""
  grouped = _group_by_date(events or [])
  if not grouped:
    return EMPTY_EVENTS_MESSAGE

  if len(grouped) == 1:
    day, daily = next(iter(grouped.items()))
    response = f"📅 您在 {_day_label(day)} 有 {len(daily)} 個行程:\n"
    for index, event in enumerate(daily, start=1):
      response += f"\n{index}. {event.summary}{_event_time_suffix(event)}"
    return response

  total = sum(len(daily) for daily in grouped.values())
  response = f"📅 為您找到跨越多日的 {total} 個行程：\n"
  for day, daily in grouped.items():
    response += f"\n--- {_day_label(day, long=True)} ---\n"
    for event in daily:
      response += f"  - {event.summary}{_event_time_suffix(event)}\n"
  return response


def _step_lines(step: PlanStep) -> List[str]:
  lines = []
  step_date = _parse_iso_date(step.date)
  if step_date is not None:
    lines.append(f"   - **日期:** {_format_date_short(step_date)}")
  elif step.date:
    lines.append(f"   - **日期:** {step.date}")
  start = _parse_iso_datetime(step.start_time)
  if start is not None:
    lines.append(f"   - **時間:** {_format_datetime(start)}")
  if step.duration_hours:
    lines.append(f"   - **時長:** 約 {_format_hours(step.duration_hours)} 小時")
  return lines


def format_plan_for_confirmation(plan: Sequence[PlanStep],
                                 show_greeting: bool = True) -> str:
  response = PLAN_GREETING if show_greeting else ""
  for index, step in enumerate(plan, start=1):
    response += f"🗓️ **階段 {index}: {step.summary}**\n"
    for line in _step_lines(step):
      response += f"{line}\n"
    response += "\n"
  return response + PLAN_CLOSING


def format_incomplete_plan_as_template(plan: Sequence[PlanStep]) -> str:
  response = TEMPLATE_HEADER
  for index, step in enumerate(plan, start=1):
    response += f"**事件 {index}:** {step.summary}\n"
    response += f"  **日期:** {step.date or step.start_time or TEMPLATE_PLACEHOLDER}\n\n"
  return response + TEMPLATE_EXAMPLE


def format_event_when(event: CalendarEvent) -> str:
  start, all_day = event.start.resolve()
  if start is None:
    return ""
  if all_day:
    return f"{_format_date_short(start.date())} (全天)"
  return _format_datetime(start)


def format_delete_candidates(events: Sequence[CalendarEvent]) -> str:
  if len(events) == 1:
    event = events[0]
    return ("我只找到一個行程符合條件：\n\n"
            f"📅 {event.summary}\n🕐 {format_event_when(event)}\n\n"
            "確定要刪除它嗎？(請回覆'是'或'否')")
  response = f"好的，我找到了 {len(events)} 個符合條件的行程：\n\n"
  for index, event in enumerate(events, start=1):
    response += f"{index}. {event.summary} ({format_event_when(event)})\n"
  return response + "\n請問您想要刪除哪一個？ (可以回覆數字，例如 '1, 3'、'全部' 或 '取消')"


def format_deleted(summaries: Sequence[str]) -> str:
  if not summaries:
    return "好的，已取消刪除操作。"
  joined = "\n- ".join(summaries)
  return f"✅ 操作完成！已成功刪除 {len(summaries)} 個行程：\n- {joined}"
