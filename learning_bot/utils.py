from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Optional

from .config import LLM_DEBUG, TAIPEI, ISO_DATE_RE

_WEEKDAY_NAMES = ["星期一", "星期二", "星期三", "星期四", "星期五", "星期六", "星期日"]


def _log_debug(message: str) -> None:
    if LLM_DEBUG:
        print(message, flush=True)


def _now() -> datetime:
    return datetime.now(TAIPEI)


def _now_iso() -> str:
    return _now().isoformat(timespec="seconds")


def _parse_iso_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 date or datetime; naive values are taken as local time."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if ISO_DATE_RE.match(text):
        try:
            parsed_date = datetime.strptime(text, "%Y-%m-%d")
        except ValueError:
            return None
        return parsed_date.replace(tzinfo=TAIPEI)
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=TAIPEI)
    return parsed.astimezone(TAIPEI)


def _parse_iso_date(value: Any) -> Optional[date]:
    if not isinstance(value, str):
        return None
    text = value.strip()[:10]
    if not ISO_DATE_RE.match(text):
        return None
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        return None


def _format_date_short(value: date) -> str:
    return f"{value.year}/{value.month}/{value.day}"


def _format_date_long(value: date) -> str:
    return f"{value.year}年{value.month}月{value.day}日 {_WEEKDAY_NAMES[value.weekday()]}"


def _format_time(value: datetime) -> str:
    return value.astimezone(TAIPEI).strftime("%H:%M")


def _format_datetime(value: datetime) -> str:
    local = value.astimezone(TAIPEI)
    return f"{_format_date_short(local.date())} {local.strftime('%H:%M')}"


def _format_hours(hours: float) -> str:
    if float(hours).is_integer():
        return str(int(hours))
    return f"{hours:g}"


def _tomorrow_at(hour: int, now: Optional[datetime] = None) -> datetime:
    base = (now or _now()).astimezone(TAIPEI) + timedelta(days=1)
    return base.replace(hour=hour, minute=0, second=0, microsecond=0)
