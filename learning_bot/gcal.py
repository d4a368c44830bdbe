from __future__ import annotations

import asyncio
import calendar
import logging
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple

from google.oauth2.credentials import Credentials
from google.auth.transport.requests import Request as GoogleRequest
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .config import (
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_ACCESS_TOKEN,
    GOOGLE_REFRESH_TOKEN,
    GOOGLE_TOKEN_URI,
    GOOGLE_CALENDAR_ID,
    GOOGLE_SCOPES,
    CALENDAR_MAX_RESULTS,
    UPCOMING_WINDOW_DAYS,
)
from .models import CalendarEvent, EventStatusBatch
from .utils import _log_debug, _now

logger = logging.getLogger(__name__)

_credentials: Optional[Credentials] = None
_CREDENTIALS_LOCK = Lock()


# -------------------------
# Google OAuth 유틸
# -------------------------
def is_google_configured() -> bool:
  return bool(GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET and GOOGLE_REFRESH_TOKEN)


def get_google_credentials() -> Credentials:
  """Shared OAuth credentials for Calendar and Sheets, refreshed when expired."""
  global _credentials
  if not is_google_configured():
    raise RuntimeError("Google OAuth credentials are not configured.")

  with _CREDENTIALS_LOCK:
    if _credentials is None:
      token_data = {
          "client_id": GOOGLE_CLIENT_ID,
          "client_secret": GOOGLE_CLIENT_SECRET,
          "refresh_token": GOOGLE_REFRESH_TOKEN,
          "token": GOOGLE_ACCESS_TOKEN,
          "token_uri": GOOGLE_TOKEN_URI,
      }
      _credentials = Credentials.from_authorized_user_info(token_data,
                                                           GOOGLE_SCOPES)

    if _credentials.expired and _credentials.refresh_token:
      _credentials.refresh(GoogleRequest())
    return _credentials


def get_gcal_service():
  return build("calendar", "v3", credentials=get_google_credentials())


# -------------------------
# 조회 범위 / 상태 분류
# -------------------------
def _add_one_month(value: datetime) -> datetime:
  year = value.year + (1 if value.month == 12 else 0)
  month = 1 if value.month == 12 else value.month + 1
  day = min(value.day, calendar.monthrange(year, month)[1])
  return value.replace(year=year, month=month, day=day)


def resolve_time_range(time_range: str,
                       now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
  now = now or _now()
  midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
  if time_range == "today":
    return midnight, midnight + timedelta(days=1)
  if time_range == "tomorrow":
    start = midnight + timedelta(days=1)
    return start, start + timedelta(days=1)
  if time_range == "week":
    return now, now + timedelta(days=7)
  if time_range == "month":
    return now, _add_one_month(now)
  return now, now + timedelta(days=1)


def classify_event_status(event: CalendarEvent,
                          now: Optional[datetime] = None) -> Optional[str]:
  """'overdue', 'upcoming' or None (cancelled, undated, or beyond the window)."""
  if event.status == "cancelled":
    return None
  start, _ = event.start.resolve()
  if start is None:
    return None
  now = now or _now()
  if start < now:
    return "overdue"
  if start <= now + timedelta(days=UPCOMING_WINDOW_DAYS):
    return "upcoming"
  return None


def _is_missing_event_error(exc: HttpError) -> bool:
  status = getattr(getattr(exc, "resp", None), "status", None)
  return status in (404, 410)


class GoogleCalendarStore:
  """Event store on the Google Calendar v3 API.

  Calls to the blocking client run in worker threads; a fresh service is
  built per call unless one is injected.
  """

  def __init__(self,
               calendar_id: str = GOOGLE_CALENDAR_ID,
               service: Any = None) -> None:
    self.calendar_id = calendar_id
    self._injected_service = service

  def _service(self):
    if self._injected_service is not None:
      return self._injected_service
    return get_gcal_service()

  def _list_sync(self, **params: Any) -> List[CalendarEvent]:
    response = self._service().events().list(
        calendarId=self.calendar_id,
        singleEvents=True,
        orderBy="startTime",
        maxResults=CALENDAR_MAX_RESULTS,
        **params,
    ).execute()
    items = response.get("items", [])
    if not isinstance(items, list):
      return []
    return [CalendarEvent.model_validate(item) for item in items]

  def _connect_sync(self) -> None:
    self._service().calendarList().list(maxResults=1).execute()

  def _create_sync(self, body: Dict[str, Any]) -> CalendarEvent:
    created = self._service().events().insert(calendarId=self.calendar_id,
                                              body=body).execute()
    return CalendarEvent.model_validate(created)

  def _delete_sync(self, event_id: str) -> None:
    if not event_id:
      raise ValueError("event_id is empty")
    self._service().events().delete(calendarId=self.calendar_id,
                                    eventId=event_id).execute()
    _log_debug(f"[GCAL] deleted event {event_id}")

  def _status_batch_sync(self, event_ids: List[str],
                         now: Optional[datetime]) -> EventStatusBatch:
    batch = EventStatusBatch()
    service = self._service()
    for event_id in event_ids:
      if not event_id:
        continue
      try:
        raw = service.events().get(calendarId=self.calendar_id,
                                   eventId=event_id).execute()
      except HttpError as exc:
        if _is_missing_event_error(exc):
          _log_debug(f"[GCAL] event {event_id} no longer exists, skipped")
          continue
        logger.exception("Calendar event lookup failed: %s", event_id)
        continue
      event = CalendarEvent.model_validate(raw)
      status = classify_event_status(event, now)
      if status == "overdue":
        batch.overdue.append(event)
      elif status == "upcoming":
        batch.upcoming.append(event)
    return batch

  async def connect(self) -> None:
    await asyncio.to_thread(self._connect_sync)

  async def create_event(self, body: Dict[str, Any]) -> CalendarEvent:
    return await asyncio.to_thread(self._create_sync, body)

  async def delete_event(self, event_id: str) -> None:
    await asyncio.to_thread(self._delete_sync, event_id)

  async def search_events(self, query: str) -> List[CalendarEvent]:
    return await asyncio.to_thread(self._list_sync, q=query)

  async def list_events(self, time_range: str = "today") -> List[CalendarEvent]:
    time_min, time_max = resolve_time_range(time_range)
    return await asyncio.to_thread(self._list_sync,
                                   timeMin=time_min.isoformat(),
                                   timeMax=time_max.isoformat())

  async def get_status_batch(self,
                             event_ids: List[str],
                             now: Optional[datetime] = None) -> EventStatusBatch:
    return await asyncio.to_thread(self._status_batch_sync, list(event_ids), now)
