from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from googleapiclient.discovery import build

from .config import (
    GOOGLE_SHEET_ID,
    USERS_RANGE,
    OBJECTIVES_RANGE,
    NOTES_RANGE,
    OBJECTIVE_ID_OFFSET,
)
from .gcal import get_google_credentials
from .models import LearningObjective, User
from .utils import _log_debug, _now_iso

logger = logging.getLogger(__name__)


def get_sheets_service():
  return build("sheets", "v4", credentials=get_google_credentials())


def _cell(row: Sequence[Any], index: int) -> str:
  if index >= len(row):
    return ""
  value = row[index]
  return "" if value is None else str(value)


def _to_int(value: Any) -> Optional[int]:
  try:
    return int(str(value).strip())
  except (TypeError, ValueError):
    return None


def _row_to_user(row: Sequence[Any]) -> Optional[User]:
  user_id = _to_int(_cell(row, 0))
  external_id = _cell(row, 1)
  if user_id is None or not external_id:
    return None
  return User(id=user_id,
              external_id=external_id,
              state_json=_cell(row, 3) or None)


def _row_to_objective(row: Sequence[Any]) -> Optional[LearningObjective]:
  objective_id = _to_int(_cell(row, 0))
  user_id = _to_int(_cell(row, 1))
  if objective_id is None or user_id is None:
    return None
  status = _cell(row, 3)
  if status not in ("In Progress", "Completed", "On Hold"):
    status = "In Progress"
  linked = [item.strip() for item in _cell(row, 5).split(",") if item.strip()]
  return LearningObjective(objective_id=objective_id,
                           user_id=user_id,
                           title=_cell(row, 2),
                           status=status,
                           due_date=_cell(row, 4) or None,
                           linked_event_ids=linked)


class GoogleSheetStore:
  """User, objective and knowledge-note rows in one spreadsheet.

  Row 1 of every sheet is a header; ids are derived from row counts.
  """

  def __init__(self,
               spreadsheet_id: str = GOOGLE_SHEET_ID,
               service: Any = None) -> None:
    self.spreadsheet_id = spreadsheet_id
    self._injected_service = service

  def _values(self):
    service = self._injected_service or get_sheets_service()
    return service.spreadsheets().values()

  def _read(self, range_name: str) -> List[List[Any]]:
    response = self._values().get(spreadsheetId=self.spreadsheet_id,
                                  range=range_name).execute()
    values = response.get("values", [])
    return values if isinstance(values, list) else []

  def _append(self, range_name: str, row: List[Any]) -> None:
    self._values().append(spreadsheetId=self.spreadsheet_id,
                          range=range_name,
                          valueInputOption="USER_ENTERED",
                          body={"values": [row]}).execute()

  def _update_cell(self, range_name: str, value: Any) -> None:
    # RAW keeps JSON text from being interpreted as a formula
    self._values().update(spreadsheetId=self.spreadsheet_id,
                          range=range_name,
                          valueInputOption="RAW",
                          body={"values": [[value]]}).execute()

  # -------------------------
  # Users
  # -------------------------
  def _find_or_create_user_sync(self, external_id: str) -> Tuple[int, User]:
    rows = self._read(USERS_RANGE)
    for index, row in enumerate(rows[1:], start=1):
      if _cell(row, 1) == external_id:
        user = _row_to_user(row)
        if user is not None:
          return index + 1, user

    new_user_id = len(rows)
    self._append("Users!A1", [new_user_id, external_id, _now_iso(), ""])
    logger.info("Registered new user %s as #%s", external_id, new_user_id)
    return len(rows) + 1, User(id=new_user_id, external_id=external_id)

  def _get_state_sync(self, row_number: int) -> Optional[str]:
    values = self._read(f"Users!D{row_number}")
    if not values or not values[0]:
      return None
    return _cell(values[0], 0) or None

  def _set_state_sync(self, row_number: int, state_json: Optional[str]) -> None:
    self._update_cell(f"Users!D{row_number}", state_json or "")

  def _get_all_users_sync(self) -> List[User]:
    users = []
    for row in self._read(USERS_RANGE)[1:]:
      user = _row_to_user(row)
      if user is not None:
        users.append(user)
    return users

  # -------------------------
  # Learning objectives
  # -------------------------
  def _create_objective_sync(self, user_id: int, title: str,
                             due_date: Optional[str]) -> LearningObjective:
    objective_id = len(self._read("LearningObjectives!A:A")) + OBJECTIVE_ID_OFFSET
    self._append(OBJECTIVES_RANGE,
                 [objective_id, user_id, title, "In Progress", due_date or "", ""])
    _log_debug(f"[SHEETS] objective #{objective_id} created for user {user_id}")
    return LearningObjective(objective_id=objective_id,
                             user_id=user_id,
                             title=title,
                             due_date=due_date)

  def _find_objective_by_title_sync(self, user_id: int,
                                    title: str) -> Optional[LearningObjective]:
    wanted = title.strip()
    for row in self._read(OBJECTIVES_RANGE)[1:]:
      objective = _row_to_objective(row)
      if objective and objective.user_id == user_id and objective.title.strip() == wanted:
        return objective
    return None

  def _link_event_to_objective_sync(self, objective_id: int, event_id: str) -> None:
    rows = self._read(OBJECTIVES_RANGE)
    for index, row in enumerate(rows[1:], start=1):
      if _to_int(_cell(row, 0)) != objective_id:
        continue
      current = _cell(row, 5)
      updated = f"{current},{event_id}" if current else event_id
      self._update_cell(f"LearningObjectives!F{index + 1}", updated)
      return
    logger.error("Cannot link event %s: objective #%s not found", event_id,
                 objective_id)

  def _get_active_objectives_sync(self, user_id: int) -> List[LearningObjective]:
    objectives = []
    for row in self._read(OBJECTIVES_RANGE)[1:]:
      objective = _row_to_objective(row)
      if objective and objective.user_id == user_id and objective.status == "In Progress":
        objectives.append(objective)
    return objectives

  # -------------------------
  # Knowledge notes
  # -------------------------
  def _save_note_sync(self, user_id: int, data: Dict[str, Any]) -> int:
    existing = self._read("KnowledgeNotes!A:A")
    note_id = len(existing) if existing else 1
    self._append(NOTES_RANGE, [
        note_id,
        user_id,
        "",
        "image",
        str(data.get("source") or ""),
        json.dumps(data, ensure_ascii=False),
    ])
    return note_id

  def _get_note_by_id_sync(self, note_id: int) -> Optional[Dict[str, Any]]:
    for row in self._read(NOTES_RANGE)[1:]:
      if _to_int(_cell(row, 0)) != note_id:
        continue
      try:
        data = json.loads(_cell(row, 5))
      except ValueError:
        logger.error("Knowledge note #%s has unreadable content", note_id)
        return None
      return data if isinstance(data, dict) else None
    return None

  def _link_note_to_objective_sync(self, note_id: int, objective_id: int) -> None:
    rows = self._read(NOTES_RANGE)
    for index, row in enumerate(rows[1:], start=1):
      if _to_int(_cell(row, 0)) == note_id:
        self._update_cell(f"KnowledgeNotes!C{index + 1}", objective_id)
        return
    logger.error("Cannot archive note #%s: not found", note_id)

  async def find_or_create_user(self, external_id: str) -> Tuple[int, User]:
    return await asyncio.to_thread(self._find_or_create_user_sync, external_id)

  async def get_state(self, row_number: int) -> Optional[str]:
    return await asyncio.to_thread(self._get_state_sync, row_number)

  async def set_state(self, row_number: int, state_json: Optional[str]) -> None:
    await asyncio.to_thread(self._set_state_sync, row_number, state_json)

  async def get_all_users(self) -> List[User]:
    return await asyncio.to_thread(self._get_all_users_sync)

  async def create_objective(self, user_id: int, title: str,
                             due_date: Optional[str] = None) -> LearningObjective:
    return await asyncio.to_thread(self._create_objective_sync, user_id, title,
                                   due_date)

  async def find_objective_by_title(self, user_id: int,
                                    title: str) -> Optional[LearningObjective]:
    return await asyncio.to_thread(self._find_objective_by_title_sync, user_id,
                                   title)

  async def link_event_to_objective(self, objective_id: int, event_id: str) -> None:
    await asyncio.to_thread(self._link_event_to_objective_sync, objective_id,
                            event_id)

  async def get_active_objectives(self, user_id: int) -> List[LearningObjective]:
    return await asyncio.to_thread(self._get_active_objectives_sync, user_id)

  async def save_note(self, user_id: int, data: Dict[str, Any]) -> int:
    return await asyncio.to_thread(self._save_note_sync, user_id, data)

  async def get_note_by_id(self, note_id: int) -> Optional[Dict[str, Any]]:
    return await asyncio.to_thread(self._get_note_by_id_sync, note_id)

  async def link_note_to_objective(self, note_id: int, objective_id: int) -> None:
    await asyncio.to_thread(self._link_note_to_objective_sync, note_id,
                            objective_id)
