from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Literal, Optional, Tuple

from .utils import _parse_iso_datetime

ObjectiveStatus = Literal["In Progress", "Completed", "On Hold"]


class PlanStep(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    summary: str = ""
    date: Optional[str] = None  # "YYYY-MM-DD"
    start_time: Optional[str] = Field(default=None, alias="startTime")
    duration_hours: Optional[float] = None
    objective_id: Optional[int] = Field(default=None, alias="objectiveId")

    @property
    def is_complete(self) -> bool:
        return bool(self.date or self.start_time)


class EventTime(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    date: Optional[str] = None
    date_time: Optional[str] = Field(default=None, alias="dateTime")
    time_zone: Optional[str] = Field(default=None, alias="timeZone")

    def resolve(self) -> Tuple[Optional[datetime], bool]:
        """(local datetime, is_all_day); all-day values resolve to local midnight."""
        if self.date_time:
            return _parse_iso_datetime(self.date_time), False
        if self.date:
            return _parse_iso_datetime(self.date), True
        return None, False


class CalendarEvent(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    summary: str = ""
    start: EventTime = Field(default_factory=EventTime)
    end: EventTime = Field(default_factory=EventTime)
    location: Optional[str] = None
    status: Optional[str] = None


class User(BaseModel):
    id: int
    external_id: str
    state_json: Optional[str] = None


class LearningObjective(BaseModel):
    objective_id: int
    user_id: int
    title: str
    status: ObjectiveStatus = "In Progress"
    due_date: Optional[str] = None
    linked_event_ids: List[str] = Field(default_factory=list)


class KnowledgeNote(BaseModel):
    note_id: int
    user_id: int
    objective_id: Optional[int] = None
    source_type: str = "image"
    structured_content: Dict[str, Any] = Field(default_factory=dict)


class EventStatusBatch(BaseModel):
    upcoming: List[CalendarEvent] = Field(default_factory=list)
    overdue: List[CalendarEvent] = Field(default_factory=list)
