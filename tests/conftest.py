"""Shared fakes for the conversation, plan and dispatcher tests."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from learning_bot.config import TAIPEI
from learning_bot.models import CalendarEvent, LearningObjective, User


def make_event(event_id: str, summary: str, start: str, end: Optional[str] = None,
               all_day: bool = False, status: Optional[str] = None) -> CalendarEvent:
    key = "date" if all_day else "dateTime"
    payload: Dict[str, Any] = {"id": event_id, "summary": summary, "start": {key: start}}
    if end:
        payload["end"] = {key: end}
    if status:
        payload["status"] = status
    return CalendarEvent.model_validate(payload)


class FakeStore:
    """In-memory stand-in for the spreadsheet store."""

    def __init__(self):
        self.state_writes: List[tuple] = []
        self.objectives: List[LearningObjective] = []
        self.notes: Dict[int, Dict[str, Any]] = {}
        self.note_links: List[tuple] = []
        self.event_links: List[tuple] = []
        self.users: List[User] = []

    async def set_state(self, row, state_json):
        self.state_writes.append((row, state_json))

    async def get_state(self, row):
        for written_row, state_json in reversed(self.state_writes):
            if written_row == row:
                return state_json
        return None

    async def find_or_create_user(self, external_id):
        for index, user in enumerate(self.users):
            if user.external_id == external_id:
                return index + 2, user
        user = User(id=len(self.users) + 1, external_id=external_id)
        self.users.append(user)
        return len(self.users) + 1, user

    async def get_all_users(self):
        return list(self.users)

    async def create_objective(self, user_id, title, due_date=None):
        objective = LearningObjective(objective_id=100 + len(self.objectives) + 1,
                                      user_id=user_id, title=title, due_date=due_date)
        self.objectives.append(objective)
        return objective

    async def find_objective_by_title(self, user_id, title):
        for objective in self.objectives:
            if objective.user_id == user_id and objective.title == title.strip():
                return objective
        return None

    async def get_active_objectives(self, user_id):
        return [o for o in self.objectives
                if o.user_id == user_id and o.status == "In Progress"]

    async def link_event_to_objective(self, objective_id, event_id):
        self.event_links.append((objective_id, event_id))

    async def save_note(self, user_id, data):
        note_id = len(self.notes) + 1
        self.notes[note_id] = data
        return note_id

    async def get_note_by_id(self, note_id):
        return self.notes.get(note_id)

    async def link_note_to_objective(self, note_id, objective_id):
        self.note_links.append((note_id, objective_id))


class FakeCalendar:
    """Records created/deleted events; summaries in fail_on raise on create."""

    def __init__(self, fail_on=(), search_results=None, listed=None):
        self.created: List[Dict[str, Any]] = []
        self.deleted: List[str] = []
        self.fail_on = set(fail_on)
        self.fail_delete: set = set()
        self.search_results = search_results or []
        self.listed = listed or []
        self.list_error: Optional[Exception] = None

    async def create_event(self, body):
        if body["summary"] in self.fail_on:
            raise RuntimeError("calendar unavailable")
        self.created.append(body)
        return CalendarEvent.model_validate({
            "id": f"evt-{len(self.created)}",
            "summary": body["summary"],
            "start": body["start"],
            "end": body["end"],
        })

    async def delete_event(self, event_id):
        if event_id in self.fail_delete:
            raise RuntimeError("delete failed")
        self.deleted.append(event_id)

    async def search_events(self, query):
        return list(self.search_results)

    async def list_events(self, time_range="today"):
        if self.list_error:
            raise self.list_error
        return list(self.listed)


def make_oracle() -> MagicMock:
    oracle = MagicMock()
    oracle.understand_and_plan = AsyncMock()
    oracle.generate_plan_for_objective = AsyncMock(return_value=[])
    oracle.parse_deletion_choice = AsyncMock()
    oracle.modify_plan = AsyncMock()
    oracle.analyze_image_and_plan = AsyncMock()
    oracle.process_knowledge = AsyncMock(return_value="")
    oracle.merge_plan_with_correction = AsyncMock(return_value=None)
    return oracle


class FakeLine:
    def __init__(self):
        self.replies: List[tuple] = []
        self.pushes: List[tuple] = []
        self.content = b"image-bytes"

    async def reply(self, reply_token, text):
        self.replies.append((reply_token, text))

    async def push(self, user_id, text):
        self.pushes.append((user_id, text))

    async def get_message_content(self, message_id):
        return self.content


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def calendar():
    return FakeCalendar()


@pytest.fixture
def oracle():
    return make_oracle()


@pytest.fixture
def line():
    return FakeLine()


@pytest.fixture
def user():
    return User(id=1, external_id="U-line-1")


@pytest.fixture
def friday_noon():
    # 2025-08-15 is a Friday
    return datetime(2025, 8, 15, 12, 0, tzinfo=TAIPEI)
