from __future__ import annotations

import os
import re
from typing import List
from zoneinfo import ZoneInfo

TIMEZONE_NAME = os.getenv("BOT_TIMEZONE", "Asia/Taipei")
TAIPEI = ZoneInfo(TIMEZONE_NAME)
LLM_DEBUG = os.getenv("LLM_DEBUG", "0") == "1"

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# -------------------------
# LINE Messaging API 설정
# -------------------------
LINE_CHANNEL_ACCESS_TOKEN = os.getenv("LINE_CHANNEL_ACCESS_TOKEN", "").strip()
LINE_API_BASE = os.getenv("LINE_API_BASE", "https://api.line.me").rstrip("/")
LINE_DATA_API_BASE = os.getenv(
    "LINE_DATA_API_BASE", "https://api-data.line.me").rstrip("/")
LINE_HTTP_TIMEOUT_SECONDS = float(os.getenv("LINE_HTTP_TIMEOUT_SECONDS", "10"))

# -------------------------
# Google Calendar / Sheets 설정
# -------------------------
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_ACCESS_TOKEN = os.getenv("GOOGLE_ACCESS_TOKEN")
GOOGLE_REFRESH_TOKEN = os.getenv("GOOGLE_REFRESH_TOKEN")
GOOGLE_TOKEN_URI = os.getenv("GOOGLE_TOKEN_URI",
                             "https://oauth2.googleapis.com/token")
GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "primary")
GOOGLE_SHEET_ID = os.getenv("GOOGLE_SHEET_ID", "")
GOOGLE_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/spreadsheets",
]

USERS_RANGE = "Users!A:D"
OBJECTIVES_RANGE = "LearningObjectives!A:F"
NOTES_RANGE = "KnowledgeNotes!A:F"
OBJECTIVE_ID_OFFSET = 100

# -------------------------
# LLM 설정
# -------------------------
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_REASONING_EFFORT = os.getenv("OPENAI_REASONING_EFFORT", "low").strip() or "low"
OPENAI_VERBOSITY = os.getenv("OPENAI_VERBOSITY", "low").strip() or "low"
DEFAULT_TEXT_MODEL = os.getenv("AGENT_TEXT_MODEL", "gemini-2.5-flash")
DEFAULT_VISION_MODEL = os.getenv("AGENT_VISION_MODEL", "gemini-2.5-pro")
DEFAULT_IMAGE_MIME_TYPE = "image/jpeg"
MAX_COMPLETION_TOKENS = int(os.getenv("AGENT_MAX_COMPLETION_TOKENS", "4096"))

# -------------------------
# 런타임 제한/기본값
# -------------------------
PLAN_DAY_START_HOUR = 9
DEFAULT_STEP_DURATION_HOURS = 1
UPCOMING_WINDOW_DAYS = 7
CALENDAR_MAX_RESULTS = 20
REVIEW_PUSH_DELAY_SECONDS = 0.5
AFFIRMATIVE_MAX_LENGTH = 5

REQUIRED_ENV_VARS = [
    "LINE_CHANNEL_ACCESS_TOKEN",
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "GOOGLE_REFRESH_TOKEN",
    "GOOGLE_SHEET_ID",
]


def missing_env_vars() -> List[str]:
    return [name for name in REQUIRED_ENV_VARS if not os.getenv(name)]
