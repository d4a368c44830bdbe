from __future__ import annotations

import json
import logging
from typing import Any, Optional

from pydantic import ValidationError

from .schemas import STATE_ADAPTER

logger = logging.getLogger(__name__)


def load_state(raw: Optional[str]) -> Optional[Any]:
  """Parse a persisted state cell. Empty, unparseable or unknown tags mean idle."""
  if not isinstance(raw, str) or not raw.strip():
    return None
  try:
    payload = json.loads(raw)
  except ValueError:
    logger.warning("Discarding unparseable conversation state: %.80s", raw)
    return None
  if not isinstance(payload, dict):
    return None
  try:
    return STATE_ADAPTER.validate_python(payload)
  except ValidationError:
    logger.warning("Discarding unrecognized conversation state: status=%s",
                   payload.get("status"))
    return None


def dump_state(state: Optional[Any]) -> Optional[str]:
  if state is None:
    return None
  return STATE_ADAPTER.dump_json(state, by_alias=True,
                                 exclude_none=True).decode("utf-8")
