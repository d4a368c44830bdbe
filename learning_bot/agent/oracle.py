from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from ..config import DEFAULT_TEXT_MODEL, DEFAULT_VISION_MODEL
from ..models import PlanStep
from ..utils import _log_debug
from .llm_provider import run_json_completion, run_text_completion
from .prompts import (
    UNDERSTAND_PROMPT,
    OBJECTIVE_PLAN_PROMPT,
    DELETION_CHOICE_PROMPT,
    MODIFY_PLAN_PROMPT,
    IMAGE_ANALYSIS_PROMPT,
    KNOWLEDGE_PROMPT,
    MERGE_CORRECTION_PROMPT,
)
from .schemas import DeletionChoice, PlanComplexTaskIntent, clarify, parse_intent

UNDERSTAND_FALLBACK = "抱歉，我的 AI 大腦暫時短路了，請稍後再試一次。"
MODIFY_FALLBACK = "抱歉，我在修改計畫時遇到了一些困難，請您重新提出一次完整的規劃需求。"
IMAGE_FALLBACK = "抱歉，我無法成功辨識這張圖片的內容，請您換一張圖片或直接用文字告訴我需求。"
KNOWLEDGE_FALLBACK = "抱歉，我在處理您的請求時遇到了一些困難，請稍後再試。"

_PLAN_ADAPTER: TypeAdapter = TypeAdapter(List[PlanStep])


def _dump_plan(plan: List[PlanStep]) -> List[Dict[str, Any]]:
  return [step.model_dump(by_alias=True, exclude_none=True) for step in plan]


def _normalize_selection(choice: DeletionChoice, option_count: int) -> DeletionChoice:
  if not isinstance(choice.selection, list):
    return choice
  picked: List[int] = []
  for index in choice.selection:
    if 0 <= index < option_count and index not in picked:
      picked.append(index)
  return DeletionChoice(selection=picked)


class IntentOracle:
  """Language-model backed intent classifier and planner.

  Every operation returns validated data; provider errors and malformed
  output collapse into the operation's fixed fallback.
  """

  def __init__(self,
               text_model: str = DEFAULT_TEXT_MODEL,
               vision_model: str = DEFAULT_VISION_MODEL) -> None:
    self.text_model = text_model
    self.vision_model = vision_model

  async def understand_and_plan(self, text: str) -> Any:
    parsed, _, meta = await run_json_completion(
        model=self.text_model,
        system_prompt=UNDERSTAND_PROMPT,
        user_payload={"message": text},
    )
    intent = parse_intent(parsed, UNDERSTAND_FALLBACK)
    _log_debug(f"[ORACLE] understand action={intent.action} meta={meta}")
    return intent

  async def generate_plan_for_objective(self, title: str) -> List[PlanStep]:
    parsed, _, _ = await run_json_completion(
        model=self.text_model,
        system_prompt=OBJECTIVE_PLAN_PROMPT,
        user_payload={"objective": title},
    )
    raw_plan = parsed.get("plan") if isinstance(parsed, dict) else parsed
    if not isinstance(raw_plan, list):
      return []
    try:
      return _PLAN_ADAPTER.validate_python(raw_plan)
    except ValidationError as exc:
      _log_debug(f"[ORACLE] objective plan invalid: {exc}")
      return []

  async def parse_deletion_choice(self, text: str,
                                  option_count: int) -> DeletionChoice:
    parsed, _, _ = await run_json_completion(
        model=self.text_model,
        system_prompt=DELETION_CHOICE_PROMPT,
        user_payload={"reply": text, "option_count": option_count},
    )
    if not isinstance(parsed, dict):
      return DeletionChoice(selection="none")
    try:
      choice = DeletionChoice.model_validate(parsed)
    except ValidationError:
      return DeletionChoice(selection="none")
    return _normalize_selection(choice, option_count)

  async def modify_plan(self, plan: List[PlanStep], text: str) -> Any:
    parsed, _, _ = await run_json_completion(
        model=self.text_model,
        system_prompt=MODIFY_PLAN_PROMPT,
        user_payload={"plan": _dump_plan(plan), "request": text},
    )
    if isinstance(parsed, list):
      parsed = {"action": "plan_complex_task", "plan": parsed}
    if not isinstance(parsed, dict) or parsed.get("error"):
      return clarify(MODIFY_FALLBACK)
    if parsed.get("action") in (None, "", "plan_complex_task", "plan_generic_task"):
      params = parsed.get("params")
      nested = params.get("plan") if isinstance(params, dict) else None
      if not (parsed.get("plan") or nested):
        return clarify(MODIFY_FALLBACK)
      parsed = {**parsed, "action": parsed.get("action") or "plan_complex_task"}
    return parse_intent(parsed, MODIFY_FALLBACK)

  async def analyze_image_and_plan(self, image: bytes) -> Any:
    parsed, _, _ = await run_json_completion(
        model=self.vision_model,
        system_prompt=IMAGE_ANALYSIS_PROMPT,
        user_payload={"task": "Analyze the attached image."},
        images=[image],
    )
    return parse_intent(parsed, IMAGE_FALLBACK)

  async def process_knowledge(self, note: Dict[str, Any], goal: str) -> str:
    text, _ = await run_text_completion(
        model=self.vision_model,
        system_prompt=KNOWLEDGE_PROMPT,
        user_payload={"note": note, "goal": goal},
    )
    return text.strip() or KNOWLEDGE_FALLBACK

  async def merge_plan_with_correction(self, partial: PlanComplexTaskIntent,
                                       text: str) -> Optional[List[PlanStep]]:
    """Returns the merged plan, or None when the correction could not be applied."""
    parsed, _, _ = await run_json_completion(
        model=self.vision_model,
        system_prompt=MERGE_CORRECTION_PROMPT,
        user_payload={
            "partial_plan": partial.model_dump(by_alias=True, exclude_none=True),
            "correction": text,
        },
    )
    if isinstance(parsed, list):
      parsed = {"plan": parsed}
    if not isinstance(parsed, dict) or parsed.get("error"):
      return None
    try:
      merged = PlanComplexTaskIntent.model_validate(
          {**parsed, "action": "plan_complex_task"})
    except ValidationError as exc:
      _log_debug(f"[ORACLE] merged plan invalid: {exc}")
      return None
    return merged.plan or None
