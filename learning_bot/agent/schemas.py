from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (BaseModel, ConfigDict, Field, TypeAdapter,
                      ValidationError, model_validator)

from ..models import CalendarEvent, PlanStep
from ..utils import _log_debug

_INTENT_CONFIG = ConfigDict(extra="ignore", populate_by_name=True)


# ---------------------------------------------------------------------------
#  Oracle intent schemas
# ---------------------------------------------------------------------------

class ListEventsParams(BaseModel):
  model_config = _INTENT_CONFIG

  time_range: str = Field(default="today", alias="timeRange")


class CreateEventParams(BaseModel):
  model_config = _INTENT_CONFIG

  summary: str = ""
  start_time: Optional[str] = Field(default=None, alias="startTime")
  end_time: Optional[str] = Field(default=None, alias="endTime")
  date: Optional[str] = None
  duration_hours: Optional[float] = None

  def as_plan_step(self) -> PlanStep:
    return PlanStep(summary=self.summary,
                    date=self.date,
                    start_time=self.start_time,
                    duration_hours=self.duration_hours)


class DeleteEventParams(BaseModel):
  model_config = _INTENT_CONFIG

  query: Optional[str] = None


class CreateObjectiveParams(BaseModel):
  model_config = _INTENT_CONFIG

  title: Optional[str] = None
  due_date: Optional[str] = Field(default=None, alias="dueDate")


class ObjectiveRefParams(BaseModel):
  model_config = _INTENT_CONFIG

  objective_title: str = Field(min_length=1, alias="objectiveTitle")


class ClarifyParams(BaseModel):
  model_config = _INTENT_CONFIG

  response: str = Field(min_length=1)


class ListEventsIntent(BaseModel):
  model_config = _INTENT_CONFIG

  action: Literal["list_events"] = "list_events"
  params: ListEventsParams = Field(default_factory=ListEventsParams)


class CreateEventIntent(BaseModel):
  model_config = _INTENT_CONFIG

  action: Literal["create_event"] = "create_event"
  params: CreateEventParams


class DeleteEventIntent(BaseModel):
  model_config = _INTENT_CONFIG

  action: Literal["delete_event"] = "delete_event"
  params: DeleteEventParams = Field(default_factory=DeleteEventParams)


class CreateObjectiveIntent(BaseModel):
  model_config = _INTENT_CONFIG

  action: Literal["create_learning_objective"] = "create_learning_objective"
  params: CreateObjectiveParams = Field(default_factory=CreateObjectiveParams)


class PlanForObjectiveIntent(BaseModel):
  model_config = _INTENT_CONFIG

  action: Literal["plan_for_objective"] = "plan_for_objective"
  params: ObjectiveRefParams


class LinkNoteIntent(BaseModel):
  model_config = _INTENT_CONFIG

  action: Literal["link_note_to_objective"] = "link_note_to_objective"
  params: ObjectiveRefParams


class ClarifyOrRejectIntent(BaseModel):
  model_config = _INTENT_CONFIG

  action: Literal["clarify_or_reject"] = "clarify_or_reject"
  params: ClarifyParams


class _PlanIntentBase(BaseModel):
  model_config = _INTENT_CONFIG

  plan: List[PlanStep] = Field(default_factory=list)
  objective_title: Optional[str] = Field(default=None, alias="objectiveTitle")
  source: Optional[str] = None

  @model_validator(mode="before")
  @classmethod
  def _hoist_params(cls, data: Any) -> Any:
    # the model sometimes nests plan fields under "params"
    if not isinstance(data, dict):
      return data
    params = data.get("params")
    if not isinstance(params, dict):
      return data
    merged = dict(data)
    for key in ("plan", "objectiveTitle", "source"):
      if key not in merged and key in params:
        merged[key] = params[key]
    return merged


class PlanComplexTaskIntent(_PlanIntentBase):
  action: Literal["plan_complex_task"] = "plan_complex_task"


class PlanGenericTaskIntent(_PlanIntentBase):
  action: Literal["plan_generic_task"] = "plan_generic_task"


class ReconstructKnowledgeIntent(BaseModel):
  model_config = ConfigDict(extra="allow")

  action: Literal["reconstruct_knowledge"] = "reconstruct_knowledge"
  source: Optional[str] = None

  def structured_content(self) -> Dict[str, Any]:
    return self.model_dump(exclude_none=True)


Intent = Annotated[
    Union[
        ListEventsIntent,
        CreateEventIntent,
        DeleteEventIntent,
        CreateObjectiveIntent,
        PlanForObjectiveIntent,
        PlanComplexTaskIntent,
        PlanGenericTaskIntent,
        ClarifyOrRejectIntent,
        LinkNoteIntent,
        ReconstructKnowledgeIntent,
    ],
    Field(discriminator="action"),
]
INTENT_ADAPTER: TypeAdapter = TypeAdapter(Intent)


def clarify(response: str) -> ClarifyOrRejectIntent:
  return ClarifyOrRejectIntent(params=ClarifyParams(response=response))


def parse_intent(data: Any, fallback_response: str) -> Any:
  """Validate raw oracle output; anything off-schema becomes clarify_or_reject."""
  if data is None:
    return clarify(fallback_response)
  try:
    return INTENT_ADAPTER.validate_python(data)
  except ValidationError as exc:
    _log_debug(f"[INTENT] invalid oracle output: {exc}")
    return clarify(fallback_response)


class DeletionChoice(BaseModel):
  model_config = ConfigDict(extra="ignore")

  selection: Union[Literal["all", "none"], List[int]] = "none"


# ---------------------------------------------------------------------------
#  Conversation state schemas
# ---------------------------------------------------------------------------

class WaitingConfirmation(BaseModel):
  model_config = _INTENT_CONFIG

  status: Literal["waiting_confirmation"] = "waiting_confirmation"
  plan: List[PlanStep] = Field(default_factory=list)


class WaitingDeleteConfirmation(BaseModel):
  model_config = _INTENT_CONFIG

  status: Literal["waiting_delete_confirmation"] = "waiting_delete_confirmation"
  candidates: List[CalendarEvent] = Field(default_factory=list)


class WaitingPlanCorrection(BaseModel):
  model_config = _INTENT_CONFIG

  status: Literal["waiting_plan_correction"] = "waiting_plan_correction"
  partial_plan: PlanComplexTaskIntent = Field(alias="partialPlan")


class WaitingKnowledgeAction(BaseModel):
  model_config = _INTENT_CONFIG

  status: Literal["waiting_knowledge_action"] = "waiting_knowledge_action"
  note_id: Optional[int] = Field(default=None, alias="noteId")


ConversationState = Annotated[
    Union[
        WaitingConfirmation,
        WaitingDeleteConfirmation,
        WaitingPlanCorrection,
        WaitingKnowledgeAction,
    ],
    Field(discriminator="status"),
]
STATE_ADAPTER: TypeAdapter = TypeAdapter(ConversationState)
