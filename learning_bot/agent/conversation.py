from __future__ import annotations

import logging
from typing import Any, List, NamedTuple, Optional

from ..config import AFFIRMATIVE_MAX_LENGTH
from ..formatter import (
    format_events,
    format_plan_for_confirmation,
    format_incomplete_plan_as_template,
    format_delete_candidates,
    format_deleted,
)
from ..models import PlanStep, User
from ..utils import _format_datetime, _log_debug, _parse_iso_datetime
from .plan_engine import (
    PlanLifecycleEngine,
    attach_objective,
    build_event_body,
    commit_reply,
    is_plan_complete,
    postprocess_image_plan,
)
from .schemas import (
    ClarifyOrRejectIntent,
    CreateEventIntent,
    CreateEventParams,
    CreateObjectiveIntent,
    DeleteEventIntent,
    LinkNoteIntent,
    ListEventsIntent,
    PlanComplexTaskIntent,
    PlanForObjectiveIntent,
    PlanGenericTaskIntent,
    ReconstructKnowledgeIntent,
    WaitingConfirmation,
    WaitingDeleteConfirmation,
    WaitingKnowledgeAction,
    WaitingPlanCorrection,
)
from .state import dump_state, load_state

logger = logging.getLogger(__name__)

AFFIRMATIVE_TOKENS = frozenset(["好", "可以", "ok", "沒問題", "是的", "同意", "好啊", "可以啊"])
NEGATIVE_TOKENS = ("不用", "取消", "不要", "不對")

GENERIC_FAILURE_REPLY = "😅 抱歉，處理您的請求時發生錯誤，請稍後再試。"
UNKNOWN_ACTION_REPLY = "🤔 抱歉，我不太理解您的需求。您可以試試：「幫我規劃下週的讀書計畫」。"
PLAN_CANCELLED_REPLY = "好的，已為您取消安排。"
MODIFY_FALLBACK_REPLY = "抱歉，我不太能理解您的修改。"
MODIFIED_PLAN_PREFIX = "好的，這是為您調整後的計畫，您覺得如何？\n\n"
MERGED_PLAN_PREFIX = "太好了！這是更新後的完整計畫，您看一下是否正確？\n\n"
MERGE_FAILED_REPLY = "抱歉，合併您的修正時發生錯誤，請再試一次。"
EMPTY_PLAN_REPLY = "🤔 抱歉，我暫時無法為您產生計畫，請換個方式描述您的需求。"
IMAGE_EMPTY_PLAN_REPLY = "🤔 抱歉，我從圖片中無法提取出任何完整的活動資訊。"
IMAGE_UNKNOWN_REPLY = "🤔 抱歉，我從圖片中看不出可以怎麽協助您。"


class Transition(NamedTuple):
  reply: str
  state: Optional[Any]


def is_affirmative(message: str) -> bool:
  text = (message or "").strip().lower()
  return len(text) < AFFIRMATIVE_MAX_LENGTH and text in AFFIRMATIVE_TOKENS


def is_negative(message: str) -> bool:
  text = (message or "").strip().lower()
  return any(token in text for token in NEGATIVE_TOKENS)


def _objective_not_found(title: str) -> str:
  return f"🤔 找不到名為「{title}」的學習目標，要先建立一個嗎？"


def _carry_objective(previous: List[PlanStep], revised: List[PlanStep]) -> List[PlanStep]:
  # a revision of an objective-bound plan stays bound to that objective
  objective_ids = {step.objective_id for step in previous}
  if len(objective_ids) != 1 or None in objective_ids:
    return revised
  objective_id = objective_ids.pop()
  return [
      step if step.objective_id is not None else
      step.model_copy(update={"objective_id": objective_id})
      for step in revised
  ]


class ConversationStateMachine:
  """Per-user dialogue driver.

  handle() reads the persisted state from the user record, routes the
  message either to the pending question or to the oracle, and writes the
  resulting state exactly once. Concurrent messages from the same user are
  not serialized: both read the same state and the last write wins.
  """

  def __init__(self, store: Any, calendar: Any, oracle: Any,
               engine: Optional[PlanLifecycleEngine] = None) -> None:
    self.store = store
    self.calendar = calendar
    self.oracle = oracle
    self.engine = engine or PlanLifecycleEngine(calendar, store)

  async def handle(self, row: int, user: User, message: str) -> str:
    state = load_state(user.state_json)
    try:
      transition = await self._dispatch(user, state, message)
    except Exception:
      logger.exception("Conversation handling failed for user #%s", user.id)
      transition = Transition(GENERIC_FAILURE_REPLY, state)

    try:
      await self.store.set_state(row, dump_state(transition.state))
    except Exception:
      logger.exception("Persisting conversation state failed for user #%s",
                       user.id)
    return transition.reply or GENERIC_FAILURE_REPLY

  async def _dispatch(self, user: User, state: Optional[Any],
                      message: str) -> Transition:
    if isinstance(state, WaitingConfirmation):
      return await self._on_plan_confirmation(state, message)
    if isinstance(state, WaitingDeleteConfirmation):
      return await self._on_delete_choice(state, message)
    if isinstance(state, WaitingPlanCorrection):
      return await self._on_plan_correction(state, message)
    if isinstance(state, WaitingKnowledgeAction):
      return await self._on_knowledge_action(user, state, message)
    return await self._on_fresh_request(user, message)

  # -------------------------
  # 대기 상태 처리
  # -------------------------
  async def _on_plan_confirmation(self, state: WaitingConfirmation,
                                  message: str) -> Transition:
    if is_affirmative(message):
      result = await self.engine.confirm(state.plan)
      logger.info("Plan committed: %s/%s steps created", result.created_count,
                  result.total)
      return Transition(commit_reply(result), None)
    if is_negative(message):
      return Transition(PLAN_CANCELLED_REPLY, None)

    intent = await self.oracle.modify_plan(state.plan, message)
    if isinstance(intent, (PlanComplexTaskIntent, PlanGenericTaskIntent)):
      if not intent.plan:
        return Transition(MODIFY_FALLBACK_REPLY, None)
      plan = _carry_objective(state.plan, intent.plan)
      reply = MODIFIED_PLAN_PREFIX + format_plan_for_confirmation(
          plan, show_greeting=False)
      return Transition(reply, WaitingConfirmation(plan=plan))
    if isinstance(intent, ClarifyOrRejectIntent):
      return Transition(intent.params.response, None)
    return Transition(MODIFY_FALLBACK_REPLY, None)

  async def _on_delete_choice(self, state: WaitingDeleteConfirmation,
                              message: str) -> Transition:
    candidates = state.candidates
    choice = await self.oracle.parse_deletion_choice(message, len(candidates))
    if choice.selection == "all":
      selected = list(candidates)
    elif isinstance(choice.selection, list):
      selected = [candidates[i] for i in choice.selection if 0 <= i < len(candidates)]
    else:
      selected = []

    deleted: List[str] = []
    for event in selected:
      try:
        await self.calendar.delete_event(event.id)
      except Exception:
        logger.exception("Deleting event %s failed", event.id)
        continue
      deleted.append(event.summary)

    if selected and not deleted:
      return Transition("⚠️ 刪除行程時發生錯誤，請稍後再試。", None)
    return Transition(format_deleted(deleted), None)

  async def _on_plan_correction(self, state: WaitingPlanCorrection,
                                message: str) -> Transition:
    merged = await self.oracle.merge_plan_with_correction(state.partial_plan,
                                                          message)
    if merged is None:
      return Transition(MERGE_FAILED_REPLY, None)
    reply = MERGED_PLAN_PREFIX + format_plan_for_confirmation(
        merged, show_greeting=False)
    return Transition(reply, WaitingConfirmation(plan=merged))

  async def _on_knowledge_action(self, user: User,
                                 state: WaitingKnowledgeAction,
                                 message: str) -> Transition:
    if state.note_id is None:
      return Transition("抱歉，我忘記我們正在討論哪份筆記了，我們可以重新開始嗎？", None)

    intent = await self.oracle.understand_and_plan(message)
    if isinstance(intent, LinkNoteIntent):
      title = intent.params.objective_title
      objective = await self.store.find_objective_by_title(user.id, title)
      if objective is None:
        return Transition(
            f"🤔 找不到名為「{title}」的學習目標。您可以先建立它，或檢查名稱是否正確。",
            state)
      await self.store.link_note_to_objective(state.note_id,
                                              objective.objective_id)
      return Transition(f"✅ 好的，已將這份筆記歸檔到您的學習目標「{objective.title}」中！",
                        None)

    note = await self.store.get_note_by_id(state.note_id)
    if note is None:
      return Transition("抱歉，讀取筆記資料時發生錯誤。", None)
    artifact = await self.oracle.process_knowledge(note, message)
    return Transition(artifact, None)

  # -------------------------
  # 신규 요청 처리
  # -------------------------
  async def _on_fresh_request(self, user: User, message: str) -> Transition:
    intent = await self.oracle.understand_and_plan(message)
    _log_debug(f"[CONVERSATION] user={user.id} action={intent.action}")

    if isinstance(intent, PlanComplexTaskIntent):
      return await self._propose_plan(user, intent.plan, intent.objective_title)
    if isinstance(intent, PlanGenericTaskIntent):
      return await self._propose_plan(user, intent.plan, None)
    if isinstance(intent, ListEventsIntent):
      return Transition(await self._list_events(intent.params.time_range), None)
    if isinstance(intent, CreateEventIntent):
      return Transition(await self._create_single_event(intent.params), None)
    if isinstance(intent, ClarifyOrRejectIntent):
      return Transition(intent.params.response, None)
    if isinstance(intent, DeleteEventIntent):
      return await self._start_delete(intent.params.query)
    if isinstance(intent, CreateObjectiveIntent):
      return Transition(
          await self._create_objective(user, intent.params.title,
                                       intent.params.due_date), None)
    if isinstance(intent, PlanForObjectiveIntent):
      return await self._plan_for_objective(user, intent.params.objective_title)
    if isinstance(intent, LinkNoteIntent):
      return Transition("📂 目前沒有等待歸檔的筆記，請先傳送一張筆記圖片給我。", None)
    return Transition(UNKNOWN_ACTION_REPLY, None)

  async def _propose_plan(self, user: User, plan: List[PlanStep],
                          objective_title: Optional[str]) -> Transition:
    if objective_title:
      objective = await self.store.find_objective_by_title(user.id,
                                                           objective_title)
      if objective is None:
        return Transition(_objective_not_found(objective_title), None)
      plan = attach_objective(plan, objective.objective_id)
    if not plan:
      return Transition(EMPTY_PLAN_REPLY, None)
    return Transition(format_plan_for_confirmation(plan),
                      WaitingConfirmation(plan=plan))

  async def _plan_for_objective(self, user: User, title: str) -> Transition:
    objective = await self.store.find_objective_by_title(user.id, title)
    if objective is None:
      return Transition(_objective_not_found(title), None)
    plan = await self.oracle.generate_plan_for_objective(objective.title)
    if not plan:
      return Transition(f"🤔 抱歉，我暫時無法為「{objective.title}」產生計畫，請稍後再試。",
                        None)
    plan = attach_objective(plan, objective.objective_id)
    return Transition(format_plan_for_confirmation(plan),
                      WaitingConfirmation(plan=plan))

  async def _list_events(self, time_range: str) -> str:
    try:
      events = await self.calendar.list_events(time_range or "today")
    except Exception:
      logger.exception("Listing events failed for range %s", time_range)
      return "📅 抱歉，查詢日曆事件時發生錯誤，請確認您的 Google 連接正常。"
    return format_events(events)

  async def _create_single_event(self, params: CreateEventParams) -> str:
    start = _parse_iso_datetime(params.start_time)
    if not params.summary or start is None:
      return "📝 抱歉，我需要明確的「事件標題」和「開始時間」才能為您新增行程喔！"
    end = _parse_iso_datetime(params.end_time)
    duration_hours = None
    if end is not None and end > start:
      duration_hours = (end - start).total_seconds() / 3600
    try:
      created = await self.calendar.create_event(
          build_event_body(params.summary, start, duration_hours))
    except Exception:
      logger.exception("Creating event %r failed", params.summary)
      return "📅 抱歉，新增行程時發生錯誤，請檢查您的時間格式是否正確。"
    created_start, _ = created.start.resolve()
    return (f"✅ 行程新增成功！\n\n📅 {created.summary or params.summary}\n"
            f"🕐 {_format_datetime(created_start or start)}")

  async def _start_delete(self, query: Optional[str]) -> Transition:
    if not query or not query.strip():
      return Transition("🤔 請告訴我要刪除哪個行程呢？例如：「刪除明天的會議」。", None)
    events = await self.calendar.search_events(query.strip())
    if not events:
      return Transition(f"🔍 找不到與「{query}」相關的行程。", None)
    return Transition(format_delete_candidates(events),
                      WaitingDeleteConfirmation(candidates=events))

  async def _create_objective(self, user: User, title: Optional[str],
                              due_date: Optional[str]) -> str:
    if not title or not title.strip():
      return "🤔 請告訴我您的學習目標是什麼喔！"
    objective = await self.store.create_objective(user.id, title.strip(),
                                                  due_date or None)
    reply = f"✅ 已為您建立新的學習目標：\n\n🎯 {objective.title}"
    if objective.due_date:
      reply += f"\n- 截止日期: {objective.due_date}"
    reply += f"\n\n接下來，您可以說：「幫我規劃『{objective.title}』」，來為這個目標安排具體行程。"
    return reply

  # -------------------------
  # 이미지 분석 결과 처리
  # -------------------------
  async def handle_image_intent(self, user: User, intent: Any) -> Transition:
    """Action dispatch for image-derived intents.

    A None state in the result means the stored state is left untouched.
    """
    if isinstance(intent, ReconstructKnowledgeIntent):
      note_id = await self.store.save_note(user.id, intent.structured_content())
      title = intent.source or "這份資料"
      reply = (f"✅ 分析完成！\n我已經整理好您關於「{title}」的筆記了。\n\n"
               "接下來，您想做什麼呢？\n您可以試著說：\n"
               "• 「幫我生成心智圖、flashcard、摘要」\n"
               "• 「出幾題考考我」\n"
               "• 「將筆記歸檔到『[您的目標名稱]』」")
      return Transition(reply, WaitingKnowledgeAction(note_id=note_id))

    if isinstance(intent, (PlanComplexTaskIntent, PlanGenericTaskIntent)):
      plan = postprocess_image_plan(intent.plan)
      if not plan:
        return Transition(IMAGE_EMPTY_PLAN_REPLY, None)
      if is_plan_complete(plan):
        return await self._propose_plan(user, plan, intent.objective_title)
      partial = PlanComplexTaskIntent(plan=plan, source=intent.source)
      return Transition(format_incomplete_plan_as_template(plan),
                        WaitingPlanCorrection(partial_plan=partial))

    if isinstance(intent, CreateEventIntent):
      step = intent.params.as_plan_step()
      if step.is_complete:
        return Transition(format_plan_for_confirmation([step]),
                          WaitingConfirmation(plan=[step]))
      partial = PlanComplexTaskIntent(plan=[step])
      return Transition(format_incomplete_plan_as_template([step]),
                        WaitingPlanCorrection(partial_plan=partial))

    if isinstance(intent, ClarifyOrRejectIntent):
      return Transition(intent.params.response, None)
    return Transition(IMAGE_UNKNOWN_REPLY, None)
