"""Tests for the per-user conversation state machine."""

from unittest.mock import AsyncMock, patch

import pytest

from learning_bot.agent.conversation import (
    GENERIC_FAILURE_REPLY,
    MERGE_FAILED_REPLY,
    MODIFIED_PLAN_PREFIX,
    MODIFY_FALLBACK_REPLY,
    PLAN_CANCELLED_REPLY,
    ConversationStateMachine,
    is_affirmative,
    is_negative,
)
from learning_bot.agent.oracle import MODIFY_FALLBACK, IntentOracle
from learning_bot.agent.schemas import (
    CreateEventIntent,
    CreateEventParams,
    CreateObjectiveIntent,
    CreateObjectiveParams,
    DeleteEventIntent,
    DeleteEventParams,
    DeletionChoice,
    LinkNoteIntent,
    ListEventsIntent,
    ObjectiveRefParams,
    PlanComplexTaskIntent,
    PlanForObjectiveIntent,
    ReconstructKnowledgeIntent,
    WaitingConfirmation,
    WaitingDeleteConfirmation,
    WaitingKnowledgeAction,
    WaitingPlanCorrection,
    clarify,
)
from learning_bot.agent.state import dump_state, load_state
from learning_bot.formatter import PLAN_GREETING
from learning_bot.models import PlanStep, User

from conftest import make_event

ROW = 7


def with_state(state):
    return User(id=1, external_id="U-line-1", state_json=dump_state(state))


def last_state(store):
    assert store.state_writes, "no state write recorded"
    row, raw = store.state_writes[-1]
    assert row == ROW
    return load_state(raw)


@pytest.fixture
def machine(store, calendar, oracle):
    return ConversationStateMachine(store, calendar, oracle)


class TestReplyClassifiers:
    @pytest.mark.parametrize("text", ["好", "可以", "OK", " ok ", "沒問題", "是的", "同意", "好啊", "可以啊"])
    def test_affirmative_tokens(self, text):
        assert is_affirmative(text)

    @pytest.mark.parametrize("text", ["好的我再想想", "可以改到週三嗎", "okay", ""])
    def test_not_affirmative(self, text):
        assert not is_affirmative(text)

    @pytest.mark.parametrize("text", ["不用了", "取消吧", "我不要這樣", "不對喔"])
    def test_negative_tokens(self, text):
        assert is_negative(text)

    def test_plain_text_is_not_negative(self):
        assert not is_negative("把第二天改成週五")


class TestFreshRequests:
    @pytest.mark.asyncio
    async def test_plan_request_waits_for_confirmation(self, machine, store, oracle, user):
        plan = [PlanStep(summary="Read chapter 1"), PlanStep(summary="Exercises")]
        oracle.understand_and_plan.return_value = PlanComplexTaskIntent(plan=plan)

        reply = await machine.handle(ROW, user, "幫我規劃下週的讀書計畫")

        assert reply.startswith(PLAN_GREETING)
        assert "Read chapter 1" in reply
        assert len(store.state_writes) == 1
        state = last_state(store)
        assert isinstance(state, WaitingConfirmation)
        assert [s.summary for s in state.plan] == ["Read chapter 1", "Exercises"]

    @pytest.mark.asyncio
    async def test_plan_with_unknown_objective_asks_to_create_it(self, machine, store, oracle, user):
        oracle.understand_and_plan.return_value = PlanComplexTaskIntent(
            plan=[PlanStep(summary="x")], objective_title="多益")

        reply = await machine.handle(ROW, user, "幫我規劃多益")

        assert "找不到名為「多益」的學習目標" in reply
        assert last_state(store) is None

    @pytest.mark.asyncio
    async def test_plan_with_known_objective_links_every_step(self, machine, store, oracle, user):
        objective = await store.create_objective(user.id, "多益")
        oracle.understand_and_plan.return_value = PlanComplexTaskIntent(
            plan=[PlanStep(summary="a"), PlanStep(summary="b")], objective_title="多益")

        await machine.handle(ROW, user, "幫我規劃多益")

        state = last_state(store)
        assert {s.objective_id for s in state.plan} == {objective.objective_id}

    @pytest.mark.asyncio
    async def test_plan_for_objective(self, machine, store, oracle, user):
        objective = await store.create_objective(user.id, "Python")
        oracle.understand_and_plan.return_value = PlanForObjectiveIntent(
            params=ObjectiveRefParams(objective_title="Python"))
        oracle.generate_plan_for_objective.return_value = [PlanStep(summary="Basics")]

        reply = await machine.handle(ROW, user, "幫我規劃『Python』")

        oracle.generate_plan_for_objective.assert_awaited_once_with("Python")
        assert "Basics" in reply
        state = last_state(store)
        assert state.plan[0].objective_id == objective.objective_id

    @pytest.mark.asyncio
    async def test_plan_for_missing_objective_skips_generation(self, machine, store, oracle, user):
        oracle.understand_and_plan.return_value = PlanForObjectiveIntent(
            params=ObjectiveRefParams(objective_title="Rust"))

        reply = await machine.handle(ROW, user, "幫我規劃『Rust』")

        assert "要先建立一個嗎" in reply
        oracle.generate_plan_for_objective.assert_not_awaited()
        assert last_state(store) is None

    @pytest.mark.asyncio
    async def test_empty_generated_plan_stays_idle(self, machine, store, oracle, user):
        await store.create_objective(user.id, "Python")
        oracle.understand_and_plan.return_value = PlanForObjectiveIntent(
            params=ObjectiveRefParams(objective_title="Python"))
        oracle.generate_plan_for_objective.return_value = []

        reply = await machine.handle(ROW, user, "幫我規劃『Python』")

        assert reply.startswith("🤔")
        assert last_state(store) is None

    @pytest.mark.asyncio
    async def test_create_objective(self, machine, store, oracle, user):
        oracle.understand_and_plan.return_value = CreateObjectiveIntent(
            params=CreateObjectiveParams(title="準備期末考", due_date="2025-06-20"))

        reply = await machine.handle(ROW, user, "建立目標：準備期末考")

        assert "🎯 準備期末考" in reply
        assert "截止日期: 2025-06-20" in reply
        assert store.objectives[0].title == "準備期末考"

    @pytest.mark.asyncio
    async def test_create_objective_without_title(self, machine, oracle, user):
        oracle.understand_and_plan.return_value = CreateObjectiveIntent()

        reply = await machine.handle(ROW, user, "建立目標")

        assert reply == "🤔 請告訴我您的學習目標是什麼喔！"

    @pytest.mark.asyncio
    async def test_list_events(self, machine, calendar, oracle, user):
        calendar.listed = [make_event("e1", "Standup", "2025-08-18T10:00:00+08:00",
                                      "2025-08-18T10:30:00+08:00")]
        oracle.understand_and_plan.return_value = ListEventsIntent()

        reply = await machine.handle(ROW, user, "今天有什麼事")

        assert "1 個行程" in reply
        assert "Standup" in reply

    @pytest.mark.asyncio
    async def test_list_events_failure(self, machine, calendar, oracle, user):
        calendar.list_error = RuntimeError("token expired")
        oracle.understand_and_plan.return_value = ListEventsIntent()

        reply = await machine.handle(ROW, user, "今天有什麼事")

        assert "查詢日曆事件時發生錯誤" in reply

    @pytest.mark.asyncio
    async def test_create_single_event(self, machine, calendar, oracle, user):
        oracle.understand_and_plan.return_value = CreateEventIntent(
            params=CreateEventParams(summary="演算法小考", start_time="2025-08-19T15:00:00+08:00"))

        reply = await machine.handle(ROW, user, "明天下午3點演算法小考")

        assert reply.startswith("✅ 行程新增成功！")
        assert "2025/8/19 15:00" in reply
        assert calendar.created[0]["end"]["dateTime"] == "2025-08-19T16:00:00+08:00"

    @pytest.mark.asyncio
    async def test_create_event_without_start(self, machine, calendar, oracle, user):
        oracle.understand_and_plan.return_value = CreateEventIntent(
            params=CreateEventParams(summary="小考"))

        reply = await machine.handle(ROW, user, "小考")

        assert "「開始時間」" in reply
        assert calendar.created == []

    @pytest.mark.asyncio
    async def test_clarify_reply_is_passed_through(self, machine, store, oracle, user):
        oracle.understand_and_plan.return_value = clarify("我是您的學習助理！")

        reply = await machine.handle(ROW, user, "你是誰")

        assert reply == "我是您的學習助理！"
        assert last_state(store) is None

    @pytest.mark.asyncio
    async def test_oracle_exception_gives_generic_apology(self, machine, store, oracle, user):
        oracle.understand_and_plan.side_effect = RuntimeError("boom")

        reply = await machine.handle(ROW, user, "hello")

        assert reply == GENERIC_FAILURE_REPLY
        assert store.state_writes == [(ROW, None)]

    @pytest.mark.asyncio
    async def test_corrupt_state_is_handled_as_fresh(self, machine, store, oracle):
        broken = User(id=1, external_id="U", state_json='{"status": "waiting_for_godot"}')
        oracle.understand_and_plan.return_value = clarify("hi")

        reply = await machine.handle(ROW, broken, "好")

        assert reply == "hi"
        oracle.understand_and_plan.assert_awaited_once()
        assert last_state(store) is None

    @pytest.mark.asyncio
    async def test_state_write_failure_still_replies(self, machine, store, oracle, user):
        async def broken_write(row, state_json):
            raise RuntimeError("sheet down")

        store.set_state = broken_write
        oracle.understand_and_plan.return_value = clarify("hi")

        assert await machine.handle(ROW, user, "hello") == "hi"


class TestWaitingConfirmation:
    @pytest.mark.asyncio
    async def test_affirmative_commits_plan(self, machine, store, calendar):
        user = with_state(WaitingConfirmation(plan=[PlanStep(summary="a"), PlanStep(summary="b")]))

        reply = await machine.handle(ROW, user, "好")

        assert len(calendar.created) == 2
        assert "2 個任務" in reply
        assert store.state_writes == [(ROW, None)]

    @pytest.mark.asyncio
    async def test_commit_with_no_success_reports_warning(self, machine, store, calendar):
        calendar.fail_on = {"a"}
        user = with_state(WaitingConfirmation(plan=[PlanStep(summary="a")]))

        reply = await machine.handle(ROW, user, "ok")

        assert reply.startswith("⚠️")
        assert last_state(store) is None

    @pytest.mark.asyncio
    async def test_negative_cancels(self, machine, store, calendar, oracle):
        user = with_state(WaitingConfirmation(plan=[PlanStep(summary="a")]))

        reply = await machine.handle(ROW, user, "不用了")

        assert reply == PLAN_CANCELLED_REPLY
        assert calendar.created == []
        oracle.modify_plan.assert_not_awaited()
        assert last_state(store) is None

    @pytest.mark.asyncio
    async def test_other_text_revises_plan(self, machine, store, oracle):
        user = with_state(WaitingConfirmation(plan=[PlanStep(summary="a")]))
        oracle.modify_plan.return_value = PlanComplexTaskIntent(
            plan=[PlanStep(summary="a", date="2025-08-22")])

        reply = await machine.handle(ROW, user, "改到週五")

        assert reply.startswith(MODIFIED_PLAN_PREFIX)
        assert PLAN_GREETING not in reply
        state = last_state(store)
        assert isinstance(state, WaitingConfirmation)
        assert state.plan[0].date == "2025-08-22"

    @pytest.mark.asyncio
    async def test_revision_keeps_objective_link(self, machine, store, oracle):
        user = with_state(WaitingConfirmation(plan=[PlanStep(summary="a", objectiveId=104)]))
        oracle.modify_plan.return_value = PlanComplexTaskIntent(plan=[PlanStep(summary="a2")])

        await machine.handle(ROW, user, "換個名字")

        assert last_state(store).plan[0].objective_id == 104

    @pytest.mark.asyncio
    async def test_unusable_revision_returns_to_idle(self, machine, store, oracle):
        user = with_state(WaitingConfirmation(plan=[PlanStep(summary="a")]))
        oracle.modify_plan.return_value = clarify("請重新描述")

        reply = await machine.handle(ROW, user, "???")

        assert reply == "請重新描述"
        assert last_state(store) is None

    @pytest.mark.asyncio
    async def test_empty_revision_returns_to_idle(self, machine, store, oracle):
        user = with_state(WaitingConfirmation(plan=[PlanStep(summary="a")]))
        oracle.modify_plan.return_value = PlanComplexTaskIntent(plan=[])

        reply = await machine.handle(ROW, user, "改一下")

        assert reply == MODIFY_FALLBACK_REPLY
        assert last_state(store) is None

    @pytest.mark.asyncio
    async def test_oracle_error_during_revision_returns_to_idle(self, store, calendar):
        machine = ConversationStateMachine(store, calendar, IntentOracle())
        user = with_state(WaitingConfirmation(plan=[PlanStep(summary="Read ch.1")]))

        with patch("learning_bot.agent.oracle.run_json_completion",
                   AsyncMock(return_value=({"error": "cannot modify"}, "raw", {}))):
            reply = await machine.handle(ROW, user, "改成第二章")

        assert reply == MODIFY_FALLBACK
        assert last_state(store) is None

    @pytest.mark.asyncio
    async def test_exception_keeps_pending_plan(self, machine, store, oracle):
        state = WaitingConfirmation(plan=[PlanStep(summary="a")])
        user = with_state(state)
        oracle.modify_plan.side_effect = RuntimeError("boom")

        reply = await machine.handle(ROW, user, "改一下")

        assert reply == GENERIC_FAILURE_REPLY
        assert store.state_writes == [(ROW, user.state_json)]


class TestDeleteFlow:
    @pytest.mark.asyncio
    async def test_search_then_pick_one(self, machine, store, calendar, oracle, user):
        calendar.search_results = [
            make_event("ev-a", "Meeting A", "2025-08-18T10:00:00+08:00"),
            make_event("ev-b", "Meeting B", "2025-08-19T10:00:00+08:00"),
        ]
        oracle.understand_and_plan.return_value = DeleteEventIntent(
            params=DeleteEventParams(query="會議"))

        reply = await machine.handle(ROW, user, "刪除會議")

        assert "2 個符合條件的行程" in reply
        state = last_state(store)
        assert isinstance(state, WaitingDeleteConfirmation)

        oracle.parse_deletion_choice.return_value = DeletionChoice(selection=[1])
        waiting = User(id=1, external_id="U-line-1", state_json=store.state_writes[-1][1])
        reply = await machine.handle(ROW, waiting, "2")

        assert calendar.deleted == ["ev-b"]
        assert "Meeting B" in reply
        assert last_state(store) is None

    @pytest.mark.asyncio
    async def test_delete_all(self, machine, calendar, oracle):
        events = [make_event("x", "X", "2025-08-18T10:00:00+08:00"),
                  make_event("y", "Y", "2025-08-18T11:00:00+08:00")]
        user = with_state(WaitingDeleteConfirmation(candidates=events))
        oracle.parse_deletion_choice.return_value = DeletionChoice(selection="all")

        reply = await machine.handle(ROW, user, "全部")

        assert calendar.deleted == ["x", "y"]
        assert "2 個行程" in reply

    @pytest.mark.asyncio
    async def test_delete_none(self, machine, calendar, oracle):
        user = with_state(WaitingDeleteConfirmation(
            candidates=[make_event("x", "X", "2025-08-18T10:00:00+08:00")]))
        oracle.parse_deletion_choice.return_value = DeletionChoice(selection="none")

        reply = await machine.handle(ROW, user, "算了")

        assert calendar.deleted == []
        assert reply == "好的，已取消刪除操作。"

    @pytest.mark.asyncio
    async def test_partial_delete_failure_reports_successes(self, machine, store, calendar, oracle):
        calendar.fail_delete = {"x"}
        events = [make_event("x", "X", "2025-08-18T10:00:00+08:00"),
                  make_event("y", "Y", "2025-08-18T11:00:00+08:00")]
        user = with_state(WaitingDeleteConfirmation(candidates=events))
        oracle.parse_deletion_choice.return_value = DeletionChoice(selection="all")

        reply = await machine.handle(ROW, user, "全部")

        assert calendar.deleted == ["y"]
        assert "1 個行程" in reply
        assert last_state(store) is None

    @pytest.mark.asyncio
    async def test_empty_query_asks_which_event(self, machine, store, oracle, user):
        oracle.understand_and_plan.return_value = DeleteEventIntent()

        reply = await machine.handle(ROW, user, "刪除")

        assert reply.startswith("🤔 請告訴我要刪除哪個行程")
        assert last_state(store) is None

    @pytest.mark.asyncio
    async def test_no_search_results(self, machine, oracle, user):
        oracle.understand_and_plan.return_value = DeleteEventIntent(
            params=DeleteEventParams(query="不存在"))

        reply = await machine.handle(ROW, user, "刪除不存在")

        assert reply == "🔍 找不到與「不存在」相關的行程。"


class TestPlanCorrection:
    @pytest.mark.asyncio
    async def test_merged_plan_waits_for_confirmation(self, machine, store, oracle):
        partial = PlanComplexTaskIntent(plan=[PlanStep(summary="Workshop")])
        user = with_state(WaitingPlanCorrection(partial_plan=partial))
        oracle.merge_plan_with_correction.return_value = [
            PlanStep(summary="Workshop", date="2025-08-18")]

        reply = await machine.handle(ROW, user, "事件1的日期是8/18")

        assert reply.startswith("太好了！")
        state = last_state(store)
        assert isinstance(state, WaitingConfirmation)
        assert state.plan[0].date == "2025-08-18"

    @pytest.mark.asyncio
    async def test_merge_failure_returns_to_idle(self, machine, store, oracle):
        partial = PlanComplexTaskIntent(plan=[PlanStep(summary="Workshop")])
        user = with_state(WaitingPlanCorrection(partial_plan=partial))
        oracle.merge_plan_with_correction.return_value = None

        reply = await machine.handle(ROW, user, "不知道")

        assert reply == MERGE_FAILED_REPLY
        assert last_state(store) is None


class TestKnowledgeAction:
    @pytest.mark.asyncio
    async def test_missing_note_id(self, machine, store):
        user = with_state(WaitingKnowledgeAction())

        reply = await machine.handle(ROW, user, "做摘要")

        assert "忘記我們正在討論哪份筆記" in reply
        assert last_state(store) is None

    @pytest.mark.asyncio
    async def test_archive_to_existing_objective(self, machine, store, oracle):
        objective = await store.create_objective(1, "期末考")
        user = with_state(WaitingKnowledgeAction(note_id=3))
        oracle.understand_and_plan.return_value = LinkNoteIntent(
            params=ObjectiveRefParams(objective_title="期末考"))

        reply = await machine.handle(ROW, user, "將筆記歸檔到『期末考』")

        assert store.note_links == [(3, objective.objective_id)]
        assert "期末考" in reply
        assert last_state(store) is None

    @pytest.mark.asyncio
    async def test_archive_to_unknown_objective_keeps_waiting(self, machine, store, oracle):
        user = with_state(WaitingKnowledgeAction(note_id=3))
        oracle.understand_and_plan.return_value = LinkNoteIntent(
            params=ObjectiveRefParams(objective_title="火星"))

        reply = await machine.handle(ROW, user, "歸檔到『火星』")

        assert "找不到名為「火星」的學習目標" in reply
        state = last_state(store)
        assert isinstance(state, WaitingKnowledgeAction)
        assert state.note_id == 3

    @pytest.mark.asyncio
    async def test_generates_artifact_from_note(self, machine, store, oracle):
        note_id = await store.save_note(1, {"title": "Photosynthesis"})
        user = with_state(WaitingKnowledgeAction(note_id=note_id))
        oracle.understand_and_plan.return_value = clarify("n/a")
        oracle.process_knowledge.return_value = "## 摘要\n光合作用..."

        reply = await machine.handle(ROW, user, "幫我做摘要")

        oracle.process_knowledge.assert_awaited_once_with({"title": "Photosynthesis"}, "幫我做摘要")
        assert reply.startswith("## 摘要")
        assert last_state(store) is None

    @pytest.mark.asyncio
    async def test_unreadable_note(self, machine, store, oracle):
        user = with_state(WaitingKnowledgeAction(note_id=99))
        oracle.understand_and_plan.return_value = clarify("n/a")

        reply = await machine.handle(ROW, user, "出題考我")

        assert reply == "抱歉，讀取筆記資料時發生錯誤。"


class TestImageIntents:
    @pytest.mark.asyncio
    async def test_knowledge_note_is_saved(self, machine, store, user):
        intent = ReconstructKnowledgeIntent(source="生物課筆記", title="光合作用")

        transition = await machine.handle_image_intent(user, intent)

        assert store.notes[1]["title"] == "光合作用"
        assert isinstance(transition.state, WaitingKnowledgeAction)
        assert transition.state.note_id == 1
        assert "生物課筆記" in transition.reply

    @pytest.mark.asyncio
    async def test_complete_plan_waits_for_confirmation(self, machine, user):
        intent = PlanComplexTaskIntent(plan=[
            PlanStep(summary="Talk", date="2025-08-18"),
            PlanStep(summary="Talk", date="2025-08-18"),
        ])

        transition = await machine.handle_image_intent(user, intent)

        assert isinstance(transition.state, WaitingConfirmation)
        assert len(transition.state.plan) == 1

    @pytest.mark.asyncio
    async def test_undated_steps_ask_for_correction(self, machine, user):
        intent = PlanComplexTaskIntent(plan=[
            PlanStep(summary="Talk", date="2025-08-18"),
            PlanStep(summary="Workshop"),
        ])

        transition = await machine.handle_image_intent(user, intent)

        assert isinstance(transition.state, WaitingPlanCorrection)
        assert "【請幫我填寫這個日期】" in transition.reply
        assert len(transition.state.partial_plan.plan) == 2

    @pytest.mark.asyncio
    async def test_empty_plan_leaves_state_alone(self, machine, user):
        transition = await machine.handle_image_intent(
            user, PlanComplexTaskIntent(plan=[PlanStep(summary="", date="2025-08-18")]))

        assert transition.state is None
        assert "無法提取出任何完整的活動資訊" in transition.reply

    @pytest.mark.asyncio
    async def test_single_event_from_image(self, machine, user):
        intent = CreateEventIntent(params=CreateEventParams(summary="Concert", date="2025-09-01"))

        transition = await machine.handle_image_intent(user, intent)

        assert isinstance(transition.state, WaitingConfirmation)
        assert transition.state.plan[0].summary == "Concert"

    @pytest.mark.asyncio
    async def test_undated_single_event_asks_for_date(self, machine, user):
        intent = CreateEventIntent(params=CreateEventParams(summary="Concert"))

        transition = await machine.handle_image_intent(user, intent)

        assert isinstance(transition.state, WaitingPlanCorrection)

    @pytest.mark.asyncio
    async def test_unhandled_action(self, machine, user):
        transition = await machine.handle_image_intent(user, ListEventsIntent())

        assert transition.state is None
        assert "看不出可以怎麽協助您" in transition.reply


class TestScenarios:
    @pytest.mark.asyncio
    async def test_meeting_tomorrow_afternoon(self, machine, store, calendar, oracle, user):
        oracle.understand_and_plan.return_value = CreateEventIntent(
            params=CreateEventParams(summary="跟 David 開會", start_time="2025-08-16T14:00:00+08:00"))

        reply = await machine.handle(ROW, user, "明天下午兩點跟 David 開會")

        assert len(calendar.created) == 1
        assert "跟 David 開會" in reply
        assert "2025/8/16 14:00" in reply
        assert store.state_writes == [(ROW, None)]

    @pytest.mark.asyncio
    async def test_delete_first_and_third_of_three(self, machine, store, calendar, oracle):
        events = [make_event(f"ev-{i}", f"Event {i}", f"2025-08-1{i}T10:00:00+08:00") for i in (1, 2, 3)]
        user = with_state(WaitingDeleteConfirmation(candidates=events))
        oracle.parse_deletion_choice.return_value = DeletionChoice(selection=[0, 2])

        reply = await machine.handle(ROW, user, "1 和 3")

        oracle.parse_deletion_choice.assert_awaited_once_with("1 和 3", 3)
        assert calendar.deleted == ["ev-1", "ev-3"]
        assert "Event 1" in reply and "Event 3" in reply
        assert "Event 2" not in reply
        assert store.state_writes == [(ROW, None)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", [
        None,
        WaitingConfirmation(plan=[]),
        WaitingDeleteConfirmation(candidates=[]),
        WaitingPlanCorrection(partial_plan=PlanComplexTaskIntent(plan=[PlanStep(summary="x")])),
        WaitingKnowledgeAction(note_id=1),
    ])
    async def test_every_turn_writes_state_once_and_replies(self, machine, store, oracle, state):
        oracle.understand_and_plan.return_value = clarify("ok")
        oracle.modify_plan.return_value = clarify("ok")
        oracle.parse_deletion_choice.return_value = DeletionChoice()
        user = with_state(state) if state is not None else User(id=1, external_id="U")

        reply = await machine.handle(ROW, user, "隨便說說")

        assert reply
        assert len(store.state_writes) == 1

    @pytest.mark.asyncio
    async def test_confirming_an_empty_plan_returns_to_idle(self, machine, store, calendar):
        user = with_state(WaitingConfirmation(plan=[]))

        reply = await machine.handle(ROW, user, "同意")

        assert calendar.created == []
        assert reply.startswith("⚠️")
        assert store.state_writes == [(ROW, None)]
