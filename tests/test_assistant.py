"""
Tests for saved Ask-AI conversations and AI recommendations.
"""

import json
from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

import pytest

from conftest import StubModel, run
from finance_tracker.agents import QueryAgent, RecommendationAgent, RecommendationError
from finance_tracker.agents.ai_agents import RECOMMENDATION_ERROR, parse_json_array
from finance_tracker.models.assistant import (
    NEW_SESSION_TITLE,
    ChatMessage,
    ChatMessageType,
    RecommendationType,
)
from finance_tracker.models.audit import AuditEventType
from finance_tracker.orchestrator import QueryFlow
from finance_tracker.queries import QueryExecutor
from finance_tracker.services.recommendation_service import RecommendationService


def message(user_id, session_id, text, minute, message_type=ChatMessageType.USER):
    return ChatMessage(
        user_id=user_id,
        session_id=session_id,
        type=message_type,
        message=text,
        created_at=datetime(2025, 3, 1, 9, minute, tzinfo=timezone.utc),
    )


class TestChatService:

    def test_sessions_are_titled_and_ordered_by_activity(self, chat_service, chat_storage, user_id):
        older, newer = uuid4(), uuid4()
        run(chat_storage.save_message(message(user_id, older, "How much on food?", 0)))
        run(chat_storage.save_message(message(user_id, newer, "Salary this month?", 5)))
        run(chat_storage.save_message(
            message(user_id, older, "Rp 80.000", 1, ChatMessageType.AI)
        ))
        run(chat_storage.save_message(
            message(user_id, newer, "Yes, received.", 6, ChatMessageType.AI)
        ))
        run(chat_storage.save_message(message(uuid4(), uuid4(), "Someone else", 9)))

        sessions = run(chat_service.get_chat_sessions())

        assert [s.session_id for s in sessions] == [newer, older]
        assert [s.first_message for s in sessions] == ["Salary this month?", "How much on food?"]
        assert [s.message_count for s in sessions] == [2, 2]

    def test_session_without_question_uses_default_title(self, chat_service, chat_storage, user_id):
        run(chat_storage.save_message(
            message(user_id, uuid4(), "Hello!", 0, ChatMessageType.AI)
        ))
        [session] = run(chat_service.get_chat_sessions())
        assert session.first_message == NEW_SESSION_TITLE

    def test_messages_in_order(self, chat_service):
        session_id = chat_service.new_session_id()
        run(chat_service.save_message(session_id, ChatMessageType.USER, "Question"))
        run(chat_service.save_message(session_id, ChatMessageType.AI, "Answer"))

        messages = run(chat_service.get_messages(session_id))

        assert [(m.type, m.message) for m in messages] == [
            (ChatMessageType.USER, "Question"),
            (ChatMessageType.AI, "Answer"),
        ]

    def test_delete_session(self, chat_service, audit_storage):
        kept, deleted = uuid4(), uuid4()
        run(chat_service.save_message(kept, ChatMessageType.USER, "Keep me"))
        run(chat_service.save_message(deleted, ChatMessageType.USER, "Delete me"))
        run(chat_service.save_message(deleted, ChatMessageType.AI, "Gone"))

        assert run(chat_service.delete_session(deleted)) == 2

        assert run(chat_service.get_messages(deleted)) == []
        assert [s.session_id for s in run(chat_service.get_chat_sessions())] == [kept]
        events = run(audit_storage.get_events_by_entity("chat_session", deleted))
        assert [e.event_type for e in events] == [AuditEventType.CHAT_SESSION_DELETED]


class TestQueryFlowSessions:

    def flow(self, transaction_service, chat_service, model):
        return QueryFlow(
            QueryAgent(model=model),
            QueryExecutor(transaction_service),
            user_id=chat_service.user_id,
            chat_service=chat_service,
        )

    def test_question_and_answer_are_saved(self, transaction_service, chat_service, record, food):
        record(food, 50000, description="Nasi Padang")
        model = StubModel(
            '{"query_type": "aggregate", "aggregation": "sum"}',
            "You spent Rp 50.000.",
        )
        session_id = chat_service.new_session_id()

        answer, _, _ = run(self.flow(transaction_service, chat_service, model).answer_question(
            "How much did I spend?", session_id=session_id
        ))

        messages = run(chat_service.get_messages(session_id))
        assert [(m.type, m.message) for m in messages] == [
            (ChatMessageType.USER, "How much did I spend?"),
            (ChatMessageType.AI, answer),
        ]

    def test_nothing_saved_without_session(self, transaction_service, chat_service, wallet):
        model = StubModel('{"query_type": "list"}')

        run(self.flow(transaction_service, chat_service, model).answer_question("Anything?"))

        assert run(chat_service.get_chat_sessions()) == []


def recommendations_json(*items):
    return "```json\n" + json.dumps(list(items)) + "\n```"


SAVING_ADVICE = {
    "type": "saving",
    "title": "Cook at home more",
    "description": "Food is your largest expense.",
    "impact": "high",
    "priority": 1,
    "potential_saving": 300000,
    "timeframe": "1 month",
    "action_items": ["Plan weekly meals", "Bring lunch to work"],
}


@pytest.fixture
def recommender(wallet_service, transaction_service, budget_service, goal_loan_service,
                user_id, audit_logger):
    def _make(model):
        return RecommendationService(
            RecommendationAgent(model=model),
            wallet_service,
            transaction_service,
            budget_service,
            goal_loan_service,
            user_id,
            audit_logger,
        )

    return _make


class TestRecommendations:

    def test_sparse_history_gets_starter_advice(self, recommender, record, food):
        record(food, 20000)
        record(food, 30000)
        model = StubModel("[]")

        [advice] = run(recommender(model).get_recommendations())

        assert advice.title == "Start Tracking Your Finances"
        assert advice.type == RecommendationType.GOAL
        assert advice.priority == 1
        assert len(advice.action_items) == 3
        assert model.calls == []

    def test_old_transactions_do_not_count(self, recommender, record, food):
        old = date.today() - timedelta(days=60)
        for amount in (10000, 20000, 30000):
            record(food, amount, on=old)

        [advice] = run(recommender(StubModel("[]")).get_recommendations())

        assert advice.title == "Start Tracking Your Finances"

    def test_model_advice_is_parsed(self, recommender, record, food, audit_storage):
        for amount in (10000, 20000, 30000):
            record(food, amount, description="Warteg")
        bogus = dict(SAVING_ADVICE, type="lottery")
        model = StubModel(recommendations_json(SAVING_ADVICE, bogus))

        [advice] = run(recommender(model).get_recommendations())

        assert advice.title == "Cook at home more"
        assert advice.potential_saving == 300000
        assert advice.action_items == ["Plan weekly meals", "Bring lunch to work"]
        prompt = model.calls[0]
        assert "Warteg" in prompt
        assert "Food & Dining" in prompt
        assert "BCA" in prompt
        events = run(audit_storage.get_recent_events())
        assert events[0].event_type == AuditEventType.RECOMMENDATIONS_GENERATED

    def test_model_failure_raises_friendly_error(self, recommender, record, food, audit_storage):
        for amount in (10000, 20000, 30000):
            record(food, amount)
        model = StubModel(error=RuntimeError("quota exceeded"))

        with pytest.raises(RecommendationError) as excinfo:
            run(recommender(model).get_recommendations())

        assert str(excinfo.value) == RECOMMENDATION_ERROR
        events = run(audit_storage.get_recent_events())
        assert events[0].event_type == AuditEventType.EXTERNAL_SERVICE_ERROR
        assert events[0].error_message == "quota exceeded"

    def test_unusable_response_raises(self, recommender, record, food):
        for amount in (10000, 20000, 30000):
            record(food, amount)

        with pytest.raises(RecommendationError):
            run(recommender(StubModel("I have no advice.")).get_recommendations())


class TestParseJsonArray:

    def test_fenced_array(self):
        assert parse_json_array('```json\n[{"a": 1}]\n```') == [{"a": 1}]

    def test_object_is_not_an_array(self):
        assert parse_json_array('{"a": 1}') is None

    def test_broken_json(self):
        assert parse_json_array("[{") is None
