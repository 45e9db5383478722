"""
Tests for API Routes.

Tests route handler functions directly with mocked dependencies.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from fastapi import BackgroundTasks, HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from chatgate.api.dependencies import get_current_user_id, require_webhook_token
from chatgate.api.routes import (
    confirm_purchase,
    get_chat_history,
    health_check,
    launch,
    list_chats,
    parse_chat_id,
    post_chat,
    revenuecat_webhook,
    sign_up,
)
from chatgate.config import settings
from chatgate.db.models import User
from chatgate.exceptions import (
    ChatForbiddenError,
    ChatNotFoundError,
    MessagesExhaustedError,
    UnauthorizedError,
    UserNotFoundError,
)
from chatgate.main import chatgate_exception_handler
from chatgate.models.api import (
    ChatRequest,
    MessageRole,
    RevenueCatEventPayload,
    RevenueCatWebhookRequest,
)
from chatgate.models.domain import BillingEvent, TurnRequest, TurnResult
from chatgate.services.accounts import hash_access_token
from chatgate.services.reconciler import reconcile_in_background
from conftest import create_mock_chat, create_mock_credits, create_mock_message, make_result


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


# ============================================================================
# Helper Function Tests
# ============================================================================


class TestParseChatId:
    """Tests for parse_chat_id helper."""

    def test_valid(self):
        chat_id = uuid4()
        assert parse_chat_id(str(chat_id)) == chat_id

    def test_malformed_is_not_found(self):
        with pytest.raises(ChatNotFoundError):
            parse_chat_id("not-a-uuid")


# ============================================================================
# Dependency Tests
# ============================================================================


class TestGetCurrentUserId:
    """Tests for bearer authentication."""

    async def test_missing_credentials(self, db_session):
        with pytest.raises(UnauthorizedError):
            await get_current_user_id(credentials=None, db=db_session)

        db_session.execute.assert_not_called()

    async def test_unknown_token(self, db_session):
        db_session.execute.return_value = make_result(scalar=None)

        with pytest.raises(UnauthorizedError, match="unknown"):
            await get_current_user_id(credentials=bearer("nope"), db=db_session)

    async def test_known_token(self, db_session, user_id):
        db_session.execute.return_value = make_result(scalar=user_id)

        assert await get_current_user_id(credentials=bearer("tok"), db=db_session) == user_id


class TestRequireWebhookToken:
    """Tests for the billing webhook shared secret."""

    async def test_matching_token_passes(self):
        assert await require_webhook_token(bearer(settings.revenue_cat_webhook_token)) is None

    async def test_wrong_token(self):
        with pytest.raises(HTTPException) as exc_info:
            await require_webhook_token(bearer("wrong"))

        assert exc_info.value.status_code == 401
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}

    async def test_missing_token(self):
        with pytest.raises(HTTPException) as exc_info:
            await require_webhook_token(None)

        assert exc_info.value.status_code == 401

    async def test_not_configured(self):
        with (
            patch.object(settings, "revenue_cat_webhook_token", ""),
            pytest.raises(HTTPException) as exc_info,
        ):
            await require_webhook_token(bearer("anything"))

        assert exc_info.value.status_code == 503


# ============================================================================
# Account Endpoints
# ============================================================================


class TestSignUp:
    """Tests for POST /v1/signup."""

    async def test_issues_token_and_stores_hash(self, db_session):
        response = await sign_up(db=db_session)

        user = db_session.add.call_args_list[0].args[0]
        credits = db_session.add.call_args_list[1].args[0]
        assert isinstance(user, User)
        assert response.user_id == user.id
        assert response.access_token
        assert user.access_token_hash == hash_access_token(response.access_token)
        assert user.access_token_hash != response.access_token
        assert credits.free_messages_left == settings.free_messages_per_user
        assert credits.paid_messages_left == 0
        db_session.commit.assert_awaited_once()


class TestLaunch:
    """Tests for GET /v1/launch."""

    async def test_returns_balances(self, db_session, user_id):
        db_session.execute.return_value = make_result(
            scalar=create_mock_credits(user_id, free=3, paid=7, is_using_paid=True)
        )

        response = await launch(user_id=user_id, db=db_session)

        assert response.user_id == user_id
        assert response.free_messages_left == 3
        assert response.paid_messages_left == 7
        assert response.is_using_paid is True

    async def test_missing_ledger(self, db_session, user_id):
        db_session.execute.return_value = make_result(scalar=None)

        with pytest.raises(UserNotFoundError):
            await launch(user_id=user_id, db=db_session)


# ============================================================================
# Chat Endpoints
# ============================================================================


class TestPostChat:
    """Tests for POST /v1/chat."""

    async def test_runs_turn(self, user_id):
        chat_id = uuid4()
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(return_value=TurnResult(chat_id=chat_id, reply="Hi!"))

        response = await post_chat(
            request=ChatRequest(
                chat_id=str(chat_id), prompt="hello", image_paths=["a.png"], voice_paths=[]
            ),
            user_id=user_id,
            orchestrator=orchestrator,
        )

        assert response.chat_id == chat_id
        assert response.response == "Hi!"
        orchestrator.run.assert_awaited_once_with(
            TurnRequest(
                user_id=user_id,
                prompt="hello",
                chat_id=chat_id,
                image_refs=("a.png",),
                voice_refs=(),
            )
        )

    async def test_new_chat_without_id(self, user_id):
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(return_value=TurnResult(chat_id=uuid4(), reply="ok"))

        await post_chat(request=ChatRequest(prompt="hi"), user_id=user_id, orchestrator=orchestrator)

        assert orchestrator.run.await_args.args[0].chat_id is None

    async def test_malformed_chat_id(self, user_id):
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock()

        with pytest.raises(ChatNotFoundError):
            await post_chat(
                request=ChatRequest(chat_id="garbage", prompt="hi"),
                user_id=user_id,
                orchestrator=orchestrator,
            )

        orchestrator.run.assert_not_awaited()

    async def test_turn_errors_propagate(self, user_id):
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(side_effect=MessagesExhaustedError(user_id))

        with pytest.raises(MessagesExhaustedError):
            await post_chat(
                request=ChatRequest(prompt="hi"), user_id=user_id, orchestrator=orchestrator
            )


class TestGetChatHistory:
    """Tests for GET /v1/chat."""

    async def test_returns_messages(self, db_session, user_id):
        chat = create_mock_chat(user_id=user_id)
        rows = [
            create_mock_message(chat.id, MessageRole.USER, "look", image_paths=["a.png"]),
            create_mock_message(
                chat.id, MessageRole.USER, "", voice_paths=["v.m4a"], voice_transcription="secret"
            ),
            create_mock_message(chat.id, MessageRole.ASSISTANT, "fine"),
        ]
        db_session.execute.side_effect = [make_result(scalar=chat), make_result(scalars=rows)]

        history = await get_chat_history(chat_id=str(chat.id), user_id=user_id, db=db_session)

        assert [(m.role, m.content) for m in history] == [
            (MessageRole.USER, "look"),
            (MessageRole.USER, ""),
            (MessageRole.ASSISTANT, "fine"),
        ]
        assert history[0].image_paths == ["a.png"]
        assert history[1].voice_paths == ["v.m4a"]
        assert "secret" not in history[1].model_dump_json()
        assert history[0].created_at == rows[0].created_at.isoformat()

    async def test_other_users_chat(self, db_session, user_id):
        chat = create_mock_chat(user_id=uuid4())
        db_session.execute.return_value = make_result(scalar=chat)

        with pytest.raises(ChatForbiddenError):
            await get_chat_history(chat_id=str(chat.id), user_id=user_id, db=db_session)

    async def test_unknown_chat(self, db_session, user_id):
        db_session.execute.return_value = make_result(scalar=None)

        with pytest.raises(ChatNotFoundError):
            await get_chat_history(chat_id=str(uuid4()), user_id=user_id, db=db_session)


class TestListChats:
    """Tests for GET /v1/chats."""

    async def test_lists_summaries(self, db_session, user_id):
        newer = create_mock_chat(user_id=user_id, title="Newer")
        older = create_mock_chat(user_id=user_id, title="Older")
        db_session.execute.return_value = make_result(scalars=[newer, older])

        chats = await list_chats(user_id=user_id, db=db_session)

        assert [(c.id, c.title) for c in chats] == [(newer.id, "Newer"), (older.id, "Older")]

    async def test_empty(self, db_session, user_id):
        assert await list_chats(user_id=user_id, db=db_session) == []


# ============================================================================
# Billing Endpoints
# ============================================================================


class TestConfirmPurchase:
    """Tests for GET /v1/confirmation."""

    async def test_confirmed(self, db_session, user_id):
        db_session.execute.return_value = make_result(scalar=uuid4())

        response = await confirm_purchase(transaction_id="tx-1", user_id=user_id, db=db_session)

        assert response.confirmed is True

    async def test_not_confirmed(self, db_session, user_id):
        db_session.execute.return_value = make_result(scalar=None)

        response = await confirm_purchase(transaction_id="tx-1", user_id=user_id, db=db_session)

        assert response.confirmed is False


class TestRevenueCatWebhook:
    """Tests for POST /v1/webhooks/revenuecat."""

    async def test_schedules_reconciliation(self):
        background_tasks = BackgroundTasks()
        payload = RevenueCatWebhookRequest(
            event=RevenueCatEventPayload(app_user_id="user-1", type="NON_RENEWING_PURCHASE")
        )

        response = await revenuecat_webhook(payload=payload, background_tasks=background_tasks)

        assert response.status == "accepted"
        assert len(background_tasks.tasks) == 1
        task = background_tasks.tasks[0]
        assert task.func is reconcile_in_background
        assert task.args == (BillingEvent(app_user_id="user-1", event_type="NON_RENEWING_PURCHASE"),)


# ============================================================================
# Health and Error Rendering
# ============================================================================


class TestHealthCheck:
    """Tests for GET /health."""

    async def test_healthy(self, db_session):
        response = await health_check(db=db_session)

        assert response.status == "healthy"
        assert response.database == "connected"

    async def test_unhealthy(self, db_session):
        db_session.execute.side_effect = Exception("Connection refused")

        with pytest.raises(HTTPException) as exc_info:
            await health_check(db=db_session)

        assert exc_info.value.status_code == 503


class TestErrorHandler:
    """Tests for the ChatGateError response renderer."""

    def request(self) -> MagicMock:
        request = MagicMock()
        request.url.path = "/v1/chat"
        request.method = "POST"
        return request

    async def test_renders_kind_and_description(self, user_id):
        response = await chatgate_exception_handler(
            self.request(), MessagesExhaustedError(user_id)
        )

        assert response.status_code == 402
        assert json.loads(response.body) == {
            "error_type": "no_messages",
            "description": "You have used all of your available messages",
        }

    async def test_unauthorized_sets_challenge(self):
        response = await chatgate_exception_handler(
            self.request(), UnauthorizedError("missing bearer token")
        )

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
