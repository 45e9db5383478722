"""
API Routes - FastAPI endpoints for the mobile chat client.

NO DICTIONARIES - All requests/responses use Pydantic models.

ChatGateError subclasses raised here are rendered by the application-level
exception handler as {"error_type", "description"}.
"""

from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from chatgate.api.dependencies import (
    get_current_user_id,
    get_turn_orchestrator,
    require_webhook_token,
)
from chatgate.config import settings
from chatgate.db.session import get_read_db, get_write_db
from chatgate.exceptions import ChatNotFoundError
from chatgate.models.api import (
    ChatRequest,
    ChatResponse,
    ChatSummaryResponse,
    ConfirmationResponse,
    HealthResponse,
    HistoryMessage,
    LaunchResponse,
    RevenueCatWebhookRequest,
    SignUpResponse,
    WebhookAck,
)
from chatgate.models.domain import BillingEvent, TurnRequest
from chatgate.observability.logging import get_logger, log_context
from chatgate.services.accounts import AccountService
from chatgate.services.conversation import ConversationStore
from chatgate.services.ledger import EntitlementLedger
from chatgate.services.orchestrator import TurnOrchestrator
from chatgate.services.reconciler import reconcile_in_background

logger = get_logger(__name__)

router = APIRouter()


def parse_chat_id(raw: str) -> UUID:
    """Parse a client-supplied chat id; malformed ids cannot name an existing chat."""
    try:
        return UUID(raw)
    except ValueError as exc:
        raise ChatNotFoundError(raw) from exc


# =============================================================================
# Account Endpoints
# =============================================================================


@router.post("/v1/signup", response_model=SignUpResponse)
async def sign_up(db: AsyncSession = Depends(get_write_db)) -> SignUpResponse:
    """
    Issue a bearer credential bound to a fresh user.

    The user starts with the configured free message balance.
    """
    new_user = await AccountService(db).sign_up(settings.free_messages_per_user)
    return SignUpResponse(user_id=new_user.user_id, access_token=new_user.access_token)


@router.get("/v1/launch", response_model=LaunchResponse)
async def launch(
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_write_db),
) -> LaunchResponse:
    """Balances shown when the app starts."""
    ledger = await AccountService(db).launch(user_id)
    return LaunchResponse(
        user_id=ledger.user_id,
        free_messages_left=ledger.free_messages_left,
        paid_messages_left=ledger.paid_messages_left,
        is_using_paid=ledger.is_using_paid,
    )


# =============================================================================
# Chat Endpoints
# =============================================================================


@router.post("/v1/chat", response_model=ChatResponse)
async def post_chat(
    request: ChatRequest,
    user_id: UUID = Depends(get_current_user_id),
    orchestrator: TurnOrchestrator = Depends(get_turn_orchestrator),
) -> ChatResponse:
    """
    Run one conversation turn.

    Omitting chat_id starts a new chat. Images and voice notes require
    purchased messages.
    """
    chat_id = parse_chat_id(request.chat_id) if request.chat_id else None

    with log_context(user_id=str(user_id)):
        result = await orchestrator.run(
            TurnRequest(
                user_id=user_id,
                prompt=request.prompt,
                chat_id=chat_id,
                image_refs=tuple(request.image_paths),
                voice_refs=tuple(request.voice_paths),
            )
        )

    return ChatResponse(chat_id=result.chat_id, response=result.reply)


@router.get("/v1/chat", response_model=list[HistoryMessage])
async def get_chat_history(
    chat_id: str = Query(..., max_length=64),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_write_db),
) -> list[HistoryMessage]:
    """
    Client-facing history of one chat, oldest first.

    System instructions and internal voice transcriptions are never returned.
    """
    store = ConversationStore(db)
    chat = await store.get_owned_chat(parse_chat_id(chat_id), user_id)
    messages = await store.list_messages(chat.chat_id, include_system=False)

    return [
        HistoryMessage(
            role=message.role,
            content=message.content,
            image_paths=list(message.image_refs),
            voice_paths=list(message.voice_refs),
            created_at=message.created_at.isoformat() if message.created_at else "",
        )
        for message in messages
    ]


@router.get("/v1/chats", response_model=list[ChatSummaryResponse])
async def list_chats(
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_write_db),
) -> list[ChatSummaryResponse]:
    """The caller's chats, newest first."""
    chats = await ConversationStore(db).list_chats_for_user(user_id)
    return [ChatSummaryResponse(id=chat.chat_id, title=chat.title) for chat in chats]


# =============================================================================
# Billing Endpoints
# =============================================================================


@router.get("/v1/confirmation", response_model=ConfirmationResponse)
async def confirm_purchase(
    transaction_id: str = Query(..., alias="id", min_length=1, max_length=255),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_write_db),
) -> ConfirmationResponse:
    """Whether a store transaction has been reconciled for the caller."""
    confirmed = await EntitlementLedger(db).is_confirmed(transaction_id, user_id)
    return ConfirmationResponse(confirmed=confirmed)


@router.post(
    "/v1/webhooks/revenuecat",
    response_model=WebhookAck,
    dependencies=[Depends(require_webhook_token)],
)
async def revenuecat_webhook(
    payload: RevenueCatWebhookRequest,
    background_tasks: BackgroundTasks,
) -> WebhookAck:
    """
    Accept a RevenueCat event and reconcile it after responding.

    Only the subject id is used; purchases are re-fetched from RevenueCat.
    """
    event = BillingEvent(app_user_id=payload.event.app_user_id, event_type=payload.event.type)
    logger.info(
        "revenuecat_webhook_received",
        app_user_id=event.app_user_id,
        event_type=event.event_type,
    )
    background_tasks.add_task(reconcile_in_background, event)
    return WebhookAck()


# =============================================================================
# Health
# =============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_read_db)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await db.execute(text("SELECT 1"))

        return HealthResponse(
            status="healthy",
            database="connected",
            timestamp=datetime.now(UTC).isoformat(),
        )

    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(exc),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc
