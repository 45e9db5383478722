"""
FastAPI Dependencies - Authentication and service wiring.

NO DICTIONARIES - All dependencies return typed objects.
"""

import secrets
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from chatgate.config import settings
from chatgate.db.session import get_write_db
from chatgate.observability.logging import get_logger
from chatgate.services.accounts import AccountService
from chatgate.services.assembler import ContentAssembler
from chatgate.services.conversation import ConversationStore
from chatgate.services.ledger import EntitlementLedger
from chatgate.services.orchestrator import TurnOrchestrator
from chatgate.services.provider_registry import get_openai_provider, get_storage_resolver

logger = get_logger(__name__)

# Bearer token scheme for app user auth
bearer_scheme = HTTPBearer(auto_error=False)

# Separate scheme instance so the webhook shows up distinctly in OpenAPI
webhook_bearer_scheme = HTTPBearer(auto_error=False, scheme_name="RevenueCatWebhookToken")


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_write_db),
) -> UUID:
    """
    Resolve `Authorization: Bearer {access_token}` to the user id.

    Raises:
        UnauthorizedError: No token or an unknown token (rendered as 401)
    """
    token = credentials.credentials if credentials else None
    return await AccountService(db).authenticate(token)


async def require_webhook_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(webhook_bearer_scheme),
) -> None:
    """
    Gate the billing webhook on the shared bearer secret.

    Raises:
        HTTPException 503 if no webhook token is configured
        HTTPException 401 if the token is missing or wrong
    """
    expected = settings.revenue_cat_webhook_token
    if not expected:
        logger.error("revenuecat_webhook_token_not_configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook not configured",
        )

    provided = credentials.credentials if credentials else ""
    if not secrets.compare_digest(provided.encode(), expected.encode()):
        logger.warning("revenuecat_webhook_unauthorized")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_turn_orchestrator(db: AsyncSession = Depends(get_write_db)) -> TurnOrchestrator:
    """Build a TurnOrchestrator bound to the request's write session."""
    provider = get_openai_provider()
    return TurnOrchestrator(
        ledger=EntitlementLedger(db),
        store=ConversationStore(db),
        assembler=ContentAssembler(resolver=get_storage_resolver(), transcriber=provider),
        model=provider,
        system_prompt=settings.load_system_prompt(),
        model_name=settings.openai_model,
        default_title=settings.default_chat_title,
        title_max_length=settings.chat_title_max_length,
    )
