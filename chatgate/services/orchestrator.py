"""
Turn Orchestrator - Entitlement-gated conversation turn state machine.

NO DICTIONARIES - Turn progress is an immutable TurnState advanced by one
step method per transition:

    start -> gate_checked -> chat_resolved -> media_checked
          -> voice_transcribed -> user_turn_persisted -> assembled
          -> model_called -> assistant_turn_persisted -> debited -> done

Each step either returns the next state or raises a ChatGateError, which
aborts the turn. There are no retries across steps.
"""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from enum import Enum
from uuid import UUID

from chatgate.exceptions import ChatGateError
from chatgate.models.api import MessageRole
from chatgate.models.domain import (
    BalanceSnapshot,
    ContentPart,
    ModelMessage,
    ModelRequest,
    TurnRequest,
    TurnResult,
)
from chatgate.observability.logging import get_logger
from chatgate.observability.metrics import metrics
from chatgate.observability.tracing import get_tracer, traced_span
from chatgate.services.assembler import ContentAssembler
from chatgate.services.capabilities import ModelProvider
from chatgate.services.conversation import ConversationStore, derive_chat_title
from chatgate.services.ledger import EntitlementLedger

logger = get_logger(__name__)
tracer = get_tracer(__name__)


class TurnStage(str, Enum):
    """Last stage a turn successfully reached."""

    START = "start"
    GATE_CHECKED = "gate_checked"
    CHAT_RESOLVED = "chat_resolved"
    MEDIA_CHECKED = "media_checked"
    VOICE_TRANSCRIBED = "voice_transcribed"
    USER_TURN_PERSISTED = "user_turn_persisted"
    ASSEMBLED = "assembled"
    MODEL_CALLED = "model_called"
    ASSISTANT_TURN_PERSISTED = "assistant_turn_persisted"
    DEBITED = "debited"
    DONE = "done"


@dataclass(frozen=True)
class TurnState:
    """Immutable progress of one turn through the pipeline."""

    request: TurnRequest
    stage: TurnStage = TurnStage.START
    snapshot: BalanceSnapshot | None = None
    chat_id: UUID | None = None
    transcription: str = ""
    user_message_id: UUID | None = None
    parts: tuple[ContentPart, ...] = ()
    reply: str | None = None

    @property
    def is_new_chat(self) -> bool:
        return self.request.chat_id is None


class TurnOrchestrator:
    """
    Sequences one client turn through ledger, store, assembler and model.

    The balance snapshot read at the gate governs the whole turn: it decides
    media access and which balance is debited. The debit itself is a
    conditional decrement, so a concurrent turn can at worst cause one unit
    not to be taken, never a negative balance.
    """

    def __init__(
        self,
        ledger: EntitlementLedger,
        store: ConversationStore,
        assembler: ContentAssembler,
        model: ModelProvider,
        system_prompt: str,
        model_name: str = "gpt-4o",
        default_title: str = "New Chat",
        title_max_length: int = 50,
    ) -> None:
        self.ledger = ledger
        self.store = store
        self.assembler = assembler
        self.model = model
        self.system_prompt = system_prompt
        self.model_name = model_name
        self.default_title = default_title
        self.title_max_length = title_max_length

    @property
    def steps(self) -> tuple[Callable[[TurnState], Awaitable[TurnState]], ...]:
        return (
            self.check_gate,
            self.resolve_chat,
            self.check_media,
            self.transcribe_voice,
            self.persist_user_turn,
            self.assemble,
            self.call_model,
            self.persist_assistant_turn,
            self.debit,
        )

    async def run(self, request: TurnRequest) -> TurnResult:
        """
        Execute one turn end to end.

        Raises:
            ChatGateError: Any step failure, unchanged
        """
        state = TurnState(request=request)
        try:
            for step in self.steps:
                state = await step(state)
        except ChatGateError as e:
            logger.warning(
                "turn_failed",
                user_id=str(request.user_id),
                chat_id=str(state.chat_id) if state.chat_id else None,
                stage=state.stage.value,
                error_type=e.kind,
                error=e.message,
            )
            metrics.record_turn(outcome=e.kind, stage=state.stage.value)
            raise

        state = replace(state, stage=TurnStage.DONE)
        metrics.record_turn(outcome="success", stage=state.stage.value)
        logger.info("turn_completed", user_id=str(request.user_id), chat_id=str(state.chat_id))

        assert state.chat_id is not None and state.reply is not None
        return TurnResult(chat_id=state.chat_id, reply=state.reply)

    # ========================================================================
    # Transitions
    # ========================================================================

    async def check_gate(self, state: TurnState) -> TurnState:
        """start -> gate_checked: read balances once, reject if exhausted."""
        snapshot = await self.ledger.check_and_classify(state.request.user_id)
        logger.debug(
            "turn_gate_checked",
            user_id=str(state.request.user_id),
            free_left=snapshot.free_left,
            paid_left=snapshot.paid_left,
        )
        return replace(state, stage=TurnStage.GATE_CHECKED, snapshot=snapshot)

    async def resolve_chat(self, state: TurnState) -> TurnState:
        """
        gate_checked -> chat_resolved.

        An existing chat must belong to the requester. A new chat is only
        created once the media check has passed (see persist_user_turn), so
        a rejected turn never leaves an empty chat behind.
        """
        chat_id = state.request.chat_id
        if chat_id is not None:
            await self.store.get_owned_chat(chat_id, state.request.user_id)
        return replace(state, stage=TurnStage.CHAT_RESOLVED, chat_id=chat_id)

    async def check_media(self, state: TurnState) -> TurnState:
        """chat_resolved -> media_checked: images and voice need a paid balance."""
        assert state.snapshot is not None
        self.ledger.require_media_allowed(
            state.snapshot.paid_left,
            has_images=bool(state.request.image_refs),
            has_voice=bool(state.request.voice_refs),
        )
        return replace(state, stage=TurnStage.MEDIA_CHECKED)

    async def transcribe_voice(self, state: TurnState) -> TurnState:
        """media_checked -> voice_transcribed: no-op without voice references."""
        transcription = await self.assembler.transcribe_voice(state.request.voice_refs)
        return replace(state, stage=TurnStage.VOICE_TRANSCRIBED, transcription=transcription)

    async def persist_user_turn(self, state: TurnState) -> TurnState:
        """voice_transcribed -> user_turn_persisted: create the chat if new, then append."""
        request = state.request
        if state.is_new_chat:
            title = derive_chat_title(request.prompt, self.default_title, self.title_max_length)
            chat_id = await self.store.create_chat(request.user_id, title, self.system_prompt)
        else:
            assert state.chat_id is not None
            chat_id = state.chat_id

        message = await self.store.append_message(
            chat_id,
            MessageRole.USER,
            request.prompt,
            image_refs=request.image_refs,
            voice_refs=request.voice_refs,
            voice_transcription=state.transcription or None,
        )
        return replace(
            state,
            stage=TurnStage.USER_TURN_PERSISTED,
            chat_id=chat_id,
            user_message_id=message.message_id,
        )

    async def assemble(self, state: TurnState) -> TurnState:
        """user_turn_persisted -> assembled: history (minus this turn) plus the new turn."""
        assert state.chat_id is not None
        history = [
            message
            for message in await self.store.list_messages(state.chat_id, include_system=True)
            if message.message_id != state.user_message_id
        ]
        parts = await self.assembler.assemble(
            history,
            state.request.prompt,
            image_refs=state.request.image_refs,
            transcription=state.transcription,
        )
        return replace(state, stage=TurnStage.ASSEMBLED, parts=tuple(parts))

    async def call_model(self, state: TurnState) -> TurnState:
        """assembled -> model_called."""
        request = ModelRequest(
            model=self.model_name,
            messages=(ModelMessage(role=MessageRole.USER, parts=state.parts),),
        )

        with traced_span(
            tracer,
            "model_call",
            model=self.model_name,
            parts=len(state.parts),
            chat_id=state.chat_id,
        ):
            started = time.perf_counter()
            try:
                reply = await self.model.complete(request)
            finally:
                metrics.model_call_duration_seconds.observe(time.perf_counter() - started)

        return replace(state, stage=TurnStage.MODEL_CALLED, reply=reply)

    async def persist_assistant_turn(self, state: TurnState) -> TurnState:
        """model_called -> assistant_turn_persisted."""
        assert state.chat_id is not None and state.reply is not None
        await self.store.append_message(state.chat_id, MessageRole.ASSISTANT, state.reply)
        return replace(state, stage=TurnStage.ASSISTANT_TURN_PERSISTED)

    async def debit(self, state: TurnState) -> TurnState:
        """assistant_turn_persisted -> debited: paid preferred, per the gate snapshot."""
        assert state.snapshot is not None
        await self.ledger.debit_one_message(
            state.request.user_id, used_paid=state.snapshot.uses_paid
        )
        return replace(state, stage=TurnStage.DEBITED)
