"""
Tests for exception classes.

Covers the machine-readable kind, HTTP status and attributes of every
error type.
"""

from uuid import uuid4

import pytest

from chatgate.exceptions import (
    BillingProviderError,
    ChatForbiddenError,
    ChatGateError,
    ChatNotFoundError,
    MediaRequiresPaidError,
    MessagesExhaustedError,
    ModelCallError,
    PersistenceError,
    TranscriptionError,
    UnauthorizedError,
    UpstreamResolutionError,
    UserNotFoundError,
)


class TestChatGateError:
    """Tests for the base error."""

    def test_is_exception(self) -> None:
        assert issubclass(ChatGateError, Exception)

    def test_defaults(self) -> None:
        exc = ChatGateError("boom")
        assert exc.kind == "internal_error"
        assert exc.status_code == 500
        assert exc.message == "boom"
        assert str(exc) == "boom"


@pytest.mark.parametrize(
    ("exc", "kind", "status_code"),
    [
        (UnauthorizedError("missing bearer token"), "unauthorized", 401),
        (UserNotFoundError(uuid4()), "not_found", 404),
        (ChatNotFoundError(uuid4()), "not_found", 404),
        (ChatForbiddenError(uuid4()), "forbidden", 403),
        (MessagesExhaustedError(uuid4()), "no_messages", 402),
        (MediaRequiresPaidError("images"), "images_not_allowed_for_free", 402),
        (UpstreamResolutionError("a.png", "404"), "supabase_signed_url_error", 502),
        (TranscriptionError("bad audio"), "voice_transcription_error", 502),
        (ModelCallError("timeout"), "openai_error", 502),
        (PersistenceError("append_message", "deadlock"), "db_error", 500),
        (BillingProviderError("down"), "billing_provider_error", 502),
    ],
)
def test_kind_and_status(exc: ChatGateError, kind: str, status_code: int) -> None:
    """Every error maps to its kind and HTTP status."""
    assert isinstance(exc, ChatGateError)
    assert exc.kind == kind
    assert exc.status_code == status_code
    assert exc.message


class TestAttributes:
    """Typed attributes carried by errors."""

    def test_chat_not_found_keeps_id(self) -> None:
        chat_id = uuid4()
        exc = ChatNotFoundError(chat_id)
        assert exc.chat_id == chat_id
        assert str(chat_id) in str(exc)

    def test_upstream_resolution(self) -> None:
        exc = UpstreamResolutionError("img/a.png", "status 400")
        assert exc.path == "img/a.png"
        assert exc.reason == "status 400"
        assert "img/a.png" in exc.message

    def test_persistence(self) -> None:
        exc = PersistenceError("ledger_debit", "connection lost")
        assert exc.operation == "ledger_debit"
        assert "ledger_debit" in str(exc)

    def test_media(self) -> None:
        exc = MediaRequiresPaidError("voice messages")
        assert exc.media == "voice messages"
        assert "voice messages" in exc.message
