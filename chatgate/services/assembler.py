"""
Content Assembler - Builds the ordered multi-modal model payload.

Walks a chat's history oldest to newest, resolves stored image references
into signed URLs and appends the new turn (prompt, images, voice text).
"""

from collections.abc import Sequence
from pathlib import PurePosixPath

from chatgate.exceptions import TranscriptionError, UpstreamResolutionError
from chatgate.models.domain import ContentPart, MessageData, StorageBucket
from chatgate.observability.logging import get_logger
from chatgate.services.capabilities import ObjectResolver, Transcriber

logger = get_logger(__name__)

# Message content of the form "image:<storage path>" stands for a stored image
IMAGE_REFERENCE_PREFIX = "image:"
DEFAULT_AUDIO_FILENAME = "audio.m4a"


def parse_image_reference(content: str) -> str | None:
    """Return the storage path if content is a stored-image reference."""
    if not content.startswith(IMAGE_REFERENCE_PREFIX):
        return None
    path = content[len(IMAGE_REFERENCE_PREFIX) :].strip()
    return path or None


class ContentAssembler:
    """Turns conversation history plus a new turn into model content parts."""

    def __init__(self, resolver: ObjectResolver, transcriber: Transcriber) -> None:
        self.resolver = resolver
        self.transcriber = transcriber

    async def transcribe_voice(self, voice_refs: Sequence[str]) -> str:
        """
        Transcribe the new turn's voice references, in order.

        A single file that cannot be signed, downloaded or transcribed is
        logged and skipped. The turn fails only when no file yields text.

        Raises:
            TranscriptionError: No voice reference produced any text
        """
        if not voice_refs:
            return ""

        texts: list[str] = []
        for path in voice_refs:
            try:
                url = await self.resolver.sign_url(path, StorageBucket.VOICES)
                audio = await self.resolver.download(url)
                text = await self.transcriber.transcribe(
                    audio, PurePosixPath(path).name or DEFAULT_AUDIO_FILENAME
                )
            except (UpstreamResolutionError, TranscriptionError) as e:
                logger.warning("voice_file_skipped", path=path, error=e.message)
                continue
            if text:
                texts.append(text)

        if not texts:
            raise TranscriptionError(f"none of {len(voice_refs)} voice files could be transcribed")

        logger.info("voice_transcribed", files=len(voice_refs), transcribed=len(texts))
        return "\n".join(texts)

    async def assemble(
        self,
        history: Sequence[MessageData],
        prompt: str,
        image_refs: Sequence[str] = (),
        transcription: str = "",
    ) -> list[ContentPart]:
        """
        Build the ordered content parts for one model call.

        Order: each history message (text, or its resolved image) followed by
        its cached transcription, then the new prompt, then the new images,
        then the new transcription.

        Raises:
            UpstreamResolutionError: A new-turn image could not be resolved
        """
        parts: list[ContentPart] = []

        for message in history:
            image_path = parse_image_reference(message.content)
            if image_path is None:
                parts.append(ContentPart.of_text(message.content))
            else:
                try:
                    url = await self.resolver.sign_url(image_path, StorageBucket.IMAGES)
                except UpstreamResolutionError as e:
                    # Historical media is best effort
                    logger.warning(
                        "history_image_skipped",
                        chat_id=str(message.chat_id),
                        message_id=str(message.message_id),
                        error=e.message,
                    )
                else:
                    parts.append(ContentPart.of_image(url))

            if message.voice_transcription:
                parts.append(ContentPart.of_text(message.voice_transcription))

        parts.append(ContentPart.of_text(prompt))

        for path in image_refs:
            url = await self.resolver.sign_url(path, StorageBucket.IMAGES)
            parts.append(ContentPart.of_image(url))

        if transcription:
            parts.append(ContentPart.of_text(transcription))

        return parts
