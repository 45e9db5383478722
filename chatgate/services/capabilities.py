"""
External Capability Protocols - Provider-agnostic interfaces.

The orchestrator and reconciler depend only on these. Concrete adapters
(OpenAI, Supabase, RevenueCat) and test fakes implement them.
"""

from typing import Protocol

from chatgate.models.domain import ModelRequest, Purchase, StorageBucket


class ModelProvider(Protocol):
    """Multi-modal chat completion capability."""

    async def complete(self, request: ModelRequest) -> str:
        """
        Run the model over the ordered messages and return the reply text.

        Raises:
            ModelCallError: On transport failure or an empty completion
        """
        ...


class Transcriber(Protocol):
    """Speech-to-text capability."""

    async def transcribe(self, audio: bytes, filename: str) -> str:
        """
        Transcribe one audio file.

        Raises:
            TranscriptionError: If the audio cannot be transcribed
        """
        ...


class ObjectResolver(Protocol):
    """Object storage capability: turns opaque paths into fetchable URLs."""

    async def sign_url(self, path: str, bucket: StorageBucket) -> str:
        """
        Produce a short-lived fetchable URL for a stored object.

        Raises:
            UpstreamResolutionError: If the object cannot be signed
        """
        ...

    async def download(self, url: str) -> bytes:
        """
        Fetch object bytes from a signed URL.

        Raises:
            UpstreamResolutionError: If the object cannot be fetched
        """
        ...


class PurchaseHistorySource(Protocol):
    """Billing provider capability: authoritative purchase history per subject."""

    async def fetch_non_subscription_purchases(self, app_user_id: str) -> list[Purchase]:
        """
        List every consumable purchase line item for a subject.

        Raises:
            BillingProviderError: If the provider cannot be queried
        """
        ...
