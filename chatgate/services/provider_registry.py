"""
Provider Registry - Lazily constructed process-wide external clients.

One pooled HTTP client per vendor, closed at shutdown.
"""

from chatgate.config import settings
from chatgate.services.openai_provider import OpenAIProvider
from chatgate.services.revenuecat import RevenueCatClient
from chatgate.services.supabase_storage import SupabaseStorageResolver

_openai_provider: OpenAIProvider | None = None
_storage_resolver: SupabaseStorageResolver | None = None
_revenuecat_client: RevenueCatClient | None = None


def get_openai_provider() -> OpenAIProvider:
    """Get or create the model and transcription provider."""
    global _openai_provider
    if _openai_provider is None:
        _openai_provider = OpenAIProvider(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            transcription_model=settings.openai_transcription_model,
            timeout=settings.openai_timeout_seconds,
        )
    return _openai_provider


def get_storage_resolver() -> SupabaseStorageResolver:
    """Get or create the object storage resolver."""
    global _storage_resolver
    if _storage_resolver is None:
        _storage_resolver = SupabaseStorageResolver(
            supabase_url=settings.supabase_url,
            service_role=settings.supabase_service_role,
            image_bucket=settings.supabase_bucket_name,
            voice_bucket=settings.supabase_voice_bucket_name,
            expires_in=settings.signed_url_expires_seconds,
        )
    return _storage_resolver


def get_revenuecat_client() -> RevenueCatClient:
    """Get or create the billing provider client."""
    global _revenuecat_client
    if _revenuecat_client is None:
        _revenuecat_client = RevenueCatClient(
            api_key=settings.revenue_cat_api_key,
            base_url=settings.revenue_cat_base_url,
        )
    return _revenuecat_client


async def close_providers() -> None:
    """Close all provider HTTP clients (for graceful shutdown)."""
    global _openai_provider, _storage_resolver, _revenuecat_client

    if _openai_provider:
        await _openai_provider.close()
        _openai_provider = None

    if _storage_resolver:
        await _storage_resolver.close()
        _storage_resolver = None

    if _revenuecat_client:
        await _revenuecat_client.close()
        _revenuecat_client = None
