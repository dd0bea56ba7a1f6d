"""FastAPI dependencies wiring the try-on core together."""

from typing import Optional

import httpx

from styleme.config import logger, SUPABASE_URL, SUPABASE_SERVICE_KEY
from styleme.core.entitlements import EntitlementGate
from styleme.core.image_encoding import ImageEncoder
from styleme.core.job_poller import JobPoller
from styleme.core.job_submitter import JobSubmitter
from styleme.core.preferences_ops import TryOnPreferencesStore
from styleme.core.revenuecat import RevenueCatOracle
from styleme.core.storage_ops import InMemoryStorage, Storage, SupabaseStorage
from styleme.core.user_history_ops import TryOnHistory
from styleme.services.tryon_service import TryOnOrchestrator

_http_client: Optional[httpx.AsyncClient] = None
_storage: Optional[Storage] = None
_gate: Optional[EntitlementGate] = None
_history: Optional[TryOnHistory] = None
_preferences: Optional[TryOnPreferencesStore] = None
_orchestrator: Optional[TryOnOrchestrator] = None


def get_http_client() -> httpx.AsyncClient:
    global _http_client

    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient()
    return _http_client


def get_storage() -> Storage:
    global _storage

    if _storage is None:
        if SUPABASE_URL and SUPABASE_SERVICE_KEY:
            _storage = SupabaseStorage()
            logger.info("Using Supabase storage for collections")
        else:
            _storage = InMemoryStorage()
            logger.warning("Supabase is not configured; using in-memory storage")
    return _storage


def get_gate() -> EntitlementGate:
    global _gate

    if _gate is None:
        _gate = EntitlementGate(get_storage(), RevenueCatOracle(get_http_client()))
    return _gate


def get_preferences() -> TryOnPreferencesStore:
    global _preferences

    if _preferences is None:
        _preferences = TryOnPreferencesStore(get_storage())
    return _preferences


def get_history() -> TryOnHistory:
    global _history

    if _history is None:
        _history = TryOnHistory(get_storage(), preferences=get_preferences())
    return _history


def get_orchestrator() -> TryOnOrchestrator:
    global _orchestrator

    if _orchestrator is None:
        client = get_http_client()
        _orchestrator = TryOnOrchestrator(
            gate=get_gate(),
            submitter=JobSubmitter(client),
            poller=JobPoller(client),
            encoder=ImageEncoder(http_client=client),
            history=get_history(),
            preferences=get_preferences(),
        )
    return _orchestrator


async def close_http_client() -> None:
    global _http_client

    if _http_client is not None and not _http_client.is_closed:
        await _http_client.aclose()
    _http_client = None
