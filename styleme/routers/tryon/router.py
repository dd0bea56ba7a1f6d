"""FastAPI router for virtual try-on, usage, subscription and history endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query

from styleme.config import logger
from styleme.core.entitlements import EntitlementGate
from styleme.core.errors import (
    AuthError,
    EncodingError,
    EntitlementError,
    InputError,
    JobTimeoutError,
    QuotaError,
    RateLimitError,
    TransientError,
    TryOnError,
    ValidationError,
)
from styleme.core.preferences_ops import TryOnPreferencesStore
from styleme.core.storage_ops import StorageError
from styleme.core.user_history_ops import TryOnHistory
from styleme.models import (
    ErrorResponse,
    HistoryEntry,
    HistoryResponse,
    OutfitAllowance,
    PreferencesUpdate,
    PurchaseResult,
    TryOnPreferences,
    TryOnRequest,
    UsageStats,
)
from styleme.services.tryon_service import TryOnOrchestrator

from ..dependencies import get_gate, get_history, get_orchestrator, get_preferences
from .models import (
    MessageResponse,
    PackagesResponse,
    PurchaseRequest,
    SubscriptionResponse,
    TryOnResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Virtual Try-On"])

_STATUS_BY_ERROR = [
    (EntitlementError, 402),
    (ValidationError, 400),
    (EncodingError, 400),
    (InputError, 422),
    (RateLimitError, 429),
    (TransientError, 503),
    (JobTimeoutError, 504),
    (AuthError, 502),
    (QuotaError, 502),
]


def error_status(exc: TryOnError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 502


def to_http_exception(exc: TryOnError) -> HTTPException:
    payload = ErrorResponse(
        kind=exc.kind,
        action=exc.action,
        error=exc.message,
        can_upgrade=getattr(exc, "can_upgrade", None),
    )
    return HTTPException(
        status_code=error_status(exc),
        detail=payload.model_dump(exclude_none=True),
    )


@router.post("/tryon", response_model=TryOnResponse)
async def create_virtual_tryon(
    payload: TryOnRequest,
    orchestrator: TryOnOrchestrator = Depends(get_orchestrator),
    gate: EntitlementGate = Depends(get_gate),
) -> TryOnResponse:
    """Run a try-on and wait for the generated image."""

    logger.info(
        "Virtual try-on request received",
        extra={"garment_type": payload.garment_type.value},
    )

    try:
        result = await orchestrator.run(payload)
    except TryOnError as exc:
        raise to_http_exception(exc)

    try:
        usage = await gate.get_usage_stats()
    except Exception as exc:  # pragma: no cover - usage display is optional
        logger.warning("Failed to refresh usage stats", extra={"error": str(exc)})
        usage = None

    return TryOnResponse(
        success=True,
        result=result,
        usage=usage,
        message="Try-on completed successfully",
    )


@router.get("/usage", response_model=UsageStats)
async def get_usage(gate: EntitlementGate = Depends(get_gate)) -> UsageStats:
    """Report this month's try-on usage."""
    return await gate.get_usage_stats()


@router.get("/outfits/allowance", response_model=OutfitAllowance)
async def get_outfit_allowance(
    current_count: int = Query(..., ge=0),
    gate: EntitlementGate = Depends(get_gate),
) -> OutfitAllowance:
    """Report whether another outfit may be created."""
    return await gate.check_outfit_creation(current_count)


@router.get("/subscription", response_model=SubscriptionResponse)
async def get_subscription(
    refresh: bool = Query(False),
    gate: EntitlementGate = Depends(get_gate),
) -> SubscriptionResponse:
    is_subscribed = await gate.get_subscription_status(force_refresh=refresh)
    return SubscriptionResponse(success=True, is_subscribed=is_subscribed)


@router.get("/subscription/packages", response_model=PackagesResponse)
async def list_subscription_packages(
    gate: EntitlementGate = Depends(get_gate),
) -> PackagesResponse:
    """List the purchasable packages of the current offering."""
    packages = await gate.get_available_packages()
    return PackagesResponse(success=True, packages=packages)


@router.post("/subscription/purchase", response_model=PurchaseResult)
async def purchase_subscription(
    payload: PurchaseRequest,
    gate: EntitlementGate = Depends(get_gate),
) -> PurchaseResult:
    logger.info("Purchase requested", extra={"package_id": payload.package_id})
    return await gate.purchase(payload.package_id, fetch_token=payload.fetch_token)


@router.post("/subscription/restore", response_model=PurchaseResult)
async def restore_subscription(gate: EntitlementGate = Depends(get_gate)) -> PurchaseResult:
    return await gate.restore()


@router.get("/history", response_model=HistoryResponse)
async def list_history(
    limit: int = Query(20, ge=1, le=100),
    favorites_only: bool = Query(False),
    history: TryOnHistory = Depends(get_history),
) -> HistoryResponse:
    items = await (history.favorites() if favorites_only else history.recent(limit))
    return HistoryResponse(success=True, items=items[:limit])


@router.delete("/history", response_model=MessageResponse)
async def clear_history(history: TryOnHistory = Depends(get_history)) -> MessageResponse:
    await history.clear()
    return MessageResponse(success=True, message="Try-on history cleared")


@router.delete("/history/{entry_id}", response_model=MessageResponse)
async def delete_history_entry(
    entry_id: str,
    history: TryOnHistory = Depends(get_history),
) -> MessageResponse:
    if not await history.remove(entry_id):
        raise HTTPException(status_code=404, detail=f"History entry not found: {entry_id}")
    return MessageResponse(success=True, message="History entry removed")


@router.post("/history/{entry_id}/favorite", response_model=HistoryEntry)
async def toggle_history_favorite(
    entry_id: str,
    history: TryOnHistory = Depends(get_history),
) -> HistoryEntry:
    entry = await history.toggle_favorite(entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"History entry not found: {entry_id}")
    return entry


@router.get("/preferences", response_model=TryOnPreferences)
async def get_tryon_preferences(
    preferences: TryOnPreferencesStore = Depends(get_preferences),
) -> TryOnPreferences:
    return await preferences.get()


@router.patch("/preferences", response_model=TryOnPreferences)
async def update_tryon_preferences(
    payload: PreferencesUpdate,
    preferences: TryOnPreferencesStore = Depends(get_preferences),
) -> TryOnPreferences:
    """Merge the given fields into the stored preferences."""
    try:
        return await preferences.update(payload)
    except StorageError as exc:
        logger.error("Failed to save try-on preferences", extra={"error": str(exc)})
        raise HTTPException(status_code=503, detail="Failed to save preferences")


@router.get("/health")
async def health_check() -> dict:
    """Simple health check endpoint."""

    return {
        "status": "healthy",
        "service": "styleme-tryon-api",
        "version": "1.0.0",
    }
