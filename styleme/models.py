"""Pydantic models shared by the try-on core and the API layer."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class GarmentType(str, Enum):
    UPPER_BODY = "upper_body"
    LOWER_BODY = "lower_body"
    DRESS = "dress"
    OUTERWEAR = "outerwear"


class ImageRef(BaseModel):
    """Caller-owned handle to an image plus whatever metadata is already known."""

    model_config = ConfigDict(frozen=True)

    uri: str = Field(..., description="Local path, file://, data: or http(s) URI")
    width: Optional[int] = None
    height: Optional[int] = None
    file_size_bytes: Optional[int] = None
    mime_type: Optional[str] = None


class TryOnRequest(BaseModel):
    """Input for a single try-on run."""

    model_config = ConfigDict(frozen=True)

    user_image: ImageRef
    garment_image: ImageRef
    garment_type: GarmentType = GarmentType.UPPER_BODY
    preserve_background: bool = True
    enhance_quality: bool = True
    seed: Optional[int] = Field(None, ge=0, description="Provider seed, random if unset")


class TryOnResult(BaseModel):
    """Normalized output of a successful try-on."""

    uri: str
    confidence: float = Field(..., ge=0, le=1)
    processing_time_ms: int = Field(
        ..., description="Integration estimate, not a measured duration"
    )
    provider: str
    model: str
    job_id: str


class UsageCheck(BaseModel):
    """Whether the caller may run a try-on now, and how much quota is left."""

    can_use: bool
    remaining: int
    limit: int
    used: int
    reason: Optional[str] = None
    requires_upgrade: bool = False


class UsageStats(BaseModel):
    month: str
    used: int
    remaining: int
    limit: int
    is_subscribed: bool


class OutfitAllowance(BaseModel):
    """Outfit creation allowance. ``remaining``/``limit`` are None when unlimited."""

    can_create: bool
    is_subscribed: bool
    remaining: Optional[int] = None
    limit: Optional[int] = None


class PurchaseResult(BaseModel):
    success: bool
    is_subscribed: bool = False
    cancelled: bool = False
    error: Optional[str] = None


class SubscriptionPackage(BaseModel):
    """A purchasable package of the current RevenueCat offering."""

    identifier: str
    product_id: str
    offering_id: str


class TryOnPreferences(BaseModel):
    """Per-user try-on settings, stored merged over these defaults."""

    preferred_provider: str = "auto"
    save_to_history: bool = True
    max_history_items: int = Field(20, ge=1, le=100)
    enhance_quality: bool = True
    preserve_background: bool = True


class PreferencesUpdate(BaseModel):
    """Partial update of TryOnPreferences. Unset fields are left unchanged."""

    preferred_provider: Optional[str] = None
    save_to_history: Optional[bool] = None
    max_history_items: Optional[int] = Field(None, ge=1, le=100)
    enhance_quality: Optional[bool] = None
    preserve_background: Optional[bool] = None


class HistoryEntry(BaseModel):
    """A saved try-on result."""

    id: str
    timestamp: str
    user_image: str
    garment_image: str
    result_image: str
    garment_type: GarmentType
    confidence: float
    provider: str
    model: str
    job_id: str
    is_favorite: bool = False


class ErrorResponse(BaseModel):
    """Generic error payload."""

    success: bool = False
    kind: str
    action: str
    error: str
    can_upgrade: Optional[bool] = None


class HistoryResponse(BaseModel):
    success: bool
    items: List[HistoryEntry] = Field(default_factory=list)
