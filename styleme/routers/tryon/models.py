"""Pydantic models used by the try-on router."""

from typing import List, Optional

from pydantic import BaseModel, Field

from styleme.models import SubscriptionPackage, TryOnResult, UsageStats


class TryOnResponse(BaseModel):
    """Response model for a completed try-on."""

    success: bool
    result: TryOnResult
    usage: Optional[UsageStats] = Field(
        None, description="Usage after this try-on was recorded"
    )
    message: str


class PurchaseRequest(BaseModel):
    """Request payload for registering a store purchase."""

    package_id: str
    fetch_token: Optional[str] = Field(
        None, description="Purchase token returned by the store billing client"
    )


class SubscriptionResponse(BaseModel):
    success: bool
    is_subscribed: bool


class MessageResponse(BaseModel):
    """Generic success response with message."""

    success: bool
    message: str


class PackagesResponse(BaseModel):
    """Packages of the current offering. Empty when billing is unavailable."""

    success: bool
    packages: List[SubscriptionPackage] = Field(default_factory=list)
