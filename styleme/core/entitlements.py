"""
Entitlement gating for premium features.
Free users may create up to 2 outfits and cannot use virtual try-on.
Subscribers may run 50 try-ons per calendar month.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from styleme.config import logger
from styleme.core.revenuecat import EntitlementOracle
from styleme.core.storage_ops import Storage
from styleme.models import (
    OutfitAllowance,
    PurchaseResult,
    SubscriptionPackage,
    UsageCheck,
    UsageStats,
)

FREE_OUTFIT_LIMIT = 2
MONTHLY_TRYON_LIMIT = 50
SUBSCRIPTION_CACHE_TTL_SECONDS = 5 * 60

USAGE_COLLECTION = "tryon_usage"
SUBSCRIPTION_COLLECTION = "subscription"

PREMIUM_REQUIRED_REASON = (
    "Virtual try-on is a premium feature. Upgrade to Premium to try on clothes with AI."
)


def month_key(moment: datetime) -> str:
    return moment.strftime("%Y-%m")


@dataclass(slots=True)
class EntitlementCache:
    """Last known subscription flag and when it was fetched."""

    is_subscribed: bool
    last_checked: float
    ttl_seconds: float = SUBSCRIPTION_CACHE_TTL_SECONDS

    def is_fresh(self, now_ts: float) -> bool:
        return 0 <= now_ts - self.last_checked < self.ttl_seconds

    def to_record(self) -> Dict[str, Any]:
        return {"is_subscribed": self.is_subscribed, "last_checked": self.last_checked}

    @classmethod
    def from_record(
        cls, record: Dict[str, Any], ttl_seconds: float = SUBSCRIPTION_CACHE_TTL_SECONDS
    ) -> "EntitlementCache":
        return cls(
            is_subscribed=bool(record.get("is_subscribed", False)),
            last_checked=float(record.get("last_checked", 0)),
            ttl_seconds=ttl_seconds,
        )


@dataclass(slots=True)
class UsageRecord:
    month: str
    count: int = 0
    last_used_at: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        return {"month": self.month, "count": self.count, "last_used_at": self.last_used_at}


class EntitlementGate:
    """Answers whether the caller may use premium features, and records usage."""

    def __init__(
        self,
        storage: Storage,
        oracle: EntitlementOracle,
        *,
        outfit_limit: int = FREE_OUTFIT_LIMIT,
        monthly_limit: int = MONTHLY_TRYON_LIMIT,
        cache_ttl_seconds: float = SUBSCRIPTION_CACHE_TTL_SECONDS,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.storage = storage
        self.oracle = oracle
        self.outfit_limit = outfit_limit
        self.monthly_limit = monthly_limit
        self.cache_ttl_seconds = cache_ttl_seconds
        self._now = now
        self._cache: Optional[EntitlementCache] = None
        self._usage_lock = asyncio.Lock()

    # -------------------------
    # Subscription status
    # -------------------------
    async def _load_cache(self) -> Optional[EntitlementCache]:
        if self._cache is not None:
            return self._cache
        try:
            records = await self.storage.get_all(SUBSCRIPTION_COLLECTION)
        except Exception as exc:
            logger.debug("Failed to read cached subscription status", extra={"error": str(exc)})
            return None
        if not records:
            return None
        self._cache = EntitlementCache.from_record(records[0], self.cache_ttl_seconds)
        return self._cache

    async def _store_cache(self, is_subscribed: bool) -> None:
        self._cache = EntitlementCache(
            is_subscribed=is_subscribed,
            last_checked=self._now().timestamp(),
            ttl_seconds=self.cache_ttl_seconds,
        )
        try:
            await self.storage.set_all(SUBSCRIPTION_COLLECTION, [self._cache.to_record()])
        except Exception as exc:
            logger.warning("Failed to store subscription status", extra={"error": str(exc)})

    async def get_subscription_status(self, force_refresh: bool = False) -> bool:
        """
        Resolve whether the caller is subscribed.

        Uses the cached flag when it is younger than the TTL, unless
        ``force_refresh`` is set. When the oracle cannot be reached the last
        cached value is returned regardless of age, or False if none exists.
        """
        if not force_refresh:
            cache = await self._load_cache()
            if cache is not None and cache.is_fresh(self._now().timestamp()):
                return cache.is_subscribed

        try:
            is_subscribed = await self.oracle.get_status(force_refresh)
        except Exception as exc:
            logger.warning(
                "Failed to get subscription status, using cached data",
                extra={"error": str(exc)},
            )
            cache = await self._load_cache()
            return cache.is_subscribed if cache is not None else False

        await self._store_cache(is_subscribed)
        return is_subscribed

    async def purchase(self, package_id: str, **kwargs: Any) -> PurchaseResult:
        result = await self.oracle.purchase(package_id, **kwargs)
        if result.success:
            await self._store_cache(result.is_subscribed)
        return result

    async def restore(self) -> PurchaseResult:
        result = await self.oracle.restore()
        if result.success:
            await self._store_cache(result.is_subscribed)
        return result

    async def get_available_packages(self) -> List[SubscriptionPackage]:
        """Packages of the current offering, or an empty list if they cannot be fetched."""
        try:
            return await self.oracle.get_offerings()
        except Exception as exc:
            logger.warning("Failed to get available packages", extra={"error": str(exc)})
            return []

    # -------------------------
    # Outfit creation
    # -------------------------
    async def check_outfit_creation(self, current_count: int) -> OutfitAllowance:
        if await self.get_subscription_status():
            return OutfitAllowance(can_create=True, is_subscribed=True)

        return OutfitAllowance(
            can_create=current_count < self.outfit_limit,
            is_subscribed=False,
            remaining=max(0, self.outfit_limit - current_count),
            limit=self.outfit_limit,
        )

    # -------------------------
    # Try-on usage
    # -------------------------
    async def _read_usage(self) -> tuple[UsageRecord, List[Dict[str, Any]]]:
        """Return the current month's record and every stored record."""
        current_month = month_key(self._now())
        records = await self.storage.get_all(USAGE_COLLECTION)
        for record in records:
            if record.get("month") == current_month:
                return (
                    UsageRecord(
                        month=current_month,
                        count=max(0, int(record.get("count", 0))),
                        last_used_at=record.get("last_used_at"),
                    ),
                    records,
                )
        return UsageRecord(month=current_month), records

    async def _current_usage(self) -> int:
        try:
            usage, _ = await self._read_usage()
        except Exception as exc:
            # Unreadable usage store: allow and assume nothing used yet
            logger.warning(
                "Failed to read try-on usage, allowing request",
                extra={"error": str(exc)},
            )
            return 0
        return usage.count

    async def check_try_on_usage(self) -> UsageCheck:
        """
        Check whether the caller may run a virtual try-on now.

        Returns:
            UsageCheck with can_use, remaining, limit and used. Unsubscribed
            callers get can_use=False and limit=0.
        """
        if not await self.get_subscription_status():
            return UsageCheck(
                can_use=False,
                remaining=0,
                limit=0,
                used=0,
                reason=PREMIUM_REQUIRED_REASON,
                requires_upgrade=True,
            )

        used = await self._current_usage()
        remaining = max(0, self.monthly_limit - used)
        can_use = used < self.monthly_limit

        logger.info(
            "Try-on usage check",
            extra={"used": used, "limit": self.monthly_limit, "allowed": can_use},
        )

        return UsageCheck(
            can_use=can_use,
            remaining=remaining,
            limit=self.monthly_limit,
            used=used,
            reason=None
            if can_use
            else (
                f"You've used all {self.monthly_limit} virtual try-ons for this month. "
                "Your limit resets at the start of next month."
            ),
            requires_upgrade=False,
        )

    async def record_try_on_usage(self) -> Optional[int]:
        """
        Increment the current month's try-on counter.

        Persist failures are logged and swallowed. When the stored records
        cannot be read nothing is written, so existing counts are never
        replaced by a fresh one.

        Returns:
            The new count for the current month, or None if the usage store
            could not be read
        """
        async with self._usage_lock:
            try:
                usage, records = await self._read_usage()
            except Exception as exc:
                logger.error(
                    "Failed to read try-on usage, not recording",
                    extra={"error": str(exc)},
                )
                return None

            usage.count += 1
            usage.last_used_at = self._now().isoformat()

            updated = [r for r in records if r.get("month") != usage.month]
            updated.append(usage.to_record())

            try:
                await self.storage.set_all(USAGE_COLLECTION, updated)
            except Exception as exc:
                logger.error(
                    "Failed to record try-on usage",
                    extra={"month": usage.month, "error": str(exc)},
                )

            return usage.count

    async def get_usage_stats(self) -> UsageStats:
        is_subscribed = await self.get_subscription_status()
        used = await self._current_usage()
        limit = self.monthly_limit if is_subscribed else 0
        return UsageStats(
            month=month_key(self._now()),
            used=used,
            remaining=max(0, limit - used),
            limit=limit,
            is_subscribed=is_subscribed,
        )
