"""
Entitlement oracle backed by the RevenueCat REST API.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import httpx

from styleme.config import (
    logger,
    REVENUECAT_API_KEY,
    REVENUECAT_APP_USER_ID,
    REVENUECAT_ENTITLEMENT_ID,
)
from styleme.models import PurchaseResult, SubscriptionPackage

REVENUECAT_BASE_URL = "https://api.revenuecat.com/v1"
REQUEST_TIMEOUT_SECONDS = 15.0

__all__ = [
    "EntitlementOracle",
    "EntitlementOracleError",
    "RevenueCatOracle",
    "entitlement_is_active",
]


class EntitlementOracleError(Exception):
    """Raised when the billing platform cannot be queried."""


@runtime_checkable
class EntitlementOracle(Protocol):
    async def get_status(self, force_refresh: bool = False) -> bool: ...

    async def purchase(self, package_id: str) -> PurchaseResult: ...

    async def restore(self) -> PurchaseResult: ...

    async def get_offerings(self) -> List[SubscriptionPackage]: ...


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def entitlement_is_active(
    subscriber: Dict[str, Any],
    entitlement_id: str,
    now: Optional[datetime] = None,
) -> bool:
    """
    Return True when the subscriber holds an unexpired entitlement.

    A missing ``expires_date`` means a lifetime entitlement.
    """
    entitlement = (subscriber.get("entitlements") or {}).get(entitlement_id)
    if not entitlement:
        return False

    expires_date = entitlement.get("expires_date")
    if not expires_date:
        return True

    expires_at = _parse_timestamp(str(expires_date))
    if expires_at is None:
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at > (now or datetime.now(timezone.utc))


class RevenueCatOracle:
    """Subscription status, purchases and restores for one app user."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: Optional[str] = REVENUECAT_API_KEY,
        app_user_id: Optional[str] = REVENUECAT_APP_USER_ID,
        entitlement_id: str = REVENUECAT_ENTITLEMENT_ID,
        platform: str = "android",
        base_url: str = REVENUECAT_BASE_URL,
    ):
        self.client = client
        self.api_key = api_key
        self.app_user_id = app_user_id
        self.entitlement_id = entitlement_id
        self.platform = platform
        self.base_url = base_url.rstrip("/")

    def _headers(self, force_refresh: bool = False) -> Dict[str, str]:
        if not self.api_key:
            raise EntitlementOracleError("REVENUECAT_API_KEY is not configured")
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Platform": self.platform,
        }
        if force_refresh:
            headers["Cache-Control"] = "no-cache"
        return headers

    def _require_user(self) -> str:
        if not self.app_user_id:
            raise EntitlementOracleError("REVENUECAT_APP_USER_ID is not configured")
        return self.app_user_id

    async def _get_json(self, path: str, force_refresh: bool = False) -> Dict[str, Any]:
        try:
            response = await self.client.get(
                f"{self.base_url}{path}",
                headers=self._headers(force_refresh),
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            raise EntitlementOracleError(
                f"RevenueCat HTTP error: {exc.response.status_code}"
            ) from exc
        except httpx.RequestError as exc:
            raise EntitlementOracleError(f"Network error calling RevenueCat: {exc}") from exc
        except ValueError as exc:
            raise EntitlementOracleError("RevenueCat returned invalid JSON") from exc

        if not isinstance(body, dict):
            raise EntitlementOracleError("RevenueCat returned a non-object body")
        return body

    async def _fetch_subscriber(self, force_refresh: bool = False) -> Dict[str, Any]:
        body = await self._get_json(f"/subscribers/{self._require_user()}", force_refresh)
        return body.get("subscriber") or {}

    async def get_offerings(self) -> List[SubscriptionPackage]:
        """
        List the packages of the current offering.

        Returns:
            Packages of the offering named by ``current_offering_id``; empty
            when there is no current offering or it has no packages

        Raises:
            EntitlementOracleError: If the API cannot be reached or answers badly
        """
        body = await self._get_json(f"/subscribers/{self._require_user()}/offerings")
        current_id = body.get("current_offering_id")
        offerings = body.get("offerings") or []

        current = next(
            (o for o in offerings if isinstance(o, dict) and o.get("identifier") == current_id),
            None,
        )
        if current is None:
            logger.info(
                "No current offering found",
                extra={"offerings": [o.get("identifier") for o in offerings if isinstance(o, dict)]},
            )
            return []

        packages = [
            SubscriptionPackage(
                identifier=str(pkg["identifier"]),
                product_id=str(pkg["platform_product_identifier"]),
                offering_id=str(current_id),
            )
            for pkg in current.get("packages") or []
            if isinstance(pkg, dict)
            and pkg.get("identifier")
            and pkg.get("platform_product_identifier")
        ]
        logger.debug(f"RevenueCat offering {current_id} has {len(packages)} packages")
        return packages

    async def get_status(self, force_refresh: bool = False) -> bool:
        """
        Ask RevenueCat whether the user holds the premium entitlement.

        Raises:
            EntitlementOracleError: If the API cannot be reached or answers badly
        """
        subscriber = await self._fetch_subscriber(force_refresh)
        is_subscribed = entitlement_is_active(subscriber, self.entitlement_id)
        logger.debug(f"RevenueCat entitlement active: {is_subscribed}")
        return is_subscribed

    async def purchase(
        self, package_id: str, fetch_token: Optional[str] = None
    ) -> PurchaseResult:
        """
        Register a store purchase for ``package_id`` with RevenueCat.

        Args:
            package_id: Store product identifier of the purchased package
            fetch_token: Store purchase token returned by the billing client
        """
        if not fetch_token:
            return PurchaseResult(
                success=False,
                error="A store purchase token is required to complete the purchase",
            )

        try:
            payload = {
                "app_user_id": self._require_user(),
                "fetch_token": fetch_token,
                "product_id": package_id,
            }
            response = await self.client.post(
                f"{self.base_url}/receipts",
                json=payload,
                headers=self._headers(),
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        except EntitlementOracleError as exc:
            return PurchaseResult(success=False, error=str(exc))
        except httpx.RequestError as exc:
            logger.warning("Purchase attempt failed", extra={"error": str(exc)})
            return PurchaseResult(
                success=False,
                error="Billing service is not available. Please try again.",
            )

        if response.status_code >= 400:
            logger.warning(
                "Purchase attempt rejected",
                extra={"status_code": response.status_code},
            )
            return PurchaseResult(success=False, error=_purchase_error(response))

        try:
            subscriber = response.json().get("subscriber") or {}
        except ValueError:
            return PurchaseResult(success=False, error="RevenueCat returned invalid JSON")

        return PurchaseResult(
            success=True,
            is_subscribed=entitlement_is_active(subscriber, self.entitlement_id),
        )

    async def restore(self) -> PurchaseResult:
        """Re-read the subscriber's entitlements from RevenueCat."""
        try:
            subscriber = await self._fetch_subscriber(force_refresh=True)
        except EntitlementOracleError as exc:
            logger.warning("Restore purchases failed", extra={"error": str(exc)})
            return PurchaseResult(success=False, error=str(exc))

        return PurchaseResult(
            success=True,
            is_subscribed=entitlement_is_active(subscriber, self.entitlement_id),
        )


def _purchase_error(response: httpx.Response) -> str:
    try:
        message = response.json().get("message")
    except ValueError:
        message = None
    message = message or f"HTTP {response.status_code}"
    if "not configured" in message.lower() or "store" in message.lower():
        return (
            "App not configured for billing. Please install from the store "
            "or add your account to license testing."
        )
    return message
