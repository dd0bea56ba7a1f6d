"""
Try-on preference operations.
Stored preferences are merged over the defaults on every read.
"""

from typing import Any, Dict

from pydantic import ValidationError

from styleme.config import logger
from styleme.core.storage_ops import Storage
from styleme.models import PreferencesUpdate, TryOnPreferences

PREFERENCES_COLLECTION = "tryon_preferences"


class TryOnPreferencesStore:
    """Read and update the single record of the ``tryon_preferences`` collection."""

    def __init__(self, storage: Storage):
        self.storage = storage

    async def _stored(self) -> Dict[str, Any]:
        records = await self.storage.get_all(PREFERENCES_COLLECTION)
        return dict(records[0]) if records else {}

    async def get(self) -> TryOnPreferences:
        """
        Return the stored preferences merged over the defaults.

        Unreadable or invalid stored data yields the defaults.
        """
        try:
            stored = await self._stored()
        except Exception as exc:
            logger.warning("Failed to load try-on preferences", extra={"error": str(exc)})
            return TryOnPreferences()

        try:
            return TryOnPreferences.model_validate(
                {**TryOnPreferences().model_dump(), **stored}
            )
        except ValidationError as exc:
            logger.warning("Ignoring invalid stored preferences", extra={"error": str(exc)})
            return TryOnPreferences()

    async def update(self, updates: PreferencesUpdate) -> TryOnPreferences:
        """
        Apply the fields set on ``updates`` and persist the merged result.

        Raises:
            StorageError: If the preferences cannot be written
        """
        changes = updates.model_dump(exclude_unset=True, exclude_none=True)
        merged = (await self.get()).model_copy(update=changes)
        await self.storage.set_all(PREFERENCES_COLLECTION, [merged.model_dump(mode="json")])
        logger.info("Updated try-on preferences", extra={"fields": sorted(changes)})
        return merged
