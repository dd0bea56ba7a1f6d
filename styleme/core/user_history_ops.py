"""
Try-on history operations.
Keeps the user's most recent try-on results, newest first.
"""

from datetime import date, datetime
from typing import Callable, List, Optional
import uuid

from styleme.config import logger
from styleme.core.preferences_ops import TryOnPreferencesStore
from styleme.core.storage_ops import Storage
from styleme.models import GarmentType, HistoryEntry, TryOnResult

HISTORY_COLLECTION = "tryon_history"
MAX_HISTORY_ITEMS = 20


def history_image_ref(uri: str) -> str:
    """Replace the payload of a data: URI with a marker; other URIs pass through."""
    if uri.startswith("data:"):
        header = uri.split(",", 1)[0]
        return f"{header},..."
    return uri


class TryOnHistory:
    """CRUD over the ``tryon_history`` collection."""

    def __init__(
        self,
        storage: Storage,
        max_items: int = MAX_HISTORY_ITEMS,
        now: Callable[[], datetime] = datetime.now,
        preferences: Optional[TryOnPreferencesStore] = None,
    ):
        self.storage = storage
        self.max_items = max_items
        self.preferences = preferences
        self._now = now

    async def _max_items(self) -> int:
        if self.preferences is None:
            return self.max_items
        return (await self.preferences.get()).max_history_items

    async def list_entries(self) -> List[HistoryEntry]:
        records = await self.storage.get_all(HISTORY_COLLECTION)
        return [HistoryEntry.model_validate(record) for record in records]

    async def _save(self, entries: List[HistoryEntry]) -> None:
        await self.storage.set_all(
            HISTORY_COLLECTION, [entry.model_dump(mode="json") for entry in entries]
        )

    async def add(
        self,
        result: TryOnResult,
        *,
        user_image: str,
        garment_image: str,
        garment_type: GarmentType,
    ) -> HistoryEntry:
        """
        Prepend a try-on result to the history, trimming to the configured size.

        The size comes from the stored ``max_history_items`` preference when a
        preferences store is attached, otherwise from ``max_items``. Inline
        ``data:`` images are stored without their payload.

        Args:
            result: Successful try-on result
            user_image: URI of the person photo that was used
            garment_image: URI of the garment photo that was used
            garment_type: Garment category of the request

        Returns:
            The stored history entry
        """
        entry = HistoryEntry(
            id=uuid.uuid4().hex,
            timestamp=self._now().isoformat(),
            user_image=history_image_ref(user_image),
            garment_image=history_image_ref(garment_image),
            result_image=result.uri,
            garment_type=garment_type,
            confidence=result.confidence,
            provider=result.provider,
            model=result.model,
            job_id=result.job_id,
        )
        entries = await self.list_entries()
        await self._save([entry, *entries][: await self._max_items()])
        logger.info(f"Added try-on history entry {entry.id} for job {result.job_id}")
        return entry

    async def remove(self, entry_id: str) -> bool:
        entries = await self.list_entries()
        kept = [entry for entry in entries if entry.id != entry_id]
        if len(kept) == len(entries):
            return False
        await self._save(kept)
        return True

    async def clear(self) -> None:
        await self.storage.set_all(HISTORY_COLLECTION, [])
        logger.info("Cleared try-on history")

    async def toggle_favorite(self, entry_id: str) -> Optional[HistoryEntry]:
        """Flip the favourite flag of an entry. Returns None if it does not exist."""
        entries = await self.list_entries()
        toggled = None
        for idx, entry in enumerate(entries):
            if entry.id == entry_id:
                toggled = entry.model_copy(update={"is_favorite": not entry.is_favorite})
                entries[idx] = toggled
                break
        if toggled is not None:
            await self._save(entries)
        return toggled

    async def favorites(self) -> List[HistoryEntry]:
        return [entry for entry in await self.list_entries() if entry.is_favorite]

    async def recent(self, limit: int = 10) -> List[HistoryEntry]:
        return (await self.list_entries())[: max(0, limit)]

    async def by_date(self, day: date) -> List[HistoryEntry]:
        return [
            entry
            for entry in await self.list_entries()
            if datetime.fromisoformat(entry.timestamp).date() == day
        ]
