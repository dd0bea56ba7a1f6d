"""
Storage operations for simple record collections.
Each collection (usage records, cached subscription flag, try-on history,
clothing items, outfits) is read and written as a whole list of records.
Writes are last-write-wins and non-transactional.
"""

import copy
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from supabase import Client, create_client

from styleme.config import logger, SUPABASE_URL, SUPABASE_SERVICE_KEY

# Table holding one JSON array per collection
COLLECTIONS_TABLE = "app_collections"

CREATE_COLLECTIONS_TABLE = """
CREATE TABLE IF NOT EXISTS app_collections (
    collection VARCHAR(100) PRIMARY KEY,
    records JSONB NOT NULL DEFAULT '[]'::jsonb,
    updated_at TIMESTAMPTZ DEFAULT NOW()
);
"""


class StorageError(Exception):
    """Raised when a collection cannot be read or written."""


@runtime_checkable
class Storage(Protocol):
    async def get_all(self, collection: str) -> List[Dict[str, Any]]: ...

    async def set_all(self, collection: str, records: List[Dict[str, Any]]) -> None: ...


class InMemoryStorage:
    """Process-local storage, used for tests and ephemeral sessions."""

    def __init__(self, initial: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self._collections: Dict[str, List[Dict[str, Any]]] = copy.deepcopy(initial or {})

    async def get_all(self, collection: str) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._collections.get(collection, []))

    async def set_all(self, collection: str, records: List[Dict[str, Any]]) -> None:
        self._collections[collection] = copy.deepcopy(list(records))


class SupabaseStorage:
    """Collections persisted as rows of the ``app_collections`` table."""

    def __init__(
        self,
        client: Optional[Client] = None,
        table: str = COLLECTIONS_TABLE,
    ):
        self._client = client
        self.table = table

    def _get_supabase_client(self) -> Client:
        """
        Get or create the Supabase client instance.

        Returns:
            Client: Supabase client instance

        Raises:
            StorageError: If SUPABASE_URL or SUPABASE_SERVICE_KEY is not configured
        """
        if self._client is None:
            if not SUPABASE_URL or not SUPABASE_SERVICE_KEY:
                error_msg = "SUPABASE_URL or SUPABASE_SERVICE_KEY is not configured"
                logger.error(error_msg)
                raise StorageError(error_msg)

            try:
                self._client = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
                logger.info("Supabase client initialized successfully for storage")
            except Exception as e:
                logger.error(f"Failed to initialize Supabase client: {e}")
                raise StorageError(str(e)) from e

        return self._client

    async def get_all(self, collection: str) -> List[Dict[str, Any]]:
        """
        Read every record of a collection.

        Args:
            collection: Collection name (e.g., 'tryon_usage')

        Returns:
            List of records, empty when the collection has never been written

        Raises:
            StorageError: If the read fails
        """
        client = self._get_supabase_client()
        try:
            response = (
                client.table(self.table)
                .select("records")
                .eq("collection", collection)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error reading collection {collection}: {e}")
            raise StorageError(f"Failed to read {collection}: {e}") from e

        if not response.data:
            return []

        records = response.data[0].get("records") or []
        if not isinstance(records, list):
            raise StorageError(f"Collection {collection} does not hold a list")
        return records

    async def set_all(self, collection: str, records: List[Dict[str, Any]]) -> None:
        """
        Replace every record of a collection.

        Raises:
            StorageError: If the write fails
        """
        client = self._get_supabase_client()
        try:
            client.table(self.table).upsert(
                {"collection": collection, "records": list(records)},
                on_conflict="collection",
            ).execute()
            logger.debug(f"Stored {len(records)} record(s) in {collection}")
        except Exception as e:
            logger.error(f"Error writing collection {collection}: {e}")
            raise StorageError(f"Failed to write {collection}: {e}") from e
