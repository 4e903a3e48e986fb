"""
Supabase-backed store for receipts accepted by the push API.

Treated as a generic document store: every retailer has its own collection
(``receipts<retailerKey>``), documents are added, listed newest-first and deleted
by the opaque id the database assigns. All collections live in one table with a
``collection`` column; ``id`` and ``created_at`` are filled by column defaults.

Note: The table schema is defined in database/001_schema.sql
"""
import logging
from typing import Any, Dict, List, Optional

from supabase import Client, create_client

from ...config import Settings
from ...errors import ConfigurationError

logger = logging.getLogger(__name__)


class ReceiptStore:
    """Collection-scoped add / query / delete over a Supabase table."""

    def __init__(self, client: Client, table: str = "pos_receipts"):
        self._client = client
        self.table = table

    def add(self, collection: str, document: Dict[str, Any]) -> str:
        """
        Insert one document into a collection.

        Args:
            collection: Collection name (e.g. "receiptsR001")
            document: Column values; id/created_at are assigned server-side

        Returns:
            The new document id

        Raises:
            RuntimeError: the insert returned no row
        """
        payload = dict(document)
        payload["collection"] = collection
        payload.pop("id", None)
        payload.pop("created_at", None)

        res = self._client.table(self.table).insert(payload).execute()
        if not res.data:
            raise RuntimeError(f"Insert into {collection} returned no data")
        doc_id = str(res.data[0]["id"])
        logger.debug(f"Stored document {doc_id} in {collection}")
        return doc_id

    def query(self, collection: str) -> List[Dict[str, Any]]:
        """All documents of a collection, newest first by creation time."""
        res = (
            self._client.table(self.table)
            .select("*")
            .eq("collection", collection)
            .order("created_at", desc=True)
            .execute()
        )
        rows = res.data or []
        logger.info(f"Fetched {len(rows)} documents from {collection}")
        return rows

    def delete(self, collection: str, doc_id: str) -> None:
        """Delete one document. Deleting an unknown id is not an error."""
        self._client.table(self.table).delete().eq("collection", collection).eq("id", doc_id).execute()
        logger.info(f"Deleted document {doc_id} from {collection}")


def create_receipt_store(settings: Settings) -> Optional[ReceiptStore]:
    """
    Build the store from settings.

    Returns None when Supabase is not configured so the app can still serve
    the retailer list; routes needing the store raise ConfigurationError then.
    """
    if not settings.supabase_url or not settings.supabase_anon_key:
        logger.warning("SUPABASE_URL and SUPABASE_ANON_KEY are not set; receipt storage disabled")
        return None

    # Use service role key if available, otherwise use anon key
    key = settings.supabase_service_role_key or settings.supabase_anon_key
    try:
        client = create_client(settings.supabase_url, key)
    except Exception as e:
        raise ConfigurationError(f"Failed to create Supabase client: {e}")
    logger.info("Supabase client initialized")
    return ReceiptStore(client, table=settings.receipts_table)
