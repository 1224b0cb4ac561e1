from greentech.infrastructure.store.base import ALERTS_TABLE, ANALYTICS_TABLE, RecordStore
from greentech.infrastructure.store.sqlite import SQLiteRecordStore
from greentech.infrastructure.store.supabase import SupabaseRecordStore

__all__ = [
    "ALERTS_TABLE",
    "ANALYTICS_TABLE",
    "RecordStore",
    "SQLiteRecordStore",
    "SupabaseRecordStore",
    "create_record_store",
]


def create_record_store(config) -> RecordStore:
    """Build the record store selected by ``config.store_backend``."""
    if config.store_backend == "supabase":
        return SupabaseRecordStore(
            config.supabase_url,
            config.supabase_key,
            access_token=config.supabase_access_token or None,
            timeout=config.supabase_timeout,
        )
    return SQLiteRecordStore(config.database_path)
