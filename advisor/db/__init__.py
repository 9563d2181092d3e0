"""Database clients for the advisor assistant."""

from advisor.db.store import PersonalDataStore
from advisor.db.supabase import SupabaseClient, get_supabase_client

__all__ = ["PersonalDataStore", "SupabaseClient", "get_supabase_client"]
