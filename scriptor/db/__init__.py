"""Managed-backend access for the gateway.

All persistence lives in Supabase; this package holds the adapter that talks
to it and the result type its helpers return.
"""

from scriptor.db.results import Lookup, LookupStatus
from scriptor.db.supabase_backend import SupabaseBackend

__all__ = ["Lookup", "LookupStatus", "SupabaseBackend"]
