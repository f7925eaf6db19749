"""
Finnko - Personal Finance Ledger

Persistence and sync layer of a personal finance ledger that works both
anonymously (local JSON store) and signed in (Supabase/PostgREST).

DESIGN PRINCIPLES:
1. Memory is authoritative; persistence is fire-and-forget
2. Nothing is saved before the initial load finishes
3. The identity is resolved again on every storage call
4. Background failures are reported, never raised into the caller
5. Storage backends are swappable behind small interfaces
"""

__version__ = "1.0.0"
__author__ = "Finnko Team"
