"""Data access for the GCMN Library portal.

Two paths into the same Supabase project:
  - RestClient (rest.py) — PostgREST over HTTPS with the user's access token,
    so row-level security applies to every read and write.
  - get_engine() (engine.py) — a direct asyncpg connection used only for the
    change feed (LISTEN/NOTIFY) and for installing the change triggers.
"""
