"""
Watchroom — External collaborators

  - tmdb: the External Media Source (TMDB REST API over httpx)
  - account_store: the External Account Store (Supabase / PostgREST)
"""

from __future__ import annotations

from watchroom.clients import tmdb


async def close_clients() -> None:
    """Clean up any open HTTP connections."""
    await tmdb.close_client()
