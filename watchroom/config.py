"""
Watchroom — Application Settings

Design patterns:
  - Singleton: single Settings instance shared everywhere
  - Configuration Object: centralizes all env-based config
"""

from __future__ import annotations

from typing import Dict

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration sourced from environment / .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── TMDB ──────────────────────────────────────────────
    tmdb_api_key: str = ""
    tmdb_base_url: str = "https://api.themoviedb.org/3"
    tmdb_image_base: str = "https://image.tmdb.org/t/p"
    tmdb_language: str = "en-US"
    image_placeholder: str = "/placeholder.svg"

    # ── Transport ─────────────────────────────────────────
    request_timeout_seconds: float = 15.0
    max_concurrent_requests: int = 8

    # ── Supabase (account store) ──────────────────────────
    supabase_url: str = ""
    supabase_key: str = ""

    # ── Search ────────────────────────────────────────────
    search_debounce_ms: int = 300
    search_cache_ttl_seconds: int = 600  # 10 min
    genre_cache_ttl_seconds: int = 86400  # 24 h

    # ── Recommendations ───────────────────────────────────
    recommendation_seed_limit: int = 3
    recommendation_list_size: int = 10
    top_genre_count: int = 3

    # ── App ───────────────────────────────────────────────
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "info"
    public_base_url: str = "http://localhost:8080"

    # ── Derived helpers ───────────────────────────────────
    @property
    def tmdb_auth_params(self) -> Dict[str, str]:
        return {"api_key": self.tmdb_api_key}

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


# Singleton – import this everywhere
settings = Settings()
