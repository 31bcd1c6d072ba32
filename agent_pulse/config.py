from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )
    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db_name: str = "agent_pulse"
    # App
    environment: str = "development"
    log_level: str = "INFO"
    # Fetching
    user_agent: str = (
        "Mozilla/5.0 (compatible; AgentPulseBot/1.0; +https://refoundlabs.com) "
        "AppleWebKit/537.36"
    )
    fetch_timeout_seconds: float = 10
    min_content_length: int = 100
    # Render fallback (Firecrawl)
    firecrawl_api_key: Optional[str] = None
    firecrawl_api_url: str = "https://api.firecrawl.dev/v1/scrape"
    render_timeout_seconds: float = 30
    render_wait_for_ms: int = 3000
    render_page_timeout_ms: int = 25000
    # Probe timeouts
    ttfb_timeout_seconds: float = 10
    robots_timeout_seconds: float = 5
    sitemap_timeout_seconds: float = 8
    llms_timeout_seconds: float = 5
    feed_timeout_seconds: float = 5
    manifest_timeout_seconds: float = 3
    # PageSpeed Insights
    google_pagespeed_api_key: Optional[str] = None
    pagespeed_timeout_seconds: float = 30
    pagespeed_cache_hours: int = 24


@lru_cache()
def get_settings() -> Settings:
    return Settings()
