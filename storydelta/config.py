from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

class Settings(BaseSettings):
    app_name: str = "StoryDelta"

    # Model configuration - can be overridden via environment variables
    model_story_delta: str = "gemini-2.5-flash"  # Fact extraction for wiki deltas
    story_delta_max_output_tokens: int = 8192
    story_delta_temperature: float = 0.2

    # Resilient model caller retry settings
    resilient_max_retries: int = 6
    resilient_base_delay: int = 2  # seconds, used with exponential backoff

    # API key cooldown after exhaustion
    key_cooldown_seconds: int = 60

    # Planner defaults (used when a request leaves a knob unset)
    update_policy: str = "safe_append"
    max_chunk_chars: int = 6000
    max_summary_chars: int = 320
    max_operations_per_chunk: int = 12
    max_existing_pages_in_prompt: int = 80
    low_confidence_threshold: float = 0.55
    default_tags_raw: str = ""
    tag_prefix: str = "lorebook"

    # Structured log output
    log_file: str = "storydelta.log"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

@lru_cache
def get_settings():
    return Settings()
