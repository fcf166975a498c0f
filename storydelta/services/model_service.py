"""
Gemini-backed ``call_model`` for the story delta planner.

``GeminiModelCaller`` is an awaitable ``(system_prompt, user_prompt) -> str``
callable. It retries 429/503 responses with exponential backoff and rotates
the API key on rate limits. Everything else propagates to the planner, which
records it as a chunk warning.
"""
import asyncio
import logging

from google.genai import Client as GenAIClient
from google.genai import types

from storydelta.config import get_settings
from storydelta.utils.auth import KeyRotator, get_rotator

logger = logging.getLogger(__name__)


class ModelCallError(RuntimeError):
    """Raised when the model keeps failing after every retry."""


def _is_rate_limit(error_str: str) -> bool:
    return "429" in error_str or "RESOURCE_EXHAUSTED" in error_str


def _is_server_overload(error_str: str) -> bool:
    return "503" in error_str or "UNAVAILABLE" in error_str


class GeminiModelCaller:
    def __init__(
        self,
        model_name: str | None = None,
        rotator: KeyRotator | None = None,
        client_factory=GenAIClient,
    ):
        settings = get_settings()
        self.model_name = model_name or settings.model_story_delta
        self._rotator = rotator
        self._client_factory = client_factory
        self._current_key: str | None = None
        self._client = None

    @property
    def rotator(self) -> KeyRotator:
        if self._rotator is None:
            self._rotator = get_rotator()
        return self._rotator

    async def _active_client(self):
        if self._client is None:
            key = self.rotator.get_next_key()
            wait = self.rotator.cooldown_remaining(key)
            if wait > 0:
                # Every key is cooling down; yield to the loop instead of blocking it
                await asyncio.sleep(wait)
            self._current_key = key
            self._client = self._client_factory(api_key=key)
        return self._client

    def rotate(self):
        # Mark the current key as exhausted before getting a new one
        if self._current_key:
            self.rotator.mark_exhausted(self._current_key)
            logger.info("Rotating API key. Old key: %s...", self._current_key[:8])
        self._client = None

    def _generation_config(self, system_prompt: str) -> types.GenerateContentConfig:
        settings = get_settings()
        return types.GenerateContentConfig(
            system_instruction=system_prompt,
            response_mime_type="application/json",
            temperature=settings.story_delta_temperature,
            max_output_tokens=settings.story_delta_max_output_tokens,
        )

    async def __call__(self, system_prompt: str, user_prompt: str) -> str:
        settings = get_settings()
        retries = settings.resilient_max_retries
        base_delay = settings.resilient_base_delay
        config = self._generation_config(system_prompt)

        for attempt in range(retries):
            try:
                client = await self._active_client()
                response = await client.aio.models.generate_content(
                    model=self.model_name,
                    contents=user_prompt,
                    config=config,
                )
                return response.text or ""
            except Exception as e:
                error_str = str(e).upper()
                is_rate_limit = _is_rate_limit(error_str)
                is_server_overload = _is_server_overload(error_str)

                if is_rate_limit or is_server_overload:
                    delay = base_delay * (2 ** attempt)
                    error_type = "429 Rate Limit" if is_rate_limit else "503 Server Overload"
                    logger.warning(
                        "%s for %s. Attempt %d/%d. Backoff: %ds",
                        error_type, self.model_name, attempt + 1, retries, delay,
                    )
                    if is_rate_limit:
                        self.rotate()  # Only rotate keys on rate limit, not overload
                    await asyncio.sleep(delay)
                    continue
                raise
        raise ModelCallError(f"Model {self.model_name} failed after {retries} attempts.")
