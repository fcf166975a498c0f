import logging
import os
import time
from functools import lru_cache

from dotenv import load_dotenv

from storydelta.config import get_settings

load_dotenv()

logger = logging.getLogger(__name__)


class KeyRotator:
    """Round-robin over ``GOOGLE_API_KEYS`` with a cooldown for exhausted keys."""

    def __init__(self, keys_str: str | None = None):
        keys_str = os.getenv("GOOGLE_API_KEYS", "") if keys_str is None else keys_str
        if not keys_str:
            single_key = os.getenv("GOOGLE_API_KEY")
            if single_key:
                self.keys = [single_key]
            else:
                raise ValueError("No GOOGLE_API_KEYS or GOOGLE_API_KEY found in environment.")
        else:
            self.keys = [k.strip() for k in keys_str.split(",") if k.strip()]
        if not self.keys:
            raise ValueError("GOOGLE_API_KEYS is set but contains no keys.")

        self._cooldowns = {k: 0.0 for k in self.keys}
        self._current_index = 0

    def get_next_key(self) -> str:
        # Try to find a key not in cooldown
        for _ in range(len(self.keys)):
            key = self.keys[self._current_index]
            self._current_index = (self._current_index + 1) % len(self.keys)

            if time.time() > self._cooldowns[key]:
                logger.debug("key_selected | key=%s...", key[:8])
                return key

        # All keys in cooldown; the caller waits out cooldown_remaining() itself
        best_key = min(self._cooldowns, key=self._cooldowns.get)
        logger.warning("keys_exhausted | wait_s=%.1f", self.cooldown_remaining(best_key))
        return best_key

    def cooldown_remaining(self, key: str) -> float:
        return max(0.0, self._cooldowns.get(key, 0.0) - time.time())

    def mark_exhausted(self, key: str, duration: int | None = None):
        if duration is None:
            duration = get_settings().key_cooldown_seconds
        logger.info("key_exhausted | key=%s... | cooldown_s=%d", key[:8], duration)
        self._cooldowns[key] = time.time() + duration


@lru_cache
def get_rotator() -> KeyRotator:
    return KeyRotator()
