"""Settings for the voice engine.

Uses pydantic-settings to load from the project's .env file. Unset or
placeholder credentials become None here, so the rest of the engine only
ever sees a configured endpoint or no endpoint at all.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

PLACEHOLDER_MARKER = "your_"


@dataclass(frozen=True)
class ProviderEndpoint:
    """A remote synthesis backend that is fully configured."""
    url: str
    key: str


class Settings(BaseSettings):
    # Primary synthesis / voice catalog backend
    api_base_url: str = "http://localhost:3001"

    # Secondary backend (edge function). Absent unless both are set.
    secondary_url: Optional[str] = None
    secondary_key: Optional[str] = None

    # Timeouts (seconds)
    request_timeout: float = 30.0

    # Capture pipeline
    capture_ms_per_char: float = 100.0
    capture_max_wait_seconds: float = 5.0
    recorder_timeslice_ms: int = 100
    preferred_voice_lang: str = "en-"

    # Recognition
    recognition_lang: str = "en-US"

    # Gateway
    gateway_port: int = 3001
    auth_token: str = "devtoken"

    model_config = {
        "env_file": str(Path(__file__).resolve().parent.parent / ".env"),
        "env_prefix": "VOICE_",
        "extra": "ignore",
    }

    @field_validator("secondary_url", "secondary_key", mode="before")
    @classmethod
    def _drop_placeholders(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        if not value or PLACEHOLDER_MARKER in value:
            return None
        return value

    @property
    def secondary_provider(self) -> Optional[ProviderEndpoint]:
        if self.secondary_url and self.secondary_key:
            return ProviderEndpoint(url=self.secondary_url.rstrip("/"), key=self.secondary_key)
        return None


settings = Settings()
