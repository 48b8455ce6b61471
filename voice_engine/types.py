"""Shared data types for the voice engine."""

import base64
from dataclasses import dataclass
from typing import Optional

DEFAULT_REMOTE_MIME = "audio/mpeg"
DATA_URL_PREFIX = "data:"


@dataclass(frozen=True)
class ShapingParams:
    """Voice-shaping knobs understood by the remote providers."""
    stability: Optional[float] = None
    similarity_boost: Optional[float] = None
    style: Optional[float] = None
    speaker_boost: Optional[bool] = None

    def __post_init__(self):
        for field in ("stability", "similarity_boost", "style"):
            value = getattr(self, field)
            if value is not None and not 0.0 <= value <= 1.0:
                raise ValueError(f"{field} must be in [0, 1], got {value!r}")


@dataclass(frozen=True)
class SynthesisRequest:
    """One synthesis call: text plus optional voice and shaping."""
    text: str
    voice_id: Optional[str] = None
    shaping: Optional[ShapingParams] = None

    def __post_init__(self):
        if not self.text or not self.text.strip():
            raise ValueError("text must be non-empty")

    def to_payload(self) -> dict:
        """Map to the field names both remote providers expect."""
        shaping = self.shaping or ShapingParams()
        return {
            "text": self.text,
            "voice_id": self.voice_id,
            "stability": shaping.stability,
            "similarity_boost": shaping.similarity_boost,
            "style": shaping.style,
            "use_speaker_boost": shaping.speaker_boost,
        }


@dataclass(frozen=True)
class SynthesisResult:
    """Encoded audio as a self-describing data URL.

    `source` records which tier produced it, for logs only.
    """
    data_url: str
    source: str = ""

    @property
    def mime_type(self) -> str:
        header = self.data_url[len(DATA_URL_PREFIX):].split(",", 1)[0]
        return header.split(";", 1)[0]

    def audio_bytes(self) -> bytes:
        """Decode the inline payload back to raw encoded audio."""
        _, payload = self.data_url.split(",", 1)
        return base64.b64decode(payload)

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str, source: str = "") -> "SynthesisResult":
        encoded = base64.b64encode(data).decode("ascii")
        return cls(data_url=f"data:{mime_type};base64,{encoded}", source=source)

    @classmethod
    def from_payload(cls, audio: str, source: str = "",
                     default_mime: str = DEFAULT_REMOTE_MIME) -> "SynthesisResult":
        """Wrap a provider's `audio` field; raw base64 gets a MIME prefix."""
        if audio.startswith(DATA_URL_PREFIX):
            return cls(data_url=audio, source=source)
        return cls(data_url=f"data:{default_mime};base64,{audio}", source=source)


@dataclass(frozen=True)
class VoiceIdentity:
    """Describes an available remote voice."""
    id: str
    display_name: str
    preview_url: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_wire(cls, entry: dict) -> "VoiceIdentity":
        """Build from the catalog's wire form; raises KeyError/TypeError if malformed."""
        voice_id = entry.get("voice_id") or entry.get("id")
        name = entry.get("name") or entry.get("display_name")
        if not voice_id or not name:
            raise KeyError("voice entry needs an id and a name")
        return cls(
            id=str(voice_id),
            display_name=str(name),
            preview_url=entry.get("preview_url"),
            category=entry.get("category"),
            description=entry.get("description"),
        )

    def to_wire(self) -> dict:
        return {
            "voice_id": self.id,
            "name": self.display_name,
            "preview_url": self.preview_url,
            "category": self.category,
            "description": self.description,
        }
