"""BMO client data models."""

from __future__ import annotations

from dataclasses import dataclass

APOLOGY_MESSAGE = "Oh no! BMO's circuits got a little tangled. Can you try asking again, friend?"


@dataclass
class Reply:
    """What BMO says back, plus the face BMO should make while saying it."""

    text: str
    mood: str = "happy"
    cache_status: str | None = None


@dataclass
class SpeechClip:
    audio: bytes
    cache_status: str | None = None
    content_type: str = "audio/mpeg"

    @property
    def cached(self) -> bool:
        return self.cache_status == "HIT"
