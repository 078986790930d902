from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class CacheStatus(str, Enum):
    HIT = "HIT"
    MISS = "MISS"
    DEDUP = "DEDUP"


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class UserContext(BaseModel):
    """Profile fields supplied by the client; only used to personalize the system prompt."""

    id: str
    name: str = ""
    message_count: int = 0
    user_message_count: int = 0

    def summary(self) -> str:
        if not self.name:
            return ""
        return (
            f"You are talking to {self.name}. You have had {self.message_count} messages "
            f"in this conversation ({self.user_message_count} from {self.name}). "
            "Remember their name and reference past topics naturally."
        )


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = Field(min_length=1)
    system: str = ""
    user: UserContext | None = None


class ContentBlock(BaseModel):
    type: str = "text"
    text: str


class ChatResponse(BaseModel):
    content: list[ContentBlock]


class TTSRequest(BaseModel):
    text: str = Field(min_length=1, max_length=2000)


class PreloadRequest(BaseModel):
    phrases: list[str] | None = None


class PreloadResponse(BaseModel):
    queued: int
    already_cached: int


class CacheOccupancy(BaseModel):
    chat_entries: int
    tts_entries: int
    chat_in_flight: int
    tts_in_flight: int


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    chat_configured: bool
    tts_configured: bool
    cache: CacheOccupancy
