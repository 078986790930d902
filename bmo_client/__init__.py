"""BMO Python client — talk to a BMO gateway for chat replies and speech."""

from bmo_client.async_client import AsyncBMOClient
from bmo_client.exceptions import (
    AuthenticationError,
    BackendUnavailableError,
    BMOClientError,
    RateLimitError,
)
from bmo_client.models import APOLOGY_MESSAGE, Reply, SpeechClip

__all__ = [
    "AsyncBMOClient",
    "Reply",
    "SpeechClip",
    "APOLOGY_MESSAGE",
    "BMOClientError",
    "BackendUnavailableError",
    "AuthenticationError",
    "RateLimitError",
]
