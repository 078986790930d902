"""Cache key derivation for chat windows and spoken text."""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Sequence

from bmo_server.models.chat import ChatMessage

_FNV64_OFFSET = 0xCBF29CE484222325
_FNV64_PRIME = 0x100000001B3
_MASK64 = 0xFFFFFFFFFFFFFFFF
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

# Phrases that point back at earlier turns; a question containing one needs its context.
CONTEXTUAL_INDICATORS = (
    "before", "previous", "earlier", "you said", "you mentioned",
    "that", "it", "this", "them", "they", "what about",
    "continue", "more about", "tell me more", "and what",
    "also", "another", "next",
)
_CONTEXTUAL_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(p) for p in CONTEXTUAL_INDICATORS) + r")\b"
)
_CONTINUATION_PREFIXES = ("and ", "or ", "but ")
STANDALONE_MAX_LENGTH = 150

_WHITESPACE_RE = re.compile(r"\s+")
_PUNCTUATION_RE = re.compile(r"[^\w\s]")


def fnv1a_64(text: str) -> str:
    """64-bit FNV-1a over the UTF-8 bytes of *text*, rendered in base 36."""
    h = _FNV64_OFFSET
    for byte in text.encode("utf-8"):
        h ^= byte
        h = (h * _FNV64_PRIME) & _MASK64
    return _to_base36(h)


def _to_base36(n: int) -> str:
    if n == 0:
        return "0"
    digits = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text.lower()).strip()


def normalize_speech_text(text: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace.

    "Hello, World!" and "hello world" normalize to the same string and so share
    one cached clip.
    """
    stripped = _PUNCTUATION_RE.sub("", text.lower())
    return _WHITESPACE_RE.sub(" ", stripped).strip()


def is_standalone_question(content: str) -> bool:
    """True when a message reads as a self-contained question.

    Short messages with no back-reference to earlier turns can be answered the
    same way regardless of conversation history.
    """
    lowered = content.lower().strip()
    if len(content) >= STANDALONE_MAX_LENGTH:
        return False
    if lowered.startswith(_CONTINUATION_PREFIXES):
        return False
    return _CONTEXTUAL_RE.search(lowered) is None


def trim_window(messages: Sequence[ChatMessage], window: int) -> list[ChatMessage]:
    if window <= 0:
        raise ValueError("window must be positive")
    return list(messages[-window:])


def chat_fingerprint(
    messages: Sequence[ChatMessage],
    window: int = 4,
    standalone_keys: bool = True,
    scope: str | None = None,
) -> str:
    """Fingerprint the last *window* messages of a conversation.

    A trailing standalone user question is keyed on its own text
    (``standalone_`` namespace); everything else is keyed on the whole
    trimmed window (``contextual_`` namespace). *scope*, when given, is folded
    into the hashed material so different scopes never share a key.
    """
    if not messages:
        return "empty"

    last = messages[-1]
    if standalone_keys and last.role == "user" and is_standalone_question(last.content):
        namespace = "standalone"
        material = normalize_whitespace(last.content)
    else:
        namespace = "contextual"
        recent = trim_window(messages, window)
        material = normalize_whitespace("|".join(f"{m.role}:{m.content}" for m in recent))

    if scope:
        material = f"{scope}\x1f{material}"
    return f"{namespace}_{fnv1a_64(material)}"


def speech_fingerprint(text: str) -> str:
    return f"tts_{fnv1a_64(normalize_speech_text(text))}"


def request_key(messages: Sequence[ChatMessage], system_prompt: str, scope: str | None = None) -> str:
    """SHA-256 over the exact upstream request, used to collapse concurrent calls."""
    payload = json.dumps(
        {
            "messages": [[m.role, m.content] for m in messages],
            "system": system_prompt,
            "scope": scope or "",
        },
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(payload.encode()).hexdigest()
