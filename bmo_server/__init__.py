"""BMO gateway — caching proxy in front of the chat-completion and TTS APIs."""

__version__ = "0.1.0"
