from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    frontend_url: str = "http://localhost:3000"

    # Logging
    log_level: str = "info"

    # CORS: local dev ports plus the production origin, and a pattern for preview deploys
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000"
    cors_origin_regex: str = r"https://bmo-[a-z0-9-]+\.vercel\.app"

    # Deployment mode: "container" (default) or "lambda"
    deployment_mode: str = "container"

    # Anthropic chat completion
    anthropic_api_key: str = ""
    anthropic_api_url: str = "https://api.anthropic.com/v1/messages"
    anthropic_version: str = "2023-06-01"
    chat_model: str = "claude-sonnet-4-20250514"
    chat_max_tokens: int = 300
    chat_temperature: float = 0.7

    # Fish Audio TTS
    fish_audio_api_key: str = ""
    fish_audio_api_url: str = "https://api.fish.audio/v1/tts"
    fish_audio_voice_id: str = "323847d4c5394c678e5909c2206725f6"
    tts_format: str = "mp3"
    tts_mp3_bitrate: int = 128
    tts_latency: str = "normal"

    upstream_timeout_seconds: float = 60.0

    # Chat response cache
    chat_context_window: int = 4
    chat_cache_ttl_seconds: int = 1800
    chat_cache_max_entries: int = 100
    chat_cache_user_scoped: bool = True
    chat_standalone_keys: bool = True

    # TTS audio cache
    tts_cache_ttl_seconds: int = 3600
    tts_cache_max_entries: int = 50

    # Cache maintenance and persistence (empty cache_dir keeps caches in memory only)
    cache_sweep_interval_seconds: int = 300
    cache_dir: str = "./data/cache"
    cache_snapshot_max_bytes: int = 5 * 1024 * 1024

    @field_validator(
        "chat_context_window",
        "chat_cache_ttl_seconds",
        "chat_cache_max_entries",
        "tts_cache_ttl_seconds",
        "tts_cache_max_entries",
        "cache_sweep_interval_seconds",
    )
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @property
    def cors_origin_list(self) -> list[str]:
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        if self.frontend_url and self.frontend_url not in origins:
            origins.append(self.frontend_url)
        return origins

    @property
    def is_chat_configured(self) -> bool:
        return bool(self.anthropic_api_key)

    @property
    def is_tts_configured(self) -> bool:
        return bool(self.fish_audio_api_key)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
