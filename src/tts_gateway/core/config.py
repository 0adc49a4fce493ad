"""
Configuration Management for tts-gateway.

Configuration Hierarchy (highest priority first):
    1. Environment variables (REDIS_TTS_URL, OPENAI_API_KEY, ...)
    2. YAML config file (config/settings.yaml, or $TTS_GATEWAY_SETTINGS)
    3. Defaults class values

Example settings.yaml:
    tts:
      default_language: en-US
      default_voice: en-US-JennyNeural
      synthesis_timeout_s: 60

    backends:
      order: [openai, azure, elevenlabs]

    cache:
      backend: redis
      ttl_seconds: 259200

    rate_limit:
      max_character_count: 50000
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import os
import yaml


class ConfigValidationError(Exception):
    """Raised when a configuration value is out of bounds or of the wrong type."""
    pass


class Defaults:
    """
    Centralized default configuration values.

    Values here are used when neither the YAML file nor the environment
    provides an override.
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Synthesis
    # ─────────────────────────────────────────────────────────────────────────
    TTS_DEFAULT_LANGUAGE = "en-US"
    TTS_DEFAULT_VOICE = "en-US-JennyNeural"
    TTS_DEFAULT_RATE = "1.0"
    TTS_SYNTHESIS_TIMEOUT_S = 60.0      # Upper bound for one backend call
    HIGH_FIDELITY_FEATURE = "ultra-realistic-voice"

    # ─────────────────────────────────────────────────────────────────────────
    # Backends (first match wins, in this order)
    # ─────────────────────────────────────────────────────────────────────────
    BACKENDS_ORDER = ("openai", "azure", "elevenlabs")
    BACKENDS_HTTP_TIMEOUT_S = 30.0

    # ─────────────────────────────────────────────────────────────────────────
    # Ephemeral cache (fast tier)
    # ─────────────────────────────────────────────────────────────────────────
    CACHE_BACKEND = "memory"            # memory | redis
    CACHE_TTL_SECONDS = 3600 * 72       # 72 hours
    CACHE_MAX_ITEMS = 1024              # memory backend only
    CACHE_REDIS_URL = "redis://localhost:6379/0"

    # ─────────────────────────────────────────────────────────────────────────
    # Durable storage (authoritative tier)
    # ─────────────────────────────────────────────────────────────────────────
    STORAGE_BACKEND = "local"           # local | gcs
    STORAGE_BASE_DIR = "./storage"
    STORAGE_PREFIX = "speech"
    STORAGE_BUCKET = ""

    # ─────────────────────────────────────────────────────────────────────────
    # Rate limiting
    # ─────────────────────────────────────────────────────────────────────────
    RATE_LIMIT_ENABLED = True
    MAX_CHARACTER_COUNT = 50000
    RATE_LIMIT_TTL_SECONDS = 86400      # 24 hours
    RATE_LIMIT_KEY_PREFIX = "ratelimit"

    # ─────────────────────────────────────────────────────────────────────────
    # Status callback (document path)
    # ─────────────────────────────────────────────────────────────────────────
    STATUS_ENDPOINT = ""
    STATUS_TIMEOUT_S = 10.0

    # ─────────────────────────────────────────────────────────────────────────
    # Metrics / Logging
    # ─────────────────────────────────────────────────────────────────────────
    METRICS_ENABLED = True
    LOGGING_TEXT_PREVIEW_CHARS = 80
    LOGGING_LEVEL = 2                   # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG


@dataclass
class SynthesisConfig:
    """Defaults applied to utterances and the per-call backend timeout."""
    default_language: str = Defaults.TTS_DEFAULT_LANGUAGE
    default_voice: str = Defaults.TTS_DEFAULT_VOICE
    default_rate: str = Defaults.TTS_DEFAULT_RATE
    synthesis_timeout_s: float = Defaults.TTS_SYNTHESIS_TIMEOUT_S
    high_fidelity_feature: str = Defaults.HIGH_FIDELITY_FEATURE


@dataclass
class BackendsConfig:
    """
    Backend registry configuration.

    `order` is the priority list; `options` holds the per-backend section
    (e.g. options["openai"]["model"]).
    """
    order: List[str] = field(default_factory=lambda: list(Defaults.BACKENDS_ORDER))
    http_timeout_s: float = Defaults.BACKENDS_HTTP_TIMEOUT_S
    options: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def for_backend(self, name: str) -> Dict[str, Any]:
        return dict(self.options.get(name) or {})


@dataclass
class CacheConfig:
    """Ephemeral key-value tier."""
    backend: str = Defaults.CACHE_BACKEND
    ttl_seconds: int = Defaults.CACHE_TTL_SECONDS
    max_items: int = Defaults.CACHE_MAX_ITEMS
    redis_url: str = Defaults.CACHE_REDIS_URL


@dataclass
class StorageConfig:
    """Durable object tier."""
    backend: str = Defaults.STORAGE_BACKEND
    base_dir: str = Defaults.STORAGE_BASE_DIR
    prefix: str = Defaults.STORAGE_PREFIX
    bucket: str = Defaults.STORAGE_BUCKET


@dataclass
class RateLimitConfig:
    """Per-user daily character budget."""
    enabled: bool = Defaults.RATE_LIMIT_ENABLED
    max_character_count: int = Defaults.MAX_CHARACTER_COUNT
    ttl_seconds: int = Defaults.RATE_LIMIT_TTL_SECONDS
    key_prefix: str = Defaults.RATE_LIMIT_KEY_PREFIX


@dataclass
class StatusConfig:
    """Status callback for document jobs."""
    endpoint: str = Defaults.STATUS_ENDPOINT
    timeout_s: float = Defaults.STATUS_TIMEOUT_S


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL, 2 = NORMAL (default), 3 = VERBOSE, 4 = DEBUG
    """
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS
    level: int = Defaults.LOGGING_LEVEL


@dataclass
class GatewayConfig:
    """
    Validated configuration for the gateway.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = GatewayConfig.from_settings(settings)
        print(config.rate_limit.max_character_count)
    """
    synthesis: SynthesisConfig = field(default_factory=SynthesisConfig)
    backends: BackendsConfig = field(default_factory=BackendsConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    status: StatusConfig = field(default_factory=StatusConfig)
    metrics_enabled: bool = Defaults.METRICS_ENABLED
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "GatewayConfig":
        """
        Create GatewayConfig from Settings with validation.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Synthesis defaults
        # ─────────────────────────────────────────────────────────────────────
        tts_raw = raw.get("tts", {}) or {}
        synthesis = SynthesisConfig(
            default_language=str(tts_raw.get("default_language", Defaults.TTS_DEFAULT_LANGUAGE)),
            default_voice=str(tts_raw.get("default_voice", Defaults.TTS_DEFAULT_VOICE)),
            default_rate=str(tts_raw.get("default_rate", Defaults.TTS_DEFAULT_RATE)),
            synthesis_timeout_s=float(tts_raw.get("synthesis_timeout_s", Defaults.TTS_SYNTHESIS_TIMEOUT_S)),
            high_fidelity_feature=str(tts_raw.get("high_fidelity_feature", Defaults.HIGH_FIDELITY_FEATURE)),
        )
        cls._validate_positive("tts.synthesis_timeout_s", synthesis.synthesis_timeout_s)

        # ─────────────────────────────────────────────────────────────────────
        # Backend registry
        # ─────────────────────────────────────────────────────────────────────
        backends_raw = raw.get("backends", {}) or {}
        order = backends_raw.get("order", list(Defaults.BACKENDS_ORDER))
        if isinstance(order, str):
            order = [part.strip() for part in order.split(",") if part.strip()]
        if not isinstance(order, list) or not all(isinstance(o, str) for o in order):
            raise ConfigValidationError(f"backends.order must be a list of names, got {order!r}")
        options = {
            name: value for name, value in backends_raw.items()
            if name not in ("order", "http_timeout_s") and isinstance(value, dict)
        }
        backends = BackendsConfig(
            order=[o.strip().lower() for o in order],
            http_timeout_s=float(backends_raw.get("http_timeout_s", Defaults.BACKENDS_HTTP_TIMEOUT_S)),
            options=options,
        )
        cls._validate_positive("backends.http_timeout_s", backends.http_timeout_s)

        # ─────────────────────────────────────────────────────────────────────
        # Ephemeral cache
        # ─────────────────────────────────────────────────────────────────────
        cache_raw = raw.get("cache", {}) or {}
        cache = CacheConfig(
            backend=str(cache_raw.get("backend", Defaults.CACHE_BACKEND)).lower(),
            ttl_seconds=int(cache_raw.get("ttl_seconds", Defaults.CACHE_TTL_SECONDS)),
            max_items=int(cache_raw.get("max_items", Defaults.CACHE_MAX_ITEMS)),
            redis_url=os.getenv("REDIS_TTS_URL") or str(cache_raw.get("redis_url", Defaults.CACHE_REDIS_URL)),
        )
        cls._validate_choice("cache.backend", cache.backend, ("memory", "redis"))
        cls._validate_positive("cache.ttl_seconds", cache.ttl_seconds)
        cls._validate_positive("cache.max_items", cache.max_items)

        # ─────────────────────────────────────────────────────────────────────
        # Durable storage
        # ─────────────────────────────────────────────────────────────────────
        storage_raw = raw.get("storage", {}) or {}
        storage = StorageConfig(
            backend=str(storage_raw.get("backend", Defaults.STORAGE_BACKEND)).lower(),
            base_dir=str(storage_raw.get("base_dir", Defaults.STORAGE_BASE_DIR)),
            prefix=str(storage_raw.get("prefix", Defaults.STORAGE_PREFIX)).strip("/"),
            bucket=os.getenv("GCS_UPLOAD_BUCKET") or str(storage_raw.get("bucket", Defaults.STORAGE_BUCKET)),
        )
        cls._validate_choice("storage.backend", storage.backend, ("local", "gcs"))
        if storage.backend == "gcs" and not storage.bucket:
            raise ConfigValidationError("storage.bucket is required when storage.backend is gcs")

        # ─────────────────────────────────────────────────────────────────────
        # Rate limiting
        # ─────────────────────────────────────────────────────────────────────
        rl_raw = raw.get("rate_limit", {}) or {}
        rate_limit = RateLimitConfig(
            enabled=bool(rl_raw.get("enabled", Defaults.RATE_LIMIT_ENABLED)),
            max_character_count=int(rl_raw.get("max_character_count", Defaults.MAX_CHARACTER_COUNT)),
            ttl_seconds=int(rl_raw.get("ttl_seconds", Defaults.RATE_LIMIT_TTL_SECONDS)),
            key_prefix=str(rl_raw.get("key_prefix", Defaults.RATE_LIMIT_KEY_PREFIX)),
        )
        cls._validate_non_negative("rate_limit.max_character_count", rate_limit.max_character_count)
        cls._validate_positive("rate_limit.ttl_seconds", rate_limit.ttl_seconds)

        # ─────────────────────────────────────────────────────────────────────
        # Status callback
        # ─────────────────────────────────────────────────────────────────────
        status_raw = raw.get("status", {}) or {}
        status = StatusConfig(
            endpoint=os.getenv("REST_BACKEND_ENDPOINT") or str(status_raw.get("endpoint", Defaults.STATUS_ENDPOINT)),
            timeout_s=float(status_raw.get("timeout_s", Defaults.STATUS_TIMEOUT_S)),
        )
        cls._validate_positive("status.timeout_s", status.timeout_s)

        metrics_raw = raw.get("metrics", {}) or {}
        metrics_enabled = bool(metrics_raw.get("enabled", Defaults.METRICS_ENABLED))

        # ─────────────────────────────────────────────────────────────────────
        # Logging
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {}) or {}
        log_level_raw = logging_raw.get("level", Defaults.LOGGING_LEVEL)
        if isinstance(log_level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(log_level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = int(log_level_raw)

        logging_cfg = LoggingConfig(
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
            level=log_level,
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)

        return cls(
            synthesis=synthesis,
            backends=backends,
            cache=cache,
            storage=storage,
            rate_limit=rate_limit,
            status=status,
            metrics_enabled=metrics_enabled,
            logging=logging_cfg,
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        """Validate that a value is positive (> 0)."""
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        """Validate that a value is non-negative (>= 0)."""
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        """Validate that a value is within a range [min_val, max_val]."""
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")

    @staticmethod
    def _validate_choice(name: str, value: str, choices: tuple) -> None:
        if value not in choices:
            raise ConfigValidationError(f"{name} must be one of {', '.join(choices)}, got {value!r}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    Use get_config() for the validated GatewayConfig.

    Attributes:
        raw: Dictionary of raw configuration values.
    """
    raw: Dict[str, Any]

    def get_config(self) -> GatewayConfig:
        """
        Get validated GatewayConfig from these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return GatewayConfig.from_settings(self)


def settings_path() -> str:
    """Resolve the settings file path ($TTS_GATEWAY_SETTINGS or the default)."""
    return os.getenv("TTS_GATEWAY_SETTINGS", "config/settings.yaml")


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Load settings from a YAML configuration file.

    Args:
        path: Path to the YAML file. Defaults to settings_path().

    Returns:
        Settings object with loaded configuration.

    Raises:
        FileNotFoundError: If the settings file doesn't exist.
    """
    p = Path(path or settings_path())
    if not p.exists():
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    return Settings(raw=raw)
