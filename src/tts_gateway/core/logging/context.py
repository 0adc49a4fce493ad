"""
Request correlation and process-wide logging state.

The request id lives in a ContextVar so each asyncio task handling a
request sees its own id; everything else here is module-level state set
once by configure_logging().

Environment variables read by read_logging_config():
    TTS_GATEWAY_LOG_LEVEL       level (1-4 or a name)
    TTS_GATEWAY_LOG_DIR         directory for the JSONL file
    TTS_GATEWAY_JSONL_FILE      JSONL filename
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

import yaml

from .levels import LEVEL_NAMES, LogLevel

_request_id: ContextVar[str] = ContextVar("request_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_request_id() -> str:
    """Request id of the current context, "-" outside a request."""
    return _request_id.get()


def set_request_id(rid: str) -> None:
    _request_id.set(rid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(_current_level, "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve the logging section from settings.yaml plus environment overrides.

    A missing or unreadable settings file is not an error here: logging must
    come up before configuration is validated, so defaults are used instead.
    """
    cfg: Dict[str, Any] = {}

    from tts_gateway.core.config import load_settings, settings_path
    path = settings_path()
    if os.path.exists(path):
        try:
            cfg.update(load_settings(path).raw.get("logging", {}) or {})
        except (OSError, yaml.YAMLError):
            pass

    if os.getenv("TTS_GATEWAY_LOG_LEVEL"):
        cfg["level"] = os.environ["TTS_GATEWAY_LOG_LEVEL"]
    if os.getenv("TTS_GATEWAY_LOG_DIR"):
        cfg["log_dir"] = os.environ["TTS_GATEWAY_LOG_DIR"]
    if os.getenv("TTS_GATEWAY_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["TTS_GATEWAY_JSONL_FILE"]

    return cfg
