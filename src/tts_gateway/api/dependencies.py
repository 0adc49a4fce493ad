"""
FastAPI dependency providers.

    get_settings()  settings.yaml, loaded once
    get_service()   the SynthesisService singleton
    get_claim()     caller identity from the upstream gateway headers

Token verification happens upstream; this service trusts the X-User-Id,
X-Feature-Name and X-Feature-Granted-At headers it is given.

Tests replace providers with app.dependency_overrides.
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from fastapi import Header, HTTPException

from tts_gateway.core.config import Settings, load_settings, settings_path
from tts_gateway.core.logging import get_logger, warn
from tts_gateway.services.synthesis_service import SynthesisService, get_service as _get_service
from tts_gateway.tts.models import Claim

_LOG = get_logger("tts-gateway.api")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load settings from $TTS_GATEWAY_SETTINGS (default config/settings.yaml).

    A missing file means built-in defaults plus environment overrides.
    """
    path = settings_path()
    if not os.path.exists(path):
        warn(_LOG, "settings_missing", path=path)
        return Settings(raw={})
    return load_settings(path)


def get_service() -> SynthesisService:
    return _get_service(get_settings())


def get_claim(
    x_user_id: Optional[str] = Header(default=None),
    x_feature_name: Optional[str] = Header(default=None),
    x_feature_granted_at: Optional[str] = Header(default=None),
) -> Claim:
    """
    Build the caller's Claim from headers.

    Raises:
        HTTPException(401): X-User-Id is missing.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=401,
            detail={"ok": False, "error": "UNAUTHENTICATED", "message": "X-User-Id header is required"},
        )
    return Claim(uid=x_user_id, feature_name=x_feature_name, granted_at=x_feature_granted_at)
