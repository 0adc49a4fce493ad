"""
SynthesisService - the two request paths of the gateway.

Utterance path (small, cached, rate limited):
    Request → Claim check → SSML → Key → Budget check → Two-tier cache → Budget commit

Document path (whole HTML documents, streamed to durable storage):
    Request → HTML → SSML → Dispatch (streaming into speech/<job>.mp3)
            → speech/<job>.json → Status report

Errors:
    Every failure leaves the service as a TTSError subclass (see
    core/errors.py). Unexpected exceptions are logged and wrapped as
    TTSError(INTERNAL_ERROR); asyncio.CancelledError is never caught.

Example:
    >>> from tts_gateway.core.config import Settings
    >>> from tts_gateway.services import SynthesisService
    >>> from tts_gateway.tts.models import SynthesisRequest
    >>>
    >>> service = SynthesisService.from_settings(Settings(raw={}))
    >>> result = await service.synthesize_utterance(
    ...     SynthesisRequest(text="Hello there"), user_id="user-1"
    ... )
    >>> print(result.cache_status, len(result.audio_hex) // 2, "bytes")
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from tts_gateway.core.config import GatewayConfig, Settings
from tts_gateway.core.errors import (
    ConfigurationError,
    ErrorCode,
    FeatureNotGranted,
    InvalidInput,
    RateLimited,
    StatusReportFailed,
    TTSError,
)
from tts_gateway.core.logging import debug, fail, get_logger, info, set_request_id, success, verbose, warn
from tts_gateway.core.metrics import metrics
from tts_gateway.tts.backend import BackendDispatcher
from tts_gateway.tts.backends import build_backends
from tts_gateway.tts.cache import KVStore, MemoryKVStore, create_kv_store
from tts_gateway.tts.coordinator import CacheStatus, TwoTierCache
from tts_gateway.tts.keys import audio_path, derive_key, speech_marks_path
from tts_gateway.tts.models import Claim, InputKind, SpeechMark, SynthesisRequest, marks_to_json
from tts_gateway.tts.ratelimit import RateLimiter
from tts_gateway.tts.ssml import build_ssml, html_to_ssml, html_to_text
from tts_gateway.tts.status import HttpStatusReporter, StatusReporter, StatusState
from tts_gateway.tts.storage import AUDIO_CONTENT_TYPE, MARKS_CONTENT_TYPE, ObjectStore, create_object_store
from tts_gateway.utils.timeit import timeit

_LOG = get_logger("tts-gateway.service")


# =============================================================================
# Results
# =============================================================================

@dataclass
class UtteranceResult:
    """
    Outcome of synthesize_utterance().

    Attributes:
        audio_hex: Hex-encoded audio ("" for empty input or empty synthesis).
        speech_marks: Time-aligned marks, possibly empty.
        cache_status: "ephemeral", "durable", "miss", "empty" or "none".
        total_seconds: Wall time of the request.
        request_id: Correlation id, when one was given.
    """
    audio_hex: str
    speech_marks: List[SpeechMark] = field(default_factory=list)
    cache_status: str = "none"
    total_seconds: float = 0.0
    request_id: Optional[str] = None

    @property
    def audio(self) -> bytes:
        return bytes.fromhex(self.audio_hex)


@dataclass
class DocumentResult:
    """Outcome of synthesize_document(): where the artifacts were written."""
    job_id: str
    audio_path: str
    speech_marks_path: Optional[str]
    audio_bytes: int
    state: StatusState = StatusState.COMPLETED


# =============================================================================
# Service
# =============================================================================

class SynthesisService:
    """
    Orchestrates the utterance and document paths.

    All collaborators are injected, so tests can pass in-memory stores and
    fake backends; from_settings() builds the production wiring.

    Args:
        dispatcher: Priority-ordered backend dispatcher.
        cache: Two-tier cache coordinator.
        limiter: Per-user character budget.
        reporter: Status reporter for documents (None disables the document path).
        config: Validated configuration (defaults when omitted).
    """

    def __init__(
        self,
        dispatcher: BackendDispatcher,
        cache: TwoTierCache,
        limiter: RateLimiter,
        reporter: Optional[StatusReporter] = None,
        config: Optional[GatewayConfig] = None,
    ):
        self._dispatcher = dispatcher
        self._cache = cache
        self._limiter = limiter
        self._reporter = reporter
        self._config = config or GatewayConfig()

    @classmethod
    def from_components(
        cls,
        backends,
        kv: KVStore,
        objects: ObjectStore,
        reporter: Optional[StatusReporter] = None,
        config: Optional[GatewayConfig] = None,
    ) -> "SynthesisService":
        """Wire a service from raw parts using `config` for timeouts and limits."""
        config = config or GatewayConfig()
        return cls(
            dispatcher=BackendDispatcher(backends, timeout_s=config.synthesis.synthesis_timeout_s),
            cache=TwoTierCache(kv, objects, ttl_seconds=config.cache.ttl_seconds, prefix=config.storage.prefix),
            limiter=RateLimiter.from_config(kv, config.rate_limit),
            reporter=reporter,
            config=config,
        )

    @classmethod
    def from_settings(cls, settings: Settings, backend_order: Optional[List[str]] = None) -> "SynthesisService":
        """
        Build the production service from settings.yaml.

        Raises:
            ConfigValidationError: If the settings are invalid.
        """
        config = GatewayConfig.from_settings(settings)
        metrics.set_enabled(config.metrics_enabled)

        reporter: Optional[StatusReporter] = None
        if config.status.endpoint:
            reporter = HttpStatusReporter.from_config(config.status)
        else:
            warn(_LOG, "status_reporter_disabled", reason="no endpoint configured")

        service = cls.from_components(
            build_backends(config, order=backend_order),
            kv=create_kv_store(config),
            objects=create_object_store(config),
            reporter=reporter,
            config=config,
        )
        info(
            _LOG, "service_ready",
            backends=",".join(service.dispatcher.names()) or "-",
            cache=config.cache.backend,
            storage=config.storage.backend,
        )
        return service

    @property
    def dispatcher(self) -> BackendDispatcher:
        return self._dispatcher

    @property
    def cache(self) -> TwoTierCache:
        return self._cache

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    @property
    def config(self) -> GatewayConfig:
        return self._config

    def _preview(self, text: str) -> str:
        n = self._config.logging.text_preview_chars
        return text[:n] if n > 0 else ""

    def utterance_key(self, request: SynthesisRequest) -> str:
        """Content key the utterance path would use for `request`."""
        return derive_key(self._assemble(request))

    def _assemble(self, request: SynthesisRequest) -> str:
        syn = self._config.synthesis
        return build_ssml(
            request.text,
            voice=request.voice or syn.default_voice,
            rate=request.rate or syn.default_rate,
            language=request.language or syn.default_language,
        )

    # =========================================================================
    # Utterance path
    # =========================================================================

    async def synthesize_utterance(
        self,
        request: SynthesisRequest,
        user_id: str,
        *,
        claim: Optional[Claim] = None,
        request_id: Optional[str] = None,
    ) -> UtteranceResult:
        """
        Synthesize a short utterance through the two-tier cache.

        Args:
            request: Raw utterance text plus voice options.
            user_id: Owner of the character budget.
            claim: Caller's feature grant; required for high-fidelity voices.
            request_id: Correlation id for logs.

        Returns:
            UtteranceResult; empty audio for empty text.

        Raises:
            FeatureNotGranted: High fidelity requested without the grant.
            RateLimited: The budget would be exceeded. Nothing is synthesized.
            NoBackendAvailable / SynthesisFailed / SynthesisTimeout: From dispatch.
            InternalCacheError: Synthesized audio could not be persisted.
        """
        if request_id:
            set_request_id(request_id)

        if not request.text:
            debug(_LOG, "empty_text", user=user_id)
            return UtteranceResult(audio_hex="", speech_marks=[], cache_status="none", request_id=request_id)

        info(_LOG, "utterance", user=user_id, chars=len(request.text), text_preview=self._preview(request.text))

        status = "none"
        try:
            with timeit("utterance_total") as total_t:
                feature = self._config.synthesis.high_fidelity_feature
                if request.is_high_fidelity and (claim is None or not claim.grants(feature)):
                    raise FeatureNotGranted(
                        "High fidelity voice requires the ultra-realistic-voice feature",
                        details={"feature": feature},
                    )

                ssml = self._assemble(request)
                key = derive_key(ssml)
                debug(_LOG, "resolved", key=key, ssml=ssml)

                decision = await self._limiter.check_and_reserve(user_id, len(request.text))
                if not decision.allowed:
                    metrics.record_rate_limited()
                    raise RateLimited(
                        "Daily character limit exceeded",
                        details={
                            "limit": self._limiter.max_character_count,
                            "requested": len(request.text),
                            "current": decision.current,
                        },
                    )

                backend_request = SynthesisRequest(
                    text=ssml,
                    voice=request.voice,
                    rate=request.rate,
                    language=request.language,
                    is_high_fidelity=request.is_high_fidelity,
                    input_kind=InputKind.SSML,
                    plain_text=request.text,
                )

                async def _synthesize():
                    return await self._dispatcher.dispatch(backend_request)

                outcome = await self._cache.get_or_synthesize(key, _synthesize)
                status = outcome.status
                verbose(_LOG, "stage", event="cache", cache=status, seconds=round(total_t.elapsed, 4))

                if outcome.status != CacheStatus.EMPTY:
                    await self._limiter.commit(user_id, decision.new_total)

            total_s = total_t.timing.seconds if total_t.timing else -1.0
            success(_LOG, "done", cache=status, bytes=len(outcome.entry.audio_hex) // 2, seconds=round(total_s, 3))
            metrics.record_request("utterance", "success", total_s, cache_status=status)

            return UtteranceResult(
                audio_hex=outcome.entry.audio_hex,
                speech_marks=outcome.entry.speech_marks,
                cache_status=status,
                total_seconds=total_s,
                request_id=request_id,
            )

        except TTSError as e:
            fail(_LOG, "utterance_failed", code=e.code, error=e.message)
            metrics.record_request("utterance", e.code, -1, cache_status=status)
            raise
        except Exception as e:
            fail(_LOG, "utterance_failed", error=str(e), error_type=type(e).__name__)
            metrics.record_request("utterance", ErrorCode.INTERNAL_ERROR, -1, cache_status=status)
            raise TTSError(
                f"Unexpected error: {e}",
                ErrorCode.INTERNAL_ERROR,
                {"error_type": type(e).__name__},
            ) from e

    # =========================================================================
    # Document path
    # =========================================================================

    async def synthesize_document(
        self,
        request: SynthesisRequest,
        job_id: str,
        token: Optional[str] = None,
        *,
        request_id: Optional[str] = None,
    ) -> DocumentResult:
        """
        Synthesize an HTML document straight to durable storage.

        Audio is streamed into speech/<job_id>.mp3 while the backend produces
        it; speech marks go to speech/<job_id>.json when there are any. The
        job is then reported COMPLETED. Any failure reports FAILED and the
        original error is re-raised.

        Raises:
            ConfigurationError: No status reporter is configured.
            StatusReportFailed: The COMPLETED report was rejected.
            SynthesisFailed / StoreUnavailable / ...: After reporting FAILED.
        """
        if request_id:
            set_request_id(request_id)
        if self._reporter is None:
            raise ConfigurationError("Document synthesis requires a status endpoint")

        info(_LOG, "document", job=job_id, chars=len(request.text), text_preview=self._preview(request.text))
        prefix = self._config.storage.prefix
        audio_name = audio_path(job_id, prefix)
        marks_name: Optional[str] = None

        with timeit("document_total") as total_t:
            try:
                if not request.text or not request.text.strip():
                    raise InvalidInput("Document text is empty", details={"job": job_id})

                syn = self._config.synthesis
                backend_request = SynthesisRequest(
                    text=html_to_ssml(
                        request.text,
                        voice=request.voice or syn.default_voice,
                        rate=request.rate or syn.default_rate,
                        language=request.language or syn.default_language,
                    ),
                    voice=request.voice,
                    rate=request.rate,
                    language=request.language,
                    is_high_fidelity=request.is_high_fidelity,
                    input_kind=InputKind.HTML,
                    plain_text=html_to_text(request.text),
                )

                async with self._cache.objects.writer(audio_name, AUDIO_CONTENT_TYPE) as sink:
                    result = await self._dispatcher.dispatch(backend_request, sink)

                if result.speech_marks:
                    marks_name = speech_marks_path(job_id, prefix)
                    await self._cache.objects.put(marks_name, marks_to_json(result.speech_marks), MARKS_CONTENT_TYPE)

            except Exception as e:
                fail(_LOG, "document_failed", job=job_id, error=str(e), error_type=type(e).__name__)
                await self._reporter.report(job_id, StatusState.FAILED, token=token)
                code = e.code if isinstance(e, TTSError) else ErrorCode.INTERNAL_ERROR
                metrics.record_request("document", code, -1)
                if isinstance(e, TTSError):
                    raise
                raise TTSError(
                    f"Unexpected error: {e}",
                    ErrorCode.INTERNAL_ERROR,
                    {"error_type": type(e).__name__, "job": job_id},
                ) from e

            accepted = await self._reporter.report(
                job_id,
                StatusState.COMPLETED,
                token=token,
                audio_path=audio_name,
                speech_marks_path=marks_name,
            )
            if not accepted:
                metrics.record_request("document", ErrorCode.STATUS_REPORT_FAILED, -1)
                raise StatusReportFailed("Status endpoint rejected the COMPLETED report", details={"job": job_id})

        total_s = total_t.timing.seconds if total_t.timing else -1.0
        success(_LOG, "document_done", job=job_id, bytes=len(result.audio), seconds=round(total_s, 3))
        metrics.record_request("document", "success", total_s)
        return DocumentResult(
            job_id=job_id,
            audio_path=audio_name,
            speech_marks_path=marks_name,
            audio_bytes=len(result.audio),
        )

    # =========================================================================
    # Health / lifecycle
    # =========================================================================

    def get_health_info(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "ok": True,
            "backends": self._dispatcher.names(),
            "cache": self._config.cache.backend,
            "storage": self._config.storage.backend,
            "rate_limit": {
                "enabled": self._limiter.enabled,
                "max_character_count": self._limiter.max_character_count,
            },
            "documents": self._reporter is not None,
        }
        if isinstance(self._cache.kv, MemoryKVStore):
            result["cache_stats"] = self._cache.kv.stats()
        return result

    async def aclose(self) -> None:
        await self._dispatcher.aclose()
        for resource in (self._reporter, self._cache.kv):
            closer = getattr(resource, "aclose", None)
            if closer is not None:
                await closer()


# =============================================================================
# Global Service Singleton
# =============================================================================

_service: Optional[SynthesisService] = None
_service_lock = threading.Lock()


def get_service(settings: Settings) -> SynthesisService:
    """Thread-safe lazy singleton used by the API layer."""
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = SynthesisService.from_settings(settings)
    return _service


def reset_service() -> None:
    """Drop the global instance (tests)."""
    global _service
    with _service_lock:
        _service = None


async def close_service() -> None:
    """Close network clients of the global instance and drop it (app shutdown)."""
    global _service
    with _service_lock:
        service, _service = _service, None
    if service is not None:
        await service.aclose()
