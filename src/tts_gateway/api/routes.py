"""
Gateway API routes.

Endpoints:
    POST /v1/utterance          - cached, rate-limited utterance synthesis (JSON, hex audio)
    POST /v1/document?token=    - document synthesis into durable storage
    GET  /health                - liveness and wiring summary
    GET  /metrics               - Prometheus exposition

Error Handling:
    Errors are JSON in one shape:
    {
        "ok": false,
        "error": "<ERROR_CODE>",
        "message": "<human readable message>",
        "details": {...}
    }

    HTTP status codes are mapped from TTSError codes by STATUS_MAP.

Example:
    curl -X POST http://localhost:8000/v1/utterance \\
        -H "Content-Type: application/json" \\
        -H "X-User-Id: user-1" \\
        -d '{"text": "Hello there", "idx": 0}'
"""
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse

from tts_gateway.api.dependencies import get_claim, get_service
from tts_gateway.api.schemas import DocumentRequest, DocumentResponse, UtteranceRequest, UtteranceResponse
from tts_gateway.core.errors import ErrorCode, TTSError
from tts_gateway.core.logging import fail, get_logger, set_request_id
from tts_gateway.core.metrics import metrics
from tts_gateway.services.synthesis_service import SynthesisService
from tts_gateway.tts.models import Claim

router = APIRouter()

_LOG = get_logger("tts-gateway.api")

STATUS_MAP = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.UNAUTHORIZED: 403,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.CONFIGURATION_ERROR: 500,
    ErrorCode.NO_BACKEND_AVAILABLE: 500,
    ErrorCode.SYNTHESIS_FAILED: 500,
    ErrorCode.INTERNAL_CACHE_ERROR: 500,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.STATUS_REPORT_FAILED: 502,
    ErrorCode.STORE_UNAVAILABLE: 503,
    ErrorCode.TIMEOUT: 504,
}


def _new_request_id() -> str:
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)
    return rid


def _error_response(error: TTSError, request_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_MAP.get(error.code, 500),
        content=error.to_dict(),
        headers={"X-Request-Id": request_id},
    )


def _internal_error(request_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": ErrorCode.INTERNAL_ERROR,
            "message": "Internal server error",
            "request_id": request_id,
        },
        headers={"X-Request-Id": request_id},
    )


@router.post("/v1/utterance", response_model=UtteranceResponse)
async def utterance(
    req: UtteranceRequest,
    claim: Claim = Depends(get_claim),
    service: SynthesisService = Depends(get_service),
):
    """
    Synthesize one utterance for the calling user.

    Responses:
        200: {idx, audio_data, speech_marks, cache}
        401: X-User-Id missing
        403: ultra-realistic voice requested without the feature grant
        429: daily character budget exceeded
        500/503/504: synthesis or storage failure
    """
    rid = _new_request_id()
    try:
        result = await service.synthesize_utterance(
            req.to_synthesis_request(),
            claim.uid,
            claim=claim,
            request_id=rid,
        )
    except TTSError as e:
        return _error_response(e, rid)
    except Exception as e:
        fail(_LOG, "unhandled", error=str(e), error_type=type(e).__name__)
        return _internal_error(rid)

    body = UtteranceResponse(
        idx=req.idx,
        audio_data=result.audio_hex,
        speech_marks=[m.to_dict() for m in result.speech_marks],
        cache=result.cache_status,
    )
    return JSONResponse(content=body.model_dump(), headers={"X-Request-Id": rid})


@router.post("/v1/document", response_model=DocumentResponse)
async def document(
    req: DocumentRequest,
    token: Optional[str] = Query(default=None),
    service: SynthesisService = Depends(get_service),
):
    """
    Synthesize an HTML document to speech/<id>.mp3 (+ speech/<id>.json).

    The status endpoint receives COMPLETED or FAILED for the job either way.
    """
    rid = _new_request_id()
    try:
        result = await service.synthesize_document(
            req.to_synthesis_request(),
            req.id,
            token=token,
            request_id=rid,
        )
    except TTSError as e:
        return _error_response(e, rid)
    except Exception as e:
        fail(_LOG, "unhandled", error=str(e), error_type=type(e).__name__)
        return _internal_error(rid)

    body = DocumentResponse(
        id=result.job_id,
        audio_file=result.audio_path,
        speech_marks_file=result.speech_marks_path,
        bytes=result.audio_bytes,
    )
    return JSONResponse(content=body.model_dump(), headers={"X-Request-Id": rid})


@router.get("/health")
def health(service: SynthesisService = Depends(get_service)):
    return service.get_health_info()


@router.get("/metrics")
def prometheus_metrics():
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)
