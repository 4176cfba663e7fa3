from __future__ import annotations

import json
import logging
import uuid
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, AsyncIterator
from urllib.parse import urlparse

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from poster_studio import __version__
from poster_studio.config import get_settings
from poster_studio.errors import (
    ErrorCategory,
    ErrorKind,
    GenerationError,
    InvalidParameters,
)
from poster_studio.middlewares.body_guard import BodyGuardMiddleware
from poster_studio.schemas import (
    CreditDeniedResponse,
    ErrorResponse,
    GenerationRequest,
    GenerationResponse,
)
from poster_studio.services.credits import CreditGate, credits_needed
from poster_studio.services.kie_client import KieClient
from poster_studio.services.orchestrator import GenerationOrchestrator
from poster_studio.services.r2_client import get_temp_storage
from poster_studio.services.supabase_store import (
    SupabaseCreditStore,
    SupabaseTemplateRepository,
    authenticate,
    get_supabase_client,
)

settings = get_settings()
LOG_LEVEL = settings.log_level

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("uvicorn").setLevel(LOG_LEVEL)
logging.getLogger("uvicorn.error").setLevel(LOG_LEVEL)
logging.getLogger("uvicorn.access").setLevel(LOG_LEVEL)
logging.getLogger("poster_studio").setLevel(LOG_LEVEL)

logger = logging.getLogger("poster_studio")


@lru_cache(maxsize=1)
def _get_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0))


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    if _get_http_client.cache_info().currsize:
        await _get_http_client().aclose()
        _get_http_client.cache_clear()


app = FastAPI(title="Poster Studio Generation API", version=__version__, lifespan=lifespan)

app.add_middleware(BodyGuardMiddleware, max_bytes=settings.limits.max_body_bytes)
logger.info("BodyGuardMiddleware ready", extra={"max_body_bytes": settings.limits.max_body_bytes})

cors_allow_origins = settings.allowed_origins or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_allow_origins,
    allow_credentials="*" not in cors_allow_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-Trace"],
    max_age=86400,
)


@app.get("/", include_in_schema=False)
def root() -> dict[str, Any]:
    return {"service": "poster-studio", "version": __version__, "ok": True}


@app.head("/", include_in_schema=False)
def root_head() -> Response:
    return Response(status_code=200)


@app.get("/health")
def health() -> dict[str, bool]:
    return {"ok": True}


def _get_orchestrator() -> GenerationOrchestrator:
    client = get_supabase_client()
    http = _get_http_client()
    return GenerationOrchestrator(
        settings=settings,
        credit_gate=CreditGate(SupabaseCreditStore(client, settings.supabase.credit_rpc)),
        storage=get_temp_storage(),
        http=http,
        provider=KieClient(settings.provider, http),
        templates=SupabaseTemplateRepository(client, settings.supabase.templates_table),
    )


async def _authenticate(authorization: str | None) -> str:
    return await authenticate(get_supabase_client(), authorization)


def _ensure_trace_id(request: Request) -> str:
    trace = getattr(request.state, "trace_id", None)
    if not trace:
        supplied = (request.headers.get("X-Request-ID") or "").strip()
        trace = supplied[:64] if supplied else uuid.uuid4().hex[:8]
        request.state.trace_id = trace
    return trace


@app.middleware("http")
async def attach_trace_header(request: Request, call_next):
    trace = _ensure_trace_id(request)
    response = await call_next(request)
    response.headers.setdefault("X-Request-Trace", trace)
    return response


def _caller_origin(request: Request) -> str | None:
    origin = (request.headers.get("origin") or "").strip()
    if origin and origin != "null":
        return origin.rstrip("/")
    referer = (request.headers.get("referer") or "").strip()
    if referer:
        parsed = urlparse(referer)
        if parsed.scheme and parsed.netloc:
            return f"{parsed.scheme}://{parsed.netloc}"
    return None


async def read_json_relaxed(request: Request) -> dict:
    body = await request.body()
    if not body:
        return {}
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise InvalidParameters("Request body must be valid JSON") from exc
    if not isinstance(payload, dict):
        raise InvalidParameters("Request body must be a JSON object")
    return payload


def _validation_details(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


def _model_dump(model) -> dict[str, Any]:
    return model.model_dump(by_alias=True, exclude_none=True)


@app.exception_handler(GenerationError)
async def generation_error_handler(request: Request, exc: GenerationError) -> JSONResponse:
    trace = _ensure_trace_id(request)
    kind = exc.kind
    headers = {"X-Request-Trace": trace}
    log_extra = {"trace": trace, "kind": kind.code, "detail": exc.detail}

    if kind is ErrorKind.INSUFFICIENT_CREDITS:
        logger.info("credit admission denied", extra=log_extra)
        detail = exc.detail or {}
        body = CreditDeniedResponse(
            error=str(detail.get("reason") or kind.code),
            message=exc.message,
            remaining=int(detail.get("remaining") or 0),
            needed=int(detail.get("needed") or 0),
            is_free=bool(detail.get("is_free")),
        )
        return JSONResponse(status_code=402, content=_model_dump(body), headers=headers)

    if kind.category is ErrorCategory.ADMISSION:
        logger.info("request not authenticated", extra=log_extra)
        body = ErrorResponse(error=kind.code, message=exc.message)
    elif kind.category is ErrorCategory.VALIDATION and kind.http_status == 400:
        logger.warning("request rejected: %s", exc.message, extra=log_extra)
        body = ErrorResponse(error=kind.code, message=exc.message, details=exc.detail or None)
    else:
        logger.error("generation failed: %s", exc.message, extra=log_extra)
        body = ErrorResponse(error=exc.message, kind=kind.code, retryable=kind.retryable)

    return JSONResponse(status_code=kind.http_status, content=_model_dump(body), headers=headers)


@app.post("/api/generate-image", response_model=GenerationResponse)
async def generate_image(request: Request) -> JSONResponse:
    trace = _ensure_trace_id(request)
    user_id = await _authenticate(request.headers.get("authorization"))

    raw_payload = await read_json_relaxed(request)
    try:
        payload = GenerationRequest.model_validate(raw_payload)
    except ValidationError as exc:
        details = _validation_details(exc)
        logger.warning("generate_image validation error", extra={"trace": trace, "errors": details})
        raise InvalidParameters("Invalid generation request", detail={"errors": details}) from exc

    logger.info(
        "generate_image request received",
        extra={
            "trace": trace,
            "user_id": user_id,
            "resolution": payload.resolution,
            "credits": credits_needed(payload.resolution),
            "aspect_ratio": payload.aspect_ratio,
            "has_reference": payload.has_reference_image,
            "logos": len(payload.logo_images),
            "secondary": len(payload.secondary_images),
            "prompt_chars": len(payload.prompt),
        },
    )

    try:
        outcome = await _get_orchestrator().generate(
            payload,
            user_id=user_id,
            origin=_caller_origin(request),
            trace=trace,
        )
    except GenerationError:
        raise
    except Exception:
        logger.exception("generate_image failed unexpectedly", extra={"trace": trace})
        body = ErrorResponse(error="Image generation failed", kind="INTERNAL_ERROR", retryable=False)
        return JSONResponse(
            status_code=500, content=_model_dump(body), headers={"X-Request-Trace": trace}
        )

    logger.info(
        "generate_image completed",
        extra={
            "trace": trace,
            "task_id": outcome.task_id,
            "attempts": outcome.attempts,
            "elapsed": round(outcome.elapsed, 3),
            "template_used": outcome.template_used,
            "clone_mode": outcome.clone_mode,
        },
    )
    response_payload = GenerationResponse(
        image_url=outcome.image_url,
        task_id=outcome.task_id,
        provider=settings.provider.model,
        watermark_required=outcome.watermark_required,
        template_used=outcome.template_used,
    )
    return JSONResponse(
        content=_model_dump(response_payload), headers={"X-Request-Trace": trace}
    )


__all__ = ["app"]
