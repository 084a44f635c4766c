from __future__ import annotations

import asyncio
import functools
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncContextManager, AsyncIterator, Callable, List, Optional, Set

from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .auth import AuthClient, extract_bearer_token
from .dispatcher import DispatchOutcome, JobDispatcher
from .errors import GatewayError
from .gemini_client import DEFAULT_BASE_URL, GeminiClient
from .handlers import HandlerContext, PartialResultPublisher
from .image_pipeline import ImagePipeline
from .job_store import SupabaseJobStore
from .jobs import Job
from .media_store import MediaStore
from .model_resolution import PRO_MODEL, STANDARD_MODEL, TEXT_MODEL, ModelConfig
from .repositories import WardrobeRepository
from .supabase_rest import SupabaseRestClient
from .timing import JobTimer

logger = logging.getLogger(__name__)

DispatcherFactory = Callable[[], AsyncContextManager[JobDispatcher]]


@dataclass
class GatewayConfig:
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    gemini_api_key: Optional[str] = None
    gemini_base_url: str = DEFAULT_BASE_URL
    media_bucket: str = "media"
    request_timeout: float = 30.0
    gemini_timeout: float = 120.0
    signed_url_ttl: int = 60
    # Model settings
    model_standard: str = STANDARD_MODEL
    model_pro: str = PRO_MODEL
    model_text: str = TEXT_MODEL
    model_composite: str = PRO_MODEL
    standard_item_limit: int = 2
    pro_item_limit: int = 7
    # Optimization settings
    optimize_max_dim: int = 1024
    optimize_jpeg_quality: int = 80
    debug_output_dir: Optional[Path] = None
    # Server settings
    host: str = "0.0.0.0"
    port: int = 8765
    cors_allow_origins: List[str] = field(default_factory=lambda: ["*"])

    def models(self) -> ModelConfig:
        return ModelConfig(
            standard_model=self.model_standard,
            pro_model=self.model_pro,
            text_model=self.model_text,
            composite_model=self.model_composite,
            body_shot_model=self.model_pro,
            standard_item_limit=self.standard_item_limit,
            pro_item_limit=self.pro_item_limit,
        )


@dataclass
class GatewayState:
    config: GatewayConfig
    dispatcher_factory: DispatcherFactory
    in_flight: Set[asyncio.Task] = field(default_factory=set)


class JobRunResponse(BaseModel):
    success: bool
    job_id: Optional[str] = None
    result: Optional[Any] = None
    error: Optional[str] = None


@asynccontextmanager
async def open_dispatcher(config: GatewayConfig) -> AsyncIterator[JobDispatcher]:
    """Build a dispatcher with its own HTTP clients, closed when the dispatch ends."""
    rest = SupabaseRestClient(
        config.supabase_url, config.supabase_service_role_key, timeout=config.request_timeout
    )
    auth = AuthClient(
        config.supabase_url, config.supabase_service_role_key, timeout=config.request_timeout
    )
    media = MediaStore(
        config.supabase_url,
        config.supabase_service_role_key,
        bucket=config.media_bucket,
        timeout=config.request_timeout,
    )
    gemini = GeminiClient(
        config.gemini_api_key, base_url=config.gemini_base_url, timeout=config.gemini_timeout
    )
    pipeline = ImagePipeline(
        rest,
        media,
        gemini,
        signed_url_ttl=config.signed_url_ttl,
        optimize_max_dim=config.optimize_max_dim,
        optimize_quality=config.optimize_jpeg_quality,
        debug_output_dir=config.debug_output_dir,
    )
    models = config.models()

    def build_context(
        job: Job, owner_id: str, publisher: PartialResultPublisher, timer: JobTimer
    ) -> HandlerContext:
        return HandlerContext(
            job=job,
            owner_id=owner_id,
            repo=WardrobeRepository(rest, owner_id),
            pipeline=pipeline,
            models=models,
            publisher=publisher,
            timer=timer,
        )

    try:
        yield JobDispatcher(auth, SupabaseJobStore(rest), build_context)
    finally:
        await asyncio.gather(rest.close(), auth.close(), media.close(), gemini.close())


def _error_response(error: GatewayError, job_id: Optional[str]) -> JSONResponse:
    body = JobRunResponse(success=False, job_id=job_id, error=error.message)
    return JSONResponse(content=body.model_dump(exclude_none=True), status_code=error.status_code)


def _outcome_response(outcome: DispatchOutcome) -> JSONResponse:
    if outcome.success:
        body = JobRunResponse(success=True, job_id=outcome.job_id, result=outcome.result)
        return JSONResponse(content=body.model_dump(), status_code=200)
    body = JobRunResponse(success=False, job_id=outcome.job_id, error=outcome.error)
    return JSONResponse(content=body.model_dump(exclude_none=True), status_code=500)


def log_dispatch_failure(job_id: Optional[str], task: asyncio.Future) -> None:
    """Done-callback that retrieves and logs a failed dispatch, even with no request awaiting it."""
    if task.cancelled():
        return
    error = task.exception()
    if error is None:
        return
    if isinstance(error, GatewayError):
        if error.status_code >= 500:
            logger.error(f"Dispatch of job {job_id} failed: {error.message}")
        else:
            logger.info(f"Dispatch of job {job_id} rejected: [{error.code}] {error.message}")
        return
    logger.error(f"Dispatch of job {job_id} failed unexpectedly", exc_info=error)


async def _read_job_id(request: Request) -> Optional[str]:
    try:
        payload = await request.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    job_id = payload.get("job_id")
    return str(job_id) if job_id else None


def create_app(
    config: Optional[GatewayConfig] = None,
    dispatcher_factory: Optional[DispatcherFactory] = None,
) -> FastAPI:
    cfg = config or GatewayConfig()
    state = GatewayState(
        config=cfg,
        dispatcher_factory=dispatcher_factory or (lambda: open_dispatcher(cfg)),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # noqa: ANN001
        if not cfg.supabase_url or not cfg.supabase_service_role_key:
            logger.warning("Supabase is not configured; job dispatch will fail")
        if not cfg.gemini_api_key:
            logger.warning("GEMINI_API_KEY is not configured; model calls will fail")
        try:
            yield
        finally:
            if state.in_flight:
                logger.info(f"Waiting for {len(state.in_flight)} in-flight dispatch(es)")
                await asyncio.gather(*state.in_flight, return_exceptions=True)

    app = FastAPI(title="Wardrobe AI Gateway", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_allow_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )

    def get_state() -> GatewayState:
        return state

    async def _dispatch(job_id: Optional[str], token: str) -> DispatchOutcome:
        async with state.dispatcher_factory() as dispatcher:
            return await dispatcher.dispatch(job_id, token)

    @app.post("/ai-job-runner", response_model=JobRunResponse)
    async def run_job(
        request: Request,
        authorization: Optional[str] = Header(None),
        state: GatewayState = Depends(get_state),
    ) -> JSONResponse:
        job_id = await _read_job_id(request)
        try:
            token = extract_bearer_token(authorization)
        except GatewayError as e:
            return _error_response(e, job_id)

        # The dispatch runs in its own task so a client disconnect cannot cancel it
        task = asyncio.ensure_future(_dispatch(job_id, token))
        state.in_flight.add(task)
        task.add_done_callback(state.in_flight.discard)
        task.add_done_callback(functools.partial(log_dispatch_failure, job_id))
        try:
            outcome = await asyncio.shield(task)
        except GatewayError as e:
            return _error_response(e, job_id)
        except Exception as e:
            body = JobRunResponse(success=False, job_id=job_id, error=str(e) or "Internal error")
            return JSONResponse(content=body.model_dump(exclude_none=True), status_code=500)
        return _outcome_response(outcome)

    @app.get("/health")
    async def health_check(state: GatewayState = Depends(get_state)) -> JSONResponse:
        return JSONResponse(
            {
                "status": "ok",
                "supabase_configured": bool(cfg.supabase_url and cfg.supabase_service_role_key),
                "gemini_configured": bool(cfg.gemini_api_key),
                "in_flight": len(state.in_flight),
                "models": {
                    "standard": cfg.model_standard,
                    "pro": cfg.model_pro,
                    "text": cfg.model_text,
                    "composite": cfg.model_composite,
                },
            }
        )

    return app
