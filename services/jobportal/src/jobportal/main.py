from __future__ import annotations

import asyncio
import json
import logging
import os
import threading
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any

from bson.errors import InvalidId
from common.utils import now_utc_iso
from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pymongo.errors import PyMongoError

from jobportal.auth import (
    IdentityClaim,
    TokenService,
    clear_token_cookie,
    ensure_owner,
    require_identity,
    set_token_cookie,
)
from jobportal.config import Settings
from jobportal.models import (
    ApplicationCreateRequest,
    ApplicationStatusUpdate,
    DeleteResultResponse,
    InsertResultResponse,
    JobCreateRequest,
    MetricsSnapshot,
    SuccessResponse,
    TokenRequest,
    UpdateResultResponse,
)
from jobportal.repository import JobPortalRepository

LOGGER = logging.getLogger("jobportal.main")
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging() -> None:
    if logging.getLogger().handlers:
        return
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper(), format=LOG_FORMAT)


UNMATCHED_ROUTE = "<unmatched>"
STATUS_BUCKETS = ("2xx", "4xx", "5xx")


def route_template(request: Request) -> str:
    """Return the path template of the matched route, e.g. ``/jobs/{job_id}``.

    Requests that matched no route share one label so that arbitrary paths
    cannot grow the metrics table.
    """
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path if isinstance(path, str) else UNMATCHED_ROUTE


class MetricsStore:
    """Request counters keyed by ``"<METHOD> <route template>"``."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._totals = {"requests": 0, "errors": 0, "timeouts": 0}
        self._endpoints: dict[str, dict[str, float | int]] = {}

    def _new_endpoint(self) -> dict[str, float | int]:
        counters: dict[str, float | int] = {"count": 0}
        counters.update({bucket: 0 for bucket in STATUS_BUCKETS})
        counters.update({"latency_ms_sum": 0.0, "latency_ms_avg": 0.0})
        return counters

    def observe(
        self,
        *,
        method: str,
        route: str,
        status_code: int,
        duration_ms: float,
    ) -> None:
        bucket = f"{status_code // 100}xx"
        with self._lock:
            self._totals["requests"] += 1
            if status_code >= 400:
                self._totals["errors"] += 1
            if status_code == 504:
                self._totals["timeouts"] += 1
            endpoint = self._endpoints.get(f"{method} {route}")
            if endpoint is None:
                endpoint = self._endpoints[f"{method} {route}"] = self._new_endpoint()
            endpoint["count"] = int(endpoint["count"]) + 1
            if bucket in STATUS_BUCKETS:
                endpoint[bucket] = int(endpoint[bucket]) + 1
            endpoint["latency_ms_sum"] = float(endpoint["latency_ms_sum"]) + duration_ms
            endpoint["latency_ms_avg"] = float(endpoint["latency_ms_sum"]) / int(endpoint["count"])

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                generated_at=now_utc_iso(),
                totals=dict(self._totals),
                endpoints={key: dict(value) for key, value in self._endpoints.items()},
            )


def create_app(
    *,
    settings: Settings | None = None,
    mongo_client: Any | None = None,
) -> FastAPI:
    configure_logging()
    resolved_settings = settings or Settings.from_env()
    repository = JobPortalRepository(
        mongo_uri=resolved_settings.mongo_uri,
        db_name=resolved_settings.db_name,
        timeout_seconds=resolved_settings.request_timeout_seconds,
        client=mongo_client,
    )
    token_service = TokenService(
        resolved_settings.jwt_secret,
        ttl_seconds=resolved_settings.token_ttl_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await run_in_threadpool(repository.connect)
        app.state.settings = resolved_settings
        app.state.repository = repository
        app.state.token_service = token_service
        app.state.metrics = MetricsStore()
        try:
            yield
        finally:
            await run_in_threadpool(repository.close)

    app = FastAPI(title="Job Portal API", version="1.0.0", lifespan=lifespan)

    @app.middleware("http")
    async def observability_middleware(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.perf_counter()

        try:
            response = await asyncio.wait_for(
                call_next(request),
                timeout=resolved_settings.request_timeout_seconds,
            )
        except TimeoutError:
            duration_ms = (time.perf_counter() - started) * 1000
            request.app.state.metrics.observe(
                method=request.method,
                route=route_template(request),
                status_code=504,
                duration_ms=duration_ms,
            )
            LOGGER.error(
                json.dumps(
                    {
                        "event": "request_timeout",
                        "request_id": request_id,
                        "method": request.method,
                        "path": request.url.path,
                        "status_code": 504,
                        "duration_ms": round(duration_ms, 3),
                    }
                )
            )
            return JSONResponse(
                status_code=504,
                content={"detail": "Request timed out", "request_id": request_id},
                headers={"x-request-id": request_id},
            )
        except Exception as exc:
            duration_ms = (time.perf_counter() - started) * 1000
            request.app.state.metrics.observe(
                method=request.method,
                route=route_template(request),
                status_code=500,
                duration_ms=duration_ms,
            )
            LOGGER.exception(
                json.dumps(
                    {
                        "event": "request_complete",
                        "request_id": request_id,
                        "method": request.method,
                        "path": request.url.path,
                        "status_code": 500,
                        "duration_ms": round(duration_ms, 3),
                        "error": str(exc),
                    }
                )
            )
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal Server Error", "request_id": request_id},
                headers={"x-request-id": request_id},
            )

        duration_ms = (time.perf_counter() - started) * 1000
        request.app.state.metrics.observe(
            method=request.method,
            route=route_template(request),
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
        response.headers["x-request-id"] = request_id
        LOGGER.info(
            json.dumps(
                {
                    "event": "request_complete",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 3),
                    "source_ip": request.client.host if request.client else None,
                }
            )
        )
        return response

    # Added last so it wraps the observability middleware and also decorates
    # its error responses.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=resolved_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", response_class=PlainTextResponse)
    async def index() -> str:
        return "MZ Job Portal server is ready"

    @app.get("/health")
    async def health(request: Request) -> dict[str, str]:
        try:
            await run_in_threadpool(request.app.state.repository.ping)
            store_status = "connected"
        except PyMongoError as exc:
            LOGGER.warning("Document store ping failed: %s", exc)
            store_status = "disconnected"
        return {"status": "ok", "service": "jobportal", "store": store_status}

    @app.get("/metrics", response_model=MetricsSnapshot)
    async def metrics(request: Request) -> MetricsSnapshot:
        return request.app.state.metrics.snapshot()

    @app.post("/jwt", response_model=SuccessResponse)
    async def issue_token(
        payload: TokenRequest,
        request: Request,
        response: Response,
    ) -> SuccessResponse:
        service: TokenService = request.app.state.token_service
        token = service.issue(payload.email)
        set_token_cookie(
            response,
            token,
            policy=request.app.state.settings.cookie_policy,
            max_age=int(service.ttl.total_seconds()),
        )
        return SuccessResponse(success=True)

    @app.post("/logout", response_model=SuccessResponse)
    async def logout(request: Request, response: Response) -> SuccessResponse:
        clear_token_cookie(response, policy=request.app.state.settings.cookie_policy)
        return SuccessResponse(success=True)

    @app.get("/jobs")
    async def list_jobs(
        request: Request,
        email: str | None = Query(default=None),
    ) -> list[dict[str, Any]]:
        return await run_in_threadpool(request.app.state.repository.list_jobs, email)

    @app.get("/jobs/{job_id}")
    async def get_job(job_id: str, request: Request) -> dict[str, Any] | None:
        return await run_in_threadpool(request.app.state.repository.get_job, job_id)

    @app.post("/jobs", response_model=InsertResultResponse)
    async def create_job(payload: JobCreateRequest, request: Request) -> InsertResultResponse:
        result = await run_in_threadpool(
            request.app.state.repository.create_job,
            payload.to_document(),
        )
        return InsertResultResponse.from_result(result)

    @app.get("/job-application")
    async def list_applications_for_applicant(
        request: Request,
        email: str | None = Query(default=None),
        identity: IdentityClaim = Depends(require_identity),
    ) -> list[dict[str, Any]]:
        ensure_owner(request, identity, email)
        return await run_in_threadpool(
            request.app.state.repository.list_applications_for_applicant,
            email,
        )

    @app.get("/job-application/{application_id}")
    async def get_application(application_id: str, request: Request) -> dict[str, Any] | None:
        return await run_in_threadpool(
            request.app.state.repository.get_application,
            application_id,
        )

    @app.get("/job-applications/jobs/{job_id}")
    async def list_applications_for_job(job_id: str, request: Request) -> list[dict[str, Any]]:
        return await run_in_threadpool(
            request.app.state.repository.list_applications_for_job,
            job_id,
        )

    @app.post("/job-applications", response_model=InsertResultResponse)
    async def create_application(
        payload: ApplicationCreateRequest,
        request: Request,
    ) -> InsertResultResponse:
        repository: JobPortalRepository = request.app.state.repository
        result = await run_in_threadpool(repository.create_application, payload.to_document())

        # The insert result is returned whatever happens to the counter.
        job_id = payload.job_id
        if not isinstance(job_id, str):
            LOGGER.info("Application %s has no job id to count against", result.inserted_id)
            return InsertResultResponse.from_result(result)
        try:
            new_count = await run_in_threadpool(repository.increment_application_count, job_id)
        except (InvalidId, PyMongoError) as exc:
            LOGGER.warning(
                json.dumps(
                    {
                        "event": "application_count_skipped",
                        "request_id": getattr(request.state, "request_id", None),
                        "job_id": job_id,
                        "error": str(exc),
                    }
                )
            )
        else:
            if new_count is None:
                LOGGER.info("No job %s to count application against", job_id)

        return InsertResultResponse.from_result(result)

    @app.patch("/job-applications/{application_id}", response_model=UpdateResultResponse)
    async def update_application_status(
        application_id: str,
        payload: ApplicationStatusUpdate,
        request: Request,
    ) -> UpdateResultResponse:
        result = await run_in_threadpool(
            request.app.state.repository.update_application_status,
            application_id,
            payload.status,
        )
        return UpdateResultResponse.from_result(result)

    @app.delete("/job-application/{application_id}", response_model=DeleteResultResponse)
    async def delete_application(application_id: str, request: Request) -> DeleteResultResponse:
        result = await run_in_threadpool(
            request.app.state.repository.delete_application,
            application_id,
        )
        return DeleteResultResponse.from_result(result)

    return app


app = create_app()
