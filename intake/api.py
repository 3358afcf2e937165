"""FastAPI app: health checks, flow submission and flow listing.

Storage failures surface as 500 responses; Slack failures never do.
"""
from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import BackgroundTasks, Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from .config import settings
from .db import engine
from .logging_config import request_id_var, setup_logging
from .notifier import Notifier, build_notifier, get_notifier
from .pipelines.listing import list_flows
from .pipelines.submission import announce_submission, save_submission
from .queries import FlowFilters
from .schemas import ErrorResponse, FlowRecord, HealthResponse
from .storage import FlowStore, get_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    # Startup
    setup_logging()
    app.state.notifier = build_notifier(settings.slack)
    logger.info(f"{settings.app_name} v{settings.version} starting up")

    yield

    # Shutdown
    await app.state.notifier.client.aclose()
    await engine.dispose()
    logger.info("Application shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Stores flow submissions, announces them on Slack and serves them back",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag logs and the response with the caller's (or a fresh) request id."""
    req_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
    token = request_id_var.set(req_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers["X-Request-ID"] = req_id
    return response


def _error_response(message: str, error) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(message=message, error=error).model_dump(),
    )


@app.get("/", response_class=PlainTextResponse)
async def root() -> str:
    """Liveness marker."""
    return "Server is running..."


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok", version=settings.version)


@app.post("/save-selections", response_model=list[FlowRecord])
async def save_selections(
    request: Request,
    background_tasks: BackgroundTasks,
    store: FlowStore = Depends(get_store),
    notifier: Notifier = Depends(get_notifier),
):
    """Store a flow submission and announce it on Slack.

    The body is parsed here rather than by FastAPI so that malformed JSON
    gets the same 500 response as any other failure.

    Returns:
        List with the stored record, shaped with ``general_questions`` defaults
    """
    try:
        payload = await request.json()
        saved = await save_submission(
            store,
            payload,
            fallback_contact_email=settings.slack.fallback_contact_email,
        )
    except Exception as e:
        logger.error(f"Error saving data: {e}", exc_info=True)
        return _error_response("Error saving data", {"type": type(e).__name__, "message": str(e)})

    # Runs after the response is sent
    background_tasks.add_task(announce_submission, notifier, saved)
    return saved.records


@app.get("/get-flows", response_model=list[FlowRecord])
async def get_flows(
    key: str | None = Query(default=None, description="tailored_questions entry to match"),
    value: str | None = Query(default=None, description="Value the entry must equal"),
    email: str | None = Query(default=None, description="general_questions.contact to match"),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    specific_date: str | None = Query(default=None, alias="specificDate"),
    store: FlowStore = Depends(get_store),
):
    """List stored flows matching every given filter."""
    filters = FlowFilters(
        key=key,
        value=value,
        email=email,
        start_date=start_date,
        end_date=end_date,
        specific_date=specific_date,
    )
    try:
        return await list_flows(store, filters)
    except Exception as e:
        logger.error(f"Error fetching data: {e}", exc_info=True)
        return _error_response("Error fetching data", str(e))
