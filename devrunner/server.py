"""HTTP server exposing discovered scripts and live execution streams."""

from __future__ import annotations

import logging
from contextlib import aclosing, asynccontextmanager

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse

from devrunner import __version__
from devrunner.binder import ParameterError, bind
from devrunner.discovery import ScriptCatalog, UnknownScriptError
from devrunner.execution.session import ExecutionSession, SessionRegistry
from devrunner.execution.sink import relay_as_sse
from devrunner.ledger import ExecutionLedger
from devrunner.schemas import (
    ErrorResponse,
    ExecuteRequest,
    ExecutionsResponse,
    HealthResponse,
    ScriptDescriptor,
)
from devrunner.settings import Settings

logger = logging.getLogger(__name__)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Startup configuration (defaults to Settings())

    Returns:
        Configured FastAPI app
    """
    settings = settings or Settings()
    catalog = ScriptCatalog(settings.scripts_dir, settings.interpreters)
    ledger = ExecutionLedger(settings.log_path, max_lines=settings.max_log_lines)
    registry = SessionRegistry()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Scripts directory: {settings.scripts_dir}")
        logger.info(f"Execution log: {settings.log_path} (max {settings.max_log_lines} lines)")
        # Unreadable scripts directory is fatal at startup
        catalog.refresh(strict=True)
        yield
        cancelled = registry.cancel_all()
        if cancelled:
            logger.info(f"Cancelled {cancelled} running executions on shutdown")

    app = FastAPI(
        title="devrunner",
        description="Local runner for annotated developer-utility scripts",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.catalog = catalog
    app.state.ledger = ledger
    app.state.registry = registry

    # --- HTTP Endpoints ---

    @app.get("/api/scripts", response_model=list[ScriptDescriptor])
    async def list_scripts() -> list[ScriptDescriptor]:
        """List scripts, re-scanning the scripts directory first."""
        return catalog.refresh()

    @app.post("/api/execute/{file_name}")
    async def execute(file_name: str, body: ExecuteRequest, request: Request):
        """Run a script and stream its output as Server-Sent Events."""
        try:
            descriptor = catalog.get(file_name)
        except UnknownScriptError as e:
            return _error(404, str(e))

        try:
            args = bind(descriptor, body.params)
            session = ExecutionSession(
                descriptor,
                body.params,
                args,
                ledger=ledger,
                working_dir=body.working_dir,
                interpreters=settings.interpreters,
            )
        except ParameterError as e:
            logger.warning(f"Rejected execution of {file_name}: {e}")
            return _error(400, str(e))

        async def stream():
            registry.add(session)
            try:
                async with aclosing(relay_as_sse(session, request)) as frames:
                    async for frame in frames:
                        yield frame
            finally:
                registry.remove(session.execution_id)

        return StreamingResponse(
            stream(),
            media_type="text/event-stream",
            headers={**SSE_HEADERS, "X-Execution-Id": session.execution_id},
        )

    @app.get("/api/executions", response_model=ExecutionsResponse)
    async def list_executions() -> ExecutionsResponse:
        """List executions that are still running."""
        return ExecutionsResponse(executions=registry.list_ids())

    @app.delete("/api/executions/{execution_id}")
    async def stop_execution(execution_id: str):
        """Forcefully stop a running execution."""
        session = registry.get(execution_id)
        if session is None:
            return _error(404, f"Execution not found: {execution_id}")
        session.cancel()
        return {"execution_id": execution_id, "outcome": session.outcome.kind.value}

    @app.get("/api/logs", response_class=PlainTextResponse)
    async def recent_logs(count: int = Query(default=10, ge=1, le=1000)) -> str:
        """Get the tail of the execution log."""
        return ledger.recent(count)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Check server health."""
        healthy = settings.scripts_dir.is_dir()
        return HealthResponse(
            status="healthy" if healthy else "unhealthy",
            scripts=len(catalog.scripts()),
            active_executions=registry.size(),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Report malformed request bodies as 400 with an error message."""
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        return _error(400, f"Invalid request: {location} {first.get('msg', '')}".strip())

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                detail=str(exc),
                error_code="INTERNAL_ERROR",
            ).model_dump(),
        )

    return app
