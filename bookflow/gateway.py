"""HTTP gateway for book workflows.

Exposes the command dispatcher and the progress streamer via FastAPI:

- ``POST /api/workflows/start``: start (or re-attach to) a book workflow
- ``POST /api/workflows/update``: validated update commands
- ``GET /api/workflows/progress/{workflow_id}``: server-sent progress events
- ``GET /api/config``: client-visible feature flags
"""

import logging
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse

from bookflow.config import GatewayConfig
from bookflow.dispatch import CommandDispatcher
from bookflow.engine import EngineClient
from bookflow.metrics import CONTENT_TYPE, GatewayMetrics
from bookflow.model import CommandValidationError, UpstreamError
from bookflow.stream import ProgressStream

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class BookflowGateway:
    """FastAPI router driving and observing book workflows."""

    def __init__(
        self,
        engine: EngineClient,
        config: GatewayConfig | None = None,
        metrics: GatewayMetrics | None = None,
    ):
        self.config = config or GatewayConfig()
        self.router = APIRouter(tags=["workflows"])
        self._engine = engine
        self._metrics = metrics
        self.dispatcher = CommandDispatcher(
            engine, metrics=metrics, preview_chars=self.config.payload_preview_chars
        )
        self._setup_routes()

    def open_stream(self, workflow_id: str) -> ProgressStream:
        return ProgressStream(
            self._engine,
            workflow_id,
            poll_interval=self.config.poll_interval,
            metrics=self._metrics,
        )

    def _setup_routes(self):
        @self.router.post("/api/workflows/start")
        async def start_workflow(request: Request):
            """Start the orchestrator for a book; idempotent per bookId."""
            body = await _json_body(request)
            book_id = body.get("bookId")
            if book_id is not None and not isinstance(book_id, str):
                return PlainTextResponse("bookId must be a string", status_code=400)
            try:
                ref = await self.dispatcher.start(book_id or None)
            except UpstreamError as e:
                return PlainTextResponse(e.msg, status_code=500)
            return {"ok": True, "bookId": ref.book_id, "workflowId": ref.workflow_id}

        @self.router.post("/api/workflows/update")
        async def update_workflow(request: Request):
            """Forward one update command to a book's workflow."""
            body = await _json_body(request)
            kind = body.get("type")
            try:
                await self.dispatcher.dispatch(
                    body.get("bookId"), kind, body.get("payload")
                )
            except CommandValidationError as e:
                return PlainTextResponse(e.msg, status_code=400)
            except UpstreamError as e:
                return PlainTextResponse(e.msg, status_code=500)
            return {"ok": True, "type": kind}

        @self.router.get("/api/workflows/progress/{workflow_id}")
        async def stream_progress(workflow_id: str):
            """Server-sent events with each changed workflow state snapshot."""
            if not workflow_id.strip():
                return PlainTextResponse("Missing workflowId", status_code=400)
            stream = self.open_stream(workflow_id)
            return StreamingResponse(
                stream.sse_frames(),
                media_type="text/event-stream",
                headers=SSE_HEADERS,
            )

        @self.router.get("/api/config")
        async def client_config():
            return {"coverGenerationEnabled": self.config.cover_generation_enabled}


def create_app(
    engine: EngineClient,
    config: GatewayConfig | None = None,
    metrics: GatewayMetrics | None = None,
) -> FastAPI:
    """Build the gateway application with health and metrics endpoints."""
    metrics = metrics or GatewayMetrics()
    gateway = BookflowGateway(engine, config=config, metrics=metrics)

    app = FastAPI(title="bookflow gateway", version="0.1.0")
    app.state.gateway = gateway
    app.include_router(gateway.router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/metrics")
    async def prometheus_metrics():
        return Response(metrics.exposition(), media_type=CONTENT_TYPE)

    return app
