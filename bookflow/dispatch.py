import datetime
import json
import logging
import time
import uuid
from typing import Any

from pydantic import ValidationError

from bookflow.engine import EngineClient
from bookflow.metrics import GatewayMetrics
from bookflow.model import (
    UPDATE_COMMAND_ADAPTER,
    UPDATE_KINDS,
    CommandValidationError,
    UpdateCommand,
    UpstreamError,
    WorkflowAlreadyStarted,
    WorkflowRef,
)

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_CHARS = 300


def parse_command(kind: str, payload: Any = None) -> UpdateCommand:
    """Map ``(kind, payload)`` to its typed command, or raise CommandValidationError."""
    if kind not in UPDATE_KINDS:
        raise CommandValidationError("Unknown update type")
    try:
        return UPDATE_COMMAND_ADAPTER.validate_python({"kind": kind, "payload": payload})
    except ValidationError as e:
        raise CommandValidationError("Invalid payload") from e


def _payload_preview(payload: Any, limit: int) -> str | None:
    if payload is None:
        return None
    try:
        serialized = json.dumps(payload, default=str)
    except (TypeError, ValueError):
        serialized = repr(payload)
    return serialized[:limit]


class CommandDispatcher:
    """Validates update commands and forwards them to the workflow engine.

    Stateless apart from its collaborators: calls for different books never
    contend, and nothing is retried here. A failed forward surfaces as
    ``UpstreamError`` and the caller decides whether to try again.
    """

    def __init__(
        self,
        engine: EngineClient,
        metrics: GatewayMetrics | None = None,
        preview_chars: int = DEFAULT_PREVIEW_CHARS,
    ):
        self._engine = engine
        self._metrics = metrics
        self._preview_chars = preview_chars

    async def dispatch(self, book_id: str, kind: str, payload: Any = None) -> UpdateCommand:
        """Forward one update to the book's workflow.

        Raises:
            CommandValidationError: missing ids, unknown kind or wrong payload
                shape. Nothing is forwarded.
            UpstreamError: the engine rejected or could not run the update.
        """
        if not book_id or not kind:
            raise CommandValidationError("Missing bookId/type")
        if not isinstance(book_id, str) or not isinstance(kind, str):
            raise CommandValidationError("bookId and type must be strings")
        ref = WorkflowRef.for_book(book_id)
        self._log_update(ref, kind, payload)
        try:
            cmd = parse_command(kind, payload)
        except CommandValidationError:
            self._record(kind if kind in UPDATE_KINDS else "unknown", "invalid")
            raise

        started = time.perf_counter()
        try:
            handle = await self._engine.get_handle(ref.workflow_id)
            await handle.execute_update(cmd.update_name, *cmd.update_args())
        except Exception as e:
            logger.error(
                f"Update {cmd.update_name!r} failed for {ref.workflow_id}: {e}"
            )
            self._record(kind, "upstream_error", time.perf_counter() - started)
            raise UpstreamError(str(e)) from e

        self._record(kind, "ok", time.perf_counter() - started)
        return cmd

    async def start(self, book_id: str | None = None) -> WorkflowRef:
        """Start the book's workflow; starting one that already runs is a no-op."""
        ref = WorkflowRef.for_book(book_id or uuid.uuid4().hex)
        try:
            await self._engine.start_workflow(ref.workflow_id, ref.book_id)
        except WorkflowAlreadyStarted:
            logger.info(f"Workflow {ref.workflow_id} already started")
        except Exception as e:
            logger.error(f"Failed to start {ref.workflow_id}: {e}")
            raise UpstreamError(str(e)) from e
        return ref

    def _log_update(self, ref: WorkflowRef, kind: str, payload: Any) -> None:
        record = {
            "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "type": kind,
            "bookId": ref.book_id,
            "workflowId": ref.workflow_id,
            "payloadType": type(payload).__name__,
            "payloadKeys": sorted(payload) if isinstance(payload, dict) else None,
            "payloadPreview": _payload_preview(payload, self._preview_chars),
        }
        logger.info("WF-UPDATE %s", json.dumps(record))

    def _record(
        self, kind: str, outcome: str, latency_seconds: float | None = None
    ) -> None:
        if self._metrics is not None:
            self._metrics.record_command(kind, outcome, latency_seconds)
