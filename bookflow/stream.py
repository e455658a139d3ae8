import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from enum import Enum

from pydantic import ValidationError

from bookflow.engine import EngineClient
from bookflow.metrics import GatewayMetrics
from bookflow.model import StreamTerminalError, WorkflowState

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0

_END = object()


class StreamState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


def sse_frame(data: str) -> str:
    return f"data: {data}\n\n"


class ProgressStream:
    """Progress stream for one client connection.

    A single poller task queries the workflow state, pushes changed snapshots
    into a queue and stops after a terminal status or a failed query. The
    consumer reads the queue through ``frames()``; leaving that iterator
    (normal end, client disconnect or cancellation) cancels the poller.

    Every instance owns its task, its queue and its last-sent snapshot;
    nothing is shared between connections.
    """

    def __init__(
        self,
        engine: EngineClient,
        workflow_id: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        metrics: GatewayMetrics | None = None,
    ):
        self.workflow_id = workflow_id
        self._engine = engine
        self._poll_interval = poll_interval
        self._metrics = metrics
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._last_sent: str | None = None
        self.state = StreamState.OPEN
        self.polls = 0

    @property
    def task(self) -> asyncio.Task | None:
        return self._task

    @property
    def closed(self) -> bool:
        return self.state == StreamState.CLOSED

    def start(self) -> None:
        if self._task is not None or self.closed:
            return
        self._task = asyncio.create_task(
            self._poll_loop(), name=f"progress-{self.workflow_id}"
        )
        if self._metrics is not None:
            self._metrics.stream_opened()

    async def close(self) -> None:
        if self.closed:
            return
        self.state = StreamState.CLOSED
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            if self._metrics is not None:
                self._metrics.stream_closed()

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def frames(self) -> AsyncIterator[str]:
        """Yield serialized snapshots until the poller stops."""
        self.start()
        if self._task is None:
            return
        try:
            while True:
                frame = await self._queue.get()
                if frame is _END:
                    return
                yield frame
        finally:
            await self.close()

    async def sse_frames(self) -> AsyncIterator[str]:
        # Closing this generator must close frames() and its poller at once.
        async with contextlib.aclosing(self.frames()) as frames:
            async for frame in frames:
                yield sse_frame(frame)

    async def _fetch(self) -> WorkflowState:
        self.polls += 1
        try:
            raw = await self._engine.query_state(self.workflow_id)
            return WorkflowState.model_validate(raw)
        except ValidationError as e:
            logger.error(f"Invalid state snapshot for {self.workflow_id}: {e}")
            raise StreamTerminalError(f"Invalid workflow state: {e}") from e
        except Exception as e:
            logger.error(f"Error querying workflow state for {self.workflow_id}: {e}")
            raise StreamTerminalError(str(e)) from e

    def _push(self, frame: str, kind: str) -> None:
        self._queue.put_nowait(frame)
        if self._metrics is not None:
            self._metrics.record_frame(kind)

    async def _poll_loop(self) -> None:
        try:
            while True:
                try:
                    snapshot = await self._fetch()
                except StreamTerminalError as e:
                    self._push(WorkflowState.failed(self.workflow_id, e.msg).to_json(), "error")
                    return

                serialized = snapshot.to_json()
                if serialized != self._last_sent:
                    self._push(serialized, "state")
                    self._last_sent = serialized
                    if snapshot.is_terminal:
                        logger.debug(
                            f"Workflow {self.workflow_id} reached {snapshot.status}; "
                            f"closing stream"
                        )
                        return

                await asyncio.sleep(self._poll_interval)
        finally:
            self._queue.put_nowait(_END)
