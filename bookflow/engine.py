"""Engine client boundary.

The gateway only needs three things from the durable-execution engine:
a handle to address a workflow, update execution on that handle, and the
state query. ``EngineClient`` captures exactly that so a Temporal cluster
(``TemporalEngineClient``) or the in-memory fake in ``bookflow.testing`` can
be plugged in interchangeably.
"""

import asyncio
import logging
from typing import Any, Protocol

from temporalio.client import Client
from temporalio.exceptions import WorkflowAlreadyStartedError

from bookflow.model import WorkflowAlreadyStarted

logger = logging.getLogger(__name__)

STATE_QUERY = "getWorkflowState"
ORCHESTRATOR_WORKFLOW = "BookOrchestratorWorkflow"


class WorkflowHandle(Protocol):
    async def execute_update(self, name: str, *args: Any) -> Any: ...


class EngineClient(Protocol):
    async def get_handle(self, workflow_id: str) -> WorkflowHandle: ...

    async def query_state(self, workflow_id: str) -> Any: ...

    async def start_workflow(self, workflow_id: str, book_id: str) -> None: ...


class _TemporalHandle:
    def __init__(self, handle: Any):
        self._handle = handle

    async def execute_update(self, name: str, *args: Any) -> Any:
        return await self._handle.execute_update(name, args=list(args))


class TemporalEngineClient:
    """EngineClient backed by a Temporal cluster.

    The underlying ``temporalio`` client is connected lazily on first use so
    it is created inside the serving event loop.
    """

    def __init__(
        self,
        address: str = "localhost:7233",
        namespace: str = "default",
        task_queue: str = "ecommerce-oneclick",
        client: Client | None = None,
    ):
        self._address = address
        self._namespace = namespace
        self._task_queue = task_queue
        self._client = client
        self._connect_lock = asyncio.Lock()

    async def _get_client(self) -> Client:
        if self._client is None:
            async with self._connect_lock:
                if self._client is None:
                    logger.info(
                        f"Connecting to Temporal at {self._address} "
                        f"(namespace={self._namespace})"
                    )
                    self._client = await Client.connect(
                        self._address, namespace=self._namespace
                    )
        return self._client

    async def get_handle(self, workflow_id: str) -> WorkflowHandle:
        client = await self._get_client()
        return _TemporalHandle(client.get_workflow_handle(workflow_id))

    async def query_state(self, workflow_id: str) -> Any:
        client = await self._get_client()
        return await client.get_workflow_handle(workflow_id).query(STATE_QUERY)

    async def start_workflow(self, workflow_id: str, book_id: str) -> None:
        client = await self._get_client()
        try:
            await client.start_workflow(
                ORCHESTRATOR_WORKFLOW,
                book_id,
                id=workflow_id,
                task_queue=self._task_queue,
            )
        except WorkflowAlreadyStartedError as e:
            raise WorkflowAlreadyStarted(str(e)) from e
