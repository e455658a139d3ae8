"""In-memory engine for tests.

``InMemoryEngine`` implements the ``EngineClient`` protocol without a
Temporal cluster. It is suitable for fast tests of the dispatcher, the
progress streamer and the HTTP gateway.

Example::

    engine = InMemoryEngine()
    engine.add_workflow("book-1")

    dispatcher = CommandDispatcher(engine)
    await dispatcher.dispatch("1", "pause", None)
    assert engine.get_state("book-1")["paused"] is True

    # Successive queries return scripted snapshots; the last one repeats
    engine.script_states("book-1", [running, running, completed])

    # Make the next queries/updates fail
    engine.fail_queries("book-1", RuntimeError("engine unreachable"))
"""

from __future__ import annotations

import copy
import datetime
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from bookflow.model import WorkflowAlreadyStarted


@dataclass
class RecordedUpdate:
    workflow_id: str
    name: str
    args: tuple[Any, ...] = field(default_factory=tuple)


class InMemoryHandle:
    def __init__(self, engine: "InMemoryEngine", workflow_id: str):
        self._engine = engine
        self.workflow_id = workflow_id

    async def execute_update(self, name: str, *args: Any) -> Any:
        return self._engine._execute_update(self.workflow_id, name, args)


class InMemoryEngine:
    """In-memory stand-in for the durable-execution engine.

    Update handlers mirror the book orchestrator: the four data updates store
    their argument on the state, ``pause``/``resume`` toggle ``paused`` and
    ``cancel`` moves the workflow to ``cancelled``.

    Limitations:
    - No history and no concurrency control; updates apply immediately.
    - ``get_handle`` never fails, like Temporal's handle lookup; unknown
      workflows fail on ``execute_update`` / ``query_state`` instead.
    """

    _UPDATE_FIELDS = {
        "setCharacterSpec": "characterSpec",
        "chooseCharacter": "chosenCharacter",
        "setBookPrefs": "prefs",
        "chooseCover": "chosenCover",
    }

    def __init__(self) -> None:
        self._states: dict[str, dict[str, Any]] = {}
        self._scripts: dict[str, deque[dict[str, Any]]] = {}
        self._query_errors: dict[str, Exception] = {}
        self._update_errors: dict[str, Exception] = {}
        self.updates: list[RecordedUpdate] = []
        self.query_calls: list[str] = []
        self.started: list[tuple[str, str]] = []

    # ------------------------------------------------------------------
    # Setup helpers
    # ------------------------------------------------------------------

    def add_workflow(self, workflow_id: str, **fields: Any) -> dict[str, Any]:
        state: dict[str, Any] = {
            "workflowId": workflow_id,
            "startedAt": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "updates": [],
            "status": "running",
        }
        state.update(fields)
        self._states[workflow_id] = state
        return state

    def script_states(self, workflow_id: str, states: list[dict[str, Any]]) -> None:
        """Return ``states`` from successive queries; the last one repeats."""
        if not states:
            raise ValueError("script_states needs at least one state")
        self._scripts[workflow_id] = deque(copy.deepcopy(states))

    def fail_queries(self, workflow_id: str, error: Exception | None) -> None:
        if error is None:
            self._query_errors.pop(workflow_id, None)
        else:
            self._query_errors[workflow_id] = error

    def fail_updates(self, workflow_id: str, error: Exception | None) -> None:
        if error is None:
            self._update_errors.pop(workflow_id, None)
        else:
            self._update_errors[workflow_id] = error

    def get_state(self, workflow_id: str) -> dict[str, Any]:
        return self._states[workflow_id]

    def set_status(self, workflow_id: str, status: str) -> None:
        self._states[workflow_id]["status"] = status

    # ------------------------------------------------------------------
    # EngineClient protocol
    # ------------------------------------------------------------------

    async def get_handle(self, workflow_id: str) -> InMemoryHandle:
        return InMemoryHandle(self, workflow_id)

    async def query_state(self, workflow_id: str) -> dict[str, Any]:
        self.query_calls.append(workflow_id)
        if workflow_id in self._query_errors:
            raise self._query_errors[workflow_id]
        script = self._scripts.get(workflow_id)
        if script:
            return copy.deepcopy(script.popleft() if len(script) > 1 else script[0])
        if workflow_id not in self._states:
            raise LookupError(f"Workflow not found: {workflow_id}")
        return copy.deepcopy(self._states[workflow_id])

    async def start_workflow(self, workflow_id: str, book_id: str) -> None:
        if workflow_id in self._states:
            raise WorkflowAlreadyStarted(
                f"Workflow execution already started: {workflow_id}"
            )
        self.started.append((workflow_id, book_id))
        self.add_workflow(workflow_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _execute_update(
        self, workflow_id: str, name: str, args: tuple[Any, ...]
    ) -> None:
        self.updates.append(RecordedUpdate(workflow_id, name, args))
        if workflow_id in self._update_errors:
            raise self._update_errors[workflow_id]
        state = self._states.get(workflow_id)
        if state is None:
            raise LookupError(f"Workflow not found: {workflow_id}")

        if name in self._UPDATE_FIELDS:
            state[self._UPDATE_FIELDS[name]] = copy.deepcopy(args[0])
        elif name == "pause":
            state["paused"] = True
        elif name == "resume":
            state["paused"] = False
        elif name == "cancel":
            state["paused"] = False
            state["status"] = "cancelled"
        else:
            raise ValueError(f"Update handler not found: {name}")
