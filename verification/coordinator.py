"""
Run coordination: run identity, deadline and cancellation.

A coordinator owns at most one live run. Starting a new run kills the
previous sandbox straight away, and a sandbox response is only admitted when
it carries the id of the run that is currently active.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from sandbox.errors import ErrorKind, SandboxInitError
from sandbox.executor import SandboxExecutor, SandboxSession
from verification.schemas import ExecutionOutcome, RunRequest, new_run_id

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"


@dataclass(eq=False)
class _ActiveRun:
    request: RunRequest
    future: asyncio.Future[ExecutionOutcome]
    timer: asyncio.TimerHandle | None = None
    task: asyncio.Task[None] | None = None
    session: SandboxSession | None = None

    @property
    def run_id(self) -> str:
        return self.request.run_id

    @property
    def logs(self) -> list[str]:
        return list(self.session.logs) if self.session is not None else []


class RunCoordinator:
    """Single-session state machine: idle -> running -> completed."""

    DEFAULT_TIMEOUT_SECONDS: float = 3.0

    def __init__(
        self,
        executor: SandboxExecutor | None = None,
        timeout_seconds: float | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.executor: SandboxExecutor = executor or SandboxExecutor()
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {timeout_seconds}")
        self.timeout_seconds: float = (
            self.DEFAULT_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        )
        self._id_factory: Callable[[], str] = id_factory or new_run_id
        self._state: RunState = RunState.IDLE
        self._active: _ActiveRun | None = None
        self._last_outcome: ExecutionOutcome | None = None

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def active_run_id(self) -> str | None:
        return self._active.run_id if self._active is not None else None

    @property
    def last_outcome(self) -> ExecutionOutcome | None:
        return self._last_outcome

    async def start_run(
        self,
        source_code: str,
        input: object = None,
        require_entrypoint: bool = True,
    ) -> ExecutionOutcome:
        if self._active is not None:
            self._terminate_active(ErrorKind.CANCELLED, "Run superseded by a newer run")

        loop = asyncio.get_running_loop()
        request = RunRequest(
            run_id=self._id_factory(),
            source_code=source_code,
            input=input,
            require_entrypoint=require_entrypoint,
        )
        active = _ActiveRun(request=request, future=loop.create_future())
        self._active = active
        self._state = RunState.RUNNING
        active.timer = loop.call_later(self.timeout_seconds, self._on_deadline, request.run_id)
        active.task = asyncio.create_task(self._dispatch(active))
        logger.info("Run %s started (timeout %.1fs)", request.run_id, self.timeout_seconds)

        try:
            return await asyncio.shield(active.future)
        except asyncio.CancelledError:
            if self._active is active:
                self._terminate_active(ErrorKind.CANCELLED, "Run cancelled by caller")
            raise
        finally:
            await self._release(active)

    def cancel_active_run(self) -> bool:
        """Terminate the live run, if any. Returns False when nothing was running."""
        if self._active is None:
            return False
        self._terminate_active(ErrorKind.CANCELLED, "Run cancelled")
        return True

    def accept_response(self, outcome: ExecutionOutcome) -> bool:
        """Admit a sandbox response; responses for any other run are dropped."""
        active = self._active
        if active is None or outcome.run_id != active.run_id:
            logger.debug("Discarding stale response for run %s", outcome.run_id)
            return False
        self._complete(active, outcome)
        return True

    async def aclose(self) -> None:
        active = self._active
        if active is None:
            return
        self._terminate_active(ErrorKind.CANCELLED, "Coordinator closed")
        await self._release(active)

    async def _dispatch(self, active: _ActiveRun) -> None:
        request = active.request
        try:
            async with self.executor.session(request.run_id) as session:
                active.session = session
                outcome = await session.run(request)
        except SandboxInitError as exc:
            logger.error("Run %s could not start a sandbox: %s", request.run_id, exc)
            outcome = ExecutionOutcome.failure(
                request.run_id,
                ErrorKind.SANDBOX_INIT,
                str(exc),
                logs=[f"[error] {exc}"],
            )
        except Exception as exc:  # noqa: BLE001 - a run must always resolve
            logger.exception("Run %s failed inside the sandbox layer", request.run_id)
            outcome = ExecutionOutcome.failure(
                request.run_id,
                ErrorKind.RUNTIME,
                f"Sandbox failure: {exc}",
                logs=[*active.logs, f"[error] {exc}"],
                name=exc.__class__.__name__,
            )
        _ = self.accept_response(outcome)

    def _on_deadline(self, run_id: str) -> None:
        if self._active is None or self._active.run_id != run_id:
            return
        logger.warning("Run %s exceeded %.1fs deadline", run_id, self.timeout_seconds)
        self._terminate_active(ErrorKind.TIMEOUT, "Execution timed out")

    def _terminate_active(self, kind: ErrorKind, message: str) -> None:
        active = self._active
        if active is None:
            return
        if active.session is not None:
            active.session.terminate()
        if active.task is not None:
            _ = active.task.cancel()
        outcome = ExecutionOutcome.failure(
            active.run_id,
            kind,
            message,
            logs=[*active.logs, f"[error] {message}"],
        )
        self._complete(active, outcome)

    def _complete(self, active: _ActiveRun, outcome: ExecutionOutcome) -> None:
        self._active = None
        if active.timer is not None:
            active.timer.cancel()
        self._state = RunState.COMPLETED
        self._last_outcome = outcome
        if not active.future.done():
            active.future.set_result(outcome)
        status = "succeeded" if outcome.success else f"failed ({outcome.error.kind.value})"
        logger.info("Run %s %s", active.run_id, status)

    async def _release(self, active: _ActiveRun) -> None:
        # wait until the run's sandbox is disposed
        if active.task is not None and not active.task.done():
            _ = await asyncio.wait({active.task})
