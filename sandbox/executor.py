"""
Subprocess-based sandbox executor for submitted solutions.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import sys
import time
from collections.abc import AsyncIterator, Iterable
from pathlib import Path
from typing import cast

from sandbox import policy
from sandbox import protocol
from sandbox.errors import ErrorKind, SandboxInitError
from sandbox.transpile import PythonTranspiler, Transpiler
from verification.schemas import ExecutionOutcome, RunRequest

logger = logging.getLogger(__name__)

# single JSON line from the child may carry the whole rendered output
_STREAM_LIMIT_BYTES = 16 * 1024 * 1024


class SandboxSession:
    """One child interpreter bound to a single run.

    Logs streamed by the child are kept in ``logs`` as they arrive so that a
    run killed mid-flight still reports what it printed.
    """

    def __init__(
        self,
        run_id: str,
        process: asyncio.subprocess.Process,
        transpiler: Transpiler,
        allowed_modules: list[str],
    ) -> None:
        self.run_id: str = run_id
        self.logs: list[str] = []
        self._process = process
        self._transpiler = transpiler
        self._allowed_modules = allowed_modules

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def alive(self) -> bool:
        return self._process.returncode is None

    def terminate(self) -> None:
        """Kill the child immediately; safe to call more than once."""
        if self._process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                self._process.kill()

    async def dispose(self) -> None:
        self.terminate()
        _ = await self._process.wait()

    async def run(self, request: RunRequest) -> ExecutionOutcome:
        start = time.perf_counter()
        try:
            prepared = self._transpiler.transpile(request.source_code)
        except Exception as exc:  # noqa: BLE001 - external capability
            return ExecutionOutcome.failure(
                request.run_id,
                ErrorKind.COMPILE,
                f"Transpilation failed: {exc}",
                logs=self.logs,
                name=exc.__class__.__name__,
            )

        for warning in prepared.warnings:
            self.logs.append(f"[warn] {warning.render()}")
        if prepared.has_errors:
            messages = [d.render() for d in prepared.errors]
            self.logs.extend(f"[error] {message}" for message in messages)
            return ExecutionOutcome.failure(
                request.run_id,
                ErrorKind.COMPILE,
                messages[0],
                logs=self.logs,
                trace="\n".join(messages),
                runtime_ms=(time.perf_counter() - start) * 1000,
            )

        payload = {
            "run_id": request.run_id,
            "code": prepared.executable_form,
            "input": request.input,
            "allowed_modules": self._allowed_modules,
            "require_entrypoint": request.require_entrypoint,
        }
        stdin = cast(asyncio.StreamWriter, self._process.stdin)
        try:
            stdin.write(json.dumps(payload).encode("utf-8"))
            await stdin.drain()
            stdin.close()
        except (BrokenPipeError, ConnectionResetError) as exc:
            return ExecutionOutcome.failure(
                request.run_id,
                ErrorKind.SANDBOX_INIT,
                f"Sandbox closed its input: {exc}",
                logs=self.logs,
                runtime_ms=(time.perf_counter() - start) * 1000,
            )

        result = await self._read_result()
        runtime_ms = (time.perf_counter() - start) * 1000
        if result is None:
            stderr = await self._read_stderr()
            return ExecutionOutcome.failure(
                request.run_id,
                ErrorKind.SANDBOX_INIT,
                stderr or "Empty response from sandbox",
                logs=self.logs,
                runtime_ms=runtime_ms,
            )

        error = result.get("error")
        if result.get("success"):
            return ExecutionOutcome(
                run_id=str(result.get("run_id", "")),
                logs=list(self.logs),
                success=True,
                output=str(result.get("output", "")),
                runtime_ms=runtime_ms,
            )

        error_data = cast(dict[str, object], error if isinstance(error, dict) else {})
        return ExecutionOutcome.failure(
            str(result.get("run_id", "")),
            _error_kind(error_data.get("kind")),
            str(error_data.get("message", "Unknown sandbox error")),
            logs=self.logs,
            name=_optional_str(error_data.get("name")),
            trace=_optional_str(error_data.get("trace")),
            runtime_ms=runtime_ms,
        )

    async def _read_result(self) -> dict[str, object] | None:
        stdout = cast(asyncio.StreamReader, self._process.stdout)
        while True:
            try:
                raw = await stdout.readline()
            except ValueError:
                self.logs.append("[error] Sandbox message exceeded the stream limit")
                return None
            if not raw:
                return None
            try:
                loaded = cast(object, json.loads(raw))
            except json.JSONDecodeError:
                self.logs.append(raw.decode("utf-8", errors="replace").rstrip("\n"))
                continue
            if not isinstance(loaded, dict):
                continue
            message = cast(dict[str, object], loaded)
            if message.get("type") == protocol.MESSAGE_LOG:
                self.logs.append(str(message.get("line", "")))
            elif message.get("type") == protocol.MESSAGE_RESULT:
                return message

    async def _read_stderr(self) -> str:
        stderr = self._process.stderr
        if stderr is None:
            return ""
        data = await stderr.read()
        return data.decode("utf-8", errors="replace").strip()


class SandboxExecutor:
    """
    Execute submitted solutions in child interpreters with best-effort limits.

    Every run gets a fresh process; nothing is shared or reused across runs.
    On Unix platforms, CPU and memory limits are enforced via resource.setrlimit.
    On Windows, these limits degrade gracefully and only the wall-clock
    deadline applies.
    """

    DEFAULT_MEMORY_LIMIT_MB: int = 256
    DEFAULT_CPU_LIMIT_SECONDS: int = 10

    def __init__(
        self,
        memory_limit_mb: int | None = None,
        transpiler: Transpiler | None = None,
        allowed_modules: Iterable[str] | None = None,
        cpu_limit_seconds: int | None = None,
    ) -> None:
        self.memory_limit_mb: int = _positive_or_default(
            "memory_limit_mb", memory_limit_mb, self.DEFAULT_MEMORY_LIMIT_MB
        )
        self.cpu_limit_seconds: int = _positive_or_default(
            "cpu_limit_seconds", cpu_limit_seconds, self.DEFAULT_CPU_LIMIT_SECONDS
        )
        self.transpiler: Transpiler = transpiler or PythonTranspiler()
        self.allowed_modules: list[str] = list(allowed_modules or policy.ALLOWED_MODULES)
        self._sessions: set[SandboxSession] = set()

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    @contextlib.asynccontextmanager
    async def session(self, run_id: str) -> AsyncIterator[SandboxSession]:
        """Acquire an isolated child for one run and always dispose of it."""
        process = await self._spawn()
        session = SandboxSession(run_id, process, self.transpiler, self.allowed_modules)
        self._sessions.add(session)
        logger.debug("Sandbox %s started for run %s", session.pid, run_id)
        try:
            yield session
        finally:
            session.terminate()
            # counted as active until the child is reaped, even if we are cancelled here
            disposal = asyncio.ensure_future(session.dispose())
            disposal.add_done_callback(lambda _: self._sessions.discard(session))
            await asyncio.shield(disposal)
            logger.debug("Sandbox %s disposed for run %s", session.pid, run_id)

    async def execute(
        self,
        request: RunRequest,
        timeout_seconds: float | None = None,
    ) -> ExecutionOutcome:
        """Run one request start to finish, with an optional deadline."""
        try:
            async with self.session(request.run_id) as session:
                try:
                    return await asyncio.wait_for(session.run(request), timeout_seconds)
                except asyncio.TimeoutError:
                    session.terminate()
                    message = f"Execution timed out after {timeout_seconds}s"
                    return ExecutionOutcome.failure(
                        request.run_id,
                        ErrorKind.TIMEOUT,
                        message,
                        logs=[*session.logs, f"[error] {message}"],
                    )
        except SandboxInitError as exc:
            return ExecutionOutcome.failure(request.run_id, ErrorKind.SANDBOX_INIT, str(exc))

    async def _spawn(self) -> asyncio.subprocess.Process:
        env = os.environ.copy()
        project_root = str(Path(__file__).resolve().parents[1])
        existing_pythonpath = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = (
            f"{project_root}{os.pathsep}{existing_pythonpath}"
            if existing_pythonpath
            else project_root
        )

        try:
            return await asyncio.create_subprocess_exec(
                sys.executable,
                "-c",
                protocol.CHILD_TEMPLATE,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                limit=_STREAM_LIMIT_BYTES,
                preexec_fn=self._limit_resources() if os.name != "nt" else None,
            )
        except OSError as exc:
            raise SandboxInitError(f"Failed to start sandbox: {exc}") from exc

    def _limit_resources(self):
        """Return a preexec_fn to enforce resource limits on Unix."""
        def _apply_limits():
            try:
                import resource
            except ImportError:
                return
            cpu_seconds = max(1, int(self.cpu_limit_seconds))
            memory_bytes = int(self.memory_limit_mb * 1024 * 1024)
            resource.setrlimit(resource.RLIMIT_CPU, (cpu_seconds, cpu_seconds + 1))
            if hasattr(resource, "RLIMIT_AS"):
                resource.setrlimit(resource.RLIMIT_AS, (memory_bytes, memory_bytes))
            elif hasattr(resource, "RLIMIT_DATA"):
                resource.setrlimit(resource.RLIMIT_DATA, (memory_bytes, memory_bytes))

        return _apply_limits


def _positive_or_default(name: str, value: int | None, default: int) -> int:
    if value is None:
        return default
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _error_kind(value: object) -> ErrorKind:
    try:
        return ErrorKind(str(value))
    except ValueError:
        return ErrorKind.RUNTIME


def _optional_str(value: object) -> str | None:
    return None if value is None else str(value)
