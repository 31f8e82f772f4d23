"""
Child process protocol for sandbox execution.

The parent writes one JSON payload on stdin. The child answers with JSON
lines on stdout: zero or more ``{"type": "log"}`` records emitted as the
solution prints, followed by exactly one ``{"type": "result"}`` record.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import sys
import time
import traceback
from collections.abc import Callable
from contextlib import redirect_stderr, redirect_stdout
from typing import TextIO, cast

from sandbox import policy
from sandbox.errors import ErrorKind
from sandbox.transpile import SOLUTION_FILENAME

CHILD_TEMPLATE = """
from sandbox.protocol import child_main
child_main()
""".strip()

MESSAGE_LOG = "log"
MESSAGE_RESULT = "result"

PREFERRED_ENTRYPOINTS = ("default", "solve", "run", "main")


class _Failure(Exception):
    def __init__(self, kind: ErrorKind, exc: BaseException | None, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.exc = exc
        self.message = message


class LogCapture:
    """File-like sink turning written text into discrete log lines."""

    def __init__(self, emit: Callable[[str], None], prefix: str | None = None) -> None:
        self._emit = emit
        self._prefix = prefix
        self._pending = ""

    def write(self, text: str) -> int:
        self._pending += text
        while "\n" in self._pending:
            line, self._pending = self._pending.split("\n", 1)
            self._push(line)
        return len(text)

    def flush(self) -> None:
        if self._pending:
            line, self._pending = self._pending, ""
            self._push(line)

    def _push(self, line: str) -> None:
        self._emit(f"{self._prefix} {line}" if self._prefix else line)


def normalize_output(value: object) -> str:
    """Render a solution's return value as the text that gets compared."""
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return "\n".join(cast(list[str], list(value)))
    if isinstance(value, (bool, int, float)):
        return str(value)
    try:
        return json.dumps(value, separators=(",", ":"))
    except (TypeError, ValueError):
        pass
    try:
        return str(value)
    except Exception:  # noqa: BLE001 - user __str__ may raise anything
        return object.__repr__(value)


def resolve_entrypoint(namespace: dict[str, object]) -> Callable[..., object] | None:
    """Pick the callable to invoke from an executed solution namespace."""
    for name in PREFERRED_ENTRYPOINTS:
        candidate = namespace.get(name)
        if callable(candidate):
            return cast(Callable[..., object], candidate)

    exported = namespace.get("__all__")
    if isinstance(exported, (list, tuple)):
        names = [str(name) for name in exported]
    else:
        names = [name for name in namespace if not name.startswith("_")]

    for name in names:
        candidate = namespace.get(name)
        if inspect.isfunction(candidate) and candidate.__module__ == policy.SOLUTION_MODULE_NAME:
            return cast(Callable[..., object], candidate)
    return None


def _load_payload() -> dict[str, object]:
    raw = sys.stdin.read()
    if not raw:
        return {}
    try:
        return cast(dict[str, object], json.loads(raw))
    except json.JSONDecodeError:
        return {}


def _write(stream: TextIO, message: dict[str, object]) -> None:
    _ = stream.write(json.dumps(message) + "\n")
    stream.flush()


def _format_error(exc: BaseException) -> str:
    return f"{exc.__class__.__name__}: {exc}"


def _run_solution(
    code: str,
    input_value: object,
    allowed_modules: list[str],
    require_entrypoint: bool,
) -> str:
    try:
        compiled = compile(code, SOLUTION_FILENAME, "exec", dont_inherit=True)
    except (SyntaxError, ValueError) as exc:
        raise _Failure(ErrorKind.COMPILE, exc, str(exc)) from exc

    namespace = policy.build_namespace(allowed_modules=allowed_modules)
    try:
        exec(compiled, namespace, namespace)
    except Exception as exc:  # noqa: BLE001 - module body is user code
        raise _Failure(ErrorKind.RUNTIME, exc, str(exc)) from exc

    entrypoint = resolve_entrypoint(namespace)
    if entrypoint is None:
        if not require_entrypoint:
            return ""
        raise _Failure(
            ErrorKind.NO_CALLABLE,
            None,
            "No callable export found (expected solve, run, main or default)",
        )

    try:
        result = entrypoint(input_value)
        if inspect.isawaitable(result):
            result = asyncio.run(_await(result))
    except Exception as exc:  # noqa: BLE001 - solution code is user code
        raise _Failure(ErrorKind.RUNTIME, exc, str(exc)) from exc

    return normalize_output(result)


async def _await(awaitable: object) -> object:
    return await cast("asyncio.Future[object]", awaitable)


def child_main() -> None:
    """Entry point for the sandbox child process."""
    start = time.perf_counter()
    stream = sys.stdout
    payload = _load_payload()
    run_id = str(payload.get("run_id", ""))
    code = str(payload.get("code", ""))
    input_value = payload.get("input")
    allowed_modules = cast(list[str], payload.get("allowed_modules", list(policy.ALLOWED_MODULES)))
    require_entrypoint = bool(payload.get("require_entrypoint", True))

    def emit(line: str) -> None:
        _write(stream, {"type": MESSAGE_LOG, "run_id": run_id, "line": line})

    out = LogCapture(emit)
    err = LogCapture(emit, prefix="[error]")
    response: dict[str, object] = {"type": MESSAGE_RESULT, "run_id": run_id}
    try:
        with redirect_stdout(out), redirect_stderr(err):
            try:
                output = _run_solution(code, input_value, allowed_modules, require_entrypoint)
            finally:
                out.flush()
                err.flush()
        response.update({"success": True, "output": output, "error": None})
    except _Failure as failure:
        name = failure.exc.__class__.__name__ if failure.exc is not None else failure.kind.value
        trace = (
            "".join(traceback.format_exception(failure.exc))
            if failure.exc is not None
            else None
        )
        emit(f"[error] {_format_error(failure.exc) if failure.exc else failure.message}")
        response.update(
            {
                "success": False,
                "output": "",
                "error": {
                    "kind": failure.kind.value,
                    "name": name,
                    "message": failure.message,
                    "trace": trace,
                },
            }
        )
    except BaseException as exc:  # noqa: BLE001 - SystemExit and friends from user code
        emit(f"[error] {_format_error(exc)}")
        response.update(
            {
                "success": False,
                "output": "",
                "error": {
                    "kind": ErrorKind.RUNTIME.value,
                    "name": exc.__class__.__name__,
                    "message": str(exc),
                    "trace": "".join(traceback.format_exception(exc)),
                },
            }
        )

    response["runtime_ms"] = (time.perf_counter() - start) * 1000
    _write(stream, response)


if __name__ == "__main__":
    child_main()
