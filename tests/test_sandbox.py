import asyncio
import contextlib

import pytest

from sandbox.errors import ErrorKind
from sandbox.executor import SandboxExecutor, SandboxSession
from sandbox.policy import build_namespace
from sandbox.protocol import LogCapture, normalize_output, resolve_entrypoint
from verification.schemas import ExecutionOutcome, RunRequest


def _pattern_input():
    return {"rows": 3, "symbol": "*"}


def _execute(code: str, timeout_seconds: float = 5, **kwargs: object) -> ExecutionOutcome:
    executor = SandboxExecutor()
    request = RunRequest(source_code=code, input=_pattern_input(), **kwargs)
    outcome = asyncio.run(executor.execute(request, timeout_seconds=timeout_seconds))
    assert executor.active_sessions == 0
    return outcome


def test_infinite_loop_times_out():
    code = """
def solve(input):
    while True:
        pass
"""
    outcome = _execute(code, timeout_seconds=1)
    assert outcome.success is False
    assert outcome.error is not None
    assert outcome.error.kind == ErrorKind.TIMEOUT


def test_import_socket_fails():
    code = """
import socket

def solve(input):
    return "x"
"""
    outcome = _execute(code)
    assert outcome.success is False
    assert outcome.error is not None
    assert outcome.error.kind == ErrorKind.RUNTIME
    assert "blocked" in outcome.error.message


def test_unlisted_import_fails():
    code = """
import json

def solve(input):
    return "x"
"""
    outcome = _execute(code)
    assert outcome.success is False
    assert outcome.error is not None
    assert "allowlisted" in outcome.error.message


def test_open_fails():
    code = """
def solve(input):
    open('x', 'w')
    return "x"
"""
    outcome = _execute(code)
    assert outcome.success is False
    assert outcome.error is not None
    assert outcome.error.name == "RuntimeError"
    assert "Blocked" in outcome.error.message


def test_valid_solution_returns_rendered_pattern():
    code = """
import math

def solve(input):
    rows = input["rows"]
    return "\\n".join(input["symbol"] * math.floor(i) for i in range(1, rows + 1))
"""
    outcome = _execute(code)
    assert outcome.success is True
    assert outcome.error is None
    assert outcome.output == "*\n**\n***"
    assert outcome.runtime_ms is not None


def test_allowed_module_with_internal_imports():
    code = """
import random

def solve(input):
    rng = random.Random(7)
    return str(rng.randint(1, 1))
"""
    outcome = _execute(code)
    assert outcome.success is True
    assert outcome.output == "1"


def test_syntax_error_is_caught():
    code = """
def solve(input)
    return "x"
"""
    outcome = _execute(code)
    assert outcome.success is False
    assert outcome.error is not None
    assert outcome.error.kind == ErrorKind.COMPILE
    assert "SyntaxError" in outcome.error.message
    assert any(line.startswith("[error]") for line in outcome.logs)


def test_missing_entrypoint_is_reported():
    outcome = _execute("VALUE = 3\n")
    assert outcome.success is False
    assert outcome.error is not None
    assert outcome.error.kind == ErrorKind.NO_CALLABLE


def test_missing_entrypoint_allowed_for_ad_hoc_runs():
    outcome = _execute("print('side effect')\n", require_entrypoint=False)
    assert outcome.success is True
    assert outcome.output == ""
    assert outcome.logs == ("side effect",)


def test_prints_are_captured_as_logs():
    code = """
def solve(input):
    print("rows:", input["rows"])
    return "done"
"""
    outcome = _execute(code)
    assert outcome.success is True
    assert outcome.output == "done"
    assert "rows: 3" in outcome.logs


def test_runtime_error_keeps_logs_and_message():
    code = """
def solve(input):
    print("before")
    raise ValueError("boom")
"""
    outcome = _execute(code)
    assert outcome.success is False
    assert outcome.error is not None
    assert outcome.error.kind == ErrorKind.RUNTIME
    assert outcome.error.name == "ValueError"
    assert outcome.error.message == "boom"
    assert outcome.logs[0] == "before"
    assert outcome.logs[-1] == "[error] ValueError: boom"


def test_coroutine_entrypoint_is_awaited():
    code = """
async def solve(input):
    return ["a", "b"]
"""
    outcome = _execute(code)
    assert outcome.success is True
    assert outcome.output == "a\nb"


def test_run_id_is_echoed():
    outcome = _execute("def solve(input):\n    return 'x'\n", run_id="run-42")
    assert outcome.run_id == "run-42"


def test_normalize_output():
    assert normalize_output("a\nb") == "a\nb"
    assert normalize_output(None) == ""
    assert normalize_output(["*", "**"]) == "*\n**"
    assert normalize_output(12) == "12"
    assert normalize_output(True) == "True"
    assert normalize_output({"rows": 2}) == '{"rows":2}'
    assert normalize_output([1, 2]) == "[1,2]"
    assert normalize_output({1, 2}) in ("{1, 2}", "{2, 1}")


def test_resolve_entrypoint_prefers_named_callables():
    namespace = build_namespace()
    exec("def helper(x):\n    return 1\n\ndef solve(x):\n    return 2\n", namespace, namespace)
    entrypoint = resolve_entrypoint(namespace)
    assert entrypoint is not None
    assert entrypoint.__name__ == "solve"


def test_resolve_entrypoint_falls_back_to_first_function():
    namespace = build_namespace()
    exec("def render(x):\n    return 1\n", namespace, namespace)
    entrypoint = resolve_entrypoint(namespace)
    assert entrypoint is not None
    assert entrypoint.__name__ == "render"


def test_log_capture_splits_lines():
    lines: list[str] = []
    capture = LogCapture(lines.append, prefix="[error]")
    _ = capture.write("one\ntw")
    _ = capture.write("o\n")
    _ = capture.write("tail")
    capture.flush()
    assert lines == ["[error] one", "[error] two", "[error] tail"]


def test_non_positive_limits_are_rejected():
    with pytest.raises(ValueError):
        _ = SandboxExecutor(memory_limit_mb=0)
    with pytest.raises(ValueError):
        _ = SandboxExecutor(cpu_limit_seconds=0)
    executor = SandboxExecutor()
    assert executor.memory_limit_mb == SandboxExecutor.DEFAULT_MEMORY_LIMIT_MB


def test_session_counted_until_child_is_reaped():
    async def scenario():
        executor = SandboxExecutor()
        sessions: list[SandboxSession] = []

        async def hold() -> None:
            async with executor.session("run-held") as session:
                sessions.append(session)
                await asyncio.sleep(30)

        task = asyncio.create_task(hold())
        while not sessions:
            await asyncio.sleep(0.01)
        # second cancel lands while the session is being disposed
        _ = task.cancel()
        await asyncio.sleep(0)
        _ = task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        counted_while_alive = executor.active_sessions == 1 or not sessions[0].alive
        for _ in range(100):
            if executor.active_sessions == 0:
                break
            await asyncio.sleep(0.05)
        return counted_while_alive, executor.active_sessions, sessions[0].alive

    counted_while_alive, active, alive = asyncio.run(scenario())

    assert counted_while_alive is True
    assert active == 0
    assert alive is False
