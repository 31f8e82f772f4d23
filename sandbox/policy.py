"""
Sandbox policy definitions and import/builtin guards.
"""

from __future__ import annotations

import builtins
from collections.abc import Callable, Iterable, Sequence
from types import ModuleType
from typing import cast

SOLUTION_MODULE_NAME = "__solution__"

BLOCKED_MODULES = [
    "os",
    "sys",
    "io",
    "builtins",
    "subprocess",
    "socket",
    "signal",
    "threading",
    "multiprocessing",
    "asyncio",
    "urllib",
    "requests",
    "http",
    "ctypes",
    "importlib",
    "shutil",
    "pathlib",
]

BLOCKED_BUILTINS = [
    "eval",
    "exec",
    "compile",
    "open",
    "input",
    "breakpoint",
    "exit",
    "quit",
]

ALLOWED_MODULES = [
    "math",
    "random",
    "itertools",
    "functools",
    "collections",
    "typing",
    "dataclasses",
    "string",
    "re",
    "operator",
    "textwrap",
]

ImportHook = Callable[
    [str, dict[str, object] | None, dict[str, object] | None, Sequence[str], int],
    ModuleType,
]


def _normalize_modules(modules: Iterable[str] | None) -> set[str]:
    return {name for name in (modules or [])}


def build_import_guard(
    allowed_modules: Iterable[str] | None = None,
    blocked_modules: Iterable[str] | None = None,
) -> ImportHook:
    """
    Build a restricted __import__ hook that only allows allowlisted modules
    and explicitly blocks denied modules.

    The hook only sees imports written in the solution itself; modules it
    pulls in resolve their own dependencies through the real import system.
    """
    allowed = _normalize_modules(allowed_modules or ALLOWED_MODULES)
    blocked = _normalize_modules(blocked_modules or BLOCKED_MODULES)
    original_import = cast(ImportHook, builtins.__import__)

    def guarded_import(
        name: str,
        globals: dict[str, object] | None = None,
        locals: dict[str, object] | None = None,
        fromlist: Sequence[str] = (),
        level: int = 0,
    ) -> ModuleType:
        if level:
            raise ImportError("Relative imports are not available in the sandbox")
        root = name.split(".")[0]
        if root in blocked or name in blocked:
            raise ImportError(f"Import of '{root}' blocked by sandbox policy")
        if root not in allowed:
            raise ImportError(f"Import of '{root}' is not allowlisted")
        return original_import(name, globals, locals, fromlist, level)

    return guarded_import


def build_builtins(
    allowed_modules: Iterable[str] | None = None,
    blocked_builtins: Iterable[str] | None = None,
) -> dict[str, object]:
    """Return a private builtins mapping for the solution namespace.

    The interpreter-wide ``builtins`` module is left untouched; dangerous
    names are replaced only in the copy handed to user code.
    """
    namespace_builtins = dict(vars(builtins))
    namespace_builtins["__import__"] = build_import_guard(allowed_modules=allowed_modules)

    def _blocked(*_args: object, **_kwargs: object) -> None:
        raise RuntimeError("Blocked by sandbox policy")

    for name in _normalize_modules(blocked_builtins or BLOCKED_BUILTINS):
        if name in namespace_builtins:
            namespace_builtins[name] = _blocked
    return namespace_builtins


def build_namespace(allowed_modules: Iterable[str] | None = None) -> dict[str, object]:
    """Fresh module namespace for one solution run."""
    return {
        "__name__": SOLUTION_MODULE_NAME,
        "__builtins__": build_builtins(allowed_modules=allowed_modules),
    }
