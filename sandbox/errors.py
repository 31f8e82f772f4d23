"""Error taxonomy shared by the sandbox and the verification pipeline."""

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "ValidationError"
    INVALID_INPUT = "InputValidationError"
    COMPILE = "CompileError"
    NO_CALLABLE = "NoCallableExport"
    RUNTIME = "RuntimeError"
    TIMEOUT = "TimeoutError"
    CANCELLED = "CancelledError"
    SANDBOX_INIT = "SandboxInitError"


class SandboxInitError(Exception):
    """Raised when an isolated child interpreter cannot be started."""
