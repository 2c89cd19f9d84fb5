"""
Custom exception types for the LLM runtime core

Provides typed exceptions so embedding callers (CLI, tests, servers) can
react to each failure class programmatically instead of the process exiting.
All domain-specific errors should inherit from these base types.
"""

from os import PathLike
from typing import Optional, Union

PathType = Union[str, PathLike]


class LlmRuntimeError(Exception):
    """Base exception for all runtime core errors"""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class TokenBiasParseError(LlmRuntimeError, ValueError):
    """Raised when a token bias specification is malformed"""

    def __init__(self, segment: str, index: int, reason: str):
        super().__init__(f"Invalid token bias segment #{index} {segment!r}: {reason}")
        self.segment = segment
        self.index = index
        self.reason = reason


class FileAccessError(LlmRuntimeError):
    """Raised when a file needed by the invocation can't be read or written"""

    def __init__(self, path: PathType, reason: str, action: str = "access"):
        super().__init__(f"Could not {action} {path}: {reason}")
        self.path = str(path)
        self.reason = reason


class PromptFileError(FileAccessError):
    """Raised when the prompt file can't be read"""

    def __init__(self, path: PathType, reason: str):
        super().__init__(path, reason, action="read prompt file")


class SessionLoadError(FileAccessError):
    """Raised when a session file is missing, unreadable or malformed"""

    def __init__(self, path: PathType, reason: str):
        super().__init__(path, reason, action="load session from")


class SessionPrecisionMismatch(SessionLoadError):
    """Raised when a session was saved with a different memory precision"""

    def __init__(self, path: PathType, saved: str, requested: str):
        super().__init__(
            path,
            f"session was saved with {saved} memory but {requested} was requested",
        )
        self.saved = saved
        self.requested = requested


class SessionSaveError(FileAccessError):
    """Raised when the session can't be written after generation"""

    def __init__(self, path: PathType, reason: str):
        super().__init__(path, reason, action="save session to")


class MissingPromptError(LlmRuntimeError):
    """Raised when neither a prompt nor a prompt file was provided"""

    def __init__(self):
        super().__init__("No prompt or prompt file was provided")


class ModelLoadError(LlmRuntimeError):
    """Raised when model loading fails"""

    def __init__(self, model_path: PathType, reason: str):
        super().__init__(f"Could not load model {model_path}: {reason}")
        self.model_path = str(model_path)
        self.reason = reason


class ProtocolViolation(LlmRuntimeError):
    """Raised when a loader emits progress events out of order"""

    def __init__(self, reason: str, event: Optional[object] = None):
        super().__init__(f"Load progress protocol violated: {reason}")
        self.reason = reason
        self.event = event


# Process exit code mapping for embedding command surfaces.
# Subclasses resolve through the MRO, see exit_code_for().
ERROR_CODE_MAP = {
    TokenBiasParseError: 2,
    MissingPromptError: 2,
    PromptFileError: 3,
    SessionPrecisionMismatch: 4,
    SessionLoadError: 4,
    SessionSaveError: 5,
    ModelLoadError: 6,
    ProtocolViolation: 70,
    LlmRuntimeError: 1,  # Generic runtime error
}


def exit_code_for(exc: BaseException) -> int:
    """
    Map an exception to a process exit code

    Args:
        exc: Exception raised by the runtime core

    Returns:
        Exit code for the most specific registered type, 1 otherwise
    """
    for klass in type(exc).__mro__:
        if klass in ERROR_CODE_MAP:
            return ERROR_CODE_MAP[klass]
    return 1
