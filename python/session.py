"""
Session continuity manager

Responsibilities:
- Turn the load/save/persist path inputs into one SessionPlan variant
- Read a session snapshot before generation and write it afterwards
- Keep the engine's session blob opaque: only the envelope is inspected

Plans:
    NoSession                   nothing loaded, nothing saved
    LoadOnly(path)              load required
    SaveOnly(path)              save after generation
    LoadAndSave(load, save)     load required, save elsewhere
    PersistBoth(path)           load if present, always save

File format (MessagePack):
    {"format": "llm-session", "version": 1,
     "memory_precision": "f16" | "f32", "blob": <engine bytes>}
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import msgpack

from errors import SessionLoadError, SessionPrecisionMismatch, SessionSaveError
from sampling import MemoryPrecision

logger = logging.getLogger(__name__)

SESSION_FORMAT = "llm-session"
SESSION_FORMAT_VERSION = 1


@dataclass(frozen=True)
class NoSession:
    load_path = None
    save_path = None
    tolerates_missing = False


@dataclass(frozen=True)
class LoadOnly:
    path: Path
    tolerates_missing = False

    @property
    def load_path(self) -> Path:
        return self.path

    @property
    def save_path(self) -> None:
        return None


@dataclass(frozen=True)
class SaveOnly:
    path: Path
    tolerates_missing = False

    @property
    def load_path(self) -> None:
        return None

    @property
    def save_path(self) -> Path:
        return self.path


@dataclass(frozen=True)
class LoadAndSave:
    load_path: Path
    save_path: Path
    tolerates_missing = False


@dataclass(frozen=True)
class PersistBoth:
    """Load from path if it exists, then save back to the same path"""

    path: Path
    tolerates_missing = True

    @property
    def load_path(self) -> Path:
        return self.path

    @property
    def save_path(self) -> Path:
        return self.path


SessionPlan = Union[NoSession, LoadOnly, SaveOnly, LoadAndSave, PersistBoth]

PathArg = Optional[Union[str, os.PathLike]]


def plan_session(
    load_path: PathArg = None, save_path: PathArg = None, persist_path: PathArg = None
) -> SessionPlan:
    """
    Build the session plan for an invocation

    A persist path takes precedence over separate load/save paths.

    Args:
        load_path: Session to restore (must exist)
        save_path: Where to write the session after generation
        persist_path: Load if present, save afterwards

    Returns:
        The matching SessionPlan variant
    """
    if persist_path is not None:
        if load_path is not None or save_path is not None:
            logger.warning("persist session path given; ignoring separate load/save session paths")
        return PersistBoth(Path(persist_path))
    if load_path is not None and save_path is not None:
        return LoadAndSave(Path(load_path), Path(save_path))
    if load_path is not None:
        return LoadOnly(Path(load_path))
    if save_path is not None:
        return SaveOnly(Path(save_path))
    return NoSession()


@dataclass(frozen=True)
class SessionSnapshot:
    """Engine session bytes plus the memory precision they were saved with"""

    blob: bytes
    memory_precision: MemoryPrecision

    def encode(self) -> bytes:
        return msgpack.packb(
            {
                "format": SESSION_FORMAT,
                "version": SESSION_FORMAT_VERSION,
                "memory_precision": self.memory_precision.value,
                "blob": bytes(self.blob),
            },
            use_bin_type=True,
        )

    @classmethod
    def decode(cls, data: bytes, path: Union[str, os.PathLike]) -> "SessionSnapshot":
        """
        Decode a session file

        Raises:
            SessionLoadError: If the data isn't a session envelope
        """
        try:
            envelope = msgpack.unpackb(data, raw=False)
        except (ValueError, TypeError, msgpack.exceptions.UnpackException) as exc:
            raise SessionLoadError(path, f"not a session file ({exc})") from exc

        if not isinstance(envelope, dict) or envelope.get("format") != SESSION_FORMAT:
            raise SessionLoadError(path, "not a session file")
        if envelope.get("version") != SESSION_FORMAT_VERSION:
            raise SessionLoadError(path, f"unsupported session version {envelope.get('version')!r}")

        blob = envelope.get("blob")
        if not isinstance(blob, bytes):
            raise SessionLoadError(path, "session blob is missing")
        try:
            precision = MemoryPrecision(envelope.get("memory_precision"))
        except ValueError as exc:
            raise SessionLoadError(path, f"unknown memory precision {envelope.get('memory_precision')!r}") from exc

        return cls(blob=blob, memory_precision=precision)


def check_precision(
    snapshot: SessionSnapshot, requested: MemoryPrecision, path: Union[str, os.PathLike]
) -> None:
    """
    Ensure a restored session matches the requested memory precision

    Raises:
        SessionPrecisionMismatch: If the precisions differ
    """
    if snapshot.memory_precision != requested:
        raise SessionPrecisionMismatch(path, snapshot.memory_precision.value, requested.value)


class SessionStore:
    """Moves session snapshots between the filesystem and the engine"""

    def load(self, plan: SessionPlan) -> Optional[SessionSnapshot]:
        """
        Read the snapshot named by the plan's load path

        Args:
            plan: Session plan for the invocation

        Returns:
            The snapshot, or None when the plan has no load path or a
            persist path doesn't exist yet

        Raises:
            SessionLoadError: On a missing file (outside persist mode),
                read failure or malformed contents
        """
        path = plan.load_path
        if path is None:
            return None

        try:
            with open(path, "rb") as f:
                data = f.read()
        except FileNotFoundError as exc:
            if plan.tolerates_missing:
                logger.debug("No session at %s yet, starting fresh", path)
                return None
            raise SessionLoadError(path, "file does not exist") from exc
        except OSError as exc:
            raise SessionLoadError(path, str(exc)) from exc

        snapshot = SessionSnapshot.decode(data, path)
        logger.info("Loaded session from %s (%d bytes)", path, len(snapshot.blob))
        return snapshot

    def save(self, plan: SessionPlan, snapshot: SessionSnapshot) -> Optional[Path]:
        """
        Write the snapshot to the plan's save path, replacing any old file

        The file is written next to the target and renamed into place, so a
        failed write leaves the previous session intact.

        Returns:
            The path written, or None when the plan has no save path

        Raises:
            SessionSaveError: If the file can't be written
        """
        path = plan.save_path
        if path is None:
            return None

        data = snapshot.encode()
        temp_path = None
        try:
            fd, temp_path = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(temp_path, path)
            temp_path = None
        except OSError as exc:
            raise SessionSaveError(path, str(exc)) from exc
        finally:
            if temp_path is not None and os.path.exists(temp_path):
                os.unlink(temp_path)

        logger.info("Saved session to %s (%d bytes)", path, len(snapshot.blob))
        return path
