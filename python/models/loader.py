"""
Model loader - drives model materialization with ordered progress reporting

Responsibilities:
- Look up the backend loader registered for a model architecture
- Hand it a progress callback that enforces the event order
- Return a ModelHandle with the model and load metadata
- Wrap backend failures in ModelLoadError

Backends are plain callables:
    backend(model_path, use_mmap, num_ctx_tokens, on_progress) -> model
"""

import enum
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from config_loader import get_config
from errors import ModelLoadError, ProtocolViolation
from log_utils import QuietAwareLogger
from models.progress import LoggingProgressObserver, ProgressObserver, ProgressSequenceGuard
from validators import validate_load_model_params

_logger = QuietAwareLogger("loader")

BackendLoader = Callable[[Path, bool, int, ProgressObserver], Any]


class ModelArchitecture(str, enum.Enum):
    LLAMA = "llama"
    BLOOM = "bloom"
    GPT2 = "gpt2"
    NEOX = "neox"


_BACKENDS: Dict[ModelArchitecture, BackendLoader] = {}


def register_loader(architecture: Union[ModelArchitecture, str], backend: BackendLoader) -> None:
    """Register the backend that materializes models of an architecture"""
    _BACKENDS[ModelArchitecture(architecture)] = backend


def unregister_loader(architecture: Union[ModelArchitecture, str]) -> None:
    _BACKENDS.pop(ModelArchitecture(architecture), None)


@dataclass
class ModelLoadOptions:
    """
    Model load inputs

    num_ctx_tokens bounds how much prompt/conversation history the loaded
    model can address. use_mmap=False forces a full in-memory read.
    """

    model_path: Path
    num_ctx_tokens: Optional[int] = None
    use_mmap: Optional[bool] = None

    def resolved(self) -> "ModelLoadOptions":
        config = get_config()
        return ModelLoadOptions(
            model_path=Path(self.model_path),
            num_ctx_tokens=self.num_ctx_tokens if self.num_ctx_tokens is not None else config.num_ctx_tokens,
            use_mmap=self.use_mmap if self.use_mmap is not None else config.use_mmap,
        )


@dataclass
class ModelHandle:
    """Container for a loaded model and its load metadata"""

    architecture: ModelArchitecture
    model_path: Path
    model: Any
    metadata: Dict[str, Any] = field(default_factory=dict)


def load_model(
    architecture: Union[ModelArchitecture, str],
    options: ModelLoadOptions,
    observer: Optional[ProgressObserver] = None,
) -> ModelHandle:
    """
    Load a model and report its progress

    Args:
        architecture: Model architecture selecting the backend
        options: Path, context size and mmap toggle
        observer: Receives each progress event in order (defaults to
            LoggingProgressObserver)

    Returns:
        ModelHandle with model and metadata

    Raises:
        ModelLoadError: If the path is missing, no backend is registered,
            or the backend fails
        ProtocolViolation: If the backend reports progress out of order
    """
    options = options.resolved()
    validate_load_model_params(
        {
            "model_path": str(options.model_path),
            "num_ctx_tokens": options.num_ctx_tokens,
            "use_mmap": options.use_mmap,
        }
    )

    try:
        arch = ModelArchitecture(architecture)
    except ValueError:
        raise ModelLoadError(options.model_path, f"unknown architecture {architecture!r}")

    backend = _BACKENDS.get(arch)
    if backend is None:
        raise ModelLoadError(options.model_path, f"no loader registered for {arch.value}")

    if not options.model_path.exists():
        raise ModelLoadError(options.model_path, "path does not exist")

    if observer is None:
        observer = LoggingProgressObserver(get_config().progress_log_interval)
    guard = ProgressSequenceGuard(observer)

    started = time.perf_counter()
    try:
        model = backend(options.model_path, options.use_mmap, options.num_ctx_tokens, guard)
    except (ProtocolViolation, ModelLoadError):
        raise
    except Exception as exc:
        raise ModelLoadError(options.model_path, f"{type(exc).__name__}: {exc}") from exc

    terminal = guard.finish()
    elapsed_ms = (time.perf_counter() - started) * 1000.0
    _logger.info(f"Model fully loaded! Elapsed: {elapsed_ms:.0f}ms")

    return ModelHandle(
        architecture=arch,
        model_path=options.model_path,
        model=model,
        metadata={
            "num_ctx_tokens": options.num_ctx_tokens,
            "use_mmap": options.use_mmap,
            "tensor_count": terminal.tensor_count,
            "total_bytes": terminal.total_bytes,
            "load_ms": elapsed_ms,
            "loaded_at": time.time(),
        },
    )
