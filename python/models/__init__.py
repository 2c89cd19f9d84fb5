"""Model loading and engine boundary modules."""

from .progress import (
    ContextSizeKnown,
    HyperparametersLoaded,
    Loaded,
    LoadProgressEvent,
    LoggingProgressObserver,
    ProgressSequenceGuard,
    TensorLoaded,
)

__all__ = [
    "ContextSizeKnown",
    "HyperparametersLoaded",
    "Loaded",
    "LoadProgressEvent",
    "LoggingProgressObserver",
    "ProgressSequenceGuard",
    "TensorLoaded",
]
