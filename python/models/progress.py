"""
Model load progress events

A loader reports, in this exact order:
    HyperparametersLoaded              exactly once
    ContextSizeKnown(byte_count)       exactly once
    TensorLoaded(index, total)         index 0..total-1, strictly increasing
    Loaded(total_bytes, tensor_count)  exactly once, tensor_count == total

ProgressSequenceGuard enforces the order and forwards events to an observer.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from errors import ProtocolViolation
from log_utils import QuietAwareLogger

MEGABYTE = 1024.0 * 1024.0


@dataclass(frozen=True)
class HyperparametersLoaded:
    pass


@dataclass(frozen=True)
class ContextSizeKnown:
    byte_count: int


@dataclass(frozen=True)
class TensorLoaded:
    index: int
    total: int


@dataclass(frozen=True)
class Loaded:
    total_bytes: int
    tensor_count: int


LoadProgressEvent = Union[HyperparametersLoaded, ContextSizeKnown, TensorLoaded, Loaded]
ProgressObserver = Callable[[LoadProgressEvent], None]


class ProgressSequenceGuard:
    """
    Validates the load progress stream and forwards each event

    Usage:
        guard = ProgressSequenceGuard(observer)
        backend_load(..., on_progress=guard)
        guard.finish()
    """

    # Expected-next states
    _EXPECT_HYPERPARAMETERS = "hyperparameters"
    _EXPECT_CONTEXT_SIZE = "context_size"
    _EXPECT_TENSORS = "tensors"
    _DONE = "done"

    def __init__(self, observer: Optional[ProgressObserver] = None):
        self.observer = observer
        self.state = self._EXPECT_HYPERPARAMETERS
        self.next_index = 0
        self.total: Optional[int] = None
        self.events: List[LoadProgressEvent] = []

    def __call__(self, event: LoadProgressEvent) -> None:
        self._check(event)
        self.events.append(event)
        if self.observer is not None:
            self.observer(event)

    def _check(self, event: LoadProgressEvent) -> None:
        if self.state == self._DONE:
            raise ProtocolViolation("event after Loaded", event)

        if isinstance(event, HyperparametersLoaded):
            if self.state != self._EXPECT_HYPERPARAMETERS:
                raise ProtocolViolation("duplicate HyperparametersLoaded", event)
            self.state = self._EXPECT_CONTEXT_SIZE

        elif isinstance(event, ContextSizeKnown):
            if self.state != self._EXPECT_CONTEXT_SIZE:
                raise ProtocolViolation(f"ContextSizeKnown while expecting {self.state}", event)
            self.state = self._EXPECT_TENSORS

        elif isinstance(event, TensorLoaded):
            if self.state != self._EXPECT_TENSORS:
                raise ProtocolViolation(f"TensorLoaded while expecting {self.state}", event)
            if self.total is not None and event.total != self.total:
                raise ProtocolViolation(f"tensor total changed from {self.total} to {event.total}", event)
            if event.index != self.next_index:
                raise ProtocolViolation(f"expected tensor index {self.next_index}, got {event.index}", event)
            if event.index >= event.total:
                raise ProtocolViolation(f"tensor index {event.index} out of range for {event.total}", event)
            self.total = event.total
            self.next_index += 1

        elif isinstance(event, Loaded):
            if self.state != self._EXPECT_TENSORS:
                raise ProtocolViolation(f"Loaded while expecting {self.state}", event)
            seen = self.total if self.total is not None else 0
            if self.next_index != seen:
                raise ProtocolViolation(f"Loaded after {self.next_index} of {seen} tensors", event)
            if event.tensor_count != seen:
                raise ProtocolViolation(
                    f"Loaded reports {event.tensor_count} tensors but {seen} were loaded", event
                )
            self.state = self._DONE

        else:
            raise ProtocolViolation(f"unknown event {event!r}", event)

    def finish(self) -> Loaded:
        """
        Confirm the stream ended with a Loaded event

        Returns:
            The terminal Loaded event

        Raises:
            ProtocolViolation: If the loader returned before reporting Loaded
        """
        if self.state != self._DONE:
            raise ProtocolViolation(f"loader finished while expecting {self.state}")
        terminal = self.events[-1]
        assert isinstance(terminal, Loaded)
        return terminal


class LoggingProgressObserver:
    """
    Reports load progress to the user

    Intermediate tensor messages are only printed every ``interval`` tensors;
    the event stream itself is never thinned.
    """

    def __init__(self, interval: int = 8, logger: Optional[QuietAwareLogger] = None):
        self.interval = max(1, interval)
        self.logger = logger or QuietAwareLogger("loader")

    def __call__(self, event: LoadProgressEvent) -> None:
        if isinstance(event, HyperparametersLoaded):
            self.logger.debug("Loaded hyperparameters")
        elif isinstance(event, ContextSizeKnown):
            self.logger.info(f"ggml ctx size = {event.byte_count / MEGABYTE:.2f} MB")
        elif isinstance(event, TensorLoaded):
            current = event.index + 1
            if current % self.interval == 0:
                self.logger.info(f"Loaded tensor {current}/{event.total}")
        elif isinstance(event, Loaded):
            self.logger.info("Loading of model complete")
            self.logger.info(
                f"Model size = {event.total_bytes / MEGABYTE:.2f} MB / num tensors = {event.tensor_count}"
            )
