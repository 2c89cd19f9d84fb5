"""
Engine boundary

The text-generation engine (weights, forward pass, token sampling) lives
outside this package. These protocols describe the narrow surface the
runtime needs from it.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Tuple

from sampling import RngState, SamplingConfig, SessionParameters

TokenCallback = Callable[[str], None]


@dataclass
class InferenceStats:
    """Counters reported by the engine after a generation run"""

    prompt_tokens: int = 0
    predicted_tokens: int = 0
    feed_prompt_ms: float = 0.0
    predict_ms: float = 0.0


class InferenceSession(Protocol):
    """Engine continuation state: memory plus position"""

    def infer(
        self,
        prompt: str,
        config: SamplingConfig,
        rng: RngState,
        max_tokens: Optional[int],
        on_token: TokenCallback,
    ) -> InferenceStats:
        ...

    def snapshot(self) -> bytes:
        """Opaque bytes that restore_session() accepts"""
        ...


class InferenceModel(Protocol):
    """A materialized model handle"""

    eos_token_id: int

    def start_session(self, params: SessionParameters) -> InferenceSession:
        ...

    def restore_session(self, blob: bytes) -> InferenceSession:
        ...

    def tokenize(self, text: str) -> List[Tuple[str, int]]:
        """(piece, token id) pairs for text"""
        ...
