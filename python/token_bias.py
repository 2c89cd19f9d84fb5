"""
Token bias table - per-token score adjustments applied during sampling

Text format accepted from users:

    "TID=BIAS,TID=BIAS"   e.g. "1=-1.0,2=-1.0"

where TID is an unsigned 32-bit token id and BIAS a decimal float
(scientific notation allowed). Duplicate ids keep the last value.
"""

import math
import re
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple

from errors import TokenBiasParseError

MAX_TOKEN_ID = 2**32 - 1
EOS_SUPPRESSION_BIAS = -1.0

_TOKEN_ID_RE = re.compile(r"[0-9]+")
_BIAS_RE = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


def _parse_segment(segment: str, index: int) -> Tuple[int, float]:
    token_text, sep, bias_text = segment.partition("=")
    if not sep:
        raise TokenBiasParseError(segment, index, "expected TID=BIAS")

    if not _TOKEN_ID_RE.fullmatch(token_text):
        raise TokenBiasParseError(segment, index, f"token id {token_text!r} is not an unsigned integer")
    if len(token_text.lstrip("0")) > len(str(MAX_TOKEN_ID)):
        raise TokenBiasParseError(segment, index, f"token id {token_text[:16]}... out of range (max {MAX_TOKEN_ID})")
    token_id = int(token_text)
    if token_id > MAX_TOKEN_ID:
        raise TokenBiasParseError(segment, index, f"token id {token_id} out of range (max {MAX_TOKEN_ID})")

    if not _BIAS_RE.fullmatch(bias_text):
        raise TokenBiasParseError(segment, index, f"bias {bias_text!r} is not a decimal number")
    bias = float(bias_text)
    if not math.isfinite(bias):
        raise TokenBiasParseError(segment, index, f"bias {bias_text!r} is not finite")

    return token_id, bias


class TokenBias(Mapping[int, float]):
    """
    Immutable mapping from token id to bias

    Iteration yields token ids in ascending order so the textual form is
    stable. Build one with the constructor (explicit pairs), ``parse`` (user
    text) or ``suppress_eos`` (single EOS entry).
    """

    __slots__ = ("_biases",)

    def __init__(self, pairs: Iterable[Tuple[int, float]] = ()):
        biases: Dict[int, float] = {}
        for token_id, bias in pairs:
            biases[int(token_id)] = float(bias)
        self._biases = dict(sorted(biases.items()))

    @classmethod
    def parse(cls, text: str) -> "TokenBias":
        """
        Parse a "TID=BIAS,TID=BIAS" specification

        Args:
            text: Bias specification; an empty string yields an empty table

        Returns:
            Parsed TokenBias

        Raises:
            TokenBiasParseError: If any segment is malformed
        """
        if text == "":
            return cls()
        return cls(_parse_segment(segment, index) for index, segment in enumerate(text.split(",")))

    @classmethod
    def suppress_eos(cls, eos_token_id: int) -> "TokenBias":
        """Single-entry table that discourages the end-of-sequence token"""
        return cls([(eos_token_id, EOS_SUPPRESSION_BIAS)])

    def __getitem__(self, token_id: int) -> float:
        return self._biases[token_id]

    def __iter__(self) -> Iterator[int]:
        return iter(self._biases)

    def __len__(self) -> int:
        return len(self._biases)

    def get(self, token_id: int, default: Optional[float] = None) -> Optional[float]:
        return self._biases.get(token_id, default)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TokenBias):
            return self._biases == other._biases
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._biases.items()))

    def __str__(self) -> str:
        return ",".join(f"{token_id}={bias!r}" for token_id, bias in self._biases.items())

    def __repr__(self) -> str:
        return f"TokenBias({list(self._biases.items())!r})"
