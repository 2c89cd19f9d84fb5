"""
Sampling parameter resolver

Responsibilities:
- Merge loosely specified generation inputs (GenerateArgs) with config
  defaults and host probes into one immutable SamplingConfig
- Apply the token bias precedence: explicit table > EOS suppression > none
- Build the per-invocation RNG from a seed or from OS entropy
"""

import enum
import logging
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional, Sequence

import numpy as np

from config_loader import Config, get_config
from thread_resolver import CoreProbe, resolve_thread_count
from token_bias import TokenBias
from validators import validate_num_predict, validate_sampling_fields, validate_seed

logger = logging.getLogger(__name__)


class MemoryPrecision(str, enum.Enum):
    """Element type of the engine's key/value memory"""

    F16 = "f16"
    F32 = "f32"

    @classmethod
    def from_float16_flag(cls, float16: bool) -> "MemoryPrecision":
        return cls.F16 if float16 else cls.F32


@dataclass
class GenerateArgs:
    """
    User supplied generation inputs; any field may be left unset

    Unset numeric knobs are filled from the YAML config when resolved.
    ``token_bias`` is the raw "TID=BIAS,..." text or an already built table.
    """

    num_threads: Optional[int] = None
    num_predict: Optional[int] = None
    batch_size: Optional[int] = None
    repeat_last_n: Optional[int] = None
    repeat_penalty: Optional[float] = None
    temperature: Optional[float] = None
    top_k: Optional[int] = None
    top_p: Optional[float] = None
    seed: Optional[int] = None
    float16: Optional[bool] = None
    token_bias: Optional[Any] = None
    ignore_eos: bool = False

    def with_defaults(self, config: Optional[Config] = None) -> "GenerateArgs":
        """Return a copy with unset knobs taken from the configuration"""
        config = config or get_config()
        defaults = {}
        for name in (
            "batch_size",
            "repeat_last_n",
            "repeat_penalty",
            "temperature",
            "top_k",
            "top_p",
            "float16",
            "num_predict",
        ):
            if getattr(self, name) is None:
                defaults[name] = getattr(config, name)
        return replace(self, **defaults)


@dataclass(frozen=True)
class SessionParameters:
    """Parameters the engine needs to start a fresh inference session"""

    memory_k_type: MemoryPrecision
    memory_v_type: MemoryPrecision
    repetition_penalty_last_n: int


class RngState:
    """
    Per-invocation random number generator

    Seeded instances are reproducible; unseeded ones draw from OS entropy.
    Never persisted and never shared between invocations.
    """

    def __init__(self, generator: np.random.Generator, seed: Optional[int] = None):
        self.generator = generator
        self.seed = seed

    @classmethod
    def from_seed(cls, seed: int) -> "RngState":
        validate_seed(seed)
        return cls(np.random.default_rng(seed), seed)

    @classmethod
    def from_entropy(cls) -> "RngState":
        return cls(np.random.default_rng())

    @property
    def deterministic(self) -> bool:
        return self.seed is not None

    def __repr__(self) -> str:
        return f"RngState(seed={self.seed!r})"


@dataclass(frozen=True)
class SamplingConfig:
    """Fully resolved, validated generation parameters for one invocation"""

    thread_count: int
    batch_size: int
    repeat_window: int
    repeat_penalty: float
    temperature: float
    top_k: int
    top_p: float
    bias_table: TokenBias
    seed: Optional[int]
    memory_precision: MemoryPrecision

    def __post_init__(self):
        validate_sampling_fields({f.name: getattr(self, f.name) for f in fields(self)})
        if not isinstance(self.bias_table, TokenBias):
            raise ValueError(f"bias_table must be a TokenBias, got {type(self.bias_table).__name__}")

    def make_rng(self) -> RngState:
        """Fresh RNG for this configuration's seed (entropy when unseeded)"""
        if self.seed is not None:
            return RngState.from_seed(self.seed)
        return RngState.from_entropy()

    def session_parameters(self) -> SessionParameters:
        """
        Session layout implied by this configuration

        A restored session keeps the precision it was saved with, so the
        same precision must be requested on restore (see session.check_precision).
        """
        return SessionParameters(
            memory_k_type=self.memory_precision,
            memory_v_type=self.memory_precision,
            repetition_penalty_last_n=self.repeat_window,
        )

    def describe(self) -> Dict[str, Any]:
        """Plain-data view for logs and JSON output"""
        return {
            "thread_count": self.thread_count,
            "batch_size": self.batch_size,
            "repeat_window": self.repeat_window,
            "repeat_penalty": self.repeat_penalty,
            "temperature": self.temperature,
            "top_k": self.top_k,
            "top_p": self.top_p,
            "bias_table": str(self.bias_table),
            "seed": self.seed,
            "memory_precision": self.memory_precision.value,
        }


def resolve_bias(explicit: Optional[Any], ignore_eos: bool, eos_token_id: int) -> TokenBias:
    """
    Pick the bias table for an invocation

    Args:
        explicit: User table (TokenBias or "TID=BIAS,..." text), or None
        ignore_eos: Whether EOS generation should be suppressed
        eos_token_id: End-of-sequence token of the loaded vocabulary

    Returns:
        The explicit table verbatim if supplied, else the EOS suppression
        table if requested, else an empty table

    Raises:
        TokenBiasParseError: If explicit is malformed text
    """
    if explicit is not None:
        table = explicit if isinstance(explicit, TokenBias) else TokenBias.parse(explicit)
        if ignore_eos:
            logger.warning(
                "Both a token bias table and ignore_eos were given; "
                "the token bias table takes precedence and EOS is not suppressed"
            )
        return table
    if ignore_eos:
        return TokenBias.suppress_eos(eos_token_id)
    return TokenBias()


def resolve_sampling_config(
    args: GenerateArgs,
    eos_token_id: int,
    config: Optional[Config] = None,
    probes: Optional[Sequence[CoreProbe]] = None,
) -> SamplingConfig:
    """
    Merge generation inputs into a SamplingConfig

    Args:
        args: User supplied inputs
        eos_token_id: End-of-sequence token id from the engine vocabulary
        config: Defaults source (global config when omitted)
        probes: Core probes for thread autodetection

    Returns:
        Immutable, validated SamplingConfig

    Raises:
        TokenBiasParseError: If the bias text is malformed
        ValueError: If any resolved knob is out of range
    """
    merged = args.with_defaults(config)
    validate_num_predict(merged.num_predict)

    sampling = SamplingConfig(
        thread_count=resolve_thread_count(merged.num_threads, probes),
        batch_size=merged.batch_size,
        repeat_window=merged.repeat_last_n,
        repeat_penalty=merged.repeat_penalty,
        temperature=merged.temperature,
        top_k=merged.top_k,
        top_p=merged.top_p,
        bias_table=resolve_bias(merged.token_bias, merged.ignore_eos, eos_token_id),
        seed=merged.seed,
        memory_precision=MemoryPrecision.from_float16_flag(bool(merged.float16)),
    )
    logger.debug("Resolved sampling config: %s", sampling.describe())
    return sampling
