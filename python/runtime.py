"""
Inference runtime - one invocation from user inputs to generated text

Order of work:
1. Resolve prompt, session plan and sampling config (any failure aborts
   before model computation)
2. Restore the session if the plan has a load path, else start fresh
3. Generate
4. Save the session if the plan has a save path

A save failure happens after text was produced; it is returned on the
outcome alongside the text instead of being raised.
"""

import logging
import time
from dataclasses import dataclass, field
from os import PathLike
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import orjson

from config_loader import Config
from errors import LlmRuntimeError, SessionSaveError, exit_code_for
from models.engine import InferenceModel, InferenceStats, TokenCallback
from prompt_source import resolve_prompt
from sampling import GenerateArgs, SamplingConfig, resolve_sampling_config
from session import SessionPlan, SessionSnapshot, SessionStore, check_precision, plan_session
from thread_resolver import CoreProbe

logger = logging.getLogger(__name__)

PathArg = Optional[Union[str, PathLike]]


@dataclass
class InferenceRequest:
    """Everything a caller may specify for one inference invocation"""

    prompt: Optional[str] = None
    prompt_file: PathArg = None
    generate: GenerateArgs = field(default_factory=GenerateArgs)
    load_session: PathArg = None
    save_session: PathArg = None
    persist_session: PathArg = None

    def session_plan(self) -> SessionPlan:
        return plan_session(self.load_session, self.save_session, self.persist_session)


@dataclass
class InferenceOutcome:
    """Result of an invocation; save_error is set when generation succeeded but saving didn't"""

    text: str
    config: SamplingConfig
    stats: InferenceStats
    session_restored: bool = False
    saved_to: Optional[str] = None
    save_error: Optional[SessionSaveError] = None

    @property
    def ok(self) -> bool:
        return self.save_error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "config": self.config.describe(),
            "stats": {
                "prompt_tokens": self.stats.prompt_tokens,
                "predicted_tokens": self.stats.predicted_tokens,
                "feed_prompt_ms": self.stats.feed_prompt_ms,
                "predict_ms": self.stats.predict_ms,
            },
            "session_restored": self.session_restored,
            "saved_to": self.saved_to,
            "error": serialize_error(self.save_error) if self.save_error else None,
        }

    def to_json(self) -> bytes:
        return orjson.dumps(self.to_dict())


def serialize_error(exc: BaseException) -> Dict[str, Any]:
    """Translate exceptions to plain data for embedding callers"""
    if isinstance(exc, LlmRuntimeError):
        data: Dict[str, Any] = {"type": type(exc).__name__}
        path = getattr(exc, "path", None) or getattr(exc, "model_path", None)
        if path is not None:
            data["path"] = path
        segment = getattr(exc, "segment", None)
        if segment is not None:
            data["segment"] = segment
        return {"code": exit_code_for(exc), "message": exc.message, "data": data}
    if isinstance(exc, ValueError):
        return {"code": 2, "message": str(exc), "data": {"type": "ValidationError"}}
    return {
        "code": 1,
        "message": "An unexpected internal error occurred",
        "data": {"type": "InternalError"},
    }


class InferenceRuntime:
    """
    Runs inference invocations against a loaded model

    Holds no per-invocation state: every call resolves its own config,
    RNG and session plan.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        session_store: Optional[SessionStore] = None,
        probes: Optional[Sequence[CoreProbe]] = None,
    ):
        self.config = config
        self.session_store = session_store or SessionStore()
        self.probes = probes

    def resolve(
        self, model: InferenceModel, request: InferenceRequest
    ) -> Tuple[str, SamplingConfig, SessionPlan]:
        """
        Resolve all inputs of a request without touching the model state

        Raises:
            PromptFileError, MissingPromptError, TokenBiasParseError, ValueError
        """
        prompt = resolve_prompt(request.prompt, request.prompt_file)
        plan = request.session_plan()
        sampling = resolve_sampling_config(
            request.generate, model.eos_token_id, config=self.config, probes=self.probes
        )
        return prompt, sampling, plan

    def infer(
        self,
        model: InferenceModel,
        request: InferenceRequest,
        on_token: Optional[TokenCallback] = None,
    ) -> InferenceOutcome:
        """
        Run one inference invocation

        Args:
            model: Loaded engine model
            request: Caller inputs
            on_token: Receives each generated piece as it is produced

        Returns:
            InferenceOutcome; check ``save_error`` for a failed session save

        Raises:
            LlmRuntimeError: For any failure before generation completes
            ValueError: For out-of-range generation knobs
        """
        prompt, sampling, plan = self.resolve(model, request)
        max_tokens = request.generate.with_defaults(self.config).num_predict

        snapshot = self.session_store.load(plan)
        if snapshot is not None:
            check_precision(snapshot, sampling.memory_precision, plan.load_path)
            session = model.restore_session(snapshot.blob)
        else:
            session = model.start_session(sampling.session_parameters())

        pieces: List[str] = []

        def collect(piece: str) -> None:
            pieces.append(piece)
            if on_token is not None:
                on_token(piece)

        rng = sampling.make_rng()
        started = time.perf_counter()
        stats = session.infer(prompt, sampling, rng, max_tokens, collect)
        logger.debug("Inference finished in %.0fms", (time.perf_counter() - started) * 1000.0)

        outcome = InferenceOutcome(
            text="".join(pieces),
            config=sampling,
            stats=stats,
            session_restored=snapshot is not None,
        )

        if plan.save_path is not None:
            try:
                outcome.saved_to = str(self._save(plan, session, sampling))
            except SessionSaveError as exc:
                logger.error("Generation finished but the session was not saved: %s", exc.message)
                outcome.save_error = exc

        return outcome

    def _save(self, plan: SessionPlan, session, sampling: SamplingConfig):
        try:
            blob = session.snapshot()
        except Exception as exc:
            raise SessionSaveError(
                plan.save_path, f"engine snapshot failed: {type(exc).__name__}: {exc}"
            ) from exc
        return self.session_store.save(plan, SessionSnapshot(blob, sampling.memory_precision))

    def dump_tokens(
        self, model: InferenceModel, prompt: Optional[str] = None, prompt_file: PathArg = None
    ) -> Tuple[List[int], List[Tuple[str, int]]]:
        """
        Tokenize the resolved prompt

        Returns:
            (token ids, (piece, token id) pairs)
        """
        text = resolve_prompt(prompt, prompt_file)
        pairs = model.tokenize(text)
        return [token_id for _, token_id in pairs], pairs


def format_token_dump(ids: List[int], pairs: List[Tuple[str, int]]) -> str:
    """Two lines: comma separated ids, then comma separated piece=id pairs"""
    return "\n".join(
        [
            ",".join(str(token_id) for token_id in ids),
            ",".join(f"{piece!r}={token_id}" for piece, token_id in pairs),
        ]
    )

