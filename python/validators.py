"""
Input validation for generation and model-loading parameters

Centralized validation logic so invalid knobs are rejected before any
model computation begins
"""

from __future__ import annotations

from typing import Any, Dict

MAX_SEED = 2**64 - 1


def _require_int(name: str, value: Any) -> int:
    # bool is an int subclass but never a meaningful count
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {type(value).__name__}")
    return value


def _require_number(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be numeric, got {type(value).__name__}")
    return value


def validate_seed(seed: Any) -> None:
    """
    Validate a sampling seed

    Raises:
        ValueError: If seed is not a 64-bit unsigned integer
    """
    if seed is None:
        return
    _require_int("seed", seed)
    if seed < 0 or seed > MAX_SEED:
        raise ValueError(f"seed out of range (0 to {MAX_SEED})")


def validate_sampling_fields(params: Dict[str, Any]) -> None:
    """
    Validate resolved sampling parameters

    Args:
        params: Field name -> value mapping of a sampling configuration

    Raises:
        ValueError: If parameters are invalid
    """
    for name in ("thread_count", "batch_size", "top_k"):
        if name in params:
            value = _require_int(name, params[name])
            if value < 1:
                raise ValueError(f"{name} must be positive, got {value}")

    if "repeat_window" in params:
        window = _require_int("repeat_window", params["repeat_window"])
        if window < 0:
            raise ValueError(f"repeat_window must be non-negative, got {window}")

    for name in ("repeat_penalty", "temperature"):
        if name in params:
            value = _require_number(name, params[name])
            if not value > 0:
                raise ValueError(f"{name} must be positive, got {value}")

    if "top_p" in params:
        top_p = _require_number("top_p", params["top_p"])
        if not (0 < top_p <= 1):
            raise ValueError(f"top_p must be in (0, 1], got {top_p}")

    if "seed" in params:
        validate_seed(params["seed"])


def validate_num_predict(num_predict: Any) -> None:
    """
    Validate the number of tokens to predict

    None means "until the context is full or EOS"; 0 only feeds the prompt.
    """
    if num_predict is None:
        return
    value = _require_int("num_predict", num_predict)
    if value < 0:
        raise ValueError(f"num_predict must be non-negative, got {value}")


def validate_load_model_params(params: Dict[str, Any]) -> None:
    """
    Validate model loading parameters

    Args:
        params: Load model parameters

    Raises:
        ValueError: If parameters are invalid
    """
    if "num_ctx_tokens" in params:
        ctx_len = _require_int("num_ctx_tokens", params["num_ctx_tokens"])
        if ctx_len < 1 or ctx_len > 1_000_000:
            raise ValueError(f"num_ctx_tokens out of range (1 to 1000000), got {ctx_len}")

    if "use_mmap" in params and not isinstance(params["use_mmap"], bool):
        raise ValueError(f"use_mmap must be a boolean, got {type(params['use_mmap']).__name__}")

    if "model_path" in params:
        model_path = params["model_path"]
        if not model_path:
            raise ValueError("model_path is required")
        if len(str(model_path)) > 4096:
            raise ValueError(f"model_path too long ({len(str(model_path))} chars, max 4096)")
