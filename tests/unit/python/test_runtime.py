"""
Unit tests for InferenceRuntime

Tests the full invocation flow against an in-memory engine: early
failures, session restore/persist, save failure reporting and token dumps
"""

from unittest.mock import Mock

import orjson
import pytest

from config_loader import Config
from errors import (
    MissingPromptError,
    PromptFileError,
    SessionLoadError,
    SessionPrecisionMismatch,
    SessionSaveError,
    TokenBiasParseError,
)
from runtime import InferenceRequest, InferenceRuntime, format_token_dump, serialize_error
from sampling import GenerateArgs
from session import LoadOnly


@pytest.fixture
def runtime(four_core_probes):
    return InferenceRuntime(config=Config({}), probes=four_core_probes)


class TestInfer:
    """Test a single invocation"""

    def test_fresh_session(self, runtime, fake_model):
        tokens = []
        outcome = runtime.infer(fake_model, InferenceRequest(prompt="hello there"), on_token=tokens.append)

        assert outcome.ok
        assert outcome.text == "".join(tokens)
        assert len(tokens) == 3
        assert outcome.session_restored is False
        assert outcome.saved_to is None
        assert fake_model.sessions[0].prompts == ["hello there"]
        assert fake_model.sessions[0].params.repetition_penalty_last_n == 64

    def test_num_predict_forwarded(self, runtime, fake_model):
        outcome = runtime.infer(fake_model, InferenceRequest(prompt="hi", generate=GenerateArgs(num_predict=5)))

        assert outcome.stats.predicted_tokens == 5

    def test_same_seed_same_output(self, runtime, model_factory):
        request = InferenceRequest(prompt="hi", generate=GenerateArgs(seed=42, num_predict=8))

        first = runtime.infer(model_factory(), request)
        second = runtime.infer(model_factory(), request)

        assert first.text == second.text

    def test_unseeded_outputs_differ(self, runtime, model_factory):
        request = InferenceRequest(prompt="hi", generate=GenerateArgs(num_predict=8))

        assert runtime.infer(model_factory(), request).text != runtime.infer(model_factory(), request).text

    def test_ignore_eos_uses_model_eos(self, runtime, fake_model):
        outcome = runtime.infer(fake_model, InferenceRequest(prompt="hi", generate=GenerateArgs(ignore_eos=True)))

        assert dict(outcome.config.bias_table) == {fake_model.eos_token_id: -1.0}


class TestEarlyFailures:
    """Test that resolution failures abort before any engine work"""

    def test_missing_prompt(self, runtime, fake_model):
        with pytest.raises(MissingPromptError):
            runtime.infer(fake_model, InferenceRequest())

        assert fake_model.sessions == []

    def test_unreadable_prompt_file(self, runtime, fake_model, tmp_path):
        with pytest.raises(PromptFileError):
            runtime.infer(fake_model, InferenceRequest(prompt="x", prompt_file=tmp_path / "missing.txt"))

        assert fake_model.sessions == []

    def test_bad_bias(self, runtime, fake_model):
        request = InferenceRequest(prompt="x", generate=GenerateArgs(token_bias="1:2"))

        with pytest.raises(TokenBiasParseError):
            runtime.infer(fake_model, request)

        assert fake_model.sessions == []

    def test_missing_load_session(self, runtime, fake_model, tmp_path):
        with pytest.raises(SessionLoadError):
            runtime.infer(fake_model, InferenceRequest(prompt="x", load_session=tmp_path / "missing"))

        assert fake_model.sessions == []

    def test_precision_mismatch(self, runtime, fake_model, tmp_path):
        path = tmp_path / "s.session"
        runtime.infer(fake_model, InferenceRequest(prompt="x", save_session=path))

        with pytest.raises(SessionPrecisionMismatch):
            runtime.infer(fake_model, InferenceRequest(
                prompt="y", load_session=path, generate=GenerateArgs(float16=True)))

        assert fake_model.restored == []


class TestSessions:
    """Test session restore and persistence around generation"""

    def test_persist_creates_then_resumes(self, runtime, fake_model, tmp_path):
        path = tmp_path / "chat.session"

        first = runtime.infer(fake_model, InferenceRequest(prompt="one", persist_session=path))
        second = runtime.infer(fake_model, InferenceRequest(prompt="two", persist_session=path))

        assert first.session_restored is False
        assert first.saved_to == str(path)
        assert second.session_restored is True
        assert fake_model.restored == [b"one"]
        assert fake_model.sessions[-1].snapshot() == b"onetwo"

    def test_load_and_save_to_different_paths(self, runtime, fake_model, tmp_path):
        source = tmp_path / "source.session"
        target = tmp_path / "target.session"
        runtime.infer(fake_model, InferenceRequest(prompt="base", save_session=source))

        runtime.infer(fake_model, InferenceRequest(prompt="more", load_session=source, save_session=target))

        assert runtime.session_store.load(LoadOnly(source)).blob == b"base"
        assert runtime.session_store.load(LoadOnly(target)).blob == b"basemore"

    def test_save_only_prompt(self, runtime, fake_model, tmp_path):
        path = tmp_path / "prompt.session"
        outcome = runtime.infer(fake_model, InferenceRequest(
            prompt="system prompt", save_session=path, generate=GenerateArgs(num_predict=0)))

        assert outcome.text == ""
        assert path.exists()

    def test_corrupt_persist_file_is_fatal(self, runtime, fake_model, tmp_path):
        path = tmp_path / "chat.session"
        path.write_bytes(b"garbage")

        with pytest.raises(SessionLoadError):
            runtime.infer(fake_model, InferenceRequest(prompt="x", persist_session=path))

    def test_save_failure_keeps_generated_text(self, runtime, fake_model, tmp_path):
        path = tmp_path / "missing-dir" / "s.session"
        tokens = []

        outcome = runtime.infer(fake_model, InferenceRequest(prompt="x", save_session=path), on_token=tokens.append)

        assert not outcome.ok
        assert isinstance(outcome.save_error, SessionSaveError)
        assert outcome.text == "".join(tokens) != ""
        assert outcome.saved_to is None

    def test_snapshot_failure_keeps_generated_text(self, runtime, fake_model, tmp_path):
        path = tmp_path / "s.session"
        start_session = fake_model.start_session

        def failing_snapshot_session(params):
            session = start_session(params)
            session.snapshot = Mock(side_effect=RuntimeError("device lost"))
            return session

        fake_model.start_session = failing_snapshot_session

        outcome = runtime.infer(fake_model, InferenceRequest(prompt="x", save_session=path))

        assert outcome.text != ""
        assert isinstance(outcome.save_error, SessionSaveError)
        assert outcome.save_error.path == str(path)
        assert "device lost" in outcome.save_error.reason
        assert not path.exists()

    def test_outcome_json(self, runtime, fake_model, tmp_path):
        outcome = runtime.infer(fake_model, InferenceRequest(
            prompt="x", save_session=tmp_path / "nope" / "s", generate=GenerateArgs(seed=1)))

        payload = orjson.loads(outcome.to_json())

        assert payload["text"] == outcome.text
        assert payload["config"]["seed"] == 1
        assert payload["error"]["code"] == 5
        assert payload["error"]["data"]["type"] == "SessionSaveError"


class TestDumpTokens:
    """Test prompt tokenization output"""

    def test_dump_tokens(self, runtime, fake_model):
        ids, pairs = runtime.dump_tokens(fake_model, "a b c")

        assert ids == [100, 101, 102]
        assert pairs == [("a", 100), ("b", 101), ("c", 102)]
        assert format_token_dump(ids, pairs) == "100,101,102\n'a'=100,'b'=101,'c'=102"

    def test_dump_tokens_uses_prompt_file(self, runtime, fake_model, tmp_path):
        path = tmp_path / "p.txt"
        path.write_text("say {{PROMPT}}\n")

        ids, _ = runtime.dump_tokens(fake_model, "hi", path)

        assert ids == [100, 101]


class TestSerializeError:
    """Test translation of errors for embedding callers"""

    def test_parse_error(self):
        from token_bias import TokenBias

        with pytest.raises(TokenBiasParseError) as exc_info:
            TokenBias.parse("1=1,x")

        payload = serialize_error(exc_info.value)
        assert payload["code"] == 2
        assert payload["data"]["segment"] == "x"

    def test_validation_error(self):
        assert serialize_error(ValueError("top_k must be positive"))["data"]["type"] == "ValidationError"

    def test_unexpected_error_hides_details(self):
        payload = serialize_error(RuntimeError("secret"))

        assert payload["code"] == 1
        assert "secret" not in payload["message"]
