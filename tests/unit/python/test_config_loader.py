"""
Unit tests for configuration loading and error mapping

Tests YAML defaults, environment overrides, validation and the global
config accessor
"""

import pytest
import yaml

import config_loader
from config_loader import Config, deep_merge, get_config, initialize_config, load_config
from errors import (
    ERROR_CODE_MAP,
    LlmRuntimeError,
    ModelLoadError,
    PromptFileError,
    ProtocolViolation,
    SessionLoadError,
    SessionPrecisionMismatch,
    SessionSaveError,
    TokenBiasParseError,
    exit_code_for,
)


class TestConfig:
    """Test Config defaults and validation"""

    def test_builtin_defaults(self):
        config = Config({})

        assert config.batch_size == 8
        assert config.repeat_last_n == 64
        assert config.repeat_penalty == pytest.approx(1.30)
        assert config.temperature == pytest.approx(0.80)
        assert config.top_k == 40
        assert config.top_p == pytest.approx(0.95)
        assert config.float16 is False
        assert config.num_predict is None
        assert config.num_ctx_tokens == 2048
        assert config.use_mmap is True
        assert config.progress_log_interval == 8

    @pytest.mark.parametrize("section,key,value", [
        ("generation", "batch_size", 0),
        ("generation", "repeat_last_n", -1),
        ("generation", "temperature", 0),
        ("generation", "top_p", 1.01),
        ("generation", "top_k", 0),
        ("generation", "num_predict", -5),
        ("model", "num_ctx_tokens", 0),
        ("model", "progress_log_interval", 0),
    ])
    def test_invalid_values_rejected(self, section, key, value):
        with pytest.raises(ValueError, match=key):
            Config({section: {key: value}}).validate()


class TestLoadConfig:
    """Test loading YAML files"""

    def test_load_file(self, temp_config):
        config = load_config(str(temp_config), environment="production")

        assert config.batch_size == 16
        assert config.temperature == pytest.approx(0.7)
        assert config.use_mmap is True
        assert config.progress_log_interval == 4

    def test_environment_override(self, temp_config):
        config = load_config(str(temp_config), environment="test")

        assert config.temperature == pytest.approx(0.5)
        assert config.use_mmap is False
        assert config.top_k == 20

    def test_environment_from_env_var(self, temp_config, monkeypatch):
        monkeypatch.setenv("LLM_RUNTIME_ENV", "test")

        assert load_config(str(temp_config)).use_mmap is False

    def test_path_from_env_var(self, temp_config, monkeypatch):
        monkeypatch.setenv("LLM_RUNTIME_CONFIG", str(temp_config))

        assert load_config().batch_size == 16

    def test_repository_config_loads(self):
        config = load_config(environment="production")

        assert config.num_ctx_tokens == 2048

    def test_repository_config_keys_are_consumed(self):
        with open(config_loader._find_default_config_path(), encoding="utf-8") as f:
            raw = yaml.safe_load(f)
        config = Config(raw)

        assert set(raw) == {"generation", "model", "environments"}
        for section in ("generation", "model"):
            for key in raw[section]:
                assert hasattr(config, key), f"{section}.{key} is not read by Config"
        for overrides in raw["environments"].values():
            assert set(overrides) <= {"generation", "model"}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("generation: [unclosed\n")

        with pytest.raises(ValueError, match="Failed to parse YAML"):
            load_config(str(path))

    def test_non_mapping_yaml(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")

        with pytest.raises(ValueError, match="mapping"):
            load_config(str(path))

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_config(str(path)).batch_size == 8

    def test_invalid_value_in_file(self, tmp_path):
        path = tmp_path / "bad_values.yaml"
        path.write_text("generation:\n  top_k: 0\n")

        with pytest.raises(ValueError, match="top_k"):
            load_config(str(path))


class TestGlobalConfig:
    """Test the lazily initialized global config"""

    def test_initialize_then_get(self, temp_config):
        config = initialize_config(str(temp_config), environment="test")

        assert get_config() is config

    def test_get_loads_once(self, temp_config, monkeypatch):
        monkeypatch.setenv("LLM_RUNTIME_CONFIG", str(temp_config))

        first = get_config()

        assert get_config() is first
        assert config_loader._global_config is first


def test_deep_merge():
    base = {"a": {"b": 1, "c": 2}, "d": 3}
    merged = deep_merge(base, {"a": {"c": 20}, "e": 5})

    assert merged == {"a": {"b": 1, "c": 20}, "d": 3, "e": 5}
    assert base == {"a": {"b": 1, "c": 2}, "d": 3}


class TestErrorCodes:
    """Test exit code mapping for embedding callers"""

    def test_distinct_codes_for_parse_and_io(self):
        parse = exit_code_for(TokenBiasParseError("x", 0, "bad"))
        prompt = exit_code_for(PromptFileError("p.txt", "missing"))

        assert parse != prompt

    def test_subclass_resolves_through_mro(self):
        assert exit_code_for(SessionPrecisionMismatch("s", "f32", "f16")) == ERROR_CODE_MAP[SessionPrecisionMismatch]
        assert exit_code_for(SessionLoadError("s", "gone")) == 4
        assert exit_code_for(SessionSaveError("s", "full")) == 5
        assert exit_code_for(ModelLoadError("m.bin", "bad magic")) == 6
        assert exit_code_for(ProtocolViolation("out of order")) == 70

    def test_unknown_exception(self):
        assert exit_code_for(KeyError("x")) == 1
        assert exit_code_for(LlmRuntimeError("generic")) == 1

    def test_messages(self):
        assert str(PromptFileError("p.txt", "No such file")) == "Could not read prompt file p.txt: No such file"
        assert str(SessionSaveError("s", "full")) == "Could not save session to s: full"
