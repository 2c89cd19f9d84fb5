"""
Pytest configuration for llm-runtime-core tests

Sets up Python path to allow imports from python/ directory and provides
an in-memory engine so invocations can run without model weights
"""
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import pytest

# Add python directory to path for imports
python_dir = Path(__file__).parent.parent / 'python'
sys.path.insert(0, str(python_dir))

import config_loader  # noqa: E402
from config_loader import Config  # noqa: E402
from models.engine import InferenceStats  # noqa: E402


class FakeSession:
    """Engine session whose state is the concatenation of every prompt fed"""

    def __init__(self, state: bytes = b"", params=None):
        self.state = bytearray(state)
        self.params = params
        self.prompts: List[str] = []

    def infer(self, prompt, config, rng, max_tokens, on_token):
        self.prompts.append(prompt)
        self.state += prompt.encode("utf-8")
        count = 3 if max_tokens is None else max_tokens
        for _ in range(count):
            on_token(f"<{int(rng.generator.integers(0, 50_000))}>")
        return InferenceStats(prompt_tokens=len(prompt.split()), predicted_tokens=count)

    def snapshot(self) -> bytes:
        return bytes(self.state)


class FakeModel:
    """Engine model with a whitespace tokenizer"""

    eos_token_id = 2

    def __init__(self):
        self.sessions: List[FakeSession] = []
        self.restored: List[bytes] = []

    def start_session(self, params) -> FakeSession:
        session = FakeSession(params=params)
        self.sessions.append(session)
        return session

    def restore_session(self, blob: bytes) -> FakeSession:
        self.restored.append(blob)
        session = FakeSession(blob)
        self.sessions.append(session)
        return session

    def tokenize(self, text: str) -> List[Tuple[str, int]]:
        return [(piece, 100 + index) for index, piece in enumerate(text.split())]


class FixedProbe:
    """Core probe returning a canned answer"""

    def __init__(self, count: Optional[int], name: str = "fixed"):
        self.count = count
        self.name = name
        self.calls = 0

    def probe(self) -> Optional[int]:
        self.calls += 1
        return self.count


@pytest.fixture(autouse=True)
def reset_config():
    """Reset global config before each test"""
    config_loader._global_config = None

    yield

    config_loader._global_config = None


@pytest.fixture
def default_config():
    """Built-in defaults installed as the global config"""
    config = Config({})
    config.validate()
    config_loader._global_config = config
    return config


@pytest.fixture
def fake_model():
    return FakeModel()


@pytest.fixture
def model_factory():
    return FakeModel


@pytest.fixture
def probe_factory():
    """Build canned core probes: probe_factory(count, name)"""
    return FixedProbe


@pytest.fixture
def four_core_probes():
    return [FixedProbe(4, name="physical-cores")]


@pytest.fixture
def temp_config(tmp_path):
    """
    Create a temporary config file for testing

    Returns:
        Path to temporary config file
    """
    config_content = """
generation:
  batch_size: 16
  repeat_last_n: 32
  repeat_penalty: 1.1
  temperature: 0.7
  top_k: 20
  top_p: 0.9
  float16: false

model:
  num_ctx_tokens: 1024
  use_mmap: true
  progress_log_interval: 4

environments:
  test:
    generation:
      temperature: 0.5
    model:
      use_mmap: false
"""

    config_file = tmp_path / "runtime.yaml"
    config_file.write_text(config_content)

    return config_file
