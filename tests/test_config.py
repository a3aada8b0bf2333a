from __future__ import annotations

import pytest
from pydantic import ValidationError

from duetcode.config import DuetSettings


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ("GEMINI_API_KEY", "DUETCODE_GEMINI_API_KEY", "DUETCODE_PORT", "DUETCODE_POLICY_EPSILON"):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = DuetSettings()

    assert settings.port == 3000
    assert settings.default_model == "gemini-1.5-flash"
    assert settings.policy_memory_scope == "global"
    assert settings.gemini_api_key == ""


def test_prefixed_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("DUETCODE_PORT", "8080")
    monkeypatch.setenv("DUETCODE_POLICY_EPSILON", "0.25")

    settings = DuetSettings()

    assert settings.port == 8080
    assert settings.policy_epsilon == 0.25


def test_unprefixed_api_key_is_accepted(monkeypatch) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "from-env")

    assert DuetSettings().gemini_api_key == "from-env"


def test_dotenv_file_is_read(tmp_path) -> None:
    (tmp_path / ".env").write_text("DUETCODE_DEFAULT_MODEL=gemini-1.5-pro\n")

    assert DuetSettings().default_model == "gemini-1.5-pro"


@pytest.mark.parametrize(
    "overrides",
    [
        {"policy_epsilon": 1.5},
        {"policy_learning_rate": 0.0},
        {"policy_discount_factor": 1.0},
        {"policy_state_space": 0},
        {"policy_memory_scope": "thread"},
        {"feedback_retry_limit": 0},
        {"session_id_length": 2},
    ],
)
def test_out_of_range_values_are_rejected(overrides) -> None:
    with pytest.raises(ValidationError):
        DuetSettings(**overrides)
