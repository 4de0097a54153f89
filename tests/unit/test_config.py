# pylint: disable=missing-module-docstring,missing-function-docstring
import pytest

from config import AppConfig
from spec import BROADCAST_CHANNEL_NAME

_VARS = (
    "ENV", "LOG_LEVEL", "BROADCAST_BACKEND", "BROADCAST_CHANNEL", "REDIS_URL",
    "STATS_PATH", "LLM_PROVIDER", "LLM_MODEL", "OPENAI_API_KEY", "GROQ_API_KEY",
    "ENABLE_JSON_LOGS",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    config = AppConfig.load_from_env()

    assert config.broadcast_backend == "local"
    assert config.broadcast_channel == BROADCAST_CHANNEL_NAME
    assert config.stats_path == "./coffee_break_stats.json"
    assert config.llm_provider == "openai"
    assert config.llm_api_key is None
    assert config.enable_json_logs


def test_empty_stats_path_means_memory(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STATS_PATH", "")
    assert AppConfig.load_from_env().stats_path is None


def test_groq_provider_uses_groq_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "groq")
    monkeypatch.setenv("OPENAI_API_KEY", "openai-key")
    monkeypatch.setenv("GROQ_API_KEY", "groq-key")
    assert AppConfig.load_from_env().llm_api_key == "groq-key"


def test_unknown_backend_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BROADCAST_BACKEND", "carrier-pigeon")
    with pytest.raises(ValueError):
        AppConfig.load_from_env()


def test_redis_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BROADCAST_BACKEND", "REDIS")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/1")
    config = AppConfig.load_from_env()
    assert config.broadcast_backend == "redis"
    assert config.redis_url == "redis://cache:6379/1"
