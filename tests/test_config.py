"""Configuration boundary tests: Settings, env resolution and UserConfig."""

from __future__ import annotations

import pytest

from chatrelay.config import DEFAULT_SELECTION, Settings, UserConfig
from chatrelay.errors import ConfigurationError
from chatrelay.retry import RetryPolicy

pytestmark = pytest.mark.unit


def test_settings_defaults() -> None:
    settings = Settings()

    assert settings.default_selection == DEFAULT_SELECTION
    assert settings.max_output_tokens == 8192
    assert settings.retry == RetryPolicy()
    assert settings.use_mock is False
    assert settings.credential_string("gemini") is None


def test_settings_credentials_are_read_only() -> None:
    raw = {"gemini": "a,b"}
    settings = Settings(credentials=raw)
    raw["gemini"] = "changed"

    assert settings.credential_string("gemini") == "a,b"
    with pytest.raises(TypeError):
        settings.credentials["gemini"] = "c"  # type: ignore[index]


def test_unknown_credential_provider_is_rejected() -> None:
    with pytest.raises(ConfigurationError) as exc:
        Settings(credentials={"mistral": "k"})  # type: ignore[dict-item]
    assert "mistral" in str(exc.value)
    assert exc.value.hint is not None


def test_non_string_credentials_are_rejected() -> None:
    with pytest.raises(ConfigurationError):
        Settings(credentials={"gemini": ["a", "b"]})  # type: ignore[dict-item]


@pytest.mark.parametrize("tokens", [0, -1])
def test_invalid_max_output_tokens_is_rejected(tokens: int) -> None:
    with pytest.raises(ConfigurationError, match="max_output_tokens"):
        Settings(max_output_tokens=tokens)


def test_empty_default_selection_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        Settings(default_selection="")


def test_from_env_reads_plural_key_list_first(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEMINI_API_KEYS", "k1,k2")
    monkeypatch.setenv("GEMINI_API_KEY", "single")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-1")

    settings = Settings.from_env()

    assert settings.credential_string("gemini") == "k1,k2"
    assert settings.credential_string("openai") == "sk-1"
    assert settings.credential_string("anthropic") is None


def test_from_env_ignores_blank_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEMINI_API_KEYS", "   ")
    monkeypatch.setenv("GEMINI_API_KEY", "fallback")

    assert Settings.from_env().credential_string("gemini") == "fallback"


def test_from_env_reads_chatrelay_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHATRELAY_DEFAULT_PROVIDER", "GPT4o")
    monkeypatch.setenv("CHATRELAY_MAX_RETRIES", "1")
    monkeypatch.setenv("CHATRELAY_G4F_URL", "http://127.0.0.1:9000/v1")
    monkeypatch.setenv("CHATRELAY_G4F_MODEL", "llama-3")
    monkeypatch.setenv("CHATRELAY_USE_MOCK", "true")

    settings = Settings.from_env()

    assert settings.default_selection == "GPT4o"
    assert settings.retry.max_retries == 1
    assert settings.g4f_base_url == "http://127.0.0.1:9000/v1"
    assert settings.g4f_model == "llama-3"
    assert settings.use_mock is True


def test_from_env_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHATRELAY_USE_MOCK", "1")

    settings = Settings.from_env(use_mock=False, max_output_tokens=100)

    assert settings.use_mock is False
    assert settings.max_output_tokens == 100


def test_from_env_rejects_non_integer_retries(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHATRELAY_MAX_RETRIES", "three")

    with pytest.raises(ConfigurationError, match="CHATRELAY_MAX_RETRIES"):
        Settings.from_env()


def test_from_env_loads_dotenv(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[int] = []
    monkeypatch.setattr(
        "chatrelay.config.load_dotenv", lambda *_a, **_k: calls.append(1)
    )

    Settings.from_env()

    assert calls == [1]


def test_settings_repr_redacts_credentials() -> None:
    settings = Settings(credentials={"gemini": "secret-key-1,secret-key-2"})

    for text in (str(settings), repr(settings)):
        assert "secret-key" not in text
        assert "[REDACTED]" in text
        assert "'gemini'" in text


def test_user_config_coerce() -> None:
    assert UserConfig.coerce(None) == UserConfig()
    assert UserConfig.coerce({"creativity": 0.4}) == UserConfig(creativity="0.4")
    assert UserConfig.coerce({}) == UserConfig()

    cfg = UserConfig(creativity="1")
    assert UserConfig.coerce(cfg) is cfg

    with pytest.raises(ConfigurationError):
        UserConfig.coerce("0.7")  # type: ignore[arg-type]
