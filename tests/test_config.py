import pytest

from realtime_agent.config import RealtimeConfig, Settings
from realtime_agent.protocol import ProtocolError


def test_defaults():
    config = RealtimeConfig()
    assert config.to_dict() == {
        "streamingEnabled": True,
        "audioEnabled": False,
        "interruptible": True,
        "language": "es",
    }


def test_merge_partial_update():
    config = RealtimeConfig().merge({"streamingEnabled": False, "language": "en"})
    assert config.streaming_enabled is False
    assert config.language == "en"
    assert config.interruptible is True


def test_merge_ignores_unknown_keys():
    config = RealtimeConfig().merge({"voice": "alloy"})
    assert config.to_dict() == RealtimeConfig().to_dict()


@pytest.mark.parametrize(
    "update",
    [
        {"streamingEnabled": "no"},
        {"language": "fr"},
        {"interruptible": False, "language": 3},
    ],
)
def test_invalid_update_leaves_config_untouched(update):
    config = RealtimeConfig()
    with pytest.raises(ProtocolError):
        config.merge(update)
    assert config.to_dict() == RealtimeConfig().to_dict()


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("OPENWEATHER_API_KEY", "abc")
    monkeypatch.setenv("CHUNK_DELAY_MIN_MS", "10")
    monkeypatch.setenv("CHUNK_DELAY_MAX_MS", "20")
    monkeypatch.setenv("TOOL_DELAYS_ENABLED", "false")
    monkeypatch.delenv("GOOGLE_SEARCH_API_KEY", raising=False)

    settings = Settings.from_env()

    assert settings.port == 9000
    assert settings.live_weather_enabled
    assert not settings.live_search_enabled
    assert settings.chunk_delay_range == (0.01, 0.02)
    assert settings.tool_delays_enabled is False


def test_settings_invalid_values_fall_back(monkeypatch):
    monkeypatch.setenv("PORT", "eighty")
    monkeypatch.setenv("WEATHER_TIMEOUT_S", "soon")

    settings = Settings.from_env()

    assert settings.port == 8080
    assert settings.weather_timeout_s == 5.0
