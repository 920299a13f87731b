from __future__ import annotations

from pathlib import Path

import pytest

from phrasetts.config import (
    BatchSettings,
    ConfigError,
    load_settings,
    resolve_config_path,
)


def test_default_settings() -> None:
    settings = BatchSettings()
    assert settings.input_path == Path("phrases.csv")
    assert settings.output_dir == Path("audio")
    assert settings.concurrency == 2
    assert settings.inter_call_delay == pytest.approx(0.12)
    assert settings.retry_delay == pytest.approx(0.5)
    voice = settings.voice_config()
    assert voice.model == "gpt-4o-mini-tts"
    assert voice.voice == "alloy"
    assert voice.audio_format == "mp3"
    assert voice.speed == pytest.approx(0.95)
    assert voice.instructions


def test_load_settings_reads_toml_table(tmp_path: Path) -> None:
    config_path = tmp_path / "phrasetts.toml"
    config_path.write_text(
        "[phrasetts]\n"
        'input_path = "data/th.csv"\n'
        'output_dir = "audio_th"\n'
        'text_source = "primary"\n'
        'audio_format = ".wav"\n'
        "speed = 1\n"
        "concurrency = 3\n"
        'header_tokens = ["Thai", "TTS_Key"]\n',
        encoding="utf-8",
    )

    settings = load_settings(config_path)

    assert settings.input_path == Path("data/th.csv")
    assert settings.output_dir == Path("audio_th")
    assert settings.text_source == "primary"
    assert settings.audio_format == "wav"
    assert settings.speed == 1.0
    assert settings.concurrency == 3
    assert settings.header_tokens == ("thai", "tts_key")


def test_load_settings_without_path_returns_defaults() -> None:
    assert load_settings(None) == BatchSettings()


@pytest.mark.parametrize(
    "body",
    [
        "[phrasetts]\nunknown_key = 1\n",
        "[phrasetts]\nconcurrency = 0\n",
        '[phrasetts]\ntext_source = "third"\n',
        '[phrasetts]\nspeed = "fast"\n',
        "[phrasetts]\nretry_delay = -1\n",
        "[phrasetts]\ntimeout = 0\n",
        "[phrasetts]\nheader_tokens = 5\n",
        "[phrasetts]\nheader_tokens = [1, 2]\n",
        '[phrasetts]\noverwrite = "false"\n',
        "[phrasetts]\noverwrite = 1\n",
        "[phrasetts]\nmodel = 4\n",
        '[phrasetts]\nvoice = ["alloy"]\n',
        "[phrasetts]\nendpoint = 443\n",
        "[phrasetts]\ninstructions = false\n",
        "phrasetts = 3\n",
        "not toml = = =\n",
    ],
)
def test_load_settings_rejects_bad_files(tmp_path: Path, body: str) -> None:
    config_path = tmp_path / "phrasetts.toml"
    config_path.write_text(body, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(config_path)


def test_load_settings_keeps_boolean_overwrite(tmp_path: Path) -> None:
    config_path = tmp_path / "phrasetts.toml"
    config_path.write_text("[phrasetts]\noverwrite = false\ninstructions = \"\"\n", encoding="utf-8")

    settings = load_settings(config_path)

    assert settings.overwrite is False
    assert settings.voice_config().instructions is None


def test_with_overrides_rejects_non_positive_timeout() -> None:
    with pytest.raises(ConfigError):
        BatchSettings().with_overrides(timeout=0)


def test_load_settings_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_settings(tmp_path / "absent.toml")


def test_with_overrides_ignores_none() -> None:
    base = BatchSettings()
    updated = base.with_overrides(voice="nova", speed=None, input_path="x.csv")
    assert updated.voice == "nova"
    assert updated.speed == base.speed
    assert updated.input_path == Path("x.csv")
    assert base.voice == "alloy"
    assert base.with_overrides(voice=None) is base


def test_resolve_config_path_precedence(tmp_path: Path) -> None:
    local = tmp_path / "phrasetts.toml"
    assert resolve_config_path(env={}, cwd=tmp_path) is None

    local.write_text("[phrasetts]\n", encoding="utf-8")
    assert resolve_config_path(env={}, cwd=tmp_path) == local
    assert resolve_config_path(env={"PHRASETTS_CONFIG": "/etc/p.toml"}, cwd=tmp_path) == Path("/etc/p.toml")
    assert resolve_config_path("mine.toml", env={"PHRASETTS_CONFIG": "/etc/p.toml"}) == Path("mine.toml")


def test_as_payload_round_trips_through_from_payload() -> None:
    settings = BatchSettings(voice="echo", header_tokens=("key",))
    assert BatchSettings.from_payload(settings.as_payload()) == settings
