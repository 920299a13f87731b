from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Mapping

import tomllib

from .csv_rows import DEFAULT_HEADER_TOKENS
from .extract import TEXT_SOURCES
from .openai_speech import DEFAULT_ENDPOINT, VoiceConfig

CONFIG_ENV = "PHRASETTS_CONFIG"
CONFIG_FILENAME = "phrasetts.toml"
CONFIG_TABLE = "phrasetts"

DEFAULT_INPUT = "phrases.csv"
DEFAULT_OUTPUT_DIR = "audio"
DEFAULT_MODEL = "gpt-4o-mini-tts"
DEFAULT_VOICE = "alloy"
DEFAULT_AUDIO_FORMAT = "mp3"
DEFAULT_SPEED = 0.95
DEFAULT_INSTRUCTIONS = "请用标准普通话，发音清晰，语速稍慢，适合泰国初学者跟读。"
DEFAULT_CONCURRENCY = 2
DEFAULT_INTER_CALL_DELAY = 0.12
DEFAULT_RETRY_DELAY = 0.5
DEFAULT_TIMEOUT = 60.0
DEFAULT_TEXT_SOURCE = "secondary"


class ConfigError(ValueError):
    """Raised when a configuration file or value cannot be used."""


@dataclass
class BatchSettings:
    input_path: Path = Path(DEFAULT_INPUT)
    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)
    model: str = DEFAULT_MODEL
    voice: str = DEFAULT_VOICE
    audio_format: str = DEFAULT_AUDIO_FORMAT
    speed: float = DEFAULT_SPEED
    instructions: str | None = DEFAULT_INSTRUCTIONS
    concurrency: int = DEFAULT_CONCURRENCY
    inter_call_delay: float = DEFAULT_INTER_CALL_DELAY
    retry_delay: float = DEFAULT_RETRY_DELAY
    timeout: float = DEFAULT_TIMEOUT
    endpoint: str = DEFAULT_ENDPOINT
    text_source: str = DEFAULT_TEXT_SOURCE
    header_tokens: tuple[str, ...] = field(
        default_factory=lambda: tuple(sorted(DEFAULT_HEADER_TOKENS))
    )
    overwrite: bool = False

    def voice_config(self) -> VoiceConfig:
        return VoiceConfig(
            model=self.model,
            voice=self.voice,
            audio_format=self.audio_format,
            speed=self.speed,
            instructions=self.instructions or None,
        )

    def with_overrides(self, **values: object) -> "BatchSettings":
        """Return a copy with every non-``None`` value applied."""
        updates = {name: value for name, value in values.items() if value is not None}
        if not updates:
            return self
        return _coerce(replace(self, **updates))

    def as_payload(self) -> dict[str, object]:
        payload = asdict(self)
        payload["input_path"] = str(self.input_path)
        payload["output_dir"] = str(self.output_dir)
        payload["header_tokens"] = list(self.header_tokens)
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, object], base: "BatchSettings | None" = None) -> "BatchSettings":
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(payload) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
        start = base if base is not None else cls()
        return _coerce(replace(start, **dict(payload)))


def _require_str(name: str, value: object, *, optional: bool = False) -> None:
    if optional and value is None:
        return
    if not isinstance(value, str):
        raise ConfigError(f"{name} must be a string")


def _coerce(settings: BatchSettings) -> BatchSettings:
    try:
        settings.input_path = Path(settings.input_path).expanduser()
        settings.output_dir = Path(settings.output_dir).expanduser()
        settings.speed = float(settings.speed)
        settings.concurrency = int(settings.concurrency)
        settings.inter_call_delay = float(settings.inter_call_delay)
        settings.retry_delay = float(settings.retry_delay)
        settings.timeout = float(settings.timeout)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc
    for name in ("model", "voice", "audio_format", "endpoint", "text_source"):
        _require_str(name, getattr(settings, name))
    _require_str("instructions", settings.instructions, optional=True)
    if not isinstance(settings.overwrite, bool):
        raise ConfigError("overwrite must be true or false")
    tokens = settings.header_tokens
    if isinstance(tokens, str):
        tokens = (tokens,)
    if not isinstance(tokens, (list, tuple)) or not all(isinstance(token, str) for token in tokens):
        raise ConfigError("header_tokens must be a list of strings")
    settings.header_tokens = tuple(token.lower() for token in tokens)
    settings.audio_format = settings.audio_format.lstrip(".")
    if settings.concurrency < 1:
        raise ConfigError("concurrency must be at least 1")
    if settings.inter_call_delay < 0 or settings.retry_delay < 0:
        raise ConfigError("delays must not be negative")
    if settings.timeout <= 0:
        raise ConfigError("timeout must be greater than zero")
    if settings.text_source not in TEXT_SOURCES:
        raise ConfigError(f"text_source must be one of: {', '.join(TEXT_SOURCES)}")
    return settings


def resolve_config_path(
    explicit: Path | str | None = None,
    *,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> Path | None:
    """
    Pick the config file to load: an explicit path, then ``$PHRASETTS_CONFIG``,
    then ``phrasetts.toml`` in the working directory when it exists.
    """
    if explicit:
        return Path(explicit).expanduser()
    source = os.environ if env is None else env
    env_value = (source.get(CONFIG_ENV) or "").strip()
    if env_value:
        return Path(env_value).expanduser()
    candidate = (cwd or Path.cwd()) / CONFIG_FILENAME
    return candidate if candidate.is_file() else None


def load_settings(config_path: Path | None = None) -> BatchSettings:
    if config_path is None:
        return BatchSettings()
    try:
        with config_path.open("rb") as fh:
            data = tomllib.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {config_path}") from exc
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Failed to read config file {config_path}: {exc}") from exc
    table = data.get(CONFIG_TABLE, {})
    if not isinstance(table, dict):
        raise ConfigError(f"[{CONFIG_TABLE}] in {config_path} must be a table.")
    return BatchSettings.from_payload(table)


__all__ = [
    "BatchSettings",
    "CONFIG_ENV",
    "CONFIG_FILENAME",
    "ConfigError",
    "load_settings",
    "resolve_config_path",
]
