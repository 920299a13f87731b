from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

import requests

DEFAULT_ENDPOINT = "https://api.openai.com/v1/audio/speech"
API_KEY_ENV = "OPENAI_API_KEY"
ERROR_BODY_LIMIT = 500

_DEBUG_LOG = False


def set_debug_logging(enabled: bool) -> None:
    global _DEBUG_LOG
    _DEBUG_LOG = enabled


def _debug_log(message: str) -> None:
    if _DEBUG_LOG:
        print(f"[phrasetts debug] {message}", flush=True)


class MissingCredentialError(RuntimeError):
    """Raised when no API key is available for the speech endpoint."""


class SpeechAPIError(RuntimeError):
    """Raised when the speech endpoint answers with a non-success status."""

    def __init__(self, status_code: int, body: str = "", reason: str = "") -> None:
        self.status_code = status_code
        self.body = (body or "")[:ERROR_BODY_LIMIT]
        self.reason = reason or ""
        label = f"HTTP {status_code}"
        if self.reason:
            label = f"{label} {self.reason}"
        message = f"{label}: {self.body}" if self.body else label
        super().__init__(message)


class SpeechUnavailableError(ConnectionError):
    """Raised when the speech endpoint cannot be reached."""


@dataclass(frozen=True)
class VoiceConfig:
    model: str = "gpt-4o-mini-tts"
    voice: str = "alloy"
    audio_format: str = "mp3"
    speed: float = 1.0
    instructions: str | None = None

    def request_payload(self, text: str) -> dict[str, object]:
        payload: dict[str, object] = {
            "model": self.model,
            "voice": self.voice,
            "input": text,
            "response_format": self.audio_format,
            "speed": self.speed,
        }
        if self.instructions:
            payload["instructions"] = self.instructions
        return payload


def resolve_api_key(env: Mapping[str, str] | None = None) -> str:
    source = os.environ if env is None else env
    value = (source.get(API_KEY_ENV) or "").strip()
    if not value:
        raise MissingCredentialError(
            f"Missing {API_KEY_ENV} in the environment.\n"
            f'Set it like:  export {API_KEY_ENV}="sk-xxxx"'
        )
    return value


class OpenAISpeechClient:
    """
    Thin wrapper around the OpenAI speech endpoint.
    """

    def __init__(
        self,
        api_key: str,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float | None = 60.0,
    ) -> None:
        if not api_key:
            raise MissingCredentialError(f"{API_KEY_ENV} is empty.")
        self.endpoint = endpoint
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            }
        )

    def synthesize(self, text: str, voice: VoiceConfig) -> bytes:
        """
        Return raw audio bytes for ``text`` rendered with ``voice``.
        """
        payload = voice.request_payload(text)
        _debug_log(
            f"POST {self.endpoint} model={voice.model} voice={voice.voice} "
            f"format={voice.audio_format} chars={len(text)}"
        )
        try:
            resp = self._session.post(self.endpoint, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            raise SpeechUnavailableError(
                f"Failed to contact speech endpoint at {self.endpoint}: {exc}"
            ) from exc

        if not 200 <= resp.status_code < 300:
            try:
                body = resp.text
            except Exception:  # pragma: no cover - body decoding is best effort
                body = ""
            raise SpeechAPIError(resp.status_code, body, getattr(resp, "reason", "") or "")

        _debug_log(f"received {len(resp.content)} bytes for {len(text)} chars")
        return resp.content

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "OpenAISpeechClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = [
    "API_KEY_ENV",
    "DEFAULT_ENDPOINT",
    "ERROR_BODY_LIMIT",
    "MissingCredentialError",
    "OpenAISpeechClient",
    "SpeechAPIError",
    "SpeechUnavailableError",
    "VoiceConfig",
    "resolve_api_key",
    "set_debug_logging",
]
