from .cache import OutputCache, partition_tasks
from .config import BatchSettings, ConfigError, load_settings
from .csv_rows import looks_like_header, parse_csv, strip_header
from .extract import PhraseExtractor, PhraseTask, RowRejection, build_tasks, extract_leading_script
from .openai_speech import (
    MissingCredentialError,
    OpenAISpeechClient,
    SpeechAPIError,
    SpeechUnavailableError,
    VoiceConfig,
    resolve_api_key,
)
from .pipeline import InputFileError, RunSummary, run_batch
from .tts import TaskOutcome, run_tasks, synthesize_tasks

__all__ = [
    "BatchSettings",
    "ConfigError",
    "load_settings",
    "OutputCache",
    "partition_tasks",
    "parse_csv",
    "looks_like_header",
    "strip_header",
    "PhraseExtractor",
    "PhraseTask",
    "RowRejection",
    "build_tasks",
    "extract_leading_script",
    "OpenAISpeechClient",
    "VoiceConfig",
    "SpeechAPIError",
    "SpeechUnavailableError",
    "MissingCredentialError",
    "resolve_api_key",
    "InputFileError",
    "RunSummary",
    "run_batch",
    "TaskOutcome",
    "run_tasks",
    "synthesize_tasks",
]
