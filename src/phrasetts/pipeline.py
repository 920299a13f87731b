from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from .cache import OutputCache, partition_tasks
from .config import BatchSettings
from .csv_rows import Row, iter_csv_rows, strip_header
from .extract import PhraseExtractor, RowRejection, build_tasks
from .openai_speech import OpenAISpeechClient
from .tts import (
    STATUS_FAILED,
    STATUS_SKIPPED,
    STATUS_SUCCEEDED,
    TaskOutcome,
    synthesize_tasks,
)

ProgressCallback = Callable[[dict[str, object]], None]


class InputFileError(FileNotFoundError):
    """Raised when the phrase table is missing, unreadable or empty."""


@dataclass
class RunSummary:
    output_dir: Path
    rows: int = 0
    rejected: list[RowRejection] = field(default_factory=list)
    outcomes: list[TaskOutcome] = field(default_factory=list)

    def _count(self, status: str) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def requested(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return self._count(STATUS_SUCCEEDED)

    @property
    def skipped(self) -> int:
        return self._count(STATUS_SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(STATUS_FAILED)

    def describe(self) -> str:
        return (
            f"Done: {self.succeeded} generated, {self.skipped} skipped (exists), "
            f"{self.failed} failed, {len(self.rejected)} rows dropped -> {self.output_dir}"
        )


def load_rows(csv_path: Path) -> list[tuple[int, Row]]:
    if not csv_path.is_file():
        raise InputFileError(f"Input file not found: {csv_path}")
    try:
        text = csv_path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        raise InputFileError(f"Failed to read input file {csv_path}: {exc}") from exc
    rows = list(iter_csv_rows(text))
    if not rows:
        raise InputFileError(f"Input file is empty: {csv_path}")
    return rows


def run_batch(
    settings: BatchSettings,
    client: OpenAISpeechClient,
    *,
    progress: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RunSummary:
    """
    Read the phrase table, queue every row that still needs audio, and synthesize it.

    Rows that cannot become a task and artifacts that already exist are
    reported through ``progress`` and never reach ``client``.
    """
    rows = strip_header(load_rows(settings.input_path), settings.header_tokens)
    extractor = PhraseExtractor(text_source=settings.text_source)
    tasks, rejected = build_tasks(rows, extractor, progress=progress)

    cache = OutputCache(settings.output_dir, settings.audio_format)
    cache.ensure_dir()
    pending, existing = partition_tasks(
        tasks,
        cache,
        overwrite=settings.overwrite,
        progress=progress,
    )
    summary = RunSummary(output_dir=settings.output_dir, rows=len(rows), rejected=rejected)
    summary.outcomes.extend(
        TaskOutcome(key=task.key, status=STATUS_SKIPPED, output=cache.path_for(task.key))
        for task in existing
    )

    if progress is not None:
        progress(
            {
                "event": "batch_start",
                "total": len(pending),
                "skipped": len(existing),
                "dropped": len(rejected),
                "output_dir": settings.output_dir,
            }
        )
    summary.outcomes.extend(
        synthesize_tasks(
            pending,
            client,
            cache,
            settings.voice_config(),
            concurrency=settings.concurrency,
            inter_call_delay=settings.inter_call_delay,
            retry_delay=settings.retry_delay,
            progress=progress,
            cancel_event=cancel_event,
            sleep=sleep,
        )
    )
    return summary


__all__ = ["InputFileError", "RunSummary", "load_rows", "run_batch"]
