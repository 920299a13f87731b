from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Iterable

from .extract import PhraseTask

PARTIAL_AUDIO_SUFFIX = ".part"


class OutputCache:
    """
    Keyed audio artifacts on disk, doubling as the idempotence cache.

    An artifact counts as produced only when it exists and is non-empty.
    """

    def __init__(self, output_dir: Path, audio_format: str = "mp3") -> None:
        self.output_dir = Path(output_dir)
        self.audio_format = audio_format.lstrip(".")

    def path_for(self, key: str) -> Path:
        return self.output_dir / f"{key}.{self.audio_format}"

    def should_skip(self, key: str) -> bool:
        path = self.path_for(key)
        try:
            return path.is_file() and path.stat().st_size > 0
        except OSError:
            return False

    def ensure_dir(self) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        return self.output_dir

    def write(self, key: str, data: bytes) -> Path:
        target = self.path_for(key)
        partial = target.with_name(target.name + PARTIAL_AUDIO_SUFFIX)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            partial.write_bytes(data)
            os.replace(partial, target)
        finally:
            partial.unlink(missing_ok=True)
        return target


def partition_tasks(
    tasks: Iterable[PhraseTask],
    cache: OutputCache,
    *,
    overwrite: bool = False,
    progress: Callable[[dict[str, object]], None] | None = None,
) -> tuple[list[PhraseTask], list[PhraseTask]]:
    """Split tasks into ``(pending, existing)`` before anything is queued."""
    pending: list[PhraseTask] = []
    existing: list[PhraseTask] = []
    for task in tasks:
        if not overwrite and cache.should_skip(task.key):
            existing.append(task)
            if progress is not None:
                progress(
                    {
                        "event": "task_skipped",
                        "key": task.key,
                        "output": cache.path_for(task.key),
                        "reason": "exists",
                    }
                )
            continue
        pending.append(task)
    return pending, existing


__all__ = ["OutputCache", "PARTIAL_AUDIO_SUFFIX", "partition_tasks"]
