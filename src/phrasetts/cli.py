from __future__ import annotations

import argparse
import sys
import threading
from importlib import metadata
from pathlib import Path

import tomllib
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from .config import (
    DEFAULT_CONCURRENCY,
    DEFAULT_INTER_CALL_DELAY,
    DEFAULT_RETRY_DELAY,
    ConfigError,
    load_settings,
    resolve_config_path,
)
from .extract import TEXT_SOURCES
from .openai_speech import (
    MissingCredentialError,
    OpenAISpeechClient,
    resolve_api_key,
    set_debug_logging,
)
from .pipeline import InputFileError, RunSummary, run_batch


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover - defensive
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("phrasetts")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description=(
            "Synthesize one audio file per CSV row (primary, secondary, key) with the "
            "OpenAI speech API. Existing non-empty outputs are skipped."
        ),
    )
    ap.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"phrasetts {__version__}",
    )
    ap.add_argument(
        "input_path",
        nargs="?",
        help="Path to the phrase CSV (default: phrases.csv or the config file value).",
    )
    ap.add_argument(
        "-o",
        "--output-dir",
        help="Directory for generated audio files (default: audio).",
    )
    ap.add_argument(
        "--config",
        help="TOML config file with a [phrasetts] table (default: $PHRASETTS_CONFIG or ./phrasetts.toml).",
    )
    ap.add_argument(
        "--text-source",
        choices=list(TEXT_SOURCES),
        help=(
            "Which column to speak: 'secondary' (default) keeps the leading native-script run "
            "of the second column; 'primary' speaks the first column verbatim."
        ),
    )
    ap.add_argument("--model", help="Speech model (default: gpt-4o-mini-tts).")
    ap.add_argument("--voice", help="Voice name (default: alloy).")
    ap.add_argument(
        "--format",
        dest="audio_format",
        help="Audio format and file extension (default: mp3).",
    )
    ap.add_argument("--speed", type=float, help="Playback speed sent to the API (default: 0.95).")
    ap.add_argument("--instructions", help="Free-form delivery instructions for the voice.")
    ap.add_argument(
        "--no-instructions",
        action="store_true",
        help="Do not send any delivery instructions.",
    )
    ap.add_argument(
        "--jobs",
        type=int,
        dest="concurrency",
        help=f"Parallel synthesis workers (default: {DEFAULT_CONCURRENCY}).",
    )
    ap.add_argument(
        "--delay",
        type=float,
        dest="inter_call_delay",
        help=f"Seconds each worker waits between requests (default: {DEFAULT_INTER_CALL_DELAY}).",
    )
    ap.add_argument(
        "--retry-delay",
        type=float,
        help=f"Seconds to wait before the single retry of a failed request (default: {DEFAULT_RETRY_DELAY}).",
    )
    ap.add_argument(
        "--timeout",
        type=float,
        help="HTTP timeout in seconds for speech requests (default: 60).",
    )
    ap.add_argument("--endpoint", help="Speech endpoint URL.")
    ap.add_argument(
        "--overwrite",
        action="store_true",
        default=None,
        help="Regenerate audio even when the output file already exists.",
    )
    ap.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging (request details).",
    )
    return ap


class _RichProgress:
    def __init__(self, enabled: bool) -> None:
        self.console = Console(stderr=True)
        self.enabled = enabled and self.console.is_terminal
        self.lock = threading.Lock()
        self.progress: Progress | None = None
        self.overall_task = None

    def start(self, total: int) -> None:
        if not self.enabled or total <= 0 or self.progress is not None:
            return
        self.progress = Progress(
            TextColumn("{task.description}", justify="left"),
            BarColumn(bar_width=None),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            TimeRemainingColumn(),
            TextColumn("{task.fields[detail]}", justify="left"),
            console=self.console,
            auto_refresh=True,
            transient=False,
        )
        self.progress.start()
        self.overall_task = self.progress.add_task("All phrases", total=total, detail="")

    @staticmethod
    def _truncate(text: str, width: int = 24) -> str:
        text = text.strip()
        if len(text) <= width:
            return text
        return text[: max(0, width - 1)] + "…"

    def print_line(self, line: str) -> bool:
        if self.progress is None:
            return False
        self.progress.console.print(line, markup=False, highlight=False)
        return True

    def handle(self, event: dict[str, object]) -> None:
        if self.progress is None or self.overall_task is None:
            return
        event_type = event.get("event")
        key = str(event.get("key") or "")
        with self.lock:
            if event_type == "task_start":
                self.progress.update(self.overall_task, detail=self._truncate(key))
            elif event_type in {"task_done", "task_failed"}:
                self.progress.advance(self.overall_task, 1)

    def close(self) -> None:
        if self.progress is None:
            return
        with self.lock:
            self.progress.stop()
            self.progress = None


def _format_event(event: dict[str, object]) -> str | None:
    event_type = event.get("event")
    key = event.get("key")
    worker = event.get("worker")
    if event_type == "row_dropped":
        return f"skip line {event.get('line')} ({event.get('reason')})"
    if event_type == "task_skipped":
        return f"skip {key} ({event.get('reason', 'exists')})"
    if event_type == "batch_start":
        return f"Start: {event.get('total')} items -> {event.get('output_dir')}"
    if event_type == "task_done":
        return f"saved {event.get('output')}"
    if event_type == "task_retry":
        return f"worker{worker} {key} failed: {event.get('error')}"
    if event_type == "task_failed":
        return f"worker{worker} {key} retry failed: {event.get('error')}"
    return None


def _run(args: argparse.Namespace) -> int:
    set_debug_logging(bool(args.debug))

    try:
        config_path = resolve_config_path(args.config)
        settings = load_settings(config_path)
        instructions = "" if args.no_instructions else args.instructions
        settings = settings.with_overrides(
            input_path=args.input_path,
            output_dir=args.output_dir,
            text_source=args.text_source,
            model=args.model,
            voice=args.voice,
            audio_format=args.audio_format,
            speed=args.speed,
            instructions=instructions,
            concurrency=args.concurrency,
            inter_call_delay=args.inter_call_delay,
            retry_delay=args.retry_delay,
            timeout=args.timeout,
            endpoint=args.endpoint,
            overwrite=args.overwrite,
        )
    except ConfigError as exc:
        raise SystemExit(str(exc)) from exc

    try:
        api_key = resolve_api_key()
    except MissingCredentialError as exc:
        raise SystemExit(str(exc)) from exc

    progress_handler = _RichProgress(enabled=True)
    cancel_event = threading.Event()

    def _progress_printer(event: dict[str, object]) -> None:
        if event.get("event") == "batch_start":
            total = event.get("total")
            progress_handler.start(total if isinstance(total, int) else 0)
        line = _format_event(event)
        if line is not None:
            with progress_handler.lock:
                handled = progress_handler.print_line(line)
            if not handled:
                stream = sys.stderr if event.get("event") in {"task_retry", "task_failed"} else sys.stdout
                print(line, file=stream, flush=True)
        progress_handler.handle(event)

    summary: RunSummary
    client = OpenAISpeechClient(api_key, endpoint=settings.endpoint, timeout=settings.timeout)
    try:
        summary = run_batch(
            settings,
            client,
            progress=_progress_printer,
            cancel_event=cancel_event,
        )
    except KeyboardInterrupt:
        cancel_event.set()
        progress_handler.close()
        print("\nInterrupted. Stopping after in-flight requests.", flush=True)
        return 130
    except InputFileError as exc:
        raise SystemExit(str(exc)) from exc
    finally:
        progress_handler.close()
        client.close()

    print(summary.describe(), flush=True)
    return 0


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)
    return _run(args)


if __name__ == "__main__":
    raise SystemExit(main())
