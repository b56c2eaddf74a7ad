"""CLI entry point for vidshrink."""

from __future__ import annotations

import logging
import signal
from pathlib import Path
from types import FrameType
from typing import Any, NoReturn, Optional

import typer

from vidshrink import __version__
from vidshrink.config import DEFAULT_CONFIG_FILE, ShrinkConfig, load_config, merge_config
from vidshrink.failures import Failure, FailureKind, FatalError
from vidshrink.ledger import Ledger
from vidshrink.logging_setup import setup_logging
from vidshrink.progress import LiveProgress
from vidshrink.reporter import drain_and_report, format_size
from vidshrink.scanner import ScanFailure, VideoFile, walk_videos
from vidshrink.transcode import TranscodeJob, check_encoder_available

logger = logging.getLogger(__name__)

# Set by the signal handler to request a graceful stop
_shutdown_requested = False

app = typer.Typer(
    name="vidshrink",
    help="Shrink every .mp4/.mov under a path to HEVC, in place, remembering what is done.",
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"vidshrink {__version__}")
        raise typer.Exit()


def _resolve_config_path(config: Optional[str]) -> Path | None:
    """Return the config file to read, or None to run on defaults."""
    if config is not None:
        path = Path(config)
        if not path.exists():
            typer.echo(f"Error: Config file not found: {path}", err=True)
            raise typer.Exit(code=1)
        return path
    if DEFAULT_CONFIG_FILE.exists():
        return DEFAULT_CONFIG_FILE
    return None


def _build_config(
    config_path: Path | None,
    root: str,
    log_level: Optional[str],
) -> ShrinkConfig:
    """Load TOML config (if any) and merge with CLI overrides."""
    file_config = load_config(config_path) if config_path is not None else {}
    cli_overrides: dict[str, Any] = {"root": root}
    if log_level is not None:
        cli_overrides["log_level"] = log_level
    return merge_config(file_config, cli_overrides)


def _ledger_dir(root: Path) -> Path:
    """The ledger lives in the root directory, or beside a single-file root."""
    return root if root.is_dir() else root.parent


@app.command()
def run(
    root: str = typer.Argument(..., help="Video file or directory to shrink"),
    config: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file (default: ./vidshrink.toml if present)"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override log level (DEBUG, INFO, ...)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="List what would be compressed without running ffmpeg"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True, help="Print version and exit"),
) -> None:
    """Shrink videos under ROOT and replace them in place."""
    config_path = _resolve_config_path(config)
    try:
        cfg = _build_config(config_path, root, log_level)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    setup_logging(cfg.log_level, cfg.log_file)

    if not dry_run:
        # Fail fast if ffmpeg is not installed
        try:
            check_encoder_available(cfg.ffmpeg_bin)
        except RuntimeError as e:
            logger.error("%s", e)
            raise typer.Exit(code=1)

    logger.info("vidshrink v%s: shrinking %s", __version__, cfg.root)
    if dry_run:
        logger.info("Dry-run mode: nothing will be encoded or recorded")

    _run_pipeline(cfg, dry_run=dry_run)


def _run_pipeline(cfg: ShrinkConfig, *, dry_run: bool = False) -> None:
    """Walk the tree and shrink every pending video."""
    global _shutdown_requested  # noqa: PLW0603
    _shutdown_requested = False

    # Install signal handlers for graceful shutdown
    prev_sigint = signal.getsignal(signal.SIGINT)
    prev_sigterm = signal.getsignal(signal.SIGTERM)

    def _handle_shutdown(signum: int, frame: FrameType | None) -> None:
        global _shutdown_requested  # noqa: PLW0603
        if _shutdown_requested:
            # Second signal: force exit immediately
            signal.signal(signal.SIGINT, signal.SIG_DFL)
            signal.signal(signal.SIGTERM, signal.SIG_DFL)
            raise KeyboardInterrupt
        _shutdown_requested = True
        sig_name = signal.Signals(signum).name
        logger.info("Received %s, will stop after the current file (press again to force quit)", sig_name)

    signal.signal(signal.SIGINT, _handle_shutdown)
    signal.signal(signal.SIGTERM, _handle_shutdown)

    try:
        _run_pipeline_inner(cfg, dry_run=dry_run)
    finally:
        # Restore original signal handlers
        signal.signal(signal.SIGINT, prev_sigint)
        signal.signal(signal.SIGTERM, prev_sigterm)


def _run_pipeline_inner(cfg: ShrinkConfig, *, dry_run: bool = False) -> None:
    """Inner pipeline logic, separated for signal handler cleanup."""
    ledger = Ledger.load(_ledger_dir(cfg.root))
    logger.debug("Ledger %s holds %d records", ledger.path, len(ledger))

    try:
        would_process = _walk_and_shrink(cfg, ledger, dry_run=dry_run)
    except FatalError as e:
        _abort(ledger, e)

    if dry_run:
        logger.info("Would compress %d files", would_process)

    drain_and_report(ledger, echo=typer.echo)

    if not dry_run:
        if not ledger.dirty and not ledger.directory.is_dir():
            logger.warning("Not writing ledger: %s does not exist", ledger.directory)
            return
        try:
            ledger.persist()
        except FatalError as e:
            _abort(ledger, e)


def _walk_and_shrink(cfg: ShrinkConfig, ledger: Ledger, *, dry_run: bool) -> int:
    """Process every walker entry; returns the number of dry-run candidates."""
    would_process = 0
    for entry in walk_videos(cfg.root):
        if _shutdown_requested:
            logger.info("Stopped: interrupted by signal")
            break

        if isinstance(entry, ScanFailure):
            logger.warning("Skipping %s: %s", entry.path, entry.failure)
            ledger.mark_skipped(entry.path, entry.failure)
            continue

        if ledger.is_processed(entry.path, entry.modified):
            logger.debug("Already processed: %s", entry.path)
            ledger.mark_skipped(entry.path, Failure(FailureKind.ALREADY_PROCESSED))
            continue

        if dry_run:
            logger.info("Would compress %s (%s)", entry.path, format_size(entry.size_bytes))
            would_process += 1
            continue

        _process_single_file(entry, cfg, ledger)
    return would_process


def _process_single_file(video: VideoFile, cfg: ShrinkConfig, ledger: Ledger) -> bool:
    """Shrink one video and record the result. Returns True on success."""
    job = TranscodeJob(
        video.path,
        video.size_bytes,
        ffmpeg_bin=cfg.ffmpeg_bin,
        ffprobe_bin=cfg.ffprobe_bin,
        display=LiveProgress(),
    )
    outcome = job.run()
    if outcome.failure is not None:
        ledger.mark_skipped(video.path, outcome.failure)
        return False

    assert outcome.size_after is not None
    ledger.mark_processed(video.path, outcome.size_before, outcome.size_after)
    # Flushed after every success, not only at exit
    ledger.persist()
    logger.info(
        "Compressed %s: %s -> %s",
        video.path,
        format_size(outcome.size_before),
        format_size(outcome.size_after),
    )
    return True


def _abort(ledger: Ledger, error: FatalError) -> NoReturn:
    """Flush the ledger (best effort) and exit with a failure status."""
    logger.error("Aborting: %s", error)
    if error.kind is not FailureKind.PERSIST:
        try:
            ledger.persist()
        except FatalError as persist_error:
            logger.error("%s", persist_error)
    raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
