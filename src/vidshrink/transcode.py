"""ffprobe/ffmpeg wrapper: shrink one video and replace it in place."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from vidshrink.failures import Failure, FailureKind, FatalError
from vidshrink.progress import LiveProgress, ProgressParser
from vidshrink.scanner import OUTPUT_SUFFIX

logger = logging.getLogger(__name__)

# Fixed encode policy: HEVC at constant quality, audio untouched.
VIDEO_CODEC = "libx265"
X265_PARAMS = "crf=25:log-level=fatal"

_READ_CHUNK = 4096


@dataclass(frozen=True)
class JobOutcome:
    """Sizes on success, or the reason the job failed."""

    size_before: int
    size_after: int | None = None
    failure: Failure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


def check_encoder_available(ffmpeg_bin: str = "ffmpeg") -> None:
    """Verify that the encoder is on PATH. Raises RuntimeError if not found."""
    if shutil.which(ffmpeg_bin) is None:
        raise RuntimeError(
            f"{ffmpeg_bin} not found on PATH. Install ffmpeg to continue."
        )


def output_path_for(source: Path) -> Path:
    """Sibling path the encoder writes to before the original is replaced."""
    return source.with_name(source.name + OUTPUT_SUFFIX)


def build_probe_command(source: Path, ffprobe_bin: str = "ffprobe") -> list[str]:
    return [
        ffprobe_bin,
        "-loglevel", "fatal",
        "-i", str(source),
        "-show_entries", "format=duration",
        "-of", "csv=p=0",
        "-sexagesimal",
    ]


def build_encode_command(
    source: Path, dest: Path, ffmpeg_bin: str = "ffmpeg"
) -> list[str]:
    return [
        ffmpeg_bin,
        "-loglevel", "fatal",
        "-stats",
        "-i", str(source),
        "-c:v", VIDEO_CODEC,
        "-c:a", "copy",
        "-x265-params", X265_PARAMS,
        "-y",
        str(dest),
    ]


def parse_sexagesimal(text: str) -> float | None:
    """Convert ffprobe's "H:MM:SS.ffffff" to seconds."""
    parts = text.strip().split(":")
    if len(parts) != 3:
        return None
    try:
        hours, minutes, seconds = int(parts[0]), int(parts[1]), float(parts[2])
    except ValueError:
        return None
    return hours * 3600 + minutes * 60 + seconds


def probe_duration(source: Path, ffprobe_bin: str = "ffprobe") -> str | None:
    """Return the video length as "H:MM:SS", or None if it cannot be probed."""
    try:
        result = subprocess.run(
            build_probe_command(source, ffprobe_bin),
            capture_output=True,
            text=True,
            errors="replace",
        )
    except OSError:
        return None
    if result.returncode != 0:
        return None
    for line in result.stdout.splitlines():
        if line.strip():
            # Drop the fractional seconds
            return line.strip().split(".")[0]
    return None


class TranscodeJob:
    """Probe, encode, validate and replace a single video."""

    def __init__(
        self,
        source: Path,
        size_before: int,
        *,
        ffmpeg_bin: str = "ffmpeg",
        ffprobe_bin: str = "ffprobe",
        display: LiveProgress | None = None,
    ) -> None:
        self.source = source
        self.size_before = size_before
        self.dest = output_path_for(source)
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin
        self.display = display

    def run(self) -> JobOutcome:
        """Run the job to completion.

        Returns a JobOutcome; raises FatalError if ffmpeg cannot be started.
        """
        logger.info("Compressing %s...", self.source)
        duration = probe_duration(self.source, self.ffprobe_bin)
        if duration is not None:
            logger.info("Video length: %s", duration)

        returncode = self._encode(parse_sexagesimal(duration) if duration else None)
        if returncode != 0:
            return self._failed(
                FailureKind.ENCODE_FAILED, f"{self.ffmpeg_bin} exited with code {returncode}"
            )

        try:
            with self.dest.open("rb") as f:
                size_after = os.fstat(f.fileno()).st_size
        except OSError as e:
            return self._failed(FailureKind.OPEN_OUTPUT, str(e))

        try:
            self.dest.replace(self.source)
        except OSError as e:
            # The transcoded file stays next to the original
            return self._failed(FailureKind.OVERRIDE, str(e))

        return JobOutcome(self.size_before, size_after)

    def _encode(self, duration_secs: float | None) -> int:
        cmd = build_encode_command(self.source, self.dest, self.ffmpeg_bin)
        logger.debug("Running: %s", " ".join(cmd))
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise FatalError(FailureKind.ENCODER_LAUNCH, f"{self.ffmpeg_bin}: {e}") from e

        parser = ProgressParser()
        if self.display is not None:
            self.display.start(self.source.name, duration_secs)
        try:
            stderr = process.stderr
            if stderr is not None:
                for chunk in iter(lambda: stderr.read1(_READ_CHUNK), b""):
                    sample = parser.feed(chunk)
                    if sample is not None and self.display is not None:
                        self.display.update(sample)
            process.wait()
        finally:
            if process.poll() is None:
                logger.warning("Stopping %s for %s", self.ffmpeg_bin, self.source)
                process.kill()
                process.wait()
            if self.display is not None:
                self.display.finish()
        return process.returncode

    def _failed(self, kind: FailureKind, cause: str) -> JobOutcome:
        failure = Failure(kind, cause)
        logger.warning("Skipping %s: %s", self.source, failure)
        return JobOutcome(self.size_before, failure=failure)
