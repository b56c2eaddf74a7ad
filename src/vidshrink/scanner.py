"""Directory walking and video file discovery."""

from __future__ import annotations

import logging
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Union

from vidshrink.failures import Failure, FailureKind

logger = logging.getLogger(__name__)

SOURCE_EXTENSIONS: tuple[str, ...] = (".mp4", ".mov")

# Appended to the full original file name, e.g. clip.mov -> clip.mov_x265.mp4
OUTPUT_SUFFIX = "_x265.mp4"


@dataclass(frozen=True)
class VideoFile:
    """A regular file that is a candidate for shrinking."""

    path: Path
    size_bytes: int
    modified: int


@dataclass(frozen=True)
class ScanFailure:
    """An entry the walker could not inspect."""

    path: Path
    failure: Failure


ScanEntry = Union[VideoFile, ScanFailure]


def is_eligible(name: str) -> bool:
    """True for source videos that are not transcoder output."""
    lowered = name.lower()
    if not lowered.endswith(SOURCE_EXTENSIONS):
        return False
    return not any(lowered.endswith(ext + OUTPUT_SUFFIX) for ext in SOURCE_EXTENSIONS)


def walk_videos(root: Path) -> Iterator[ScanEntry]:
    """Yield candidate videos under ``root`` plus entries that failed.

    A root naming a regular file yields exactly that file, without applying
    the extension filter. Directories are walked depth-first with an explicit
    worklist; symlinks found along the way are not followed.
    """
    try:
        root_stat = root.stat()
    except OSError as e:
        yield ScanFailure(root, Failure(FailureKind.METADATA, str(e)))
        return

    if stat.S_ISREG(root_stat.st_mode):
        yield VideoFile(root, root_stat.st_size, int(root_stat.st_mtime))
        return
    if not stat.S_ISDIR(root_stat.st_mode):
        logger.debug("Ignoring %s: not a regular file or directory", root)
        return

    pending: list[Path] = [root]
    while pending:
        directory = pending.pop()
        try:
            children = sorted(directory.iterdir())
        except OSError as e:
            yield ScanFailure(directory, Failure(FailureKind.READ_DIR, str(e)))
            continue

        subdirs: list[Path] = []
        for child in children:
            try:
                st = child.lstat()
            except OSError as e:
                yield ScanFailure(child, Failure(FailureKind.METADATA, str(e)))
                continue

            if stat.S_ISDIR(st.st_mode):
                subdirs.append(child)
            elif not stat.S_ISREG(st.st_mode):
                logger.debug("Ignoring %s: not a regular file", child)
            elif not is_eligible(child.name):
                logger.debug("Ignoring %s: not an eligible video", child)
            else:
                yield VideoFile(child, st.st_size, int(st.st_mtime))

        # Reversed so that popping visits subdirectories in name order
        pending.extend(reversed(subdirs))
