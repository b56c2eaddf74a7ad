"""Incremental in-place HEVC re-encoding of video libraries."""

__version__ = "0.1.0"
