#!/usr/bin/env python3
"""Common error types shared across modules.

Normalization failures are plain values rather than exceptions so a bad
source never interrupts the other sources of an aggregation pass.
"""

from dataclasses import dataclass
from enum import Enum


class FailureReason(str, Enum):
    """Why a source produced no episode."""
    UNRECOGNIZED_FORMAT = "UnrecognizedFormat"
    NO_AUDIO_FOUND = "NoAudioFound"
    MALFORMED_ITEM = "MalformedItem"


@dataclass(frozen=True)
class NormalizationFailure:
    """Per-source, non-fatal outcome of a normalization pass.

    Attributes:
        source_label: Label of the feed source that failed.
        reason: One of the FailureReason values.
        detail: Optional human-readable diagnostic for logs.
    """

    source_label: str
    reason: FailureReason
    detail: str = ""

    def __str__(self) -> str:
        if self.detail:
            return f"[{self.source_label}] {self.reason.value}: {self.detail}"
        return f"[{self.source_label}] {self.reason.value}"


class ConfigError(Exception):
    """Raised when the feeds configuration cannot be loaded or is invalid."""

    def __init__(self, message: str = "Invalid feeds configuration", path: str = ""):
        super().__init__(message)
        self.path = path


__all__ = ["FailureReason", "NormalizationFailure", "ConfigError"]
