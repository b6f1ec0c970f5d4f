"""Custom exceptions for the image randomizer engine."""

from __future__ import annotations


class ImageRandomizerError(Exception):
    """Base exception for all image randomizer errors."""


class UnsupportedFileTypeError(ImageRandomizerError):
    """Raised when a file does not carry one of the accepted extensions."""


class ArchiveExtractionError(ImageRandomizerError):
    """Raised when a source archive cannot be extracted."""


class ToolExecutionError(ImageRandomizerError):
    """Raised when an external image or metadata tool fails."""


class BatchProcessingError(ImageRandomizerError):
    """Raised when a batch job cannot continue (job-level fatal)."""
