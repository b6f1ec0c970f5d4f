"""Public API for the image randomizer package."""

from .broadcast import ChannelRegistry, ProgressChannel, Subscription
from .exceptions import (
    ArchiveExtractionError,
    BatchProcessingError,
    ImageRandomizerError,
    ToolExecutionError,
    UnsupportedFileTypeError,
)
from .executor import TransformationExecutor, TransformOutcome, TransformResult
from .live import ConnectionState, LiveProgressClient
from .metadata import FolderMetadataCache, synthesize_metadata
from .models import (
    EffectKind,
    EventKind,
    JobStatus,
    MetadataSet,
    ModificationPlan,
    ProcessingJob,
    ProgressEvent,
    TransformationConfig,
)
from .orchestrator import BatchOrchestrator, JobStage
from .planner import plan_modifications
from .tools import ExifToolWriter, ImageMagickTool
from . import utils

__all__ = [
    "ArchiveExtractionError",
    "BatchOrchestrator",
    "BatchProcessingError",
    "ChannelRegistry",
    "ConnectionState",
    "EffectKind",
    "EventKind",
    "ExifToolWriter",
    "FolderMetadataCache",
    "ImageMagickTool",
    "ImageRandomizerError",
    "JobStage",
    "JobStatus",
    "LiveProgressClient",
    "MetadataSet",
    "ModificationPlan",
    "ProcessingJob",
    "ProgressChannel",
    "ProgressEvent",
    "Subscription",
    "ToolExecutionError",
    "TransformOutcome",
    "TransformResult",
    "TransformationConfig",
    "TransformationExecutor",
    "UnsupportedFileTypeError",
    "plan_modifications",
    "synthesize_metadata",
    "utils",
]
