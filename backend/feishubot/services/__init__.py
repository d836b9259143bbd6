"""Services module - background image jobs and speech transcription."""

from .image_jobs import ImageJob, ImageJobOutcome, ImageJobRunner
from .transcription import TranscriptionService

__all__ = ['ImageJob', 'ImageJobOutcome', 'ImageJobRunner', 'TranscriptionService']
