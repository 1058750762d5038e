"""Chunk indexing pipeline and progress reporting."""

from clinical_index.core.indexing.pipeline import IndexingPipeline
from clinical_index.core.indexing.progress import (
    ProgressObserver,
    ProgressReporter,
    QueueProgressObserver,
)

__all__ = ["IndexingPipeline", "ProgressObserver", "ProgressReporter", "QueueProgressObserver"]
