"""
Progress reporting for the indexing pipeline.

Observers are plain callables or objects with an ``on_progress`` method.
They are called synchronously at each stage transition; an observer that
raises is logged and skipped so it never fails the run.

Dependencies: asyncio (stdlib)
System role: Stage-transition events for callers of IndexingPipeline
"""

import asyncio
import logging
from typing import Callable, Iterable, Protocol, Union, runtime_checkable

from clinical_index.models.indexing import STAGE_PERCENT, IndexingProgress, IndexingStage

logger = logging.getLogger(__name__)


@runtime_checkable
class ProgressObserver(Protocol):
    def on_progress(self, event: IndexingProgress) -> None: ...


ProgressCallback = Callable[[IndexingProgress], None]
ProgressSink = Union[ProgressObserver, ProgressCallback]


class QueueProgressObserver:
    """
    Bounded channel of progress events.

    When the queue is full the oldest event is dropped, so a slow consumer
    always sees the most recent stages and never blocks the pipeline.
    """

    def __init__(self, maxsize: int = 100) -> None:
        self.queue: asyncio.Queue[IndexingProgress] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def on_progress(self, event: IndexingProgress) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.queue.get_nowait()
            self.dropped += 1
            self.queue.put_nowait(event)

    def drain(self) -> list[IndexingProgress]:
        """Pop every queued event without waiting."""
        events = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events


class ProgressReporter:
    """Fan out stage events to every registered observer."""

    def __init__(self, sinks: Iterable[ProgressSink | None] = ()) -> None:
        self._sinks = [sink for sink in sinks if sink is not None]

    def emit(
        self,
        stage: IndexingStage,
        processed: int,
        total: int,
        error: str | None = None,
    ) -> IndexingProgress:
        event = IndexingProgress(
            stage=stage,
            chunks_processed=processed,
            chunks_total=total,
            percent_complete=STAGE_PERCENT[stage],
            error=error,
        )
        for sink in self._sinks:
            try:
                if isinstance(sink, ProgressObserver):
                    sink.on_progress(event)
                else:
                    sink(event)
            except Exception as e:
                logger.warning(
                    f"{__name__}:emit - Progress observer failed at stage {stage.value}",
                    extra={"observer": type(sink).__name__, "error": str(e)},
                )
        return event
