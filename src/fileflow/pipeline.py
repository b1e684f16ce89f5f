"""Pipeline orchestration.

A pipeline is a set of stages wired together by channels. Running it
initializes every stage first (any Init failure aborts before anything
runs), then runs all stages concurrently until the sinks drain.

Example:
    >>> from fileflow import Channel, GlobRead, GunzipFile, WriteFile, run_pipeline
    >>>
    >>> raw, plain = Channel("raw"), Channel("plain")
    >>> stats = run_pipeline([
    ...     GlobRead(glob_pattern="logs/*.gz", outputs=[raw]),
    ...     GunzipFile(inputs=[raw], outputs=[plain]),
    ...     WriteFile(path="all.log", inputs=[plain]),
    ... ])
    >>> print(stats.to_dict())
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from fileflow.errors import (
    ConfigurationError,
    PipelineError,
    StageInitError,
    UpstreamFailedError,
)
from fileflow.stages.base import Stage

logger = logging.getLogger(__name__)


@dataclass
class PipelineStats:
    """Statistics for one pipeline run.

    Attributes:
        stages: Per-stage statistics, keyed by stage name.
        start_time: Run start timestamp.
        end_time: Run end timestamp.
        succeeded: Whether every stage reached a normal close.
        failed_stage: Name of the stage that caused a failure, if any.
        error: Description of the fatal error, if any.
    """

    stages: Dict[str, Dict[str, int]] = field(default_factory=dict)
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    succeeded: bool = False
    failed_stage: Optional[str] = None
    error: Optional[str] = None

    @property
    def elapsed_seconds(self) -> float:
        """Wall-clock duration of the run."""
        if self.start_time is None:
            return 0.0
        return (self.end_time or time.time()) - self.start_time

    @property
    def item_errors(self) -> int:
        """Item-scoped errors logged and skipped across all stages."""
        return sum(stats.get("errors", 0) for stats in self.stages.values())

    def to_dict(self) -> Dict[str, Any]:
        """Convert stats to dictionary."""
        return {
            "succeeded": self.succeeded,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "item_errors": self.item_errors,
            "failed_stage": self.failed_stage,
            "error": self.error,
            "stages": self.stages,
        }


class Pipeline:
    """A runnable set of wired stages.

    Attributes:
        stages: Stages in declaration order.
        stats: Statistics of the most recent run.
    """

    def __init__(self, stages: Sequence[Stage]):
        """Initialize the pipeline.

        Args:
            stages: Stages to run; their channels define the wiring.

        Raises:
            ConfigurationError: If stage names collide or the channel wiring
                is not one producer to one consumer.
        """
        self.stages: List[Stage] = list(stages)
        self.stats = PipelineStats()
        self._validate()

    def _validate(self) -> None:
        errors = []

        seen = set()
        for stage in self.stages:
            if stage.name in seen:
                errors.append(f"Duplicate stage name '{stage.name}'")
            seen.add(stage.name)

        producers: Dict[int, List[str]] = {}
        consumers: Dict[int, List[str]] = {}
        names: Dict[int, str] = {}
        for stage in self.stages:
            for channel in stage.outputs:
                producers.setdefault(id(channel), []).append(stage.name)
                names[id(channel)] = channel.name
            for channel in stage.inputs:
                consumers.setdefault(id(channel), []).append(stage.name)
                names[id(channel)] = channel.name

        for key, channel_name in names.items():
            writing = producers.get(key, [])
            reading = consumers.get(key, [])
            if len(writing) != 1:
                errors.append(
                    f"Channel '{channel_name}' needs exactly one producer, has {writing or 'none'}"
                )
            if len(reading) != 1:
                errors.append(
                    f"Channel '{channel_name}' needs exactly one consumer, has {reading or 'none'}"
                )

        if errors:
            raise ConfigurationError("Invalid pipeline wiring", errors)

    async def run_async(self) -> PipelineStats:
        """Initialize and run every stage.

        Returns:
            Run statistics.

        Raises:
            StageInitError: If any stage fails to initialize.
            PipelineError: If any stage fails while running.
        """
        self.stats = PipelineStats(start_time=time.time())
        logger.info(f"Starting pipeline with {len(self.stages)} stage(s)")

        try:
            for stage in self.stages:
                await stage.setup()
        except StageInitError as e:
            self._finish(failed=(e.stage, e))
            raise

        tasks = [asyncio.ensure_future(stage.run()) for stage in self.stages]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        failures = [
            (stage, task.exception())
            for stage, task in zip(self.stages, tasks)
            if task.done() and not task.cancelled() and task.exception() is not None
        ]
        if failures:
            root = self._root_cause(failures)
            self._finish(failed=(root[0].name, root[1]))
            raise PipelineError(root[0].name, root[1]) from root[1]

        self._finish()
        logger.info(
            f"Pipeline complete in {self.stats.elapsed_seconds:.2f}s "
            f"({self.stats.item_errors} item error(s) skipped)"
        )
        return self.stats

    def run(self) -> PipelineStats:
        """Run the pipeline to completion from synchronous code."""
        return asyncio.run(self.run_async())

    @staticmethod
    def _root_cause(failures: List[Tuple[Stage, BaseException]]) -> Tuple[Stage, BaseException]:
        for stage, error in failures:
            if not isinstance(error, UpstreamFailedError):
                return stage, error
        return failures[0]

    def _finish(self, failed: Optional[Tuple[str, BaseException]] = None) -> None:
        self.stats.end_time = time.time()
        self.stats.stages = {stage.name: stage.get_stats() for stage in self.stages}
        self.stats.succeeded = failed is None
        if failed is not None:
            self.stats.failed_stage, error = failed
            self.stats.error = str(error)
            logger.error(f"Pipeline failed in stage '{self.stats.failed_stage}': {error}")


def run_pipeline(stages: Sequence[Stage]) -> PipelineStats:
    """Convenience function to build and run a pipeline.

    Args:
        stages: Wired stages.

    Returns:
        Run statistics.
    """
    return Pipeline(stages).run()
