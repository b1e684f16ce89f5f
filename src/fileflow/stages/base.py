"""Base stage class.

This module defines the lifecycle every pipeline stage follows:

    INIT -> RUNNING -> CLOSED        (or FAILED)

``init()`` performs one-shot setup. ``transform()`` (the consume loop) and
``produce()`` (the produce loop) then run concurrently. When both finish,
the stage closes each output channel it owns exactly once. When either one
raises, the outputs are failed instead, so downstream stages see an abrupt
close rather than a clean end of data.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Dict, FrozenSet, List, Optional, Sequence

from fileflow.config import StageConfig
from fileflow.errors import ConfigurationError, StageInitError
from fileflow.streaming.channel import Channel, Item, ItemKind

logger = logging.getLogger(__name__)


class StageState(str, Enum):
    """Lifecycle state of a stage."""

    INIT = "init"
    RUNNING = "running"
    CLOSED = "closed"
    FAILED = "failed"


async def run_concurrently(*coros: Awaitable[Any]) -> List[Any]:
    """Run coroutines concurrently, cancelling the rest if one fails.

    Returns:
        Results in argument order.

    Raises:
        The first exception raised by any coroutine.
    """
    tasks = [asyncio.ensure_future(coro) for coro in coros]
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

    for task in tasks:
        if task.done() and not task.cancelled() and task.exception() is not None:
            raise task.exception()

    return [task.result() for task in tasks]


class Stage:
    """Base class for all pipeline stages.

    Subclasses set ``config_class`` and ``accepts`` and override any of
    ``init()``, ``transform()`` and ``produce()``. A stage with no upstream
    leaves ``transform()`` empty; a stage that only reacts to upstream input
    leaves ``produce()`` empty.

    Attributes:
        name: Stage name used in logs and errors.
        config: Validated stage configuration.
        inputs: Upstream channels consumed by this stage.
        outputs: Downstream channels owned by this stage.
        state: Current lifecycle state.

    Example:
        >>> class Upper(Stage):
        ...     accepts = frozenset({ItemKind.TEXT})
        ...
        ...     async def transform(self):
        ...         async for item in self.consume():
        ...             await self.output.emit_text(item.payload.upper())
    """

    config_class = StageConfig
    accepts: FrozenSet[ItemKind] = frozenset(ItemKind)

    def __init__(
        self,
        config: Optional[StageConfig] = None,
        *,
        inputs: Sequence[Channel] = (),
        outputs: Sequence[Channel] = (),
        name: Optional[str] = None,
        **options: Any,
    ):
        """Initialize the stage.

        Args:
            config: Stage configuration; built from ``options`` when omitted.
            inputs: Upstream channels.
            outputs: Downstream channels owned by this stage.
            name: Stage name (defaults to the class name).
            **options: Configuration fields, used when ``config`` is None.
        """
        if config is None:
            config = self.config_class.from_dict(options)
        elif options:
            raise ConfigurationError(
                f"{self.__class__.__name__} got both a config and keyword options",
                [f"unexpected option '{key}'" for key in sorted(options)],
            )
        if not isinstance(config, self.config_class):
            raise ConfigurationError(
                f"{self.__class__.__name__} requires a {self.config_class.__name__}, "
                f"got {type(config).__name__}"
            )

        self.config = config
        self.inputs: List[Channel] = list(inputs)
        self.outputs: List[Channel] = list(outputs)
        self.name = name or self.__class__.__name__
        self.state = StageState.INIT
        self._initialized = False
        self._stats = {
            "items_in": 0,
            "items_out": 0,
            "items_dropped": 0,
            "errors": 0,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, state={self.state.value})"

    @property
    def input(self) -> Channel:
        """The single upstream channel."""
        if not self.inputs:
            raise ConfigurationError(f"Stage '{self.name}' has no input channel")
        return self.inputs[0]

    @property
    def output(self) -> Channel:
        """The single downstream channel."""
        if not self.outputs:
            raise ConfigurationError(f"Stage '{self.name}' has no output channel")
        return self.outputs[0]

    # Lifecycle hooks

    async def init(self) -> None:
        """One-shot setup; validates the configuration.

        Subclasses extending this must call ``await super().init()`` first.
        """
        self.config.ensure_valid()

    async def transform(self) -> None:
        """Consume loop. Empty for stages without upstream input."""

    async def produce(self) -> None:
        """Produce loop. Empty for stages without self-originated data."""

    # Driver

    async def setup(self) -> None:
        """Run ``init()`` once.

        Raises:
            StageInitError: If initialization fails; the stage never runs.
        """
        if self._initialized:
            return
        if self.state is not StageState.INIT:
            raise RuntimeError(f"Stage '{self.name}' cannot be initialized in state {self.state.value}")

        try:
            await self.init()
        except Exception as e:
            self.state = StageState.FAILED
            logger.error(f"[{self.name}] Initialization failed: {e}")
            raise StageInitError(self.name, e) from e

        self._initialized = True
        logger.debug(f"[{self.name}] Initialized")

    async def run(self) -> None:
        """Drive the stage through its whole lifecycle.

        Raises:
            StageInitError: If ``init()`` fails.
            Exception: Whatever a loop raised; outputs are failed first.
        """
        await self.setup()

        self.state = StageState.RUNNING
        logger.debug(f"[{self.name}] Running")

        try:
            await run_concurrently(self.transform(), self.produce())
        except BaseException as e:
            self.state = StageState.FAILED
            for channel in self.outputs:
                await channel.fail(e)
            if not isinstance(e, asyncio.CancelledError):
                logger.error(f"[{self.name}] Stage failed: {e}")
            raise

        if getattr(self.config, "close_on_end", True):
            for channel in self.outputs:
                await channel.close()

        self.state = StageState.CLOSED
        logger.info(f"[{self.name}] Finished: {self._stats}")

    # Helpers for subclasses

    def consume(self, channel: Optional[Channel] = None):
        """Iterate an input channel, enforcing the accepted shapes."""
        channel = channel or self.input
        return self._counted(channel.iterate(accepts=self.accepts))

    async def _counted(self, items):
        async for item in items:
            self._update_stats(items_in=1)
            yield item

    async def emit(self, item: Item, channel: Optional[Channel] = None) -> None:
        """Emit an item downstream and count it."""
        await (channel or self.output).emit(item)
        self._update_stats(items_out=1)

    def get_stats(self) -> Dict[str, int]:
        """Get processing statistics.

        Returns:
            Dictionary with processing statistics.
        """
        return self._stats.copy()

    def _update_stats(
        self, items_in: int = 0, items_out: int = 0, items_dropped: int = 0, errors: int = 0
    ) -> None:
        self._stats["items_in"] += items_in
        self._stats["items_out"] += items_out
        self._stats["items_dropped"] += items_dropped
        self._stats["errors"] += errors
