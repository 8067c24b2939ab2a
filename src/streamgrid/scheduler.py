"""Periodic tick loop driving a coordinator."""

import asyncio
import signal
from collections.abc import Callable

import structlog

from streamgrid.coordinator import MultiStreamCoordinator
from streamgrid.errors import StreamGridError
from streamgrid.types import ResourceSnapshot, SlotTelemetry, ViewModel

logger = structlog.get_logger()

TickInput = tuple[ResourceSnapshot, dict[str, SlotTelemetry]]
TickSource = Callable[[], TickInput | None]
ViewSink = Callable[[ViewModel], None]


class TickLoop:
    """Feeds resource snapshots into a coordinator on a fixed cadence.

    The coordinator itself never waits on anything; this loop owns the
    timing, stopping and cancellation around it.

    Attributes:
        interval: Seconds between ticks.
        one_shot: If True, run a single tick and exit.
    """

    def __init__(
        self,
        coordinator: MultiStreamCoordinator,
        source: TickSource,
        interval: float = 1.0,
        one_shot: bool = False,
        on_view: ViewSink | None = None,
    ):
        """Initialize tick loop.

        Args:
            coordinator: Coordinator to tick.
            source: Returns the next snapshot and telemetry, or None when exhausted.
            interval: Seconds between ticks.
            one_shot: If True, run once and exit.
            on_view: Called with each new view model.
        """
        self.coordinator = coordinator
        self.source = source
        self.interval = interval
        self.one_shot = one_shot
        self.on_view = on_view
        self.running = False
        self.ticks = 0

    async def start(self) -> None:
        """Run the loop until stopped, exhausted or cancelled."""
        self.running = True
        try:
            await self._main_loop()
        finally:
            self.running = False

    def stop(self) -> None:
        self.running = False

    async def _main_loop(self) -> None:
        """Pull inputs, tick, publish, sleep."""
        while self.running:
            try:
                tick_input = self.source()
            except StreamGridError as e:
                logger.error("tick source failed", tick=self.ticks, error=str(e), exc_info=True)
                break
            if tick_input is None:
                logger.info("tick source exhausted", ticks=self.ticks)
                break

            snapshot, telemetry = tick_input
            try:
                view = self.coordinator.tick(snapshot, telemetry)
            except StreamGridError as e:
                logger.error("tick failed", tick=self.ticks, error=str(e), exc_info=True)
            else:
                self.ticks += 1
                logger.info(
                    "view",
                    tick=self.ticks,
                    slots={sid: v.quality.name for sid, v in view.items()},
                    warnings=list(view.warnings),
                )
                if self.on_view:
                    self.on_view(view)

            if self.one_shot:
                break

            logger.debug("sleeping", interval=self.interval)
            await asyncio.sleep(self.interval)


async def run_tick_loop(
    coordinator: MultiStreamCoordinator,
    source: TickSource,
    interval: float = 1.0,
    one_shot: bool = False,
    on_view: ViewSink | None = None,
) -> TickLoop:
    """Run a tick loop with graceful shutdown on SIGINT/SIGTERM.

    Args:
        coordinator: Coordinator to tick.
        source: Snapshot/telemetry source.
        interval: Seconds between ticks.
        one_shot: If True, run once and exit.
        on_view: Called with each new view model.

    Returns:
        The finished TickLoop (for its tick count).
    """
    loop_runner = TickLoop(
        coordinator,
        source,
        interval=interval,
        one_shot=one_shot,
        on_view=on_view,
    )
    task = asyncio.create_task(loop_runner.start())

    def handle_shutdown(sig: signal.Signals) -> None:
        logger.info("shutting down", signal=sig.name)
        loop_runner.stop()
        task.cancel()

    def make_handler(sig: signal.Signals) -> Callable[[], None]:
        return lambda: handle_shutdown(sig)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, make_handler(sig))

    try:
        await task
    except asyncio.CancelledError:
        pass
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)

    return loop_runner
