"""Window aggregator - the CloudWatch push loop.

Each cycle polls the device provider, folds the samples into the open window
and, once the flush period has elapsed, hands the window to the dispatcher.
Cycles start on whole-second boundaries one resolution step apart; the sleep
target is derived from the truncated wall clock so work time never drifts the
schedule.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from ..devices import DeviceProvider
from ..errors import ConfigError
from .dispatcher import FlushDispatcher
from .records import Unit
from .samples import build_samples
from .window import (
    FlushBatch,
    Window,
    create_window,
    elapsed_seconds,
    next_tick,
    truncate_to_second,
)

logger = logging.getLogger("nvidia_cloudwatch.cloudwatch.aggregator")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WindowAggregator:
    def __init__(
        self,
        provider: DeviceProvider,
        dispatcher: FlushDispatcher,
        instance: str,
        resolution: int = 60,
        period: int = 60,
        memory_unit: Unit = Unit.MEGABYTES,
        tolerance: float = 0.0,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if resolution not in (1, 60):
            raise ConfigError("Resolution must be 1 or 60")
        if period < resolution:
            raise ConfigError("Period must be greater than or equal to resolution.")

        self.provider = provider
        self.dispatcher = dispatcher
        self.instance = instance
        self.resolution = resolution
        self.period = period
        self.memory_unit = memory_unit
        self.clock = clock
        self.sleep = sleep
        self.window: Window = create_window(resolution, tolerance)
        self.last_flush: Optional[datetime] = None
        self.cycles = 0

    async def run_cycle(self) -> datetime:
        """Collect, merge and maybe flush once. Returns the next tick boundary."""
        if self.last_flush is None:
            self.last_flush = truncate_to_second(self.clock())

        tick = next_tick(self.clock(), self.resolution)

        loop = asyncio.get_running_loop()
        devices = await loop.run_in_executor(None, self.provider.get_devices)
        records = build_samples(devices, self.instance, self.resolution,
                                self.clock(), self.memory_unit)
        self.window.add(records)
        self.cycles += 1
        logger.debug(f"cycle {self.cycles}: merged {len(records)} records")

        now = self.clock()
        if elapsed_seconds(now, self.last_flush) >= self.period:
            self.flush(now)

        return tick

    def flush(self, now: Optional[datetime] = None) -> FlushBatch:
        """Hand the open window to the dispatcher and start a new one"""
        batch = self.window.take()
        self.last_flush = truncate_to_second(now or self.clock())
        logger.info(f"flushing {len(batch.records())} records in {len(batch)} requests")
        self.dispatcher.dispatch(batch)
        return batch

    async def run(self, cycles: Optional[int] = None) -> None:
        """Run forever, or for a fixed number of cycles"""
        logger.info(f"cloudwatch exporter starting: resolution={self.resolution}s, "
                    f"period={self.period}s, instance={self.instance}")
        done = 0
        while cycles is None or done < cycles:
            tick = await self.run_cycle()
            done += 1
            delay = (tick - self.clock()).total_seconds()
            await self.sleep(max(0.0, delay))
