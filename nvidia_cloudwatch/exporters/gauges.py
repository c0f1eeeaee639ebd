"""Live GPU gauges for Prometheus scraping.

A fixed-period loop copies every device snapshot into three gauge families
labelled by (uuid, model). Values are overwritten each tick; nothing is
aggregated here.
"""

import asyncio
import logging
import time
from typing import Optional

from prometheus_client import CollectorRegistry, Gauge

from ..devices import DeviceProvider

GAUGE_INTERVAL = 2  # seconds
LABELS = ("uuid", "model")


class GpuGauges:
    """The three gauge families, registered on one registry"""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self.mem_used = Gauge("gpu_mem_used", "GPU memory used (MiB)", LABELS, registry=self.registry)
        self.mem_total = Gauge("gpu_mem_total", "GPU memory total (MiB)", LABELS, registry=self.registry)
        self.usage = Gauge("gpu_usage", "GPU utilization (%)", LABELS, registry=self.registry)


class LiveGaugePublisher:
    def __init__(self, provider: DeviceProvider, gauges: GpuGauges,
                 interval: float = GAUGE_INTERVAL, logger: logging.Logger = None):
        self.provider = provider
        self.gauges = gauges
        self.interval = interval
        self.logger = logger or logging.getLogger("nvidia_cloudwatch.exporters.gauges")
        self.last_publish = 0.0

    def publish_once(self) -> int:
        """Poll the provider and set every device's gauges. Returns the device count."""
        devices = self.provider.get_devices()
        for device in devices:
            labels = {"uuid": device.uuid, "model": device.model}
            self.gauges.mem_used.labels(**labels).set(device.used_mib)
            self.gauges.mem_total.labels(**labels).set(device.total_mib)
            self.gauges.usage.labels(**labels).set(device.gpu_utilization)
        self.last_publish = time.time()
        return len(devices)

    async def run(self, cycles: Optional[int] = None) -> None:
        """Publish every interval; provider failures propagate and end the loop"""
        self.logger.info(f"gauge publisher starting; polling every {self.interval}s")
        loop = asyncio.get_running_loop()
        done = 0
        while cycles is None or done < cycles:
            count = await loop.run_in_executor(None, self.publish_once)
            self.logger.debug(f"published gauges for {count} devices")
            done += 1
            await asyncio.sleep(self.interval)
