#!/usr/bin/env python3
"""
nvidia-cloudwatch exporter

Flow:
- Load config (config.yml, then environment, then CLI flags)
- Open the GPU provider once; both pipelines share the handle
- Always: poll GPUs every 2s into Prometheus gauges, served at :2112/metrics
- With --cloudwatch-exporter: aggregate samples per resolution window and push
  them to CloudWatch every flush period

Any fatal condition (provider failure, bad config, invalid record) ends the
process with exit status 1 after logging. A failed CloudWatch push is logged
and the loops keep running.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Awaitable, List, Optional

from .cloudwatch import (
    CloudWatchSink,
    FlushDispatcher,
    Unit,
    WindowAggregator,
    create_cloudwatch_client,
)
from .config import ExporterConfig, load_config
from .devices import DeviceProvider, create_provider
from .errors import ExporterError, TransportError
from .exporters import GpuGauges, LiveGaugePublisher, create_app, create_server
from .http_client import get_instance_id

logger = logging.getLogger("nvidia_cloudwatch")


async def watch_flush_errors(errors: asyncio.Queue) -> None:
    """Isolate transport failures; anything else from a flush task is fatal"""
    while True:
        error = await errors.get()
        if isinstance(error, TransportError):
            logger.error("cloudwatch push failed, continuing: %s", error)
            continue
        if isinstance(error, ExporterError):
            raise error
        raise ExporterError(f"flush task failed: {error}") from error


async def build_aggregator(config: ExporterConfig, provider: DeviceProvider,
                           client=None, instance: Optional[str] = None) -> WindowAggregator:
    """Wire sample builder, window, dispatcher and sink for the push pipeline"""
    if instance is None:
        loop = asyncio.get_running_loop()
        instance = await loop.run_in_executor(None, get_instance_id)
    sink = CloudWatchSink(client or create_cloudwatch_client(config.region), config.namespace)
    dispatcher = FlushDispatcher(sink, config.max_in_flight)
    return WindowAggregator(
        provider,
        dispatcher,
        instance,
        resolution=config.resolution,
        period=config.period,
        memory_unit=Unit(config.memory_unit),
        tolerance=config.bucket_tolerance,
    )


async def run_exporter(config: ExporterConfig,
                       provider: Optional[DeviceProvider] = None,
                       cloudwatch_client=None,
                       instance: Optional[str] = None,
                       serve_http: bool = True) -> None:
    """Main exporter orchestration."""
    provider = provider or create_provider(config.provider)

    with provider:
        gauges = GpuGauges()
        publisher = LiveGaugePublisher(provider, gauges)
        jobs: List[Awaitable] = [publisher.run()]

        if serve_http:
            server = create_server(create_app(gauges.registry), config.host, config.port, config.log_level)
            jobs.append(server.serve())
            logger.info("serving gauges on %s:%s/metrics", config.host, config.port)

        if config.cloudwatch_exporter:
            logger.info("Starting cloudwatch exporter.")
            aggregator = await build_aggregator(config, provider, cloudwatch_client, instance)
            jobs.append(aggregator.run())
            jobs.append(watch_flush_errors(aggregator.dispatcher.errors))

        tasks = [asyncio.create_task(job) for job in jobs]
        try:
            await asyncio.gather(*tasks)
        finally:
            # stop the surviving loops before the provider shuts down
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="NVIDIA GPU metrics exporter (Prometheus + CloudWatch)")
    parser.add_argument("--config", "-c", type=Path, default=Path("config.yml"),
                        help="YAML configuration file (default: config.yml)")
    parser.add_argument("--cloudwatch-exporter", dest="cloudwatch_exporter", action="store_true",
                        help="enable the CloudWatch push pipeline")
    parser.add_argument("--provider", choices=["nvml", "nvsmi"],
                        help="GPU query backend")
    parser.add_argument("--port", type=int,
                        help="port for the /metrics endpoint")
    parser.add_argument("--log-level", dest="log_level",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="logging level")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config).override_with_args(args)
    except ExporterError as e:
        logging.basicConfig(level=logging.INFO)
        logger.critical("invalid configuration: %s", e)
        logging.shutdown()
        sys.exit(1)

    logging.basicConfig(level=getattr(logging, config.log_level.upper(), logging.INFO))
    logger.info(f"nvidia-cloudwatch starting: provider={config.provider}, port={config.port}, "
                f"cloudwatch={config.cloudwatch_exporter}")

    try:
        asyncio.run(run_exporter(config))
    except ExporterError as e:
        logger.critical("fatal: %s", e)
        logging.shutdown()
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted. Bye!")


if __name__ == "__main__":
    main()
